"""
Prompt Assembler: resolved configuration -> the single system instruction sent to Gemini.
Deterministic: same configuration and overrides always give the same string.
"""
from typing import Mapping

from jevehome.services.assistant_config import AssistantConfiguration, Capability, YearOverride

DEFAULT_SYSTEM_PROMPT = """You are a warm, loving assistant embedded in Jia & Vickey's private anniversary website, a site they built to celebrate over 11 years of marriage.

ABOUT THE SITE:
The site is presented to outsiders as "Jeve Home", a fictional interior design studio. But once logged in, it reveals the real content: a heartfelt anniversary website for Jia & Vickey, complete with:
- A yearly timeline of milestones and memories (2011-2026)
- A private photo gallery of their life together
- "One Day One Word", a section where they write one loving word to each other each day
- A final message section filled with love letters

ABOUT JIA & VICKEY:
- They have been together for over 11 years and married since 2015
- Their anniversary site is a labor of love built to surprise and cherish each other
- They share a home and a life built on kindness, humor, and deep affection

YOUR ROLE:
- Answer questions about their love story, the timeline, photos, or site sections warmly and affectionately
- Help with general questions as a knowledgeable, caring assistant
- Keep responses concise and heartfelt
- If asked about interior design (the fake company), play along lightheartedly
- Speak with warmth, as if you are a trusted friend of the couple

Be conversational, loving, and helpful. You are part of something special."""

SITE_CONTEXT_HEADER = "SITE CONTEXT (provided by the site owners):"
TIMELINE_HEADER = "ANNIVERSARY TIMELINE (key milestones):"

TOPIC_RESTRICTION = (
    "IMPORTANT: Keep all responses focused on Jia & Vickey's anniversary site, their love story, "
    "and the site's features. Politely redirect off-topic questions."
)

# year -> (title, description)
TIMELINE: dict[int, tuple[str, str]] = {
    2011: ("Where it all began", "they first met and fell in love"),
    2012: ("Growing closer", "deepening their connection"),
    2013: ("Adventures together", "exploring life as a couple"),
    2014: ("Building a future", "serious commitment, planning ahead"),
    2015: ("Marriage", "they tied the knot and began their married life"),
    2016: ("First year of marriage", "learning and growing together"),
    2017: ("New adventures", "building their shared home and routines"),
    2018: ("Deepening bonds", "travel, milestones, cherished memories"),
    2019: ("Together through everything", "supporting each other"),
    2020: ("Resilience", "navigating challenges hand in hand"),
    2021: ("Renewal", "rediscovering joy and each other"),
    2022: ("Flourishing", "professionally and personally thriving"),
    2023: ("Gratitude", "reflecting on how far they've come"),
    2024: ("A decade+", "celebrating ten-plus years of love"),
    2025: ("Still going strong", "deeper love than ever"),
    2026: ("Anniversary site launch", "this very site, a gift of love"),
}


def merge_timeline(overrides: Mapping[int, YearOverride] | None = None) -> list[tuple[int, str, str]]:
    """Built-in timeline with per-year overrides applied; years only present in overrides are added.
    Returns [(year, title, description)] sorted by year."""
    overrides = overrides or {}
    merged = []
    for year in sorted(set(TIMELINE) | set(overrides)):
        title, description = TIMELINE.get(year, ("", ""))
        override = overrides.get(year)
        if override is not None:
            title = override.title or title
            description = override.description or description
        if not title and not description:
            continue
        merged.append((year, title, description))
    return merged


def build_timeline_section(overrides: Mapping[int, YearOverride] | None = None) -> str:
    lines = [TIMELINE_HEADER]
    for year, title, description in merge_timeline(overrides):
        if title and description:
            lines.append(f"- {year}: {title}: {description}")
        else:
            lines.append(f"- {year}: {title or description}")
    return "\n".join(lines)


def build_system_instruction(
    config: AssistantConfiguration,
    timeline_overrides: Mapping[int, YearOverride] | None = None,
) -> str:
    """
    Base persona (admin system prompt, else the built-in one), then optional sections:
    site context, timeline (timeline_context capability), topic restriction (unless
    general_knowledge is enabled).
    """
    parts = [config.system_prompt.strip() or DEFAULT_SYSTEM_PROMPT]

    if config.site_context.strip():
        parts.append(f"{SITE_CONTEXT_HEADER}\n{config.site_context.strip()}")

    if config.has(Capability.TIMELINE_CONTEXT):
        parts.append(build_timeline_section(timeline_overrides))

    if not config.has(Capability.GENERAL_KNOWLEDGE):
        parts.append(TOPIC_RESTRICTION)

    return "\n\n".join(parts)


TITLE_PROMPT_TEMPLATE = """Generate a very short title (3-5 words) for this conversation:
User: {user}
Assistant: {assistant}
Return only the title, nothing else."""


def build_title_prompt(first_message: str, first_reply: str) -> str:
    return TITLE_PROMPT_TEMPLATE.format(user=first_message[:200], assistant=first_reply[:200])
