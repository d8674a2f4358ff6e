"""
Configuration Resolver: raw key-value rows (all strings) -> typed, fully-defaulted values.

Rows come from the "agent" namespace (assistant + widget keys) and the "timeline" namespace
(per-year overrides, keys "<year>.title" / "<year>.description"). Nothing here raises on bad
data: a value that does not parse falls back to that field's default and the rest stays valid.
Pure functions, no I/O; callers inject the mapping.
"""
import enum
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-lite"
DEFAULT_MAX_HISTORY = 20
DEFAULT_WELCOME_MESSAGE = "Hi! I'm your assistant for this site. Ask me anything about Jia & Vickey's journey ✨"
DEFAULT_WIDGET_THEME = {"primaryColor": "#c8907e", "primaryDark": "#a86f5e"}


class Capability(str, enum.Enum):
    TIMELINE_CONTEXT = "timeline_context"
    QUICK_PROMPTS = "quick_prompts"
    CONVERSATION_HISTORY = "conversation_history"
    GENERAL_KNOWLEDGE = "general_knowledge"


KNOWN_CAPABILITIES = frozenset(c.value for c in Capability)


@dataclass(frozen=True)
class AssistantConfiguration:
    model: str = DEFAULT_MODEL
    system_prompt: str = ""
    site_context: str = ""
    max_history: int = DEFAULT_MAX_HISTORY
    enabled_capabilities: frozenset[str] = frozenset()

    def has(self, capability: Capability | str) -> bool:
        name = capability.value if isinstance(capability, Capability) else capability
        return name in self.enabled_capabilities

    def with_capabilities(self, names: Iterable[str] | None) -> "AssistantConfiguration":
        """Copy with the capability set replaced by `names` (unknown names dropped).
        None or an empty list keeps the stored set."""
        if not names:
            return self
        return replace(self, enabled_capabilities=_known(names))


@dataclass(frozen=True)
class WidgetConfiguration:
    """What the chat widget needs at open time. widget_theme is opaque to the server."""
    model: str = DEFAULT_MODEL
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    max_history: int = DEFAULT_MAX_HISTORY
    enabled_capabilities: frozenset[str] = frozenset()
    quick_prompts: tuple[dict, ...] = ()
    widget_theme: dict = field(default_factory=lambda: dict(DEFAULT_WIDGET_THEME))


@dataclass(frozen=True)
class YearOverride:
    title: str | None = None
    description: str | None = None


def _known(names: Iterable[Any]) -> frozenset[str]:
    return frozenset(n for n in names if isinstance(n, str) and n in KNOWN_CAPABILITIES)


def _parse_json(raw: str | None, expected: type, key: str) -> Any:
    """json.loads + type check. Returns None on missing, malformed or wrong-typed input."""
    if raw is None or not str(raw).strip():
        return None
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Config key %s is not valid JSON; using default", key)
        return None
    if not isinstance(value, expected):
        logger.warning("Config key %s is not a %s; using default", key, expected.__name__)
        return None
    return value


def parse_capabilities(raw: str | None, default: frozenset[str] = frozenset()) -> frozenset[str]:
    """enabled_tools row: JSON list of capability names."""
    value = _parse_json(raw, list, "enabled_tools")
    if value is None:
        return default
    return _known(value)


def parse_max_history(raw: str | None, default: int = DEFAULT_MAX_HISTORY) -> int:
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("Config key max_history=%r is not an integer; using default", raw)
        return default
    return value if value >= 0 else default


def parse_quick_prompts(raw: str | None) -> tuple[dict, ...]:
    """quick_prompts row: JSON list of {"label", "prompt"}; malformed items are skipped."""
    value = _parse_json(raw, list, "quick_prompts")
    if value is None:
        return ()
    out = []
    for item in value:
        if not isinstance(item, dict):
            continue
        label, prompt = item.get("label"), item.get("prompt")
        if isinstance(label, str) and isinstance(prompt, str) and label.strip() and prompt.strip():
            out.append({"label": label, "prompt": prompt})
    return tuple(out)


def resolve_assistant_config(
    rows: Mapping[str, str] | None,
    default_model: str = DEFAULT_MODEL,
) -> AssistantConfiguration:
    """Build the per-request assistant configuration from "agent" namespace rows."""
    rows = rows or {}
    return AssistantConfiguration(
        model=(rows.get("model") or "").strip() or default_model,
        system_prompt=(rows.get("system_prompt") or "").strip(),
        site_context=(rows.get("site_context") or "").strip(),
        max_history=parse_max_history(rows.get("max_history")),
        enabled_capabilities=parse_capabilities(rows.get("enabled_tools")),
    )


def resolve_widget_config(
    rows: Mapping[str, str] | None,
    default_model: str = DEFAULT_MODEL,
) -> WidgetConfiguration:
    """Build the widget configuration (welcome text, quick prompts, theme) from "agent" rows."""
    rows = rows or {}
    theme = _parse_json(rows.get("widget_theme"), dict, "widget_theme")
    return WidgetConfiguration(
        model=(rows.get("model") or "").strip() or default_model,
        welcome_message=(rows.get("welcome_message") or "").strip() or DEFAULT_WELCOME_MESSAGE,
        max_history=parse_max_history(rows.get("max_history")),
        enabled_capabilities=parse_capabilities(rows.get("enabled_tools")),
        quick_prompts=parse_quick_prompts(rows.get("quick_prompts")),
        widget_theme=theme if theme is not None else dict(DEFAULT_WIDGET_THEME),
    )


def resolve_timeline_overrides(rows: Mapping[str, str] | None) -> dict[int, YearOverride]:
    """
    "timeline" namespace rows -> {year: YearOverride}. Keys look like "2015.title" or
    "2015.description"; anything else (bad year, unknown field, blank value) is ignored.
    """
    found: dict[int, dict[str, str]] = {}
    for key, value in (rows or {}).items():
        year_part, _, field_name = key.partition(".")
        if field_name not in ("title", "description") or not year_part.isdigit():
            continue
        text = (value or "").strip()
        if not text:
            continue
        found.setdefault(int(year_part), {})[field_name] = text
    return {year: YearOverride(**fields) for year, fields in found.items()}
