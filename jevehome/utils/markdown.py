"""
Minimal Markdown -> HTML for chat bubbles: HTML-escape, **bold**, newlines to <br>.
Apply to the whole accumulated text each time (never to a single stream chunk, a
"**" pair may be split across chunks).
"""
import re

_BOLD = re.compile(r"\*\*(.*?)\*\*")


def escape_html(text: str | None) -> str:
    return str(text or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def format_text(text: str | None) -> str:
    if not text:
        return ""
    safe = escape_html(text)
    safe = _BOLD.sub(r"<strong>\1</strong>", safe)
    return safe.replace("\n", "<br>")
