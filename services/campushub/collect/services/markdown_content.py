"""Markdown rendering for task descriptions shown in the portal."""

import bleach
import markdown as md

_ALLOWED_TAGS = set(bleach.sanitizer.ALLOWED_TAGS).union(
    {
        "p",
        "pre",
        "code",
        "h1",
        "h2",
        "h3",
        "h4",
        "hr",
        "br",
        "table",
        "thead",
        "tbody",
        "tr",
        "th",
        "td",
    }
)

_ALLOWED_ATTRIBUTES = {
    **bleach.sanitizer.ALLOWED_ATTRIBUTES,
    "a": ["href", "title", "rel"],
    "code": ["class"],
    "pre": ["class"],
}


def render_markdown_to_safe_html(markdown_text: str) -> str:
    if not (markdown_text or "").strip():
        return ""
    html = md.markdown(
        markdown_text,
        extensions=["fenced_code", "tables"],
        output_format="html",
    )
    return bleach.clean(html, tags=_ALLOWED_TAGS, attributes=_ALLOWED_ATTRIBUTES, strip=True)
