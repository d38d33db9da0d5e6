"""``{{variable}}`` email templating and small HTML/email helpers."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any
from urllib.parse import urlencode

_VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}


def _present(value: Any) -> bool:
    return value is not None and value != ""


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown or empty names are left as-is."""

    def _replace(match: re.Match[str]) -> str:
        value = context.get(match.group(1))
        return str(value) if _present(value) else match.group(0)

    return _VARIABLE_RE.sub(_replace, template)


def extract_template_variables(*templates: str) -> list[str]:
    """Variable names in order of first appearance across all templates."""
    seen: dict[str, None] = {}
    for template in templates:
        for name in _VARIABLE_RE.findall(template or ""):
            seen.setdefault(name, None)
    return list(seen)


def validate_template_context(template: str, context: Mapping[str, Any]) -> tuple[bool, list[str]]:
    missing = [name for name in extract_template_variables(template) if not _present(context.get(name))]
    return not missing, missing


def escape_html(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def text_to_html(text: str) -> str:
    return "".join(f"<p>{escape_html(line)}</p>" for line in text.split("\n"))


def html_to_text(html: str) -> str:
    text = _STYLE_RE.sub("", html)
    text = _SCRIPT_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    return _WS_RE.sub(" ", text).strip()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def filter_valid_emails(emails: Iterable[str]) -> list[str]:
    return [e for e in emails if is_valid_email(e)]


def format_email_date(value: date | datetime | str) -> str:
    """Long-form date for email bodies, e.g. ``December 5, 2024``."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return f"{value:%B} {value.day}, {value.year}"


def unsubscribe_link(app_url: str, customer_id: str) -> str:
    return f"{app_url.rstrip('/')}/unsubscribe?{urlencode({'id': customer_id})}"
