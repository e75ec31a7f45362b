"""
Input sanitisation helpers for user-supplied text that ends up in emails,
LINE messages or outbound links.
"""

from __future__ import annotations

import html
import re
from urllib.parse import urlparse

from ttm_backend.errors import ValidationFailed

MAX_TEXT_LENGTH = 5000

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_OBJECT_RE = re.compile(r"<object\b[^<]*(?:(?!</object>)<[^<]*)*</object>", re.IGNORECASE)
_EMBED_RE = re.compile(r"<embed\b[^<]*>", re.IGNORECASE)
_HANDLER_RE = re.compile(r"on\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE)
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_html(text: str | None) -> str:
    if not text:
        return ""
    for pattern in (_SCRIPT_RE, _IFRAME_RE, _OBJECT_RE, _EMBED_RE, _HANDLER_RE, _JS_PROTOCOL_RE):
        text = pattern.sub("", text)
    return text[:MAX_TEXT_LENGTH]


def sanitize_for_line(text: str | None) -> str:
    """Plain text for LINE: no markup, no angle brackets."""
    if not text:
        return ""
    text = _TAG_RE.sub("", text)
    text = text.replace("<", "").replace(">", "")
    return text.strip()[:MAX_TEXT_LENGTH]


def validate_url(url: str, allowed_domains: list[str]) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationFailed("Invalid URL format")
    host = parsed.hostname.lower()
    if not any(host == domain or host.endswith(f".{domain}") for domain in allowed_domains):
        raise ValidationFailed("URL from untrusted domain")
    return url


def validate_input(value, max_length: int) -> str:
    if not value or not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))


def escape_html(value) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)
