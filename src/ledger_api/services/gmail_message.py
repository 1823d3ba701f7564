"""Helpers for reading Gmail API message resources."""

import base64
import html
import re
from typing import Any

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_TAG_RE = re.compile(r"<\s*(br|/p|/div|/tr|/li|/h[1-6])\b[^>]*>", re.IGNORECASE)
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")
_SPACES_RE = re.compile(r"[ \t\r\f\v]+")


def decode_body(data: str) -> str:
    """Decode a base64url body part to text.

    Gmail omits padding, so it is restored before decoding.
    """
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def get_headers(message: dict[str, Any]) -> dict[str, str]:
    """Collect headers from a message and its nested parts.

    Names are lower-cased; a header on a nested part does not override the
    same header at the top level.
    """
    headers: dict[str, str] = {}

    def collect(part: dict[str, Any]) -> None:
        for header in part.get("headers") or []:
            headers.setdefault(header["name"].lower(), header["value"])
        for sub_part in part.get("parts") or []:
            collect(sub_part)

    payload = message.get("payload")
    if payload:
        collect(payload)
    return headers


def _find_part_text(part: dict[str, Any], mime_type: str) -> str:
    data = (part.get("body") or {}).get("data")
    if part.get("mimeType") == mime_type and data:
        return decode_body(data)
    for sub_part in part.get("parts") or []:
        text = _find_part_text(sub_part, mime_type)
        if text:
            return text
    return ""


def html_to_text(markup: str) -> str:
    """Reduce an HTML body to readable text for the extraction prompt."""
    text = _SCRIPT_STYLE_RE.sub("", markup)
    text = _BLOCK_TAG_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    text = _SPACES_RE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def get_body(message: dict[str, Any]) -> str:
    """Return the message body as text.

    Prefers the first ``text/plain`` part anywhere in the tree and falls back
    to the first ``text/html`` part converted to text.
    """
    payload = message.get("payload")
    if not payload:
        return ""
    plain = _find_part_text(payload, "text/plain")
    if plain:
        return plain
    markup = _find_part_text(payload, "text/html")
    return html_to_text(markup) if markup else ""


def parse_sender_address(from_header: str | None) -> str | None:
    """Extract the bare address from a From header like ``Bank <alerts@bank.com>``."""
    if not from_header:
        return None
    match = re.search(r"<([^>]+)>", from_header)
    address = match.group(1) if match else from_header
    address = address.strip().lower()
    return address or None
