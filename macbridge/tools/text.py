"""Plain-text helpers shared by the HTML extractors."""

from __future__ import annotations

import html
import re

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def clean_html(text: str) -> str:
    """Decode entities, drop tags and collapse whitespace."""
    if not text:
        return ""
    decoded = html.unescape(text).replace("\xa0", " ")
    return collapse_whitespace(_TAG_RE.sub("", decoded))
