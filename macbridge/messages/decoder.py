"""
Legacy attributed-body decoding.

On recent macOS releases the ``text`` column of chat.db is often NULL and
the message lives in ``attributedBody``: a typedstream-serialized
NSAttributedString. The format is undocumented and shifts between releases,
so this module does not deserialize it. Instead it runs a prioritized chain
of best-effort extractors and ends in a fixed placeholder:

  1. typedstream layout: ``NSString`` marker, then a length-prefixed UTF-8 run
  2. textual marker patterns over the decoded buffer
  3. URL patterns (independent of 1-2)
  4. generic cleanup of the whole buffer when 1-3 found nothing
"""

from __future__ import annotations

import re
from typing import Optional

import structlog

from macbridge.models import DecodedBody
from macbridge.observability import metrics as obs_metrics

logger = structlog.get_logger()

UNREADABLE = "[Message content not readable]"

# Minimum length for a candidate to count as real content
_MIN_TEXT_LEN = 5

_TYPEDSTREAM_MARKER = b"NSString\x01\x94\x84\x01+"

_TEXT_PATTERNS = (
    re.compile(r'NSString">(.*?)<'),
    re.compile(r'NSString">([^<]+)'),
    re.compile(r'NSNumber">\d+<.*?NSString">(.*?)<'),
    re.compile(r'NSArray">.*?NSString">(.*?)<'),
    re.compile(r'"string":\s*"([^"]+)"'),
    re.compile(r"text[^>]*>(.*?)<"),
    re.compile(r"message>(.*?)<"),
)

_URL_PATTERNS = (
    re.compile(r'(https?://[^\s<"]+)'),
    re.compile(r'NSString">(https?://[^\s<"]+)'),
    re.compile(r'"url":\s*"(https?://[^"]+)"'),
    re.compile(r"link[^>]*>(https?://[^<]+)"),
)

_METADATA_PATTERNS = (
    (re.compile(r"streamtyped.*?NSString"), ""),
    (re.compile(r"NSAttributedString.*?NSString"), ""),
    (re.compile(r"NSDictionary.*$"), ""),
    (re.compile(r"\+[A-Za-z]+\s"), ""),
    (re.compile(r"NSNumber.*?NSValue.*?\*"), ""),
    (re.compile(r"[^\x20-\x7E]"), " "),
)

_LEADING_NOISE_RE = re.compile(r"^[+\s]+")
_TRAILING_NOISE_RE = re.compile(r"\s*iI\s*[A-Z]\s*$")
_WS_RE = re.compile(r"\s+")


def _typedstream_text(blob: bytes) -> Optional[str]:
    """
    Read the string that follows the NSString marker.

    Length encoding:
      • 1 byte            if < 0x81
      • 0x81 + 1 byte     short length
      • 0x82 + 2 bytes    big-endian length
    """
    idx = blob.find(_TYPEDSTREAM_MARKER)
    if idx < 0:
        return None
    start = idx + len(_TYPEDSTREAM_MARKER)
    if start >= len(blob):
        return None

    first = blob[start]
    if first < 0x81:
        length, text_start = first, start + 1
    elif first == 0x81 and start + 1 < len(blob):
        length, text_start = blob[start + 1], start + 2
    elif first == 0x82 and start + 2 < len(blob):
        length, text_start = int.from_bytes(blob[start + 1:start + 3], "big"), start + 3
    else:
        return None

    raw = blob[text_start:text_start + length]
    return raw.decode("utf-8", errors="replace").strip() or None


def _match_text(content: str) -> str:
    """First marker-pattern match longer than the minimum; else the last short match."""
    text = ""
    for pattern in _TEXT_PATTERNS:
        match = pattern.search(content)
        if match and match.group(1):
            text = match.group(1)
            if len(text) > _MIN_TEXT_LEN:
                break
    return text


def _match_url(content: str) -> Optional[str]:
    for pattern in _URL_PATTERNS:
        match = pattern.search(content)
        if match and match.group(1):
            return match.group(1)
    return None


def _cleanup(content: str) -> str:
    for pattern, replacement in _METADATA_PATTERNS:
        content = pattern.sub(replacement, content)
    return _WS_RE.sub(" ", content).strip()


def _postprocess(text: str) -> str:
    text = _LEADING_NOISE_RE.sub("", text)
    text = _TRAILING_NOISE_RE.sub("", text)
    return _WS_RE.sub(" ", text).strip()


def decode_legacy_body(hex_encoded: str) -> DecodedBody:
    """Recover readable text (and any URL) from a hex-encoded attributed body. Never raises."""
    try:
        blob = bytes.fromhex(hex_encoded or "")
        content = blob.decode("utf-8", errors="replace")

        text = _typedstream_text(blob) or ""
        outcome = "typedstream" if text else "pattern"
        if len(text) <= _MIN_TEXT_LEN:
            text = _match_text(content) or text
        # Prefer a link inside the recovered text; the raw buffer carries binary tails
        url = (_match_url(text) if text else None) or _match_url(content)

        if not text and not url:
            readable = _cleanup(content)
            if len(readable) <= _MIN_TEXT_LEN:
                obs_metrics.record_decode("unreadable")
                return DecodedBody(text=UNREADABLE)
            text = readable
            outcome = "cleanup"

        if text:
            text = _postprocess(text)
        obs_metrics.record_decode(outcome if text else "url")
        return DecodedBody(text=text or url or "", url=url)
    except Exception as e:
        logger.debug("legacy_body_decode_error", error=str(e))
        obs_metrics.record_decode("error")
        return DecodedBody(text=UNREADABLE)
