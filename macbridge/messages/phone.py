"""Phone number canonicalization for Messages handle lookups."""

from __future__ import annotations

import re

_NON_DIAL_RE = re.compile(r"[^0-9+]")
_E164_US_RE = re.compile(r"^\+1\d{10}$")
_US_WITH_COUNTRY_RE = re.compile(r"^1\d{10}$")
_US_LOCAL_RE = re.compile(r"^\d{10}$")


def normalize_phone_number(raw: str) -> list[str]:
    """
    Candidate handle identifiers for ``raw``.

    North American numbers collapse to a single ``+1XXXXXXXXXX`` form.
    Anything else gets a best-effort ``+``-prefixed variant. Always returns
    at least one element.
    """
    cleaned = _NON_DIAL_RE.sub("", raw or "")
    # Only a leading plus is meaningful
    cleaned = cleaned[:1] + cleaned[1:].replace("+", "")

    if _E164_US_RE.match(cleaned):
        return [cleaned]
    if _US_WITH_COUNTRY_RE.match(cleaned):
        return [f"+{cleaned}"]
    if _US_LOCAL_RE.match(cleaned):
        return [f"+1{cleaned}"]

    formats: list[str] = []
    if cleaned.startswith("+"):
        # Already international (+1 short forms included)
        formats.append(cleaned)
    elif cleaned.startswith("1"):
        formats.append(f"+{cleaned}")
    else:
        formats.append(f"+1{cleaned}")
    return list(dict.fromkeys(formats))
