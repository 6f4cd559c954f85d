"""Display helpers for names, companies and timestamps."""

from __future__ import annotations

import re
from datetime import datetime, timezone

ANONYMOUS_NAME = "Anonymous User"
ANONYMOUS_FALLBACK = "Anonymous"

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3_600
SECONDS_PER_DAY = 86_400
SECONDS_PER_WEEK = 604_800

# Legal suffixes keep their canonical casing everywhere except as the first word
_SUFFIXES = {
    "llc": "LLC",
    "inc": "Inc",
    "corp": "Corp",
    "co": "Co",
    "ltd": "Ltd",
    "gp": "GP",
    "lp": "LP",
    "llp": "LLP",
    "plc": "PLC",
    "ag": "AG",
    "gmbh": "GmbH",
    "sa": "SA",
    "nv": "NV",
    "ab": "AB",
}

_ROMAN_NUMERALS = {"ii", "iii", "iv", "v", "vi", "vii", "viii", "ix", "x"}

_CORRECTIONS = {
    "mcdonald": "McDonald",
    "macdonald": "MacDonald",
    "mcdonalds": "McDonalds",
    "jp morgan": "JPMorgan",
    "jp morgan chase": "JPMorgan Chase",
    "goldman sachs group": "Goldman Sachs",
    "bmw": "BMW",
    "ibm": "IBM",
    "hp": "HP",
    "at&t": "AT&T",
    "fbi": "FBI",
    "cia": "CIA",
    "nasdaq": "NASDAQ",
    "nyse": "NYSE",
}


def _capitalize(part: str) -> str:
    return part[:1].upper() + part[1:].lower()


def _format_word(word: str, index: int) -> str:
    lower = word.lower()

    if index > 0 and lower in _SUFFIXES:
        return _SUFFIXES[lower]
    if "'" in word:
        return "'".join(_capitalize(part) for part in word.split("'"))
    if "-" in word:
        return "-".join(_capitalize(part) for part in word.split("-"))
    if lower.startswith("mc") and len(word) > 2:
        return "Mc" + _capitalize(word[2:])
    # No general "mac" prefix rule; Mac surnames are listed in _CORRECTIONS
    if lower in _ROMAN_NUMERALS:
        return word.upper()
    return _capitalize(word)


def format_company_name(company_name: str | None) -> str:
    """Normalize whitespace and casing of a company name.

    >>> format_company_name("  acme   widgets llc ")
    'Acme Widgets LLC'
    """
    if not company_name or not isinstance(company_name, str):
        return ""

    collapsed = re.sub(r"\s+", " ", company_name.strip())
    if not collapsed:
        return ""

    formatted = " ".join(_format_word(word, index) for index, word in enumerate(collapsed.split(" ")))
    return _CORRECTIONS.get(formatted.lower(), formatted)


def resolve_display_name(*names: str | None) -> str:
    """Return the first usable name, skipping blanks and the anonymous placeholder."""
    for name in names:
        if name and name.strip() and name != ANONYMOUS_NAME:
            return name
    return ANONYMOUS_FALLBACK


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Render a compact relative timestamp ("Just now", "5m ago", "3h ago", "2d ago")."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    seconds = int((current - moment).total_seconds())
    if seconds < SECONDS_PER_MINUTE:
        return "Just now"
    if seconds < SECONDS_PER_HOUR:
        return f"{seconds // SECONDS_PER_MINUTE}m ago"
    if seconds < SECONDS_PER_DAY:
        return f"{seconds // SECONDS_PER_HOUR}h ago"
    if seconds < SECONDS_PER_WEEK:
        return f"{seconds // SECONDS_PER_DAY}d ago"
    return moment.date().isoformat()
