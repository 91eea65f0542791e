"""Text canonicalization for content-addressed TTS caching.

Spoken responses that only differ in how a date or time is written, in
casing, or in repeated whitespace/punctuation produce the same audio once
the placeholders are rendered by the voice layer. ``canonicalize`` folds
those variations into one stable string and hashes it so the audio cache
can deduplicate them.

Usage:
    result = canonicalize("See you on Nov 20 at 6pm!!")
    result.canonical  # "see you on {{DATE}} at {{TIME}}!"
    result.hash       # 64 hex chars, SHA-256 of the canonical string
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

_APOSTROPHES = re.compile(r"[‘’‚‛′`]")
_QUOTES = re.compile(r"[“”„‟″«»]")

# English, Spanish, Catalan, French, Italian and German month names.
_MONTH_NAMES = [
    # en
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept",
    "oct", "nov", "dec",
    # es
    "enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
    "agosto", "septiembre", "setiembre", "octubre", "noviembre", "diciembre",
    "ene", "abr", "ago", "dic",
    # ca
    "gener", "febrer", "març", "maig", "juny", "juliol", "setembre",
    "octubre", "novembre", "desembre",
    # fr
    "janvier", "février", "mars", "avril", "mai", "juin", "juillet",
    "août", "septembre", "octobre", "décembre",
    # it
    "gennaio", "febbraio", "aprile", "maggio", "giugno", "luglio",
    "settembre", "ottobre", "dicembre",
    # de
    "januar", "februar", "märz", "juni", "juli", "oktober", "dezember",
]
# Longest first so "November" wins over "Nov".
_MONTHS = "|".join(
    re.escape(name) for name in sorted(set(_MONTH_NAMES), key=len, reverse=True)
)

_DATE_PATTERNS = [
    re.compile(r"\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[-/]\d{1,2}[-/]\d{4}\b"),
    re.compile(rf"\b(?:{_MONTHS})\.*\s+\d{{1,2}}\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}\.*\s+(?:de\s+)?(?:{_MONTHS})\b", re.IGNORECASE),
]

_TIME_PATTERNS = [
    # Meridiem forms first so "6:30 pm" becomes one token.
    re.compile(r"\b\d{1,2}(?::\d{2})?\s*(?:[ap]\.+m\.|[ap]m\b)", re.IGNORECASE),
    re.compile(r"\b\d{1,2}:\d{2}\b"),
]

_WHITESPACE = re.compile(r"\s+")
_REPEATED_PUNCTUATION = re.compile(r"([!?.])\1+")
_PLACEHOLDER = re.compile(r"\{\{[A-Z]+\}\}")
_PROTECTED = re.compile(r"\x00(\d+)\x00")

DATE_PLACEHOLDER = "{{DATE}}"
TIME_PLACEHOLDER = "{{TIME}}"


@dataclass(frozen=True)
class CanonicalText:
    """Raw input, its canonical form and the SHA-256 hex digest of the latter."""

    raw: str
    canonical: str
    hash: str


def _lowercase_outside_placeholders(text: str) -> str:
    placeholders: list[str] = []

    def _protect(match: re.Match[str]) -> str:
        placeholders.append(match.group(0))
        return f"\x00{len(placeholders) - 1}\x00"

    protected = _PLACEHOLDER.sub(_protect, text).lower()
    return _PROTECTED.sub(lambda m: placeholders[int(m.group(1))], protected)


def canonicalize_text(raw: str) -> str:
    """Return the canonical form of ``raw`` without hashing it."""

    if not isinstance(raw, str):
        raise TypeError(f"canonicalize expects str, got {type(raw).__name__}")

    text = raw.strip()
    text = _APOSTROPHES.sub("'", text)
    text = _QUOTES.sub('"', text)
    for pattern in _DATE_PATTERNS:
        text = pattern.sub(DATE_PLACEHOLDER, text)
    for pattern in _TIME_PATTERNS:
        text = pattern.sub(TIME_PLACEHOLDER, text)
    text = _WHITESPACE.sub(" ", text)
    text = _REPEATED_PUNCTUATION.sub(r"\1", text)
    text = _lowercase_outside_placeholders(text)
    return text.strip()


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize(raw: str) -> CanonicalText:
    """Canonicalize ``raw`` and compute its cache key."""

    canonical = canonicalize_text(raw)
    return CanonicalText(raw=raw, canonical=canonical, hash=sha256_hex(canonical))


def hash_text(raw: str) -> str:
    """Shortcut returning only the cache key for ``raw``."""

    return canonicalize(raw).hash


__all__ = [
    "CanonicalText",
    "DATE_PLACEHOLDER",
    "TIME_PLACEHOLDER",
    "canonicalize",
    "canonicalize_text",
    "hash_text",
    "sha256_hex",
]
