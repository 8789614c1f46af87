"""
Patent citation parsing for pat-download.

Normalizes the notations people and databases use for patent publications
into a single `PatentIdentifier` (country code, serial number, optional kind
code) that OPS understands.

Supported notations, tried in this order:
- EPODOC-like codes: ``EP1000000A1``, ``US7123456``
- Japanese imperial-era numbers: ``JPS64123456``, ``JPH05123456``
- Loosely punctuated US citations: ``United States Patent No. 7,123,456``
- Underscore-delimited exports (Lens style): ``US_7123456_B2``

Numbering references:
http://www.hawkip.com/advice/variations-of-publication-number-formatting-by-country
http://www.epo.org/searching-for-patents/helpful-resources/asian/japan/numbering.html
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

logger = logging.getLogger("IdentifierParser")

# Imperial era prefix -> Gregorian offset of year 0 of the era.
IMPERIAL_ERA_OFFSETS = {
    "JPS": 1925,  # Showa
    "JPH": 1988,  # Heisei
}

# Kind code of an unexamined Japanese application.
JP_UNEXAMINED_KIND = "A"

_COUNTRY_RE = re.compile(r"^[A-Za-z]{2}$")

_CANONICAL_RE = re.compile(r"(?P<country>[A-Za-z]{2})(?P<serial>[0-9]+)(?P<kind>.*)", re.DOTALL)
_IMPERIAL_RE = re.compile(r"(?P<era>JPS|JPH)(?P<year>[0-9]{2})(?P<serial>[0-9]{6})")
_US_CITATION_RE = re.compile(
    r"(?:(?:United States|U\.S\.|US)\s*"
    r"(?:Patent|Pat)\.?\s*"
    r"(?:Number|No)\.?\s*)?"
    r"(?P<serial>[0-9],?[0-9]{3},?[0-9]{3})"
)
_DELIMITED_RE = re.compile(r"(?P<country>[A-Za-z]{2})_(?P<serial>[0-9]+)_(?P<kind>.+)", re.DOTALL)


class IdentifierParseError(ValueError):
    """Raised when a citation does not match any supported notation."""

    def __init__(self, raw: str, position: int, description: str) -> None:
        self.raw = raw
        self.position = position
        self.description = description
        super().__init__(f"{description} (at position {position} in {raw!r})")


@dataclass(frozen=True)
class PatentIdentifier:
    """
    Canonical patent publication identifier.

    Attributes:
        country_code: Two-letter office code (e.g. ``EP``).
        serial: Publication number, digits only.
        kind: Optional kind code (e.g. ``A1``, ``B2``).
    """

    country_code: str
    serial: str
    kind: Optional[str] = None

    def __post_init__(self) -> None:
        if not _COUNTRY_RE.match(self.country_code):
            raise ValueError(f"Country code must be two letters, got {self.country_code!r}")
        if not self.serial or not (self.serial.isascii() and self.serial.isdigit()):
            raise ValueError(f"Serial must be one or more digits, got {self.serial!r}")
        if self.kind == "":
            raise ValueError("Kind code must be non-empty when present")

    @property
    def compact(self) -> str:
        """EPODOC rendering: country, serial and kind run together."""
        return f"{self.country_code}{self.serial}{self.kind or ''}"

    @property
    def segmented(self) -> str:
        """DOCDB rendering: dot-delimited country, serial and kind."""
        if self.kind is None:
            return f"{self.country_code}.{self.serial}"
        return f"{self.country_code}.{self.serial}.{self.kind}"

    @property
    def search_key(self) -> str:
        """
        OPS publication search key.

        Without a kind code OPS is asked to search by base number (EPODOC);
        with one the kind is needed to pick the publication stage (DOCDB).
        """
        if self.kind is None:
            return f"epodoc/{self.compact}"
        return f"docdb/{self.segmented}"

    @property
    def image_path(self) -> str:
        """OPS path of the full document image for this publication."""
        return (
            f"published-data/images/{self.country_code}/{self.serial}/"
            f"{self.kind or '%'}/fullimage"
        )

    def __str__(self) -> str:
        return self.compact


def _canonical_format(raw: str) -> Optional[PatentIdentifier]:
    match = _CANONICAL_RE.fullmatch(raw)
    if not match:
        return None
    return PatentIdentifier(
        match.group("country"),
        match.group("serial"),
        match.group("kind") or None,
    )


def _imperial_japanese_format(raw: str) -> Optional[PatentIdentifier]:
    match = _IMPERIAL_RE.fullmatch(raw)
    if not match:
        return None
    year = int(match.group("year")) + IMPERIAL_ERA_OFFSETS[match.group("era")]
    return PatentIdentifier("JP", f"{year}{match.group('serial')}", JP_UNEXAMINED_KIND)


def _us_citation_format(raw: str) -> Optional[PatentIdentifier]:
    # Only the modern 7-digit US series is recognized.
    match = _US_CITATION_RE.fullmatch(raw)
    if not match:
        return None
    return PatentIdentifier("US", match.group("serial").replace(",", ""))


def _delimited_format(raw: str) -> Optional[PatentIdentifier]:
    match = _DELIMITED_RE.fullmatch(raw)
    if not match:
        return None
    return PatentIdentifier(match.group("country"), match.group("serial"), match.group("kind"))


# Earlier grammars are more permissive and shadow later ones.
GRAMMARS: Tuple[Tuple[str, Callable[[str], Optional[PatentIdentifier]]], ...] = (
    ("canonical", _canonical_format),
    ("imperial-japanese", _imperial_japanese_format),
    ("us-citation", _us_citation_format),
    ("delimited", _delimited_format),
)


def _failure_position(raw: str) -> Tuple[int, str]:
    """
    Locate where the canonical notation stops matching, for error reporting.

    Only reached when no grammar matched, so the canonical notation failed
    either at the country code or at the first serial digit.
    """
    if len(raw) < 2 or not raw[:2].isalpha() or not raw[:2].isascii():
        return 0, "expected a two-letter country code or a patent citation"
    return 2, "expected serial number digits after the country code"


def parse_identifier(raw: str) -> PatentIdentifier:
    """
    Parse a patent citation into a `PatentIdentifier`.

    Args:
        raw: Citation text in any supported notation. The whole text must
            match; nothing is stripped.

    Returns:
        The normalized identifier.

    Raises:
        IdentifierParseError: If no notation matches the full input.
    """
    for name, grammar in GRAMMARS:
        identifier = grammar(raw)
        if identifier is not None:
            logger.debug("Parsed %r as %s using %s notation", raw, identifier, name)
            return identifier

    position, description = _failure_position(raw)
    raise IdentifierParseError(raw, position, description)
