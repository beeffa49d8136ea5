"""Location string parsing to canonical state codes.

Matching is exact per delimited part, then a word-boundary search for full
state names, nicknames and multi-word region names, longest term first with
each match consumed. Two-letter postal codes only match a whole part, so
"Portland, OR" resolves but the word "or" inside a sentence does not.
"""

import logging
import re
from typing import Iterable, Optional

from .regions import NATIONAL_INDICATORS, STATE_ALIASES, STATE_NAMES, load_region_mappings

logger = logging.getLogger(__name__)

_SPLIT_RE = re.compile(r"[,;|&/\n\r]+|\band\b")
_WHITESPACE_RE = re.compile(r"\s+")
_STRIP_CHARS = " \t\"'()[]:-"

# Single-word regions that also appear in ordinary text ("South Carolina",
# "West Texas", "Pacific Gas"); these only match a whole part.
_EXACT_ONLY_REGIONS = frozenset({"south", "west", "pacific", "mountain", "plains"})

_PREFIXES = ("the ", "state of ", "commonwealth of ", "all of ")
_SUFFIXES = (" region", " states", " area", " statewide")


def _term_pattern(term: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)")


def _normalize(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text.lower()).strip(_STRIP_CHARS)


class LocationParser:
    """Resolves free-text locations against the alias and region tables."""

    def __init__(self, region_mappings: Optional[dict[str, list[str]]] = None) -> None:
        self.regions = region_mappings if region_mappings is not None else load_region_mappings()
        self.aliases = STATE_ALIASES

        terms: list[tuple[str, frozenset[str]]] = []
        for alias, code in self.aliases.items():
            if len(alias) > 2:
                terms.append((alias, frozenset({code})))
        for region, codes in self.regions.items():
            if region not in _EXACT_ONLY_REGIONS:
                terms.append((region, frozenset(codes)))
        terms.sort(key=lambda t: len(t[0]), reverse=True)
        self._search_terms = [(_term_pattern(term), codes) for term, codes in terms]
        self._national_patterns = [
            _term_pattern(ind) for ind in NATIONAL_INDICATORS if len(ind) > 2
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_location(self, location: str) -> list[str]:
        """Parse a single location string to sorted state codes."""
        if not location or not isinstance(location, str):
            return []
        text = _normalize(location)
        if not text:
            return []

        whole = self._match_exact(text)
        if whole is not None:
            return sorted(whole)

        codes: set[str] = set()
        for raw_part in _SPLIT_RE.split(text):
            part = _normalize(raw_part)
            if not part:
                continue
            exact = self._match_exact(part)
            if exact is not None:
                codes |= exact
                continue
            codes |= self._search(part)
        return sorted(codes)

    def parse_locations(self, locations: Iterable) -> list[str]:
        """Parse many location strings into one deduplicated, sorted list.

        Non-string, empty and unrecognized entries are skipped.
        """
        if not isinstance(locations, (list, tuple, set)):
            return []
        codes: set[str] = set()
        for location in locations:
            if not isinstance(location, str) or not location.strip():
                continue
            parsed = self.parse_location(location)
            if not parsed:
                logger.debug("location_unresolved text=%r", location)
            codes.update(parsed)
        return sorted(codes)

    def is_national_location(self, location: str) -> bool:
        if not location or not isinstance(location, str):
            return False
        text = _normalize(location)
        if text in NATIONAL_INDICATORS:
            return True
        return any(p.search(text) for p in self._national_patterns)

    def states_in_region(self, region: str) -> list[str]:
        return sorted(self.regions.get(_normalize(region), []))

    @staticmethod
    def is_valid_state_code(code: str) -> bool:
        return isinstance(code, str) and code.upper() in STATE_NAMES

    @staticmethod
    def state_name(code: str) -> Optional[str]:
        if not isinstance(code, str):
            return None
        return STATE_NAMES.get(code.upper())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, text: str) -> Optional[set[str]]:
        if text in self.aliases:
            return {self.aliases[text]}
        if text in self.regions:
            return set(self.regions[text])
        return None

    def _match_exact(self, text: str) -> Optional[set[str]]:
        found = self._lookup(text)
        if found is not None:
            return found
        trimmed = text.rstrip(".")
        for prefix in _PREFIXES:
            if trimmed.startswith(prefix):
                trimmed = trimmed[len(prefix):]
        for suffix in _SUFFIXES:
            if trimmed.endswith(suffix):
                trimmed = trimmed[: -len(suffix)]
        if trimmed != text:
            return self._lookup(trimmed.strip())
        return None

    def _search(self, text: str) -> set[str]:
        codes: set[str] = set()
        remaining = text
        for pattern, term_codes in self._search_terms:
            if pattern.search(remaining):
                codes |= term_codes
                remaining = pattern.sub(" ", remaining)
        return codes


_default_parser: Optional[LocationParser] = None


def get_default_parser() -> LocationParser:
    """Parser over the built-in tables, built on first use."""
    global _default_parser
    if _default_parser is None:
        _default_parser = LocationParser()
    return _default_parser


def parse_locations_to_state_codes(locations: Iterable) -> list[str]:
    """Deduplicated, sorted state codes for a list of location strings."""
    return get_default_parser().parse_locations(locations)
