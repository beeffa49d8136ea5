"""Canonical state alias and region tables.

Keys are lower-case. Every alias of a state (full name, postal code,
nickname) maps to the same two-letter code, so aliases collapse on
deduplication.
"""

import json
from pathlib import Path
from typing import Optional

import yaml


STATE_NAMES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma",
    "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington", "WV": "West Virginia",
    "WI": "Wisconsin", "WY": "Wyoming", "DC": "District of Columbia",
}

STATE_NICKNAMES = {
    "yellowhammer state": "AL",
    "last frontier": "AK",
    "grand canyon state": "AZ",
    "natural state": "AR",
    "golden state": "CA",
    "centennial state": "CO",
    "constitution state": "CT",
    "first state": "DE",
    "sunshine state": "FL",
    "peach state": "GA",
    "aloha state": "HI",
    "gem state": "ID",
    "prairie state": "IL",
    "land of lincoln": "IL",
    "hoosier state": "IN",
    "hawkeye state": "IA",
    "sunflower state": "KS",
    "bluegrass state": "KY",
    "pelican state": "LA",
    "pine tree state": "ME",
    "old line state": "MD",
    "bay state": "MA",
    "great lakes state": "MI",
    "north star state": "MN",
    "land of 10,000 lakes": "MN",
    "magnolia state": "MS",
    "show me state": "MO",
    "show-me state": "MO",
    "treasure state": "MT",
    "big sky country": "MT",
    "cornhusker state": "NE",
    "silver state": "NV",
    "granite state": "NH",
    "garden state": "NJ",
    "land of enchantment": "NM",
    "empire state": "NY",
    "tar heel state": "NC",
    "peace garden state": "ND",
    "buckeye state": "OH",
    "sooner state": "OK",
    "beaver state": "OR",
    "keystone state": "PA",
    "ocean state": "RI",
    "palmetto state": "SC",
    "mount rushmore state": "SD",
    "volunteer state": "TN",
    "lone star state": "TX",
    "beehive state": "UT",
    "green mountain state": "VT",
    "old dominion": "VA",
    "evergreen state": "WA",
    "mountain state": "WV",
    "badger state": "WI",
    "equality state": "WY",
    "cowboy state": "WY",
}

# Spellings of the District of Columbia beyond its name and postal code
DC_ALIASES = (
    "washington dc",
    "washington d.c",
    "washington d.c.",
    "washington, dc",
    "washington, d.c",
    "washington, d.c.",
    "d.c.",
)

REGIONAL_MAPPINGS = {
    "new england": ["CT", "ME", "MA", "NH", "RI", "VT"],
    "northeast": ["CT", "ME", "MA", "NH", "NJ", "NY", "PA", "RI", "VT"],
    "mid-atlantic": ["NJ", "NY", "PA"],
    "southeast": ["AL", "AR", "FL", "GA", "KY", "LA", "MS", "NC", "SC", "TN", "VA", "WV"],
    "south": ["AL", "AR", "DE", "FL", "GA", "KY", "LA", "MD", "MS", "NC", "OK", "SC", "TN", "TX", "VA", "WV"],
    "midwest": ["IL", "IN", "IA", "KS", "MI", "MN", "MO", "NE", "ND", "OH", "SD", "WI"],
    "great lakes": ["IL", "IN", "MI", "MN", "NY", "OH", "PA", "WI"],
    "plains": ["IA", "KS", "MN", "MO", "NE", "ND", "SD"],
    "southwest": ["AZ", "NM", "TX", "OK"],
    "west": ["AK", "AZ", "CA", "CO", "HI", "ID", "MT", "NV", "NM", "OR", "UT", "WA", "WY"],
    "pacific": ["AK", "CA", "HI", "OR", "WA"],
    "pacific northwest": ["OR", "WA"],
    "mountain": ["AZ", "CO", "ID", "MT", "NV", "NM", "UT", "WY"],
    "rocky mountains": ["CO", "ID", "MT", "WY"],
    "sunbelt": ["AL", "AZ", "CA", "FL", "GA", "LA", "MS", "NV", "NM", "NC", "SC", "TN", "TX"],
    "rust belt": ["IL", "IN", "MI", "NY", "OH", "PA", "WI"],
    "bible belt": ["AL", "AR", "GA", "KY", "LA", "MS", "NC", "OK", "SC", "TN", "TX", "VA"],
}

NATIONAL_INDICATORS = (
    "national",
    "nationwide",
    "all states",
    "all 50 states",
    "united states",
    "usa",
    "u.s.",
    "us",
    "entire country",
    "country-wide",
    "countrywide",
)


def _build_state_aliases() -> dict[str, str]:
    aliases: dict[str, str] = {}
    for code, name in STATE_NAMES.items():
        aliases[name.lower()] = code
        aliases[code.lower()] = code
    for alias in DC_ALIASES:
        aliases[alias] = "DC"
    aliases.update(STATE_NICKNAMES)
    return aliases


STATE_ALIASES = _build_state_aliases()


def load_region_mappings(filepath: Optional[str] = None) -> dict[str, list[str]]:
    """Load extra region definitions from file, merged over the defaults.

    Supports JSON and YAML formats. Each entry maps a region name to a list
    of two-letter state codes.

    Raises:
        FileNotFoundError: If filepath provided but doesn't exist
        ValueError: If the file format or a state code is invalid
    """
    mappings = {name: list(codes) for name, codes in REGIONAL_MAPPINGS.items()}
    if not filepath:
        return mappings

    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Region mappings file not found: {filepath}")

    if path.suffix == ".json":
        with open(path, "r") as f:
            data = json.load(f)
    elif path.suffix in [".yaml", ".yml"]:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    else:
        raise ValueError(f"Unsupported file format: {path.suffix}. Use .json, .yaml, or .yml")

    for region, codes in (data or {}).items():
        normalized = [str(c).strip().upper() for c in codes]
        unknown = [c for c in normalized if c not in STATE_NAMES]
        if unknown:
            raise ValueError(f"Unknown state code(s) for region {region!r}: {', '.join(unknown)}")
        mappings[str(region).strip().lower()] = sorted(set(normalized))
    return mappings
