"""Geographic resolution: location parsing, state eligibility, coverage areas."""

from .coverage import CoverageAreaLinker, CoverageLinkResult, CoverageMatch
from .eligibility import EligibilityOutcome, EligibilityValidation, StateEligibilityProcessor
from .parser import LocationParser, get_default_parser, parse_locations_to_state_codes
from .regions import REGIONAL_MAPPINGS, STATE_ALIASES, load_region_mappings

__all__ = [
    "CoverageAreaLinker",
    "CoverageLinkResult",
    "CoverageMatch",
    "EligibilityOutcome",
    "EligibilityValidation",
    "StateEligibilityProcessor",
    "LocationParser",
    "get_default_parser",
    "parse_locations_to_state_codes",
    "REGIONAL_MAPPINGS",
    "STATE_ALIASES",
    "load_region_mappings",
]
