"""Maps an Opportunity into a ``funding_opportunities`` row."""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse

from ..models import Opportunity

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 500

STATUS_MAPPINGS = {
    "open": "open",
    "active": "open",
    "available": "open",
    "closed": "closed",
    "inactive": "closed",
    "expired": "closed",
    "upcoming": "upcoming",
    "pending": "upcoming",
    "future": "upcoming",
}

_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def sanitize_title(title: Any) -> Optional[str]:
    cleaned = sanitize_text(title)
    if cleaned is None:
        return None
    return cleaned[:TITLE_MAX_LENGTH]


def sanitize_url(url: Any) -> Optional[str]:
    """Keep absolute http(s) URLs; prefix bare hosts with https://."""
    cleaned = sanitize_text(url)
    if cleaned is None:
        return None
    parsed = urlparse(cleaned)
    if parsed.scheme and parsed.netloc:
        return cleaned
    if cleaned.startswith("http"):
        return None
    candidate = f"https://{cleaned}"
    parsed = urlparse(candidate)
    if parsed.netloc and " " not in parsed.netloc and "." in parsed.netloc:
        return candidate
    return None


def sanitize_status(status: Any) -> Optional[str]:
    cleaned = sanitize_text(status)
    if cleaned is None:
        return None
    cleaned = cleaned.lower()
    return STATUS_MAPPINGS.get(cleaned, cleaned)


def sanitize_amount(amount: Any) -> Optional[float]:
    """Positive-or-negative amount; zero, blank, or unparseable becomes None."""
    if amount is None or isinstance(amount, bool):
        return None
    if isinstance(amount, str):
        cleaned = amount.replace("$", "").replace(",", "").strip()
        if not cleaned:
            return None
        try:
            amount = float(cleaned)
        except ValueError:
            return None
    if not isinstance(amount, (int, float)):
        return None
    if math.isnan(amount) or amount == 0:
        return None
    return float(amount)


def sanitize_date(value: Any) -> Optional[str]:
    """ISO-8601 string, or None when the value doesn't parse."""
    if isinstance(value, datetime):
        return value.isoformat()
    text = sanitize_text(value)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError:
        return None


def sanitize_array(values: Any) -> Optional[list[str]]:
    if not isinstance(values, (list, tuple)):
        return None
    cleaned = [str(v).strip() for v in values if v is not None]
    cleaned = [v for v in cleaned if v]
    return cleaned or None


def sanitize_boolean(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _clamp(value: Any, low: float, high: float) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return max(low, min(high, number))


def sanitize_percentage(value: Any) -> Optional[float]:
    return _clamp(value, 0, 100)


def sanitize_relevance_score(value: Any) -> Optional[float]:
    clamped = _clamp(value, 0, 10)
    return None if clamped is None else round(clamped, 2)


def sanitize_fields(opportunity: Opportunity) -> dict[str, Any]:
    """Column values shared by inserts and updates."""
    row: dict[str, Any] = {
        "opportunity_id": sanitize_text(opportunity.id),
        "title": sanitize_title(opportunity.title),
        "description": sanitize_text(opportunity.description),
        "url": sanitize_url(opportunity.url),
        "status": sanitize_status(opportunity.status),
        "funding_type": sanitize_text(opportunity.funding_type),
        "opportunity_number": sanitize_text(opportunity.opportunity_number),
        "api_updated_at": sanitize_date(opportunity.api_updated_at),
        "raw_response_id": opportunity.raw_response_id,
        "minimum_award": sanitize_amount(opportunity.minimum_award),
        "maximum_award": sanitize_amount(opportunity.maximum_award),
        "total_funding_available": sanitize_amount(opportunity.total_funding_available),
        "open_date": sanitize_date(opportunity.open_date),
        "close_date": sanitize_date(opportunity.close_date),
        "posted_date": sanitize_date(opportunity.posted_date),
        "eligible_applicants": sanitize_array(opportunity.eligible_applicants),
        "eligible_project_types": sanitize_array(opportunity.eligible_project_types),
        "eligible_locations": sanitize_array(opportunity.eligible_locations),
        "eligible_activities": sanitize_array(opportunity.eligible_activities),
        "categories": sanitize_array(opportunity.categories),
        "tags": sanitize_array(opportunity.tags),
        "cost_share_required": sanitize_boolean(opportunity.matching_required),
        "cost_share_percentage": sanitize_percentage(opportunity.matching_percentage),
        "is_national": bool(opportunity.is_national),
        "notes": sanitize_text(opportunity.notes),
        "agency_name": (
            sanitize_text(opportunity.agency_name)
            or opportunity.funding_source_name
            or sanitize_text(opportunity.funding_agency)
        ),
    }

    if opportunity.scoring is not None:
        row["scoring"] = opportunity.scoring.model_dump(by_alias=True)
        row["relevance_score"] = sanitize_relevance_score(opportunity.scoring.overall_score)

    for name in ("actionable_summary", "enhanced_description", "relevance_reasoning"):
        text = sanitize_text(getattr(opportunity, name))
        if text:
            row[name] = text
    return row


def prepare_for_insert(
    opportunity: Opportunity,
    source_id: str,
    funding_source_id: Optional[str],
) -> dict[str, Any]:
    row = sanitize_fields(opportunity)
    now = _utc_now()
    row["api_source_id"] = source_id
    row["funding_source_id"] = funding_source_id
    row["created_at"] = now
    row["updated_at"] = now
    return row


def prepare_for_update(
    opportunity: Opportunity,
    funding_source_id: Optional[str],
) -> dict[str, Any]:
    """Update payload; never touches created_at or the natural key's source."""
    row = sanitize_fields(opportunity)
    row["funding_source_id"] = funding_source_id
    row["updated_at"] = _utc_now()
    return row
