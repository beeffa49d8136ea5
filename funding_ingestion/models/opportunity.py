"""Opportunity - Normalized funding opportunity produced by the analysis step."""

from datetime import date, datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Accepts both the extractor's camelCase keys and snake_case names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class OpportunityScoring(_CamelModel):
    """Scoring sub-fields from the analysis step (already clamped upstream)."""

    client_relevance: Optional[float] = Field(None, description="0-3")
    project_relevance: Optional[float] = Field(None, description="0-3")
    funding_attractiveness: Optional[float] = Field(None, description="0-3")
    funding_type: Optional[float] = Field(None, description="0-1")
    overall_score: Optional[float] = Field(None, description="0-10, sum of the sub-scores")


class FundingSourceInfo(_CamelModel):
    """Organization an opportunity is attributed to."""

    name: Optional[str] = None
    organization: Optional[str] = Field(None, description="Parent organization, when known")
    type: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    description: Optional[str] = None


class SourceRef(_CamelModel):
    """The API source an ingestion run is processing."""

    id: str
    name: Optional[str] = None
    type: Optional[str] = None
    website: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class Opportunity(_CamelModel):
    """Normalized funding opportunity record.

    Natural key is (id, source) when the external id is present,
    otherwise (title, source).
    """

    # Core identifiers
    id: Optional[str] = Field(None, description="External opportunity id from the API")
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    status: Optional[str] = None
    funding_type: Optional[str] = None
    opportunity_number: Optional[str] = None

    # Financial
    minimum_award: Optional[float] = None
    maximum_award: Optional[float] = None
    total_funding_available: Optional[float] = None
    matching_required: Optional[bool] = None
    matching_percentage: Optional[float] = None

    # Dates (ISO strings)
    open_date: Optional[str] = None
    close_date: Optional[str] = None
    posted_date: Optional[str] = None
    api_updated_at: Optional[str] = None

    # Eligibility
    eligible_locations: list[Any] = Field(default_factory=list)
    is_national: bool = False
    eligible_applicants: list[Any] = Field(default_factory=list)
    eligible_project_types: list[Any] = Field(default_factory=list)
    eligible_activities: list[Any] = Field(default_factory=list)
    categories: list[Any] = Field(default_factory=list)
    tags: list[Any] = Field(default_factory=list)

    # Attribution
    funding_source: Optional[FundingSourceInfo] = None
    agency_name: Optional[str] = None
    funding_agency: Optional[str] = None
    raw_response_id: Optional[str] = None

    # Analysis output
    scoring: Optional[OpportunityScoring] = None
    actionable_summary: Optional[str] = None
    enhanced_description: Optional[str] = None
    relevance_reasoning: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("id", "raw_response_id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("minimum_award", "maximum_award", "total_funding_available",
                     "matching_percentage", mode="before")
    @classmethod
    def _parse_amount(cls, v: Any) -> Any:
        """Accept "$1,500,000" style strings; unparseable text becomes None."""
        if isinstance(v, str):
            cleaned = v.replace("$", "").replace(",", "").replace("%", "").strip()
            if not cleaned:
                return None
            try:
                return float(cleaned)
            except ValueError:
                return None
        return v

    @field_validator("open_date", "close_date", "posted_date", "api_updated_at", mode="before")
    @classmethod
    def _date_to_iso(cls, v: Any) -> Any:
        if isinstance(v, (date, datetime)):
            return v.isoformat()
        return v

    @field_validator("eligible_locations", "eligible_applicants", "eligible_project_types",
                     "eligible_activities", "categories", "tags", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("is_national", mode="before")
    @classmethod
    def _none_to_false(cls, v: Any) -> Any:
        return False if v is None else v

    @property
    def funding_source_name(self) -> Optional[str]:
        if self.funding_source and self.funding_source.name:
            return self.funding_source.name.strip() or None
        return None
