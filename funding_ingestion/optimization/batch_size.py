"""Dynamic batch sizing for upstream model calls.

Sizes a batch of opportunities against a model's output-token capacity and
the average content length, then caps the request at a practical token
ceiling so a single call's generation time stays bounded.
"""

import json
import logging
import math
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from ..errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TOKENS_PER_ITEM = 1500
DEFAULT_BASE_OVERHEAD_TOKENS = 1000
REFERENCE_MODEL_CAPACITY = 8192  # Haiku 3.5 output tokens, the tier-cap baseline
PRACTICAL_TOKEN_LIMIT = 15000

FALLBACK_BATCH_SIZE = 2
FALLBACK_MAX_TOKENS = 8192

# (minimum avg content length exclusive, base cap, reason), longest first
COMPLEXITY_TIERS = (
    (2000, 3, "very-long-descriptions"),
    (1500, 5, "long-descriptions"),
    (800, 8, "medium-descriptions"),
    (-1, 15, "short-descriptions"),
)


class ModelSpec(BaseModel):
    """Output-token capacity and metadata for one model."""

    name: str
    family: str
    tier: str
    max_output_tokens: int
    context_window: int = 200000
    training_cutoff: str = ""

    @field_validator("max_output_tokens")
    @classmethod
    def positive_capacity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_output_tokens must be positive, got {v}")
        return v


class BatchSizePlan(BaseModel):
    """Result of a batch size calculation."""

    batch_size: int = Field(..., ge=1)
    max_tokens: int
    reason: str
    model_name: str = "Unknown"
    model_capacity: Optional[int] = None
    tokens_per_item: int = DEFAULT_TOKENS_PER_ITEM
    base_overhead_tokens: int = DEFAULT_BASE_OVERHEAD_TOKENS
    avg_content_length: float = 0

    @property
    def is_fallback(self) -> bool:
        return self.reason == "fallback"

    @property
    def is_time_limited(self) -> bool:
        return self.reason.endswith("-time-limited")


MODEL_CATALOG: dict[str, ModelSpec] = {
    "claude-opus-4-20250514": ModelSpec(
        name="Claude Opus 4", family="claude-4", tier="opus",
        max_output_tokens=32000, training_cutoff="2025-03",
    ),
    "claude-sonnet-4-20250514": ModelSpec(
        name="Claude Sonnet 4", family="claude-4", tier="sonnet",
        max_output_tokens=64000, training_cutoff="2025-03",
    ),
    "claude-3-7-sonnet-20250219": ModelSpec(
        name="Claude Sonnet 3.7", family="claude-3.7", tier="sonnet",
        max_output_tokens=64000, training_cutoff="2024-11",
    ),
    "claude-3-5-sonnet-20241022": ModelSpec(
        name="Claude Sonnet 3.5 v2", family="claude-3.5", tier="sonnet",
        max_output_tokens=8192, training_cutoff="2024-04",
    ),
    "claude-3-5-sonnet-20240620": ModelSpec(
        name="Claude Sonnet 3.5", family="claude-3.5", tier="sonnet",
        max_output_tokens=8192, training_cutoff="2024-04",
    ),
    "claude-3-5-haiku-20241022": ModelSpec(
        name="Claude Haiku 3.5", family="claude-3.5", tier="haiku",
        max_output_tokens=8192, training_cutoff="2024-07",
    ),
    "claude-3-opus-20240229": ModelSpec(
        name="Claude Opus 3", family="claude-3", tier="opus",
        max_output_tokens=4096, training_cutoff="2023-08",
    ),
    "claude-3-haiku-20240307": ModelSpec(
        name="Claude Haiku 3", family="claude-3", tier="haiku",
        max_output_tokens=4096, training_cutoff="2023-08",
    ),
}

MODEL_ALIASES: dict[str, str] = {
    "claude-opus-4-0": "claude-opus-4-20250514",
    "claude-sonnet-4-0": "claude-sonnet-4-20250514",
    "claude-3-7-sonnet-latest": "claude-3-7-sonnet-20250219",
    "claude-3-5-sonnet-latest": "claude-3-5-sonnet-20241022",
    "claude-3-5-haiku-latest": "claude-3-5-haiku-20241022",
}


class BatchSizeCalculator:
    """Computes per-call batch sizes from a model catalog."""

    def __init__(
        self,
        catalog: Optional[dict[str, ModelSpec]] = None,
        aliases: Optional[dict[str, str]] = None,
        practical_token_limit: int = PRACTICAL_TOKEN_LIMIT,
        reference_capacity: int = REFERENCE_MODEL_CAPACITY,
    ) -> None:
        self.catalog = dict(MODEL_CATALOG if catalog is None else catalog)
        self.aliases = dict(MODEL_ALIASES if aliases is None else aliases)
        self.practical_token_limit = practical_token_limit
        self.reference_capacity = reference_capacity

    @classmethod
    def from_config(cls, config) -> "BatchSizeCalculator":
        catalog = load_model_catalog(config.model_catalog_path)
        return cls(
            catalog=catalog,
            practical_token_limit=config.practical_token_limit,
            reference_capacity=config.reference_model_capacity,
        )

    def get_model_config(self, model_id: str) -> Optional[ModelSpec]:
        return self.catalog.get(self.aliases.get(model_id, model_id))

    def get_models_by_filter(
        self,
        family: Optional[str] = None,
        tier: Optional[str] = None,
    ) -> list[tuple[str, ModelSpec]]:
        return [
            (model_id, spec)
            for model_id, spec in self.catalog.items()
            if (family is None or spec.family == family) and (tier is None or spec.tier == tier)
        ]

    def get_latest_model(self, family: str, tier: str) -> Optional[tuple[str, ModelSpec]]:
        models = self.get_models_by_filter(family, tier)
        if not models:
            return None
        return max(models, key=lambda item: item[1].training_cutoff)

    def calculate_optimal_batch_size(
        self,
        model_id: str,
        avg_content_length: float,
        tokens_per_item: int = DEFAULT_TOKENS_PER_ITEM,
        base_overhead_tokens: int = DEFAULT_BASE_OVERHEAD_TOKENS,
    ) -> BatchSizePlan:
        """Batch size and token budget for one model call.

        Raises:
            ValidationError: If the sizing parameters are out of range
        """
        if tokens_per_item <= 0:
            raise ValidationError(f"tokens_per_item must be positive, got {tokens_per_item}")
        if base_overhead_tokens < 0:
            raise ValidationError(f"base_overhead_tokens must be >= 0, got {base_overhead_tokens}")
        if avg_content_length is None or avg_content_length < 0:
            raise ValidationError(f"avg_content_length must be >= 0, got {avg_content_length}")

        spec = self.get_model_config(model_id)
        if spec is None:
            logger.warning("batch_size_fallback model=%s batch_size=%d", model_id, FALLBACK_BATCH_SIZE)
            return BatchSizePlan(
                batch_size=FALLBACK_BATCH_SIZE,
                max_tokens=min(FALLBACK_MAX_TOKENS, self.practical_token_limit),
                reason="fallback",
                tokens_per_item=tokens_per_item,
                base_overhead_tokens=base_overhead_tokens,
                avg_content_length=avg_content_length,
            )

        capacity = spec.max_output_tokens
        theoretical_max = (capacity - base_overhead_tokens) // tokens_per_item

        capacity_multiplier = capacity / self.reference_capacity
        for min_length, base_cap, reason in COMPLEXITY_TIERS:
            if avg_content_length > min_length:
                scaled_cap = math.floor(base_cap * capacity_multiplier)
                break
        batch_size = max(1, min(theoretical_max, scaled_cap))

        requested = batch_size * tokens_per_item + base_overhead_tokens
        if requested > self.practical_token_limit:
            practical = (self.practical_token_limit - base_overhead_tokens) // tokens_per_item
            batch_size = max(1, practical)
            reason += "-time-limited"

        max_tokens = min(
            capacity,
            self.practical_token_limit,
            batch_size * tokens_per_item + base_overhead_tokens,
        )
        logger.debug(
            "batch_size_plan model=%s capacity=%d batch_size=%d max_tokens=%d reason=%s",
            model_id,
            capacity,
            batch_size,
            max_tokens,
            reason,
        )
        return BatchSizePlan(
            batch_size=batch_size,
            max_tokens=max_tokens,
            reason=reason,
            model_name=spec.name,
            model_capacity=capacity,
            tokens_per_item=tokens_per_item,
            base_overhead_tokens=base_overhead_tokens,
            avg_content_length=avg_content_length,
        )


def load_model_catalog(filepath: Optional[str] = None) -> dict[str, ModelSpec]:
    """Load model specs from file, merged over the built-in catalog.

    Supports JSON and YAML formats keyed by model id.

    Raises:
        FileNotFoundError: If filepath provided but doesn't exist
        ValueError: If the file format or an entry is invalid
    """
    catalog = dict(MODEL_CATALOG)
    if not filepath:
        return catalog

    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Model catalog file not found: {filepath}")

    if path.suffix == ".json":
        with open(path, "r") as f:
            data = json.load(f)
    elif path.suffix in [".yaml", ".yml"]:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    else:
        raise ValueError(f"Unsupported file format: {path.suffix}. Use .json, .yaml, or .yml")

    for model_id, entry in (data or {}).items():
        catalog[model_id] = ModelSpec(**entry)
    return catalog


DEFAULT_CALCULATOR = BatchSizeCalculator()


def calculate_optimal_batch_size(
    model_id: str,
    avg_content_length: float,
    tokens_per_item: int = DEFAULT_TOKENS_PER_ITEM,
    base_overhead_tokens: int = DEFAULT_BASE_OVERHEAD_TOKENS,
) -> BatchSizePlan:
    return DEFAULT_CALCULATOR.calculate_optimal_batch_size(
        model_id, avg_content_length, tokens_per_item, base_overhead_tokens
    )
