"""Update noise control and upstream batch sizing."""

from .batch_size import (
    BatchSizeCalculator,
    BatchSizePlan,
    ModelSpec,
    calculate_optimal_batch_size,
    load_model_catalog,
)
from .change_detector import ChangeDetector, describe_changes, is_material_change

__all__ = [
    "BatchSizeCalculator",
    "BatchSizePlan",
    "ModelSpec",
    "calculate_optimal_batch_size",
    "load_model_catalog",
    "ChangeDetector",
    "describe_changes",
    "is_material_change",
]
