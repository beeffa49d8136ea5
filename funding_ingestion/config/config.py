"""Configuration management for the storage pipeline."""

import logging
import sys
from typing import Optional

import pydantic
from pydantic_settings import BaseSettings


REQUIRED_VARS = [
    "SUPABASE_URL",
    "SUPABASE_KEY",
]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Config(BaseSettings):
    """Application configuration from environment variables."""

    # Required
    supabase_url: str
    supabase_key: str

    # Storage
    storage_batch_size: int = 5
    link_coverage_areas: bool = True

    # Batch sizing for upstream model calls
    practical_token_limit: int = 15000
    default_tokens_per_item: int = 1500
    default_base_overhead_tokens: int = 1000
    reference_model_capacity: int = 8192
    model_catalog_path: Optional[str] = None

    # Geography
    region_mappings_path: Optional[str] = None

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "case_sensitive": False}


def validate_config() -> Config:
    """Build Config from the environment, failing fast on missing credentials.

    Every missing required variable is named in one ValueError.
    """
    try:
        return Config()  # type: ignore[call-arg]
    except pydantic.ValidationError as exc:
        absent = {
            str(err["loc"][0]).upper()
            for err in exc.errors()
            if err["type"] == "missing" and err["loc"]
        }
        missing = [var for var in REQUIRED_VARS if var in absent]
        if not missing:
            raise
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}. "
            "Set them in the environment or in .env."
        ) from exc


def load_config() -> Config:
    """Config for a storage call that was not handed a client."""
    return validate_config()


def configure_logging(level: str = "INFO") -> None:
    """Install the pipeline's stdout log format at the given level."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level)
