"""Storage collaborators."""

from .base import Row, StorageClient
from .client import SupabaseStorageClient

__all__ = ["Row", "StorageClient", "SupabaseStorageClient"]
