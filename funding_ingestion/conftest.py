"""Root conftest: ensures `funding_ingestion.X` imports resolve from a checkout."""
import sys
from pathlib import Path

_parent = Path(__file__).resolve().parent.parent

if str(_parent) not in sys.path:
    sys.path.insert(0, str(_parent))
