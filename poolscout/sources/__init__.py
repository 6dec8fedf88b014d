"""Pool data sources."""
from .demo import DemoPoolSource
from .raydium import RaydiumPoolSource
from .validation import validate_pool

__all__ = ["DemoPoolSource", "RaydiumPoolSource", "validate_pool"]
