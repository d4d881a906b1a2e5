"""Bounded concurrent resource loading."""

from .limiter import ConcurrencyLimiter
from .loader import BatchCallback, ResourceLoader
from .stream import BatchStream

__all__ = [
    "BatchCallback",
    "BatchStream",
    "ConcurrencyLimiter",
    "ResourceLoader",
]
