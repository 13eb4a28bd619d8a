"""Session features."""

from .opening_range import OpeningRange, compute_opening_range

__all__ = ["OpeningRange", "compute_opening_range"]
