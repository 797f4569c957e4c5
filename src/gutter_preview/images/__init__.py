"""
Image caching package.

Provides the resource cache that materializes resolved image references,
the result models, and SVG accent color helpers.
"""

from .base import (
    ImageInfo,
    Position,
    Range,
    ResourceCacheError,
    ResourceTooLargeError,
    StorageNotConfiguredError,
)
from .cache import ResourceCache

__all__ = [
    "ImageInfo",
    "Position",
    "Range",
    "ResourceCache",
    "ResourceCacheError",
    "ResourceTooLargeError",
    "StorageNotConfiguredError",
]
