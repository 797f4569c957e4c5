"""
Resolution package.

Turns the visible lines of a document into resolved image descriptors.
"""

from .base import ResolveRequest, ResolveResponse, Resolution
from .cancellation import CancellationToken
from .pipeline import ImageResolver

__all__ = [
    "CancellationToken",
    "ImageResolver",
    "Resolution",
    "ResolveRequest",
    "ResolveResponse",
]
