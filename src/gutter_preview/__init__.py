"""
Gutter Preview.

Finds image references (local paths, URLs, data URIs and aliased module paths)
in source text and resolves them to local files an editor can render as
thumbnails next to the referencing line.

Usage:
    # Start the MCP server
    gutter-preview serve

    # Resolve the images referenced in a file
    gutter-preview resolve docs/readme.md

    # Check configuration
    gutter-preview info
"""

__version__ = "0.1.0"

from .images import ImageInfo, ResourceCache
from .resolution import CancellationToken, ImageResolver, ResolveRequest, ResolveResponse

__all__ = [
    "CancellationToken",
    "ImageInfo",
    "ImageResolver",
    "ResolveRequest",
    "ResolveResponse",
    "ResourceCache",
]
