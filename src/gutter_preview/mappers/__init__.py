"""
Path mapper package.

Provides a factory function to create the mapper chain in composition order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import MapperConfig, PathMapper, join_path
from .relative import RelativeToOpenFileMapper, RelativeToWorkspaceRootMapper
from .simple import DataUrlMapper, SimpleMapper

if TYPE_CHECKING:
    from ..images import ResourceCache


def create_mappers(cache: ResourceCache | None = None) -> list[PathMapper]:
    """
    Create the default mapper chain.

    Args:
        cache: Resource cache consulted before the filesystem when checking
            whether a candidate path exists

    Returns:
        Data URL, simple, relative-to-file and relative-to-workspace mappers
    """
    return [
        DataUrlMapper(cache),
        SimpleMapper(cache),
        RelativeToOpenFileMapper(cache),
        RelativeToWorkspaceRootMapper(cache),
    ]


__all__ = [
    "DataUrlMapper",
    "MapperConfig",
    "PathMapper",
    "RelativeToOpenFileMapper",
    "RelativeToWorkspaceRootMapper",
    "SimpleMapper",
    "create_mappers",
    "join_path",
]
