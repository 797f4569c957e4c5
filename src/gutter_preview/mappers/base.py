"""
Abstract base class for path mappers.

A mapper turns one candidate reference into an absolute path or URL that can
be materialized, or returns None when it does not apply.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import Field, field_validator

from ..images.base import WireModel

if TYPE_CHECKING:
    from ..images import ResourceCache


def as_folder_list(value):
    """Accept a single folder string where a list of folders is expected."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return value


class MapperConfig(WireModel):
    """Configuration snapshot shared by all mappers for one request."""

    workspace_folder: str = Field(default="", description="Workspace root directory")
    additional_source_folders: list[str] = Field(
        default_factory=list,
        description="Extra folders, absolute or relative to the workspace root",
    )
    path_alias_table: dict[str, str | list[str]] = Field(
        default_factory=dict,
        description="Path prefix aliases mapped to one or more target prefixes",
    )

    @field_validator("additional_source_folders", mode="before")
    @classmethod
    def _single_folder(cls, value):
        return as_folder_list(value)


def join_path(base: str, *parts: str) -> str:
    """Join and normalize path parts, treating every part after the first as relative."""
    return os.path.normpath(os.path.join(base, *(part.lstrip("/\\") for part in parts if part)))


class PathMapper(ABC):
    """Abstract interface for reference to path mappers."""

    def __init__(self, cache: ResourceCache | None = None):
        self.cache = cache
        self.config = MapperConfig()

    def refresh_config(self, config: MapperConfig) -> None:
        """Adopt the configuration snapshot of a new request."""
        self.config = config

    @abstractmethod
    def map(self, file_name: str, url: str, relative_image_dir: str = "") -> str | None:
        """
        Map a candidate reference to an absolute path or URL.

        Args:
            file_name: Absolute path of the referencing document
            url: Candidate reference text
            relative_image_dir: Image directory declared earlier in the document

        Returns:
            The resolved reference, or None when this mapper does not apply
        """
        pass

    def exists(self, path: str) -> bool:
        """Check whether a path is cached or present on disk."""
        return (self.cache is not None and self.cache.has(path)) or os.path.exists(path)
