"""
Data models and errors for image resolution.

Provides Pydantic models for resolved images and their document ranges.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialized with camelCase keys for editor clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(WireModel):
    """A zero-based line/character position inside a document."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(description="Zero-based line index")
    character: int = Field(description="Zero-based character offset within the line")


class Range(WireModel):
    """A span between two document positions."""

    model_config = ConfigDict(frozen=True)

    start: Position
    end: Position


class ImageInfo(WireModel):
    """A reference that resolved to a locally renderable image."""

    model_config = ConfigDict(frozen=True)

    original_image_path: str = Field(
        description="Resolved absolute path, URL or data URI before caching"
    )
    image_path: str = Field(
        description="Locally materialized file path, or an inline data URI"
    )
    range: Range = Field(description="Document span of the reference")


class ResourceCacheError(Exception):
    """Base error for resource cache operations."""


class StorageNotConfiguredError(ResourceCacheError):
    """Raised when storing before a storage directory was configured."""

    def __init__(self) -> None:
        super().__init__("Resource cache storage directory is not configured")


class ResourceTooLargeError(ResourceCacheError):
    """Raised when a remote resource exceeds the download size cap."""

    def __init__(self, url: str, limit: int):
        super().__init__(f"Resource {url} exceeds the {limit} byte download limit")
        self.url = url
        self.limit = limit
