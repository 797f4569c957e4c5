"""
Request, response and per-item result models for image resolution.
"""

from pydantic import Field, field_validator

from ..images.base import ImageInfo, WireModel
from ..mappers.base import MapperConfig, as_folder_list


class ResolveRequest(WireModel):
    """A request to resolve the image references on the visible lines of a document."""

    document_uri: str = Field(default="", description="URI of the document")
    document_text: str = Field(description="Full document text")
    file_name: str = Field(description="Absolute path of the document on disk")
    visible_line_indices: list[int] = Field(
        default_factory=list,
        description="Zero-based indices of the lines to scan, in processing order",
    )
    workspace_folder: str = Field(default="", description="Workspace root directory")
    additional_source_folders: list[str] = Field(
        default_factory=list,
        description="Extra folders, absolute or relative to the workspace root",
    )
    current_accent_color: str = Field(
        default="", description="CSS color injected into SVG images, empty to disable"
    )
    path_alias_table: dict[str, str | list[str]] = Field(
        default_factory=dict,
        description="Path prefix aliases mapped to one or more target prefixes",
    )
    language_id: str = Field(default="", description="Language identifier of the document")
    url_detection_patterns: list[str] | None = Field(
        default=None,
        description="Extra acceptance regexes; None uses the configured defaults",
    )

    @field_validator("additional_source_folders", mode="before")
    @classmethod
    def _single_folder(cls, value):
        return as_folder_list(value)

    def mapper_config(self) -> MapperConfig:
        """Build the mapper configuration snapshot for this request."""
        return MapperConfig(
            workspace_folder=self.workspace_folder,
            additional_source_folders=self.additional_source_folders,
            path_alias_table=self.path_alias_table,
        )


class ResolveResponse(WireModel):
    """The images resolved for a request."""

    images: list[ImageInfo] = Field(default_factory=list)


class Resolution(WireModel):
    """Outcome of resolving one reference for one match.

    Exactly one of ``image`` and ``error`` is set.
    """

    reference: str = Field(description="Absolute reference that was resolved")
    image: ImageInfo | None = Field(default=None, description="Resolved image on success")
    error: str | None = Field(default=None, description="Failure reason")

    @property
    def ok(self) -> bool:
        return self.image is not None

    @classmethod
    def success(cls, reference: str, image: ImageInfo) -> "Resolution":
        return cls(reference=reference, image=image)

    @classmethod
    def failure(cls, reference: str, error: str) -> "Resolution":
        return cls(reference=reference, error=error)
