"""
FastMCP server for image reference resolution.

Exposes the resolution pipeline to editor integrations: given a document and
its visible lines, returns the images that can be rendered next to each line.
"""

from __future__ import annotations

from fastmcp import FastMCP
from loguru import logger

from .config import settings
from .images import ResourceCache
from .resolution import ImageResolver, ResolveRequest

# Initialize components lazily (on first tool call)
_image_cache: ResourceCache | None = None
_resolver: ImageResolver | None = None


def get_image_cache() -> ResourceCache:
    """Get or create the process-wide resource cache."""
    global _image_cache
    if _image_cache is None:
        logger.debug("Initializing resource cache at {}", settings.storage_dir)
        _image_cache = ResourceCache(
            storage_dir=settings.storage_dir,
            timeout=settings.fetch_timeout,
            max_download_bytes=settings.max_download_bytes,
            watch_interval=settings.watch_interval,
        )
        logger.info("Resource cache initialized successfully")
    return _image_cache


def get_resolver() -> ImageResolver:
    """Get or create the resolver bound to the shared cache."""
    global _resolver
    if _resolver is None:
        _resolver = ImageResolver(
            get_image_cache(),
            max_line_length=settings.max_line_length,
            url_detection_patterns=settings.url_detection_patterns,
        )
    return _resolver


def shutdown() -> None:
    """Remove every materialized file; called after the server loop has stopped."""
    if _image_cache is not None:
        _image_cache.close()


# Create MCP server
mcp = FastMCP(
    name="gutter-preview",
    instructions=(
        "Resolves image references (local paths, URLs, data URIs and aliased module "
        "paths) found in source text to local image files for thumbnail previews."
    ),
)


@mcp.tool()
async def resolve_images(
    document_text: str,
    file_name: str,
    visible_lines: list[int],
    document_uri: str = "",
    workspace_folder: str = "",
    additional_source_folders: list[str] | None = None,
    current_color: str = "",
    path_aliases: dict[str, str | list[str]] | None = None,
    language_id: str = "",
) -> dict:
    """
    Resolve the image references on the visible lines of a document.

    Args:
        document_text: Full text of the document
        file_name: Absolute path of the document on disk
        visible_lines: Zero-based indices of the lines to scan
        document_uri: URI of the document, used for logging
        workspace_folder: Workspace root directory
        additional_source_folders: Extra folders searched for relative references
        current_color: CSS color injected into SVG images (empty to disable)
        path_aliases: Path prefix aliases, e.g. {"@ui": ["src/ui", "lib/ui"]}
        language_id: Language of the document, e.g. "markdown" or "latex"

    Returns:
        {"images": [{"originalImagePath", "imagePath", "range"}, ...]}
    """
    logger.info(
        "Resolve request: {} ({} visible lines)", document_uri or file_name, len(visible_lines)
    )
    request = ResolveRequest(
        document_uri=document_uri,
        document_text=document_text,
        file_name=file_name,
        visible_line_indices=visible_lines,
        workspace_folder=workspace_folder,
        additional_source_folders=additional_source_folders or [],
        current_accent_color=current_color,
        path_alias_table=path_aliases or {},
        language_id=language_id,
    )

    try:
        response = await get_resolver().resolve(request)
    except Exception as e:
        logger.error("Resolve request failed for {}: {}", document_uri or file_name, e)
        return {"images": []}

    return response.model_dump(by_alias=True)


@mcp.tool()
async def clear_image_cache() -> str:
    """Delete every materialized image, e.g. after the workspace changed."""
    cache = get_image_cache()
    count = len(cache)
    await cache.cleanup()
    logger.info("Cleared {} cached images", count)
    return f"Cleared {count} cached images."


# Export for uvicorn
def create_app():
    """Create the MCP application for deployment."""
    return mcp
