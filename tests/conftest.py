"""Pytest fixtures and configuration for gutter-preview tests.

This module provides shared fixtures for testing the recognizers, mappers,
resource cache, resolution pipeline and outer surfaces.
"""

import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest

from gutter_preview.images import ResourceCache
from gutter_preview.resolution import ImageResolver, ResolveRequest

# Smallest byte sequences recognizable as the respective formats
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
SVG_MARKUP = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 16 16"><path fill="currentColor" d="M0 0h16v16H0z"/></svg>'


# --- Temporary Directory Fixtures ---


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def storage_dir(temp_dir: Path) -> Path:
    """Directory receiving materialized images."""
    return temp_dir / "storage"


@pytest.fixture
def workspace(temp_dir: Path) -> Path:
    """Create a workspace with documents and images.

    Layout::

        proj/
            docs/readme.md
            docs/icons/x.svg
            docs/img.png
            docs/assets/pic.png
            lib/ui/logo.png
            static/banner.png
    """
    root = temp_dir / "proj"
    (root / "docs" / "icons").mkdir(parents=True)
    (root / "docs" / "assets").mkdir()
    (root / "lib" / "ui").mkdir(parents=True)
    (root / "static").mkdir()

    (root / "docs" / "readme.md").write_text("# Readme\n")
    (root / "docs" / "icons" / "x.svg").write_text(SVG_MARKUP)
    (root / "docs" / "img.png").write_bytes(PNG_BYTES)
    (root / "docs" / "assets" / "pic.png").write_bytes(PNG_BYTES)
    (root / "lib" / "ui" / "logo.png").write_bytes(PNG_BYTES)
    (root / "static" / "banner.png").write_bytes(PNG_BYTES)
    return root


@pytest.fixture
def readme(workspace: Path) -> Path:
    """Path of the document referencing images."""
    return workspace / "docs" / "readme.md"


# --- Cache and Resolver Fixtures ---


@pytest.fixture
async def cache(storage_dir: Path) -> AsyncGenerator[ResourceCache, None]:
    """Create a resource cache that polls watched files quickly."""
    resource_cache = ResourceCache(
        storage_dir=storage_dir,
        timeout=5,
        max_download_bytes=1024,
        watch_interval=0.01,
    )
    yield resource_cache
    await resource_cache.cleanup()


@pytest.fixture
def resolver(cache: ResourceCache) -> ImageResolver:
    """Create a resolver with the default recognizers and mappers."""
    return ImageResolver(cache)


@pytest.fixture
def make_request(workspace: Path, readme: Path):
    """Build a ResolveRequest for the readme, scanning every line by default."""

    def _make(text: str, **overrides) -> ResolveRequest:
        fields = {
            "document_uri": readme.as_uri(),
            "document_text": text,
            "file_name": str(readme),
            "visible_line_indices": list(range(len(text.splitlines()) or 1)),
            "workspace_folder": str(workspace),
        }
        fields.update(overrides)
        return ResolveRequest(**fields)

    return _make


# --- Settings Override Fixtures ---


@pytest.fixture
def mock_settings(temp_dir: Path, monkeypatch):
    """Point the global settings at a temporary storage directory."""
    from gutter_preview.config import settings

    monkeypatch.setattr(settings, "storage_path", str(temp_dir / "storage"))
    return settings
