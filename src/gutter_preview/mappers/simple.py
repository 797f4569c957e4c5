"""Mappers for references that are already absolute."""

import os

from ..images.paths import is_data_uri
from .base import PathMapper


class DataUrlMapper(PathMapper):
    """Pass inline image data URIs through unchanged."""

    def map(self, file_name: str, url: str, relative_image_dir: str = "") -> str | None:
        return url if is_data_uri(url) else None


class SimpleMapper(PathMapper):
    """Accept web URLs, protocol-relative URLs and existing absolute paths."""

    def map(self, file_name: str, url: str, relative_image_dir: str = "") -> str | None:
        if url.startswith(("http://", "https://")):
            return url
        if url.startswith("//"):
            return "http:" + url
        if os.path.isabs(url) and self.exists(url):
            return url
        return None
