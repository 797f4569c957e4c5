"""Helpers for classifying image references."""

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

ACCEPTED_EXTENSIONS = (".svg", ".png", ".jpeg", ".jpg", ".bmp", ".gif")

DATA_URI_PREFIX = "data:image"
REMOTE_SCHEMES = ("http", "https")

# Characters left unescaped by URI component encoding
URI_COMPONENT_SAFE = "-_.!~*'()"

# Display size suffix appended by some consumers, e.g. "logo.png|width=32height=32"
SIZE_SUFFIX_PATTERN = re.compile(r"\|(width=\d*)?(height=\d*)?")


def is_data_uri(reference: str) -> bool:
    return reference.startswith(DATA_URI_PREFIX)


def is_remote_url(reference: str) -> bool:
    return urlparse(reference).scheme.lower() in REMOTE_SCHEMES


def reference_extension(reference: str) -> str:
    """Return the lowercased extension of the path component of a reference.

    Anything after the extension (query-like decorations, size suffixes) is kept,
    so callers compare with ``startswith``.
    """
    path = urlparse(reference).path or reference
    return PurePosixPath(path.replace("\\", "/")).suffix.lower()


def has_supported_extension(reference: str) -> bool:
    extension = reference_extension(reference)
    return bool(extension) and any(extension.startswith(ext) for ext in ACCEPTED_EXTENSIONS)


def storage_suffix(reference: str) -> str:
    """Return the accepted extension to give a materialized copy, if any."""
    extension = reference_extension(reference)
    for ext in ACCEPTED_EXTENSIONS:
        if extension.startswith(ext):
            return ext
    return ""


def strip_size_suffix(reference: str) -> str:
    return SIZE_SUFFIX_PATTERN.sub("", reference)
