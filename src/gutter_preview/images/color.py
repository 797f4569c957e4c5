"""
Accent color injection for SVG images.

SVG icons commonly paint with ``currentColor``. Injecting a ``style="color:..."``
attribute into the root element makes them render in the editor's accent color.
"""

import base64
from pathlib import Path
from urllib.parse import quote, unquote

from loguru import logger

from .paths import URI_COMPONENT_SAFE

SVG_BASE64_PRELUDE = "data:image/svg+xml;base64,"
SVG_UTF8_PRELUDE = "data:image/svg+xml;utf8,"


def inject_color(markup: str, color: str) -> str:
    """Add a color style to the first ``<svg`` tag of the markup."""
    return markup.replace("<svg", f'<svg style="color:{color}"', 1)


def replace_current_color_in_data_uri(uri: str, color: str) -> str:
    """
    Recolor an inline SVG data URI.

    Non-SVG data URIs and an empty color leave the URI unchanged.

    Args:
        uri: The data URI
        color: CSS color value to inject

    Returns:
        The recolored data URI, in the same encoding as the input

    Raises:
        ValueError: If a base64 payload cannot be decoded
    """
    if not color or not uri.startswith("data:image/svg+xml"):
        return uri

    if uri.startswith(SVG_BASE64_PRELUDE):
        payload = unquote(uri[len(SVG_BASE64_PRELUDE) :])
        markup = base64.b64decode(payload, validate=True).decode("utf-8")
        encoded = base64.b64encode(inject_color(markup, color).encode("utf-8")).decode("ascii")
        return SVG_BASE64_PRELUDE + encoded

    if uri.startswith(SVG_UTF8_PRELUDE):
        markup = unquote(uri[len(SVG_UTF8_PRELUDE) :])
        return SVG_UTF8_PRELUDE + quote(inject_color(markup, color), safe=URI_COMPONENT_SAFE)

    return uri


def replace_current_color_in_file(path: Path, color: str) -> Path:
    """Rewrite an SVG file in place with the color injected.

    Files that are not SVGs, or an empty color, are left untouched.
    """
    if path.suffix.lower() != ".svg" or not color:
        return path

    original = path.read_text(encoding="utf-8")
    path.write_text(inject_color(original, color), encoding="utf-8")
    logger.debug("Injected color {} into {}", color, path)
    return path
