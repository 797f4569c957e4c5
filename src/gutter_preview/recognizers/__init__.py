"""Recognizer package.

Provides a factory function returning the recognizers in their standard order.
"""

from .base import Recognizer, UrlMatch
from .data_uri import DataUriRecognizer
from .links import LinkRecognizer, MarkedLinkRecognizer
from .paths import LocalPathRecognizer, SiblingFileRecognizer


def create_recognizers() -> list[Recognizer]:
    """Create the default recognizer set.

    Returns:
        Marked link, data URI, web link, local path and sibling file recognizers

    """
    return [
        MarkedLinkRecognizer(),
        DataUriRecognizer(),
        LinkRecognizer(),
        LocalPathRecognizer(),
        SiblingFileRecognizer(),
    ]


__all__ = [
    "DataUriRecognizer",
    "LinkRecognizer",
    "LocalPathRecognizer",
    "MarkedLinkRecognizer",
    "Recognizer",
    "SiblingFileRecognizer",
    "UrlMatch",
    "create_recognizers",
]
