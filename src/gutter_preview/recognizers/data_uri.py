"""Recognizer for inline ``data:image`` URIs."""

import re
from urllib.parse import quote

from ..images.paths import URI_COMPONENT_SAFE
from .base import Recognizer, UrlMatch, collect_matches

# CSS url('...') / url("...") wrappers
WRAPPED_PATTERNS = (
    re.compile(r"url\('(data:image[^']*)'\)", re.IGNORECASE),
    re.compile(r'url\("(data:image[^"]*)"\)', re.IGNORECASE),
)

# String literals in source code
QUOTED_PATTERNS = (
    re.compile(r"'(data:image[^']*)'", re.IGNORECASE),
    re.compile(r'"(data:image[^"]*)"', re.IGNORECASE),
    re.compile(r"`(data:image[^`]*)`", re.IGNORECASE),
)

BARE_PATTERN = re.compile(r"(data:image/[^\s'\"`()]+)", re.IGNORECASE)

_NEEDS_ESCAPE = (" ", '"', "'")


def escape_payload(uri: str) -> str:
    """Percent-encode the payload of a data URI that contains spaces or quotes."""
    comma = uri.find(",")
    if comma < 0 or not any(char in uri for char in _NEEDS_ESCAPE):
        return uri
    return uri[: comma + 1] + quote(uri[comma + 1 :], safe=URI_COMPONENT_SAFE)


class DataUriRecognizer(Recognizer):
    """Match data URIs wrapped in CSS ``url()``, quoted, or bare.

    Wrapped matches take precedence. Quoted literals are only considered when no
    wrapped URI was found on the line, and bare tokens only when neither was.
    The span always covers exactly the payload text, without delimiters.
    """

    def recognize(self, line_index: int, line: str) -> list[UrlMatch]:
        if "data:image" not in line.lower():
            return []

        for patterns in (WRAPPED_PATTERNS, QUOTED_PATTERNS, (BARE_PATTERN,)):
            matches = [
                match
                for pattern in patterns
                for match in collect_matches(pattern, line_index, line, group=1)
            ]
            if matches:
                return [match.model_copy(update={"url": escape_payload(match.url)}) for match in matches]
        return []
