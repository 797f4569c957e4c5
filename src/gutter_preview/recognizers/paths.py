"""
Recognizers for filesystem paths.

The POSIX and Windows grammars are matched separately. Each grammar is a
prefix clause, a path separator clause and a class of excluded characters.
Matches may only start at the beginning of a token, which keeps the scan
linear on long lines without separators.
"""

import re

from ..images.paths import ACCEPTED_EXTENSIONS
from .base import Recognizer, UrlMatch, collect_matches

# POSIX: /foo, ~/foo, ./foo, ../foo, foo/bar
# Quotes, colons and semicolons are legal in paths but usually act as separators.
# Backslash is excluded to avoid catastrophic backtracking.
POSIX_PREFIX = r"(?:\.\.?|~)"
POSIX_SEPARATOR = r"/"
POSIX_PATH_CHAR = r"[^\x00\s!$`&*()\[\]+'\":;\\]"

POSIX_PATH_PATTERN = re.compile(
    rf"(?<!{POSIX_PATH_CHAR})"
    rf"(?:{POSIX_PREFIX}|{POSIX_PATH_CHAR}+)?(?:{POSIX_SEPARATOR}{POSIX_PATH_CHAR}+)+"
)

# Windows: c:\foo, ~\foo, .\foo, ..\foo, foo\bar
WINDOWS_PREFIX = r"(?:[a-zA-Z]:|\.\.?|~)"
WINDOWS_SEPARATOR = r"(?:\\|/)"
WINDOWS_PATH_CHAR = r"[^\x00<>?|/\s!$`&*()\[\]+'\":;]"

WINDOWS_PATH_PATTERN = re.compile(
    rf"(?:(?<!{WINDOWS_PATH_CHAR})|(?=[a-zA-Z]:))"
    rf"(?:{WINDOWS_PREFIX}|{WINDOWS_PATH_CHAR}+)?(?:{WINDOWS_SEPARATOR}{WINDOWS_PATH_CHAR}+)+"
)

SIBLING_PATTERN = re.compile(
    rf"(?<!{POSIX_PATH_CHAR}){POSIX_PATH_CHAR}+"
    rf"(?:{'|'.join(re.escape(ext) for ext in ACCEPTED_EXTENSIONS)})",
    re.IGNORECASE,
)


class LocalPathRecognizer(Recognizer):
    """Match relative and absolute filesystem paths in POSIX and Windows form."""

    def recognize(self, line_index: int, line: str) -> list[UrlMatch]:
        if "/" not in line and "\\" not in line:
            return []
        return collect_matches(POSIX_PATH_PATTERN, line_index, line) + collect_matches(
            WINDOWS_PATH_PATTERN, line_index, line
        )


class SiblingFileRecognizer(Recognizer):
    """Match any token ending in an accepted image extension."""

    def recognize(self, line_index: int, line: str) -> list[UrlMatch]:
        return collect_matches(SIBLING_PATTERN, line_index, line)
