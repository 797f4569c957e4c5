"""
Abstract base class for reference recognizers.

A recognizer extracts candidate image references from a single line of text.
Recognizers are independent of each other and never raise on malformed input.
"""

import re
from abc import ABC, abstractmethod

from pydantic import ConfigDict, Field

from ..images.base import WireModel


class UrlMatch(WireModel):
    """A candidate reference and its character span inside a line."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(description="Raw reference text")
    line_index: int = Field(description="Zero-based line index")
    start: int = Field(description="Offset of the first character of the reference")
    end: int = Field(description="Offset one past the last character of the reference")


class Recognizer(ABC):
    """Abstract interface for reference recognizers."""

    @abstractmethod
    def recognize(self, line_index: int, line: str) -> list[UrlMatch]:
        """
        Find candidate references in one line.

        Args:
            line_index: Zero-based index of the line in its document
            line: The line text

        Returns:
            Zero or more matches, in order of appearance
        """
        pass


def collect_matches(
    pattern: re.Pattern[str],
    line_index: int,
    line: str,
    group: int = 0,
) -> list[UrlMatch]:
    """Turn every non-empty match of ``group`` into a UrlMatch."""
    matches = []
    for match in pattern.finditer(line):
        url = match.group(group)
        if not url:
            continue
        matches.append(
            UrlMatch(
                url=url,
                line_index=line_index,
                start=match.start(group),
                end=match.end(group),
            )
        )
    return matches
