"""Recognizers for markup links and web URLs."""

import re

from .base import Recognizer, UrlMatch, collect_matches

# [label](target "optional title"); captures the target only
MARKED_LINK_PATTERN = re.compile(r"\[[^\[\]]*\]\(\s*<?([^)\s>]*)>?[^)]*\)")

# Balanced parentheses inside the URL tail, at most two levels deep
_PARENTHESIZED = r"\((?:[^\s()<>]+|\([^\s()<>]+\))?\)"
# Characters that never end a URL: trailing punctuation and quotes
_URL_END = r"[^\s`!()\[\]{};:'\".,<>?«»“”‘’]"

LINK_PATTERN = re.compile(
    r"(?:(?:https?|ftp)://|\b[a-z\d]+\.)"
    rf"(?:(?:[^\s()<>]|{_PARENTHESIZED})*(?:{_PARENTHESIZED}|{_URL_END}))?",
    re.IGNORECASE,
)


class MarkedLinkRecognizer(Recognizer):
    """Match the target of Markdown style ``[label](target)`` links and images."""

    def recognize(self, line_index: int, line: str) -> list[UrlMatch]:
        if "](" not in line:
            return []
        return collect_matches(MARKED_LINK_PATTERN, line_index, line, group=1)


class LinkRecognizer(Recognizer):
    """Match web URLs, with or without a scheme."""

    def recognize(self, line_index: int, line: str) -> list[UrlMatch]:
        return collect_matches(LINK_PATTERN, line_index, line)
