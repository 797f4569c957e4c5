"""
Image resolution pipeline.

Runs the recognizers over the requested lines of a document, maps every
candidate through the mapper chain and materializes the resulting references
through the resource cache.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

from loguru import logger

from ..images.base import ImageInfo, Position, Range
from ..images.color import replace_current_color_in_data_uri
from ..images.paths import has_supported_extension, is_data_uri, strip_size_suffix
from ..mappers import PathMapper, create_mappers
from ..recognizers import Recognizer, UrlMatch, create_recognizers
from .base import ResolveRequest, ResolveResponse, Resolution
from .cancellation import NEVER_CANCELLED, CancellationToken

if TYPE_CHECKING:
    from ..images import ResourceCache

LINE_BREAK = re.compile(r"\r\n|\r|\n")

# Document directive setting the directory images are relative to
IMAGES_DIR_DIRECTIVE = ":imagesdir:"

# Languages wrapping paths in braces, e.g. \includegraphics{figure.png}
BRACE_DELIMITED_LANGUAGES = frozenset({"latex"})

# Scheme literals left over when a URL was cut short
_SCHEME_ONLY = frozenset({"http", "https"})

# Patterns may be written as /body/flags
_DELIMITED_PATTERN = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)
_PATTERN_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def compile_patterns(patterns: list[str]) -> list[re.Pattern[str]]:
    """Compile URL detection patterns, skipping invalid ones."""
    compiled = []
    for pattern in patterns:
        body, flags = pattern, 0
        delimited = _DELIMITED_PATTERN.match(pattern)
        if delimited:
            body = delimited.group(1)
            for flag in delimited.group(2):
                flags |= _PATTERN_FLAGS.get(flag, 0)
        try:
            compiled.append(re.compile(body, flags))
        except re.error as e:
            logger.warning("Ignoring invalid URL detection pattern '{}': {}", pattern, e)
    return compiled


def strip_braces(match: UrlMatch) -> UrlMatch:
    """Drop wrapping braces from a match and shrink its span accordingly."""
    url = match.url
    if len(url) >= 2 and url.startswith("{") and url.endswith("}"):
        return match.model_copy(
            update={"url": url[1:-1], "start": match.start + 1, "end": match.end - 1}
        )
    return match


class ImageResolver:
    """Resolve image references on the visible lines of a document."""

    def __init__(
        self,
        cache: ResourceCache,
        recognizers: list[Recognizer] | None = None,
        mappers: list[PathMapper] | None = None,
        max_line_length: int = 20000,
        url_detection_patterns: list[str] | None = None,
        cancellation_poll_interval: float = 0.05,
    ):
        """
        Initialize the resolver.

        Args:
            cache: Resource cache shared by every request
            recognizers: Recognizers to run on each line (default set if None)
            mappers: Mapper chain in composition order (default chain if None)
            max_line_length: Lines longer than this are skipped
            url_detection_patterns: Default extra acceptance patterns
            cancellation_poll_interval: Seconds between cancellation checks
                while cache work is pending
        """
        self.cache = cache
        self.recognizers = recognizers if recognizers is not None else create_recognizers()
        self.mappers = mappers if mappers is not None else create_mappers(cache)
        self.max_line_length = max_line_length
        self.url_detection_patterns = list(url_detection_patterns or [])
        self.cancellation_poll_interval = cancellation_poll_interval

    async def resolve(
        self,
        request: ResolveRequest,
        cancellation: CancellationToken | None = None,
    ) -> ResolveResponse:
        """
        Resolve a request into the images that could be materialized.

        References that fail to resolve are dropped; cancellation yields the
        images already materialized from the lines processed before it was
        noticed.

        Args:
            request: The resolution request
            cancellation: Optional token polled before every line and while
                waiting for the cache

        Returns:
            ResolveResponse with one ImageInfo per resolved reference per match
        """
        resolutions = await self.resolve_all(request, cancellation)

        images = [resolution.image for resolution in resolutions if resolution.image is not None]
        failures = [resolution for resolution in resolutions if not resolution.ok]
        for failure in failures:
            logger.debug("Dropped {}: {}", failure.reference[:80], failure.error)

        logger.info(
            "Resolved {} images for {} ({} dropped)",
            len(images),
            request.document_uri or request.file_name,
            len(failures),
        )
        return ResolveResponse(images=images)

    async def resolve_all(
        self,
        request: ResolveRequest,
        cancellation: CancellationToken | None = None,
    ) -> list[Resolution]:
        """Resolve a request, keeping the outcome of every reference."""
        token = cancellation or NEVER_CANCELLED

        config = request.mapper_config()
        for mapper in self.mappers:
            mapper.refresh_config(config)
        self.cache.set_current_color(request.current_accent_color)

        patterns = compile_patterns(
            request.url_detection_patterns
            if request.url_detection_patterns is not None
            else self.url_detection_patterns
        )

        lines = LINE_BREAK.split(request.document_text)
        relative_image_dir = ""
        loop = asyncio.get_running_loop()
        pending: list[asyncio.Task[Resolution]] = []

        for line_index in request.visible_line_indices:
            if token.is_cancelled:
                logger.debug("Resolution cancelled before line {}", line_index)
                break
            if not 0 <= line_index < len(lines):
                continue

            line = lines[line_index]
            if not line:
                continue
            if len(line) > self.max_line_length:
                logger.debug("Skipping line {} ({} characters)", line_index, len(line))
                continue
            if line.startswith(IMAGES_DIR_DIRECTIVE):
                relative_image_dir = line[len(IMAGES_DIR_DIRECTIVE) :].strip()

            for match in self.collect_matches(line_index, line, request.language_id):
                for reference in self.map_references(request.file_name, match, relative_image_dir):
                    pending.append(
                        loop.create_task(
                            self._resolve_reference(
                                reference, match, patterns, request.current_accent_color
                            )
                        )
                    )

        return await self._wait_for_resolutions(pending, token)

    async def _wait_for_resolutions(
        self,
        pending: list[asyncio.Task[Resolution]],
        token: CancellationToken,
    ) -> list[Resolution]:
        """Await the per-reference work, giving up on it once the token is cancelled."""
        if not pending:
            return []

        gathered = asyncio.gather(*pending)
        poller = asyncio.ensure_future(self._until_cancelled(token))
        try:
            await asyncio.wait({gathered, poller}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            gathered.cancel()
            raise
        finally:
            poller.cancel()

        if gathered.done():
            return list(gathered.result())

        # Only this request's waits are cancelled; the shield keeps cache entries alive
        gathered.cancel()
        finished = [task.result() for task in pending if task.done() and not task.cancelled()]
        logger.debug(
            "Resolution cancelled with {} of {} references pending",
            len(pending) - len(finished),
            len(pending),
        )
        return finished

    async def _until_cancelled(self, token: CancellationToken) -> None:
        while True:
            await asyncio.sleep(self.cancellation_poll_interval)
            if token.is_cancelled:
                return

    def collect_matches(self, line_index: int, line: str, language_id: str = "") -> list[UrlMatch]:
        """Run every recognizer over a line, dropping duplicate matches."""
        matches: list[UrlMatch] = []
        for recognizer in self.recognizers:
            try:
                matches.extend(recognizer.recognize(line_index, line))
            except Exception as e:
                logger.warning(
                    "{} failed on line {}: {}", type(recognizer).__name__, line_index, e
                )

        if language_id in BRACE_DELIMITED_LANGUAGES:
            matches = [strip_braces(match) for match in matches]

        return list(dict.fromkeys(matches))

    def map_references(self, file_name: str, match: UrlMatch, relative_image_dir: str = "") -> list[str]:
        """Run every mapper over a match and return the distinct resolved references."""
        references = []
        for mapper in self.mappers:
            try:
                reference = mapper.map(file_name, match.url, relative_image_dir)
            except Exception as e:
                logger.debug("{} failed for '{}': {}", type(mapper).__name__, match.url[:80], e)
                continue
            if reference and reference.strip() and reference not in _SCHEME_ONLY:
                references.append(reference)
        return list(dict.fromkeys(references))

    def is_supported(self, reference: str, patterns: list[re.Pattern[str]]) -> bool:
        """Accept references with an image extension or matching any detection pattern."""
        return has_supported_extension(reference) or any(
            pattern.search(reference) for pattern in patterns
        )

    async def _resolve_reference(
        self,
        reference: str,
        match: UrlMatch,
        patterns: list[re.Pattern[str]],
        color: str,
    ) -> Resolution:
        try:
            image = await self._to_image_info(reference, match, patterns, color)
        except Exception as e:
            return Resolution.failure(reference, f"{type(e).__name__}: {e}")
        if image is None:
            return Resolution.failure(reference, "not an accepted image reference")
        return Resolution.success(reference, image)

    async def _to_image_info(
        self,
        reference: str,
        match: UrlMatch,
        patterns: list[re.Pattern[str]],
        color: str,
    ) -> ImageInfo | None:
        data_uri = is_data_uri(reference)
        if not data_uri and not self.is_supported(reference, patterns):
            return None

        span = Range(
            start=Position(line=match.line_index, character=match.start),
            end=Position(line=match.line_index, character=match.end),
        )
        reference = strip_size_suffix(reference)

        if data_uri:
            return ImageInfo(
                original_image_path=reference,
                image_path=replace_current_color_in_data_uri(reference, color),
                range=span,
            )

        # The cache entry may be shared with other requests; never cancel it from here
        image_path = await asyncio.shield(self.cache.store(reference))
        return ImageInfo(original_image_path=reference, image_path=image_path, range=span)
