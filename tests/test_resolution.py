"""
Tests for the resolution pipeline.

Tests end-to-end resolution of documents against a temporary workspace,
line filtering, cancellation, acceptance rules and failure isolation.
"""

import asyncio
import base64
from pathlib import Path

import httpx
import pytest
import respx

from gutter_preview.images import ResourceCache
from gutter_preview.mappers import PathMapper, RelativeToOpenFileMapper
from gutter_preview.recognizers import (
    MarkedLinkRecognizer,
    Recognizer,
    SiblingFileRecognizer,
    UrlMatch,
)
from gutter_preview.resolution import (
    CancellationToken,
    ImageResolver,
    ResolveRequest,
    ResolveResponse,
)
from gutter_preview.resolution.pipeline import compile_patterns, strip_braces

PNG_CONTENT = b"\x89PNG\r\n\x1a\nremote image"


@pytest.fixture
def idle_cache(storage_dir: Path) -> ResourceCache:
    """Cache for tests that never materialize anything."""
    return ResourceCache(storage_dir=storage_dir)


class CancelAfter(CancellationToken):
    """Token that reports cancellation after a number of polls."""

    def __init__(self, polls: int):
        super().__init__()
        self.remaining = polls

    @property
    def is_cancelled(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


class FixedMapper(PathMapper):
    """Mapper returning the same reference for every match."""

    def __init__(self, target: str):
        super().__init__()
        self.target = target

    def map(self, file_name, url, relative_image_dir=""):
        return self.target


class BrokenMapper(PathMapper):
    def map(self, file_name, url, relative_image_dir=""):
        raise RuntimeError("mapper failed")


class BrokenRecognizer(Recognizer):
    def recognize(self, line_index, line):
        raise RuntimeError("recognizer failed")


class StaticRecognizer(Recognizer):
    """Recognizer returning a fixed match on every line."""

    def __init__(self, url: str, start: int):
        self.url = url
        self.start = start

    def recognize(self, line_index, line):
        return [UrlMatch(url=self.url, line_index=line_index, start=self.start, end=self.start + len(self.url))]


class TestDocumentResolution:
    """Test resolving whole documents."""

    @pytest.mark.asyncio
    async def test_markdown_image(self, resolver: ImageResolver, make_request, workspace: Path):
        """Test a markdown image resolves to exactly one image next to the document."""
        source = workspace / "docs" / "icons" / "x.svg"

        response = await resolver.resolve(make_request("![alt](./icons/x.svg)"))

        assert len(response.images) == 1
        image = response.images[0]
        assert image.original_image_path == str(source)
        assert image.range.start.line == 0
        assert image.range.start.character == 7
        assert image.range.end.line == 0
        assert image.range.end.character == 20
        assert Path(image.image_path).read_text() == source.read_text()

    @pytest.mark.asyncio
    async def test_css_data_uri(self, resolver: ImageResolver, make_request):
        """Test an inline data URI is returned as is, spanning only the payload."""
        line = "background: url('data:image/png;base64,AAAA')"

        response = await resolver.resolve(make_request(line))

        assert len(response.images) == 1
        image = response.images[0]
        assert image.original_image_path == "data:image/png;base64,AAAA"
        assert image.image_path == "data:image/png;base64,AAAA"
        assert image.range.start.character == line.index("data:")
        assert image.range.end.character == line.index("data:") + len("data:image/png;base64,AAAA")

    @pytest.mark.asyncio
    async def test_svg_data_uri_recolored(self, resolver: ImageResolver, make_request):
        """Test SVG data URIs receive the accent color in the image path only."""
        uri = "data:image/svg+xml;base64," + base64.b64encode(b"<svg></svg>").decode()

        response = await resolver.resolve(
            make_request(f'background: url("{uri}")', current_accent_color="red")
        )

        data_images = [image for image in response.images if image.original_image_path == uri]
        assert len(data_images) == 1
        recolored = base64.b64decode(data_images[0].image_path.split(",", 1)[1]).decode()
        assert recolored == '<svg style="color:red"></svg>'

    @pytest.mark.asyncio
    async def test_alias_reference(self, resolver: ImageResolver, make_request, workspace: Path):
        """Test aliased module paths resolve through the first existing target."""
        request = make_request(
            "import logo from '@ui/logo.png';",
            path_alias_table={"@ui": ["src/ui", "lib/ui"]},
        )

        response = await resolver.resolve(request)

        assert response.images
        assert {image.original_image_path for image in response.images} == {
            str(workspace / "lib" / "ui" / "logo.png")
        }

    @pytest.mark.asyncio
    async def test_additional_source_folder(self, resolver: ImageResolver, make_request, workspace: Path):
        """Test references resolve under additional source folders."""
        request = make_request("![banner](banner.png)", additional_source_folders=["static"])

        response = await resolver.resolve(request)

        assert {image.original_image_path for image in response.images} == {
            str(workspace / "static" / "banner.png")
        }

    @pytest.mark.asyncio
    async def test_no_references(self, resolver: ImageResolver, make_request):
        """Test prose without references yields no images."""
        response = await resolver.resolve(make_request("just some prose here"))

        assert response.images == []

    @pytest.mark.asyncio
    async def test_empty_document(self, resolver: ImageResolver, make_request):
        """Test an empty document yields no images."""
        response = await resolver.resolve(make_request("", visible_line_indices=[0]))

        assert response.images == []

    @pytest.mark.asyncio
    async def test_missing_image(self, resolver: ImageResolver, make_request):
        """Test references to missing files are dropped."""
        response = await resolver.resolve(make_request("![gone](./gone.png)"))

        assert response.images == []

    @pytest.mark.asyncio
    async def test_idempotent(self, resolver: ImageResolver, cache: ResourceCache, make_request):
        """Test resolving the same request twice gives the same images from the cache."""
        request = make_request("![alt](./icons/x.svg)")

        first = await resolver.resolve(request)
        second = await resolver.resolve(request)

        assert first == second
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_only_visible_lines(self, resolver: ImageResolver, make_request):
        """Test lines outside the visible set are not scanned."""
        text = "![a](./img.png)\nplain\n![b](./icons/x.svg)"

        response = await resolver.resolve(make_request(text, visible_line_indices=[2]))

        assert response.images
        assert {image.range.start.line for image in response.images} == {2}

    @pytest.mark.asyncio
    async def test_out_of_range_lines_ignored(self, resolver: ImageResolver, make_request):
        """Test visible indices outside the document are skipped."""
        request = make_request("![a](./img.png)", visible_line_indices=[-1, 5, 0])

        response = await resolver.resolve(request)

        assert {image.range.start.line for image in response.images} == {0}

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self, resolver: ImageResolver, make_request):
        """Test Windows line endings are split like Unix ones."""
        text = "first\r\n![a](./img.png)"

        response = await resolver.resolve(make_request(text, visible_line_indices=[1]))

        assert response.images
        assert all(image.range.start.line == 1 for image in response.images)

    @pytest.mark.asyncio
    async def test_images_dir_directive(self, resolver: ImageResolver, make_request, workspace: Path):
        """Test an :imagesdir: directive applies to the following lines."""
        text = ":imagesdir: assets\n![a](pic.png)"

        response = await resolver.resolve(make_request(text))

        assert {image.original_image_path for image in response.images} == {
            str(workspace / "docs" / "assets" / "pic.png")
        }

    @pytest.mark.asyncio
    async def test_images_dir_needed(self, resolver: ImageResolver, make_request):
        """Test the same reference does not resolve without the directive."""
        response = await resolver.resolve(make_request("![a](pic.png)"))

        assert response.images == []

    @pytest.mark.asyncio
    async def test_response_wire_format(self, resolver: ImageResolver, make_request):
        """Test responses serialize with camelCase keys."""
        response = await resolver.resolve(make_request("![alt](./icons/x.svg)"))

        payload = response.model_dump(by_alias=True)

        image = payload["images"][0]
        assert set(image) == {"originalImagePath", "imagePath", "range"}
        assert image["range"]["start"] == {"line": 0, "character": 7}


class TestLineLimits:
    """Test line length limits."""

    @pytest.mark.asyncio
    async def test_line_at_limit_is_scanned(self, resolver: ImageResolver, make_request):
        """Test a line of exactly the maximum length is processed."""
        line = "![i](./img.png)".ljust(20000)

        response = await resolver.resolve(make_request(line))

        assert response.images

    @pytest.mark.asyncio
    async def test_line_over_limit_is_skipped(self, resolver: ImageResolver, make_request):
        """Test a line one character over the maximum is skipped."""
        line = "![i](./img.png)".ljust(20001)

        response = await resolver.resolve(make_request(line))

        assert response.images == []

    @pytest.mark.asyncio
    async def test_custom_limit(self, cache: ResourceCache, make_request):
        """Test the maximum line length is configurable."""
        resolver = ImageResolver(cache, max_line_length=10)

        response = await resolver.resolve(make_request("![i](./img.png)"))

        assert response.images == []


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_mid_request(self, resolver: ImageResolver, make_request):
        """Test cancellation keeps the images of lines processed before it."""
        text = "\n".join(["![i](./img.png)"] * 10000)

        response = await resolver.resolve(make_request(text), CancelAfter(6))

        assert response.images
        assert {image.range.start.line for image in response.images} == set(range(6))

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, resolver: ImageResolver, make_request):
        """Test an already cancelled token yields no images without raising."""
        token = CancellationToken()
        token.cancel()

        response = await resolver.resolve(make_request("![i](./img.png)"), token)

        assert response == ResolveResponse(images=[])

    @pytest.mark.asyncio
    async def test_cancel_while_fetch_pending(self, resolver: ImageResolver, cache: ResourceCache, make_request):
        """Test cancelling during a slow fetch returns at once and keeps the cache entry."""
        url = "https://example.com/slow.png"
        release = asyncio.Event()

        async def slow_download(url, destination):
            await release.wait()
            destination.write_bytes(PNG_CONTENT)

        cache._download = slow_download
        token = CancellationToken()

        resolving = asyncio.create_task(resolver.resolve(make_request(f"![slow]({url})"), token))
        await asyncio.sleep(0.1)
        assert not resolving.done()

        token.cancel()
        response = await asyncio.wait_for(resolving, timeout=1)

        assert response == ResolveResponse(images=[])
        entry = cache.get(url)
        assert entry is not None
        assert not entry.done()

        release.set()
        assert Path(await entry).read_bytes() == PNG_CONTENT

    def test_token_state(self):
        """Test tokens start uncancelled and stay cancelled."""
        token = CancellationToken()
        assert not token.is_cancelled

        token.cancel()
        token.cancel()

        assert token.is_cancelled


class TestRemoteReferences:
    """Test remote references through the pipeline."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_remote_image(self, resolver: ImageResolver, make_request):
        """Test a remote markdown image is fetched and materialized."""
        url = "https://example.com/logo.png"
        route = respx.get(url__regex=r"https?://example\.com/logo\.png").mock(
            return_value=httpx.Response(200, content=PNG_CONTENT)
        )

        response = await resolver.resolve(make_request(f"![logo]({url})"))

        remote = [image for image in response.images if image.original_image_path == url]
        assert len(remote) == 1
        assert Path(remote[0].image_path).read_bytes() == PNG_CONTENT
        assert route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_failure_does_not_fail_batch(self, resolver: ImageResolver, make_request, workspace: Path):
        """Test a failed fetch drops only that reference."""
        respx.get(url__regex=r"https?://example\.com/missing\.png").mock(
            return_value=httpx.Response(404)
        )
        text = "![a](https://example.com/missing.png)\n![b](./img.png)"

        resolutions = await resolver.resolve_all(make_request(text))

        failures = [r for r in resolutions if not r.ok]
        images = [r.image for r in resolutions if r.ok]
        assert any("HTTPStatusError" in failure.error for failure in failures)
        assert images
        assert {image.original_image_path for image in images} == {str(workspace / "docs" / "img.png")}

    @pytest.mark.asyncio
    async def test_extensionless_url_dropped(self, resolver: ImageResolver, make_request):
        """Test URLs without an image extension are not fetched by default."""
        with respx.mock(assert_all_called=False) as respx_mock:
            route = respx_mock.get(url__regex=r"https?://example\.com/avatar.*").mock(
                return_value=httpx.Response(200, content=PNG_CONTENT)
            )

            response = await resolver.resolve(make_request("![me](https://example.com/avatar?id=1)"))

        assert response.images == []
        assert route.call_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_detection_pattern_accepts_url(self, resolver: ImageResolver, make_request):
        """Test URL detection patterns accept references without an extension."""
        url = "https://example.com/avatar?id=1"
        respx.get(url__regex=r"https?://example\.com/avatar.*").mock(
            return_value=httpx.Response(200, content=PNG_CONTENT)
        )

        response = await resolver.resolve(
            make_request(f"![me]({url})", url_detection_patterns=["/avatar/i"])
        )

        assert url in {image.original_image_path for image in response.images}


class TestPipelineStages:
    """Test the individual stages of the pipeline."""

    @pytest.mark.asyncio
    async def test_size_suffix_stripped(self, cache: ResourceCache, make_request, workspace: Path):
        """Test display size suffixes are removed before materializing."""
        banner = workspace / "static" / "banner.png"
        resolver = ImageResolver(
            cache,
            recognizers=[SiblingFileRecognizer()],
            mappers=[FixedMapper(f"{banner}|width=32height=16")],
        )

        response = await resolver.resolve(make_request("banner.png"))

        assert len(response.images) == 1
        assert response.images[0].original_image_path == str(banner)
        assert Path(response.images[0].image_path).read_bytes() == banner.read_bytes()

    @pytest.mark.asyncio
    async def test_broken_mapper_isolated(self, cache: ResourceCache, make_request, workspace: Path):
        """Test a raising mapper does not stop the other mappers."""
        resolver = ImageResolver(
            cache,
            recognizers=[MarkedLinkRecognizer()],
            mappers=[BrokenMapper(), RelativeToOpenFileMapper()],
        )

        response = await resolver.resolve(make_request("![a](./img.png)"))

        assert [image.original_image_path for image in response.images] == [
            str(workspace / "docs" / "img.png")
        ]

    @pytest.mark.asyncio
    async def test_broken_recognizer_isolated(self, cache: ResourceCache, make_request):
        """Test a raising recognizer does not stop the other recognizers."""
        resolver = ImageResolver(cache, recognizers=[BrokenRecognizer(), MarkedLinkRecognizer()])

        response = await resolver.resolve(make_request("![a](./img.png)"))

        assert len(response.images) == 1

    def test_duplicate_matches_collapsed(self, idle_cache: ResourceCache):
        """Test identical spans from different recognizers are reported once."""
        resolver = ImageResolver(idle_cache)

        matches = resolver.collect_matches(0, "![alt](./icons/x.svg)")

        spans = [(match.url, match.start, match.end) for match in matches]
        assert len(spans) == len(set(spans))
        assert ("./icons/x.svg", 7, 20) in spans

    def test_latex_braces_stripped(self, idle_cache: ResourceCache):
        """Test braces around LaTeX arguments are removed from matches."""
        resolver = ImageResolver(idle_cache, recognizers=[StaticRecognizer("{img.png}", 16)])

        latex = resolver.collect_matches(0, r"\includegraphics{img.png}", "latex")
        plain = resolver.collect_matches(0, r"\includegraphics{img.png}", "markdown")

        assert latex == [UrlMatch(url="img.png", line_index=0, start=17, end=24)]
        assert plain[0].url == "{img.png}"

    def test_strip_braces_requires_both(self):
        """Test matches without a closing brace are unchanged."""
        match = UrlMatch(url="{img.png", line_index=0, start=0, end=8)

        assert strip_braces(match) == match

    def test_scheme_only_and_empty_references_dropped(self, idle_cache: ResourceCache):
        """Test empty and bare scheme references never reach the cache."""
        resolver = ImageResolver(
            idle_cache,
            mappers=[FixedMapper(""), FixedMapper("https"), FixedMapper("http"), FixedMapper("   ")],
        )
        match = UrlMatch(url="https", line_index=0, start=0, end=5)

        assert resolver.map_references("/doc.md", match) == []

    def test_duplicate_references_collapsed(self, idle_cache: ResourceCache):
        """Test mappers returning the same reference produce it once."""
        resolver = ImageResolver(idle_cache, mappers=[FixedMapper("/a.png"), FixedMapper("/a.png")])
        match = UrlMatch(url="a.png", line_index=0, start=0, end=5)

        assert resolver.map_references("/doc.md", match) == ["/a.png"]

    def test_is_supported(self, idle_cache: ResourceCache):
        """Test acceptance by extension or by detection pattern."""
        resolver = ImageResolver(idle_cache)
        patterns = compile_patterns(["gravatar"])

        assert resolver.is_supported("/x/logo.PNG", [])
        assert not resolver.is_supported("https://www.gravatar.com/avatar/abc", [])
        assert resolver.is_supported("https://www.gravatar.com/avatar/abc", patterns)


class TestCompilePatterns:
    """Test compile_patterns function."""

    def test_plain_pattern(self):
        """Test undelimited patterns compile without flags."""
        [pattern] = compile_patterns(["avatar"])

        assert pattern.search("/avatar/1")
        assert not pattern.search("/AVATAR/1")

    def test_delimited_pattern_with_flags(self):
        """Test /body/flags patterns honor their flags."""
        [pattern] = compile_patterns(["/avatar/i"])

        assert pattern.pattern == "avatar"
        assert pattern.search("/AVATAR/1")

    def test_invalid_pattern_skipped(self):
        """Test invalid patterns are ignored."""
        patterns = compile_patterns(["(", "ok"])

        assert [pattern.pattern for pattern in patterns] == ["ok"]


class TestResolveRequest:
    """Test ResolveRequest model."""

    def test_camel_case_input(self):
        """Test requests accept camelCase keys."""
        request = ResolveRequest.model_validate(
            {
                "documentText": "![a](b.png)",
                "fileName": "/doc.md",
                "visibleLineIndices": [0],
                "currentAccentColor": "red",
                "additionalSourceFolders": "src",
            }
        )

        assert request.visible_line_indices == [0]
        assert request.current_accent_color == "red"
        assert request.additional_source_folders == ["src"]

    def test_mapper_config(self):
        """Test the mapper configuration mirrors the request."""
        request = ResolveRequest(
            document_text="",
            file_name="/doc.md",
            workspace_folder="/ws",
            additional_source_folders=["lib"],
            path_alias_table={"@": "src"},
        )

        config = request.mapper_config()

        assert config.workspace_folder == "/ws"
        assert config.additional_source_folders == ["lib"]
        assert config.path_alias_table == {"@": "src"}
