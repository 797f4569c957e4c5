"""
Image caching utilities.

Materializes resolved image references (remote URLs and local files) into a
storage directory so they can be rendered as thumbnails, and keeps at most one
materialization per reference in flight.
"""

import asyncio
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

import httpx
from loguru import logger

from .base import ResourceTooLargeError, StorageNotConfiguredError
from .color import replace_current_color_in_file
from .paths import is_remote_url, storage_suffix

InvalidationListener = Callable[[str], None]

# Name prefix of every materialized file in the storage directory
STORAGE_PREFIX = "img-"


def _modified_time(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def _discard_materialized(task: asyncio.Task) -> None:
    """Delete the file produced by a finished materialization task."""
    if task.cancelled() or task.exception() is not None:
        return
    Path(task.result()).unlink(missing_ok=True)


def _cancel(task: asyncio.Task) -> None:
    # A task of a closed loop cannot schedule its cancellation
    if not task.done() and not task.get_loop().is_closed():
        task.cancel()


def _discard_now(task: asyncio.Task) -> bool:
    """Delete the file of a finished task, or cancel an unfinished one.

    Returns True when a file was deleted.
    """
    if not task.done():
        _cancel(task)
        return False
    if task.cancelled() or task.exception() is not None:
        return False
    Path(task.result()).unlink(missing_ok=True)
    return True


class ResourceCache:
    """Deduplicating store of materialized image files.

    Entries are keyed by the resolved absolute path or URL and hold the
    ``asyncio.Task`` producing the local file path. The task is registered
    before any I/O starts, so concurrent callers for the same key await the
    same materialization.
    """

    def __init__(
        self,
        storage_dir: Path | str | None = None,
        timeout: int = 30,
        max_download_bytes: int = 10 * 1024 * 1024,
        watch_interval: float = 1.0,
    ):
        """
        Initialize the resource cache.

        Args:
            storage_dir: Directory to store materialized files. May be supplied
                later through ``configure``.
            timeout: HTTP request timeout in seconds
            max_download_bytes: Largest accepted remote response body
            watch_interval: Seconds between checks of watched source files
        """
        self.storage_dir: Path | None = None
        self.timeout = timeout
        self.max_download_bytes = max_download_bytes
        self.watch_interval = watch_interval
        self._entries: dict[str, asyncio.Task[str]] = {}
        self._watchers: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[InvalidationListener] = []
        self._current_color = ""

        if storage_dir is not None:
            self.configure(storage_dir)

    def configure(self, storage_dir: Path | str) -> None:
        """
        Set the storage directory, creating it if needed.

        Raises:
            OSError: If the directory cannot be created
        """
        path = Path(storage_dir)
        path.mkdir(parents=True, exist_ok=True)
        self.storage_dir = path
        logger.debug(
            "ResourceCache configured: dir={}, timeout={}, max_bytes={}",
            path,
            self.timeout,
            self.max_download_bytes,
        )

    @property
    def current_color(self) -> str:
        return self._current_color

    def __len__(self) -> int:
        return len(self._entries)

    def has(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> asyncio.Task[str] | None:
        return self._entries.get(key)

    def add_listener(self, listener: InvalidationListener) -> None:
        """Register a callable notified with the key of every evicted entry."""
        self._listeners.append(listener)

    def remove_listener(self, listener: InvalidationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def store(self, key: str) -> asyncio.Task[str]:
        """
        Materialize a resolved reference into the storage directory.

        Returns the existing task when the key is already cached or in flight.
        Must be called from a running event loop.

        Args:
            key: Absolute local path or http(s) URL

        Returns:
            Task resolving to the local file path. The task fails with
            ``httpx.HTTPError`` on network errors and non-2xx responses,
            ``ResourceTooLargeError`` for oversized bodies and ``OSError``
            for filesystem errors.

        Raises:
            StorageNotConfiguredError: If ``configure`` was never called
        """
        existing = self._entries.get(key)
        if existing is not None:
            logger.debug("Cache hit: {}", key[:80])
            return existing

        if self.storage_dir is None:
            raise StorageNotConfiguredError()

        task = asyncio.get_running_loop().create_task(self._materialize(key))
        self._entries[key] = task
        return task

    def set_current_color(self, color: str) -> None:
        """Record the accent color, invalidating every entry when it changes."""
        color = color or ""
        if color == self._current_color:
            return
        logger.debug("Accent color changed from '{}' to '{}', clearing cache", self._current_color, color)
        self._current_color = color
        self.clear()

    def delete(self, key: str) -> None:
        """Evict one entry and schedule deletion of its materialized file."""
        watcher = self._watchers.pop(key, None)
        if watcher is not None:
            watcher.cancel()

        entry = self._entries.pop(key, None)
        if entry is None:
            return

        entry.add_done_callback(_discard_materialized)
        logger.debug("Evicted cache entry: {}", key[:80])
        self._notify(key)

    def clear(self) -> None:
        """Evict every entry."""
        for key in list(self._entries):
            self.delete(key)

    async def cleanup(self) -> None:
        """Wait for every entry, delete all materialized files and empty the cache.

        Entries created on another event loop (for example one that has already
        been closed) cannot be awaited here and are discarded as in ``close``.
        """
        loop = asyncio.get_running_loop()
        watchers, entries = self._evict_all()

        local = [task for task in entries if task.get_loop() is loop]
        removed = sum(_discard_now(task) for task in entries if task.get_loop() is not loop)

        results = await asyncio.gather(*local, return_exceptions=True)
        for result in results:
            if isinstance(result, str):
                Path(result).unlink(missing_ok=True)
                removed += 1
        await asyncio.gather(
            *(watcher for watcher in watchers if watcher.get_loop() is loop),
            return_exceptions=True,
        )
        logger.info("Resource cache cleaned up: {} files removed", removed)

    def close(self) -> None:
        """Empty the cache without awaiting anything.

        Files of finished entries are deleted immediately. Unfinished entries
        are cancelled and delete their own partial files once they next run.
        Usable after the event loop that created the entries has stopped.
        """
        _, entries = self._evict_all()
        removed = sum(_discard_now(task) for task in entries)
        logger.info("Resource cache closed: {} files removed", removed)

    def _evict_all(self) -> tuple[list[asyncio.Task[None]], list[asyncio.Task[str]]]:
        watchers = list(self._watchers.values())
        self._watchers.clear()
        for watcher in watchers:
            _cancel(watcher)

        keys = list(self._entries)
        entries = list(self._entries.values())
        self._entries.clear()
        for key in keys:
            self._notify(key)
        return watchers, entries

    async def _materialize(self, key: str) -> str:
        if self.storage_dir is None:
            raise StorageNotConfiguredError()

        fd, name = tempfile.mkstemp(prefix=STORAGE_PREFIX, suffix=storage_suffix(key), dir=self.storage_dir)
        os.close(fd)
        destination = Path(name)

        try:
            if is_remote_url(key):
                await self._download(key, destination)
            else:
                self._arm_watch(key)
                shutil.copyfile(key, destination)
                logger.debug("Copied {} to {}", key, destination)
            replace_current_color_in_file(destination, self._current_color)
        except (Exception, asyncio.CancelledError) as e:
            logger.debug("Materialization failed for {}: {}", key[:80], e)
            destination.unlink(missing_ok=True)
            self._forget(key)
            raise

        return str(destination)

    async def _download(self, url: str, destination: Path) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()

                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > self.max_download_bytes:
                    raise ResourceTooLargeError(url, self.max_download_bytes)

                received = 0
                with destination.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self.max_download_bytes:
                            raise ResourceTooLargeError(url, self.max_download_bytes)
                        handle.write(chunk)

        logger.debug("Fetched {}: {} bytes", url[:80], received)

    def _forget(self, key: str) -> None:
        """Drop a failed entry, unless it was already replaced."""
        if self._entries.get(key) is asyncio.current_task():
            del self._entries[key]
        watcher = self._watchers.pop(key, None)
        if watcher is not None:
            watcher.cancel()

    def _arm_watch(self, key: str) -> None:
        if self._entries.get(key) is not asyncio.current_task():
            return
        source = Path(key)
        baseline = _modified_time(source)
        self._watchers[key] = asyncio.get_running_loop().create_task(
            self._watch(key, source, baseline)
        )

    async def _watch(self, key: str, source: Path, baseline: int | None) -> None:
        """Evict ``key`` the first time its source file changes or disappears."""
        while _modified_time(source) == baseline:
            await asyncio.sleep(self.watch_interval)

        if self._watchers.get(key) is not asyncio.current_task():
            return
        del self._watchers[key]
        logger.debug("Source changed, invalidating: {}", source)
        self.delete(key)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                logger.exception("Invalidation listener failed for {}", key[:80])
