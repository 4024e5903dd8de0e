"""Watch mode: compile once, then keep the manifest current as files change.

    cancel = asyncio.Event()
    async for manifest in watch("src", [RenameProcessor("dist")], cancel=cancel):
        ...

Events come from the filesystem provider's native ``watch`` (watchdog for
``LocalFileSystem``) or from the poller, and are handled one at a time in
arrival order. Each handled event that touches the manifest yields a fresh
copy of it.
"""
from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from typing import AsyncIterator, Callable, Optional, Sequence, Union

from filepipe.compiler import (
    active_processors,
    build_manifest,
    export_manifest,
    merge_results,
    reachable_processors,
)
from filepipe.event_queue import EventQueue
from filepipe.file_processor import process
from filepipe.fs import FileSystem, LocalFileSystem
from filepipe.poller import DEFAULT_INTERVAL, poll as poll_events
from filepipe.types import EventKind, Manifest, ManifestEntry, Processor, WatchEvent

logger = logging.getLogger(__name__)

POLL_ENV_VAR = "FILEPIPE_USE_POLLING"

Snapshot = Union[ManifestEntry, Manifest]
ErrorHook = Callable[[Exception], None]


class WatchState(str, Enum):
    INITIALIZING = "initializing"
    WATCHING = "watching"
    TERMINATED = "terminated"


def poll_option_from_env(environ=None) -> Union[bool, float]:
    """Read the polling option from ``FILEPIPE_USE_POLLING``.

    Unset or empty disables polling, a number is the interval in seconds and
    any other value polls at the default interval.
    """
    value = (environ if environ is not None else os.environ).get(POLL_ENV_VAR)
    if not value:
        return False
    try:
        return float(value)
    except ValueError:
        return True


def default_on_error(err: Exception) -> None:
    """Re-raise on CI, otherwise log and keep watching."""
    if os.environ.get("CI"):
        raise err
    logger.error("%s", err)


class Watcher:
    """Async iterable of manifest snapshots for one watched entry."""

    def __init__(
        self,
        entry: str,
        processors: Sequence[Processor],
        *,
        cancel: Optional[asyncio.Event] = None,
        poll: Union[bool, float, None] = None,
        on_error: Optional[ErrorHook] = None,
        fs: Optional[FileSystem] = None,
    ) -> None:
        self.entry = entry
        self.processors = list(processors)
        self.cancel = cancel
        self.poll = poll_option_from_env() if poll is None else poll
        self.on_error = on_error or default_on_error
        self.fs = fs or LocalFileSystem()
        self.state = WatchState.INITIALIZING
        self.manifest: Optional[Manifest] = None
        self._source_error: Optional[Exception] = None
        self._started = False

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        if self._started:
            raise RuntimeError("Watcher can only be iterated once")
        self._started = True
        return self._run()

    def _set_state(self, state: WatchState) -> None:
        logger.info("Watch %s: %s -> %s", self.entry, self.state.value, state.value)
        self.state = state

    def _open_source(self, recursive: bool, stop: asyncio.Event) -> AsyncIterator[WatchEvent]:
        native = getattr(self.fs, "watch", None)
        if self.poll or native is None:
            interval = DEFAULT_INTERVAL
            if not isinstance(self.poll, bool) and self.poll:
                interval = float(self.poll)
            logger.info("Using polling for %s", self.entry)
            return poll_events(
                self.entry, recursive=recursive, cancel=stop, interval=interval, fs=self.fs
            )
        logger.info("Using native watch for %s", self.entry)
        return native(self.entry, recursive=recursive, cancel=stop)

    async def _pump(self, source: AsyncIterator[WatchEvent], queue: EventQueue) -> None:
        try:
            async for event in source:
                if queue.closed:
                    break
                queue.push(event)
        except Exception as err:
            self._source_error = err
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
            if not queue.closed:
                queue.done()

    async def _abort_on_cancel(self, stop: asyncio.Event, queue: EventQueue) -> None:
        await self.cancel.wait()
        stop.set()
        queue.done(abort=True)

    async def _handle(self, event: WatchEvent, base_dir: str) -> Optional[Snapshot]:
        if self.manifest is None:
            self.manifest = await build_manifest(self.entry, self.processors, fs=self.fs)
            return export_manifest(self.manifest)

        filename = event.filename
        if event.kind == EventKind.RENAME:
            if any(filename in section for section in self.manifest):
                for section in self.manifest:
                    section.pop(filename, None)
                return export_manifest(self.manifest)
            # Unknown name: may be a new file, handled like a change.

        path = os.path.join(base_dir, filename)

        async def read() -> Optional[bytes]:
            try:
                return await self.fs.read_file(path)
            except FileNotFoundError:
                return None

        reachable = await reachable_processors(self.processors, filename)
        if not any(reachable):
            return None

        changed = await active_processors(reachable, filename, read)
        if changed is None:
            return None

        results = await process(path, base_dir, changed, fs=self.fs)
        merge_results(self.manifest, results)
        return export_manifest(self.manifest)

    async def _run(self) -> AsyncIterator[Snapshot]:
        try:
            self.manifest = await build_manifest(self.entry, self.processors, fs=self.fs)
        except Exception as err:
            self.on_error(err)
        if self.manifest is not None:
            yield export_manifest(self.manifest)

        is_dir = (await self.fs.stat(self.entry)).is_dir
        base_dir = self.entry if is_dir else (os.path.dirname(self.entry) or os.curdir)
        recursive = is_dir and any(p.recursive is not False for p in self.processors)

        stop = asyncio.Event()
        queue: EventQueue[WatchEvent] = EventQueue()
        tasks = [asyncio.ensure_future(self._pump(self._open_source(recursive, stop), queue))]
        if self.cancel is not None:
            tasks.append(asyncio.ensure_future(self._abort_on_cancel(stop, queue)))

        self._set_state(WatchState.WATCHING)
        try:
            async for event in queue:
                logger.debug("Event %s %s", event.kind.value, event.filename)
                try:
                    snapshot = await self._handle(event, base_dir)
                except Exception as err:
                    self.on_error(err)
                    continue
                if snapshot is not None:
                    yield snapshot

            if self._source_error is not None:
                self.on_error(self._source_error)
        finally:
            stop.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._set_state(WatchState.TERMINATED)


def watch(
    entry: str,
    processors: Sequence[Processor],
    *,
    cancel: Optional[asyncio.Event] = None,
    poll: Union[bool, float, None] = None,
    on_error: Optional[ErrorHook] = None,
    fs: Optional[FileSystem] = None,
) -> Watcher:
    """Watch ``entry`` and yield a manifest snapshot after every update.

    Runs until the event source ends, ``cancel`` is set or the iterator is
    closed. ``poll`` forces polling (``True`` or an interval in seconds);
    ``None`` reads ``FILEPIPE_USE_POLLING``. ``on_error`` receives failures
    while watching; by default they are re-raised on CI and logged otherwise.
    """
    return Watcher(entry, processors, cancel=cancel, poll=poll, on_error=on_error, fs=fs)
