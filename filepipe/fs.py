"""Filesystem provider used by the pipeline.

``compile``, ``process``, ``poll`` and ``watch`` all take an optional ``fs``
argument. Anything with the methods of ``FileSystem`` works; the default is
``LocalFileSystem`` which reads and writes through aiofiles and gets native
change notifications from watchdog.
"""
from __future__ import annotations

import asyncio
import logging
import os
import stat as stat_module
from typing import AsyncIterator, NamedTuple, Optional, Protocol

import aiofiles
import aiofiles.os
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from filepipe.types import EventKind, WatchEvent

logger = logging.getLogger(__name__)


class FileStat(NamedTuple):
    is_dir: bool
    mtime_ns: int


class FileSystem(Protocol):
    async def listdir(self, path: str) -> list[str]: ...

    async def stat(self, path: str) -> FileStat: ...

    async def read_file(self, path: str) -> bytes: ...

    async def makedirs(self, path: str) -> None: ...

    async def write_file(self, path: str, content: bytes) -> None: ...


class _EventBridge(FileSystemEventHandler):
    """Hand watchdog events from the observer thread over to the event loop.

    Created, deleted and moved paths become ``rename`` events, modified files
    become ``change`` events. Directory events are dropped.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        events: asyncio.Queue,
        root: str,
        only: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.loop = loop
        self.events = events
        self.root = root
        self.only = only

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        if event.event_type == EVENT_TYPE_MODIFIED:
            self._emit(EventKind.CHANGE, event.src_path)
        elif event.event_type in (EVENT_TYPE_CREATED, EVENT_TYPE_DELETED):
            self._emit(EventKind.RENAME, event.src_path)
        elif event.event_type == EVENT_TYPE_MOVED:
            self._emit(EventKind.RENAME, event.src_path)
            self._emit(EventKind.RENAME, event.dest_path)

    def _emit(self, kind: EventKind, path) -> None:
        path = os.fsdecode(path)
        filename = os.path.relpath(path, self.root)
        if self.only is not None and filename != self.only:
            return
        self.loop.call_soon_threadsafe(self.events.put_nowait, WatchEvent(kind, filename))


class LocalFileSystem:
    async def listdir(self, path: str) -> list[str]:
        return await aiofiles.os.listdir(path)

    async def stat(self, path: str) -> FileStat:
        st = await aiofiles.os.stat(path)
        return FileStat(stat_module.S_ISDIR(st.st_mode), st.st_mtime_ns)

    async def read_file(self, path: str) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def makedirs(self, path: str) -> None:
        await aiofiles.os.makedirs(path, exist_ok=True)

    async def write_file(self, path: str, content: bytes) -> None:
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)

    async def watch(
        self,
        path: str,
        *,
        recursive: bool = True,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[WatchEvent]:
        """Yield native change events for ``path`` until ``cancel`` is set.

        Filenames are relative to ``path`` when it is a directory. A single
        file is watched through its parent directory and reported by basename.
        """
        loop = asyncio.get_running_loop()
        events: asyncio.Queue = asyncio.Queue()

        if (await self.stat(path)).is_dir:
            handler = _EventBridge(loop, events, path)
            root = path
        else:
            root = os.path.dirname(path) or os.curdir
            handler = _EventBridge(loop, events, root, only=os.path.basename(path))
            recursive = False

        observer = Observer()
        observer.schedule(handler, root, recursive=recursive)
        observer.start()
        logger.info("Watching %s (recursive=%s)", root, recursive)

        try:
            while cancel is None or not cancel.is_set():
                getter = asyncio.ensure_future(events.get())
                waiting = {getter}
                stopper = None
                if cancel is not None:
                    stopper = asyncio.ensure_future(cancel.wait())
                    waiting.add(stopper)

                try:
                    await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    for task in waiting:
                        if not task.done():
                            task.cancel()

                if getter.done() and not getter.cancelled():
                    yield getter.result()
                if stopper is not None and stopper.done():
                    break
        finally:
            observer.stop()
            observer.join()
            logger.info("Stopped watching %s", root)
