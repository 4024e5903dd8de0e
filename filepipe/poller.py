"""Polling fallback for change notifications.

Used when native notifications are unavailable or polling is forced. Every
``interval`` seconds the entry is listed again and modification times are
compared with the previous listing:

- a path that disappeared yields a ``rename`` event
- a path whose mtime changed yields a ``change`` event

Only paths already in the retained listing are compared, so a path that
appears for the first time produces no event in the cycle it shows up in. It
joins the retained listing and reports later changes or its removal.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import AsyncIterator, Optional

from filepipe.fs import FileSystem, LocalFileSystem
from filepipe.types import EventKind, WatchEvent

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.3

PollState = dict[str, int]


async def scan(entry: str, *, recursive: bool, fs: FileSystem) -> PollState:
    """Map every file under ``entry`` (relative path) to its mtime in ns.

    A file entry maps its own basename.
    """
    state: PollState = {}

    st = await fs.stat(entry)
    if not st.is_dir:
        return {os.path.basename(entry): st.mtime_ns}

    async def read_dir(directory: str) -> None:
        async def visit(name: str) -> None:
            path = os.path.join(directory, name)
            st = await fs.stat(path)
            if st.is_dir:
                if recursive:
                    await read_dir(path)
            else:
                state[os.path.relpath(path, entry)] = st.mtime_ns

        await asyncio.gather(*(visit(name) for name in await fs.listdir(directory)))

    await read_dir(entry)
    return state


async def poll(
    entry: str,
    *,
    recursive: bool = True,
    cancel: Optional[asyncio.Event] = None,
    interval: float = DEFAULT_INTERVAL,
    fs: Optional[FileSystem] = None,
) -> AsyncIterator[WatchEvent]:
    """Yield change events for ``entry`` until ``cancel`` is set."""
    fs = fs or LocalFileSystem()

    def cancelled() -> bool:
        return cancel is not None and cancel.is_set()

    state = await scan(entry, recursive=recursive, fs=fs)
    logger.info("Polling %s every %ss (%d files)", entry, interval, len(state))

    while not cancelled():
        await asyncio.sleep(interval)
        if cancelled():
            break
        next_state = await scan(entry, recursive=recursive, fs=fs)
        if cancelled():
            break

        for filename, mtime in state.items():
            if filename not in next_state:
                yield WatchEvent(EventKind.RENAME, filename)
            elif next_state[filename] != mtime:
                yield WatchEvent(EventKind.CHANGE, filename)

        state = next_state
