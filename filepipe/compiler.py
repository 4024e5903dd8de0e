"""One-shot compile: walk the entry and run every matching file through its processors."""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional, Sequence, Union

from filepipe.file_processor import process
from filepipe.fs import FileSystem, LocalFileSystem
from filepipe.types import ContentReader, Manifest, ManifestEntry, Processor, resolve

logger = logging.getLogger(__name__)

Slots = list[Optional[Processor]]


def merge_results(manifest: Manifest, results: Sequence[Optional[ManifestEntry]]) -> None:
    """Merge per-processor ``process`` results into ``manifest`` by position."""
    for index, result in enumerate(results):
        if result is not None:
            manifest[index].update(result)


def export_manifest(manifest: Manifest) -> Union[ManifestEntry, Manifest]:
    """Copy of ``manifest``; the single mapping when there is one processor."""
    if len(manifest) == 1:
        return dict(manifest[0])
    return [dict(section) for section in manifest]


async def include_dir(processor: Optional[Processor], rel_path: str, is_entry: bool) -> bool:
    if processor is None:
        return False
    if is_entry:
        return True
    if processor.recursive is False:
        return False
    if processor.include is None:
        return True
    return bool(await resolve(processor.include(rel_path, True)))


async def include_file(
    processor: Optional[Processor], rel_path: str, read: ContentReader
) -> bool:
    if processor is None:
        return False
    if processor.include is None:
        return True
    return bool(await resolve(processor.include(rel_path, False, read)))


async def reachable_processors(
    processors: Sequence[Optional[Processor]], rel_path: str
) -> Slots:
    """Processors that a walk would carry down to the file ``rel_path``.

    Each ancestor directory of ``rel_path`` is checked like ``compile`` checks
    it while descending; excluded processors become ``None``.
    """
    active: Slots = list(processors)
    parent = ""
    for part in os.path.dirname(rel_path).split(os.sep):
        if not any(active):
            break
        if not part:
            continue
        parent = os.path.join(parent, part) if parent else part
        flags = await asyncio.gather(*(include_dir(p, parent, False) for p in active))
        active = [p if f else None for p, f in zip(active, flags)]
    return active


async def active_processors(
    processors: Sequence[Optional[Processor]], rel_path: str, read: ContentReader
) -> Optional[Slots]:
    """Processors including the file ``rel_path``, ``None`` where excluded.

    Returns ``None`` when no processor includes the file.
    """
    flags = await asyncio.gather(*(include_file(p, rel_path, read) for p in processors))
    if not any(flags):
        return None
    return [p if f else None for p, f in zip(processors, flags)]


async def build_manifest(
    entry: str,
    processors: Sequence[Processor],
    *,
    fs: Optional[FileSystem] = None,
) -> Manifest:
    """Walk ``entry`` and return one manifest section per processor."""
    fs = fs or LocalFileSystem()
    manifest: Manifest = [{} for _ in processors]
    entry_dir: Optional[str] = None

    logger.info("Compiling %s with %d processor(s)", entry, len(processors))

    async def handle(path: str, active: Slots) -> None:
        nonlocal entry_dir
        is_dir = (await fs.stat(path)).is_dir
        if entry_dir is None:
            entry_dir = entry if is_dir else (os.path.dirname(entry) or os.curdir)
        rel_path = os.path.relpath(path, entry_dir)

        if is_dir:
            is_entry = path == entry
            flags = await asyncio.gather(*(include_dir(p, rel_path, is_entry) for p in active))
            if any(flags):
                await read_dir(path, [p if f else None for p, f in zip(active, flags)])
            return

        def read():
            return fs.read_file(path)

        file_processors = await active_processors(active, rel_path, read)
        if file_processors is None:
            return

        merge_results(manifest, await process(path, entry_dir, file_processors, fs=fs))

    async def read_dir(directory: str, active: Slots) -> None:
        names = await fs.listdir(directory)
        await asyncio.gather(*(handle(os.path.join(directory, name), active) for name in names))

    await handle(entry, list(processors))

    logger.info("Compiled %s: %d output(s)", entry, sum(len(section) for section in manifest))
    return manifest


async def compile(
    entry: str,
    processors: Sequence[Processor],
    *,
    fs: Optional[FileSystem] = None,
) -> Union[ManifestEntry, Manifest]:
    """Walk ``entry`` and process every file at least one processor includes.

    Returns the manifest: a single mapping when one processor is configured,
    otherwise one mapping per processor in the same order.
    """
    return export_manifest(await build_manifest(entry, processors, fs=fs))
