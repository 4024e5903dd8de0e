"""File processing for filepipe.

This module exposes ``process`` which runs one file through the active
processors and writes their outputs.

- The file is read once and the bytes are shared by every processor.
- Outputs land in ``<out_dir>/<dir of file relative to entry>/<name>``.
- The return value has one slot per processor: ``None`` when nothing was
  written, else ``{input path: output path}`` (a list of output paths when the
  transform returned a list).
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional, Sequence

from filepipe.fs import FileSystem, LocalFileSystem
from filepipe.types import ManifestEntry, OutputFile, Processor, resolve

logger = logging.getLogger(__name__)


def _check_output(item) -> OutputFile:
    if not isinstance(item, OutputFile):
        raise TypeError(f"transform must return OutputFile values, got {type(item).__name__}")
    return item


def _normalize(result, copy_name: str) -> Optional[list[OutputFile]]:
    if result is None:
        return None
    if isinstance(result, (bytes, bytearray, memoryview)):
        return [OutputFile(bytes(result), copy_name)]
    if isinstance(result, list):
        return [_check_output(item) for item in result] or None
    return [_check_output(result)]


async def _run_processor(
    processor: Optional[Processor],
    file: str,
    entry: str,
    in_name: str,
    read,
    fs: FileSystem,
) -> Optional[ManifestEntry]:
    if processor is None:
        return None

    copy_name = os.path.basename(in_name)

    if processor.kind == "rename":
        content = await read()
        name = None
        if processor.rename is not None:
            name = await resolve(processor.rename(in_name, content))
        result = OutputFile(content, name or copy_name)
    else:
        if processor.rename is not None:
            logger.warning(
                "Unexpected rename function on transform processor (out_dir=%s), it will be ignored. "
                "Return the new name from transform as OutputFile(content, name)",
                processor.out_dir,
            )
        result = await resolve(processor.transform(await read(), in_name))

    writes = _normalize(result, copy_name)
    if writes is None:
        return None

    target_dir = os.path.join(processor.out_dir, os.path.relpath(os.path.dirname(file), entry))

    async def write(output: OutputFile) -> str:
        target = os.path.normpath(os.path.join(target_dir, output.name))
        await fs.makedirs(os.path.dirname(target))
        await fs.write_file(target, output.content)
        return os.path.relpath(target, processor.out_dir)

    out_files = await asyncio.gather(*(write(output) for output in writes))
    return {in_name: list(out_files) if isinstance(result, list) else out_files[0]}


async def process(
    file: str,
    entry: str,
    processors: Sequence[Optional[Processor]],
    *,
    fs: Optional[FileSystem] = None,
) -> list[Optional[ManifestEntry]]:
    """Run ``file`` through each non-``None`` processor and write the outputs.

    ``entry`` is the directory input names are made relative to.
    """
    fs = fs or LocalFileSystem()
    in_name = os.path.relpath(file, entry)
    content_task: Optional[asyncio.Future] = None

    async def read() -> bytes:
        nonlocal content_task
        if content_task is None:
            content_task = asyncio.ensure_future(fs.read_file(file))
        return await content_task

    return list(
        await asyncio.gather(
            *(_run_processor(p, file, entry, in_name, read, fs) for p in processors)
        )
    )
