"""Core types shared across filepipe.

Processors come in two variants selected by an explicit ``kind``:

- ``RenameProcessor`` copies content unchanged, optionally under a new name.
- ``TransformProcessor`` maps content to zero, one or many output files.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Mapping, NamedTuple, Optional, Union

from filepipe.errors import ProcessorConfigError


class OutputFile(NamedTuple):
    content: bytes
    name: str


TransformResult = Union[None, bytes, OutputFile, "list[OutputFile]"]
ContentReader = Callable[[], Awaitable[Optional[bytes]]]
IncludeFn = Callable[..., Union[bool, Awaitable[bool]]]
RenameFn = Callable[[str, bytes], Union[Optional[str], Awaitable[Optional[str]]]]
TransformFn = Callable[[bytes, str], Union[TransformResult, Awaitable[TransformResult]]]

ManifestEntry = dict[str, Union[str, list[str]]]
Manifest = list[ManifestEntry]


@dataclass
class RenameProcessor:
    out_dir: str
    rename: Optional[RenameFn] = None
    recursive: bool = True
    include: Optional[IncludeFn] = None

    kind: ClassVar[str] = "rename"


@dataclass
class TransformProcessor:
    out_dir: str
    transform: TransformFn
    recursive: bool = True
    include: Optional[IncludeFn] = None
    # Not used; only kept so the misconfiguration can be reported.
    rename: Optional[RenameFn] = None

    kind: ClassVar[str] = "transform"


Processor = Union[RenameProcessor, TransformProcessor]


class EventKind(str, Enum):
    RENAME = "rename"
    CHANGE = "change"


class WatchEvent(NamedTuple):
    kind: EventKind
    filename: str


def processor_from_config(config: Mapping[str, Any]) -> Processor:
    """Build a processor from a plain mapping.

    Recognised keys: ``out_dir`` (required), ``recursive``, ``include`` and
    one of ``rename`` / ``transform``. An explicit ``kind`` key selects the
    variant; without it the variant is fixed here, once.
    """
    out_dir = config.get("out_dir")
    if not out_dir:
        raise ProcessorConfigError("processor config requires 'out_dir'")

    kind = config.get("kind") or ("transform" if "transform" in config else "rename")
    common = {
        "out_dir": out_dir,
        "recursive": config.get("recursive", True) is not False,
        "include": config.get("include"),
    }

    if kind == "transform":
        transform = config.get("transform")
        if not callable(transform):
            raise ProcessorConfigError("transform processor requires a callable 'transform'")
        return TransformProcessor(transform=transform, rename=config.get("rename"), **common)
    if kind == "rename":
        return RenameProcessor(rename=config.get("rename"), **common)
    raise ProcessorConfigError(f"unknown processor kind: {kind!r}")


async def resolve(value):
    """Await ``value`` if the user callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value
