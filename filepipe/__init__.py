"""filepipe: compile and watch a tree of files through rename/transform processors.

Keep traversal (``compiler``), per-file work (``file_processor``) and change
detection (``watch``, ``poller``) in their own modules so each stays small and
testable.
"""

from filepipe.compiler import compile
from filepipe.errors import FilePipeError, ProcessorConfigError, QueueClosedError
from filepipe.event_queue import EventQueue
from filepipe.file_processor import process
from filepipe.fs import FileStat, FileSystem, LocalFileSystem
from filepipe.hashing import ContentChangedFilter, content_hash
from filepipe.poller import poll
from filepipe.types import (
    EventKind,
    OutputFile,
    RenameProcessor,
    TransformProcessor,
    WatchEvent,
    processor_from_config,
)
from filepipe.watch import Watcher, WatchState, watch

__all__ = [
    "ContentChangedFilter",
    "EventKind",
    "EventQueue",
    "FilePipeError",
    "FileStat",
    "FileSystem",
    "LocalFileSystem",
    "OutputFile",
    "ProcessorConfigError",
    "QueueClosedError",
    "RenameProcessor",
    "TransformProcessor",
    "WatchEvent",
    "WatchState",
    "Watcher",
    "compile",
    "content_hash",
    "poll",
    "process",
    "processor_from_config",
    "watch",
]
