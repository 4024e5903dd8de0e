"""Exception types raised by filepipe."""
from __future__ import annotations


class FilePipeError(Exception):
    """Base class for filepipe errors."""


class QueueClosedError(FilePipeError, RuntimeError):
    """Raised when pushing to an EventQueue that was already marked done."""


class ProcessorConfigError(FilePipeError, ValueError):
    """Raised when a processor configuration cannot be used."""
