"""Content-hash helpers for naming outputs and skipping unchanged inputs."""
from __future__ import annotations

import hashlib
import os
from typing import Optional

from filepipe.types import ContentReader, RenameFn


def content_hash(length: int = 8) -> RenameFn:
    """Return a rename function that appends a content hash to the name.

    ``content_hash(8)("css/a.txt", b"...")`` gives ``"a-1A2B3C4D.txt"``: the
    basename's stem, a dash, the first ``length`` hex digits of the sha256 of
    the content in upper case, then the original extension.
    """

    def rename(name: str, content: bytes) -> str:
        stem, ext = os.path.splitext(os.path.basename(name))
        digest = hashlib.sha256(content).hexdigest()[:length].upper()
        return f"{stem}-{digest}{ext}"

    return rename


class ContentChangedFilter:
    """Include predicate that only lets through files whose content changed.

    One instance remembers the checksums it has seen, so a pipeline should
    build its own instance and keep it for as long as it runs. Directories and
    files without content (e.g. deleted ones) are always included.
    """

    def __init__(self) -> None:
        self.checksums: dict[str, str] = {}

    async def __call__(
        self, name: str, is_dir: bool, read: Optional[ContentReader] = None
    ) -> bool:
        content = await read() if read is not None else None
        if content is None or is_dir:
            return True

        checksum = hashlib.sha256(content).hexdigest()
        if self.checksums.get(name) != checksum:
            self.checksums[name] = checksum
            return True
        return False
