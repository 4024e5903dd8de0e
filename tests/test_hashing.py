"""Tests for filepipe.hashing module"""
import hashlib
import re

import pytest

from filepipe.hashing import ContentChangedFilter, content_hash


class TestContentHash:
    """Test suite for content_hash function"""

    def test_default_length(self):
        content = b"hello world"
        expected = hashlib.sha256(content).hexdigest()[:8].upper()

        name = content_hash()("a.txt", content)

        assert re.fullmatch(r"a-[0-9A-F]{8}\.txt", name)
        assert name == f"a-{expected}.txt"

    def test_custom_length(self):
        name = content_hash(12)("a.txt", b"x")

        assert re.fullmatch(r"a-[0-9A-F]{12}\.txt", name)

    def test_uses_basename(self):
        """Test that directories in the input name are not part of the output name"""
        name = content_hash()("css/site/main.css", b"body{}")

        assert name.startswith("main-")
        assert name.endswith(".css")
        assert "/" not in name

    def test_without_extension(self):
        name = content_hash(4)("Makefile", b"all:")

        assert re.fullmatch(r"Makefile-[0-9A-F]{4}", name)

    def test_same_content_same_name(self):
        namer = content_hash()
        assert namer("a.txt", b"1") == namer("a.txt", b"1")
        assert namer("a.txt", b"1") != namer("a.txt", b"2")


class TestContentChangedFilter:
    """Test suite for ContentChangedFilter"""

    @staticmethod
    def reader(content):
        async def read():
            return content

        return read

    @pytest.mark.asyncio
    async def test_directories_always_included(self):
        include = ContentChangedFilter()

        assert await include("sub", True) is True
        assert await include("sub", True) is True

    @pytest.mark.asyncio
    async def test_missing_content_included(self):
        include = ContentChangedFilter()

        assert await include("gone.txt", False, self.reader(None)) is True

    @pytest.mark.asyncio
    async def test_unchanged_content_excluded(self):
        include = ContentChangedFilter()

        assert await include("a.txt", False, self.reader(b"1")) is True
        assert await include("a.txt", False, self.reader(b"1")) is False

    @pytest.mark.asyncio
    async def test_changed_content_included(self):
        include = ContentChangedFilter()

        await include("a.txt", False, self.reader(b"1"))
        assert await include("a.txt", False, self.reader(b"2")) is True
        assert await include("a.txt", False, self.reader(b"2")) is False

    @pytest.mark.asyncio
    async def test_instances_do_not_share_state(self):
        first = ContentChangedFilter()
        second = ContentChangedFilter()

        await first("a.txt", False, self.reader(b"1"))

        assert await second("a.txt", False, self.reader(b"1")) is True
