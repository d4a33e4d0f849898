"""Tests for the stdin authorization code reader."""

from __future__ import annotations

import asyncio
import io
import os
from pathlib import Path
from typing import IO, Iterator

import pytest
from rich.console import Console

from gcal_auth.auth.prompt import StdinCodeReader


@pytest.fixture
def pipe() -> Iterator[tuple[IO[str], int]]:
    """A readable text stream over a pipe (standing in for stdin) and its write end."""
    read_fd, write_fd = os.pipe()
    stream = os.fdopen(read_fd, "r")
    try:
        yield stream, write_fd
    finally:
        stream.close()
        os.close(write_fd)


def _reader(stream: IO[str]) -> StdinCodeReader:
    return StdinCodeReader(stream, console=Console(file=io.StringIO()))


class TestStdinCodeReader:
    @pytest.mark.asyncio
    async def test_reads_one_line(self, pipe: tuple[IO[str], int]) -> None:
        stream, write_fd = pipe
        os.write(write_fd, b"  the-code \n")
        reader = _reader(stream)
        try:
            line = await asyncio.wait_for(reader.readline("code: "), 1.0)
        finally:
            reader.close()

        assert line == "the-code"

    @pytest.mark.asyncio
    async def test_close_restores_blocking_mode(self, pipe: tuple[IO[str], int]) -> None:
        stream, write_fd = pipe
        assert os.get_blocking(stream.fileno())
        os.write(write_fd, b"the-code\n")
        reader = _reader(stream)

        await asyncio.wait_for(reader.readline("code: "), 1.0)
        assert not os.get_blocking(stream.fileno())
        reader.close()

        assert os.get_blocking(stream.fileno())

    @pytest.mark.asyncio
    async def test_cancelled_read_releases_channel(self, pipe: tuple[IO[str], int]) -> None:
        stream, _ = pipe
        reader = _reader(stream)
        task = asyncio.create_task(reader.readline("code: "))
        await asyncio.sleep(0.05)
        transport = reader._transport
        assert transport is not None

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        reader.close()

        assert transport.is_closing()
        assert reader._transport is None
        assert os.get_blocking(stream.fileno())

    @pytest.mark.asyncio
    async def test_regular_file_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "stdin.txt"
        path.write_text("the-code\n")
        with open(path) as stream:
            reader = _reader(stream)
            with pytest.raises(ValueError):
                await reader.readline("code: ")
            reader.close()
            assert reader._transport is None
            assert os.get_blocking(stream.fileno())

    def test_close_without_read(self, pipe: tuple[IO[str], int]) -> None:
        stream, _ = pipe
        reader = _reader(stream)
        reader.close()
        reader.close()
        assert os.get_blocking(stream.fileno())
