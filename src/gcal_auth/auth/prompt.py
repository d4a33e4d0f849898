"""Single-line authorization code input for the manual (no listener) flow."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from typing import IO, Protocol

from rich.console import Console

logger = logging.getLogger("gcal_auth.auth.prompt")


class CodeReader(Protocol):
    async def readline(self, prompt: str) -> str: ...

    def close(self) -> None: ...


class StdinCodeReader:
    """Reads one line from stdin without blocking the event loop.

    The underlying descriptor is duplicated so that closing the reader
    releases the pipe transport without closing the process's stdin. The
    duplicate shares the original's file status flags, so the blocking mode
    the pipe transport switches off is restored on :meth:`close`.
    """

    def __init__(self, stream: IO[str] | None = None, console: Console | None = None) -> None:
        self._stream = stream or sys.stdin
        self._console = console or Console(stderr=True)
        self._transport: asyncio.BaseTransport | None = None
        self._fd: int | None = None
        self._was_blocking = True

    async def readline(self, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        fd = self._stream.fileno()
        self._fd, self._was_blocking = fd, os.get_blocking(fd)
        pipe = os.fdopen(os.dup(fd), "rb", buffering=0)
        try:
            self._transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), pipe
            )
        except (OSError, ValueError):
            pipe.close()
            self._restore_blocking()
            raise
        self._console.print(prompt, end="")
        line = await reader.readline()
        return line.decode("utf-8", errors="replace").strip()

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.debug("Released manual code input channel")
        self._restore_blocking()

    def _restore_blocking(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        # stdin may already be closed by the host process
        with contextlib.suppress(OSError):
            os.set_blocking(fd, self._was_blocking)
