"""
Local HTTP listener that receives Google's OAuth2 redirect.

Runs on the caller's event loop (``asyncio.start_server``) and serves a
single route, ``GET <callback_path>``, handing the parsed query string to
an async handler. When the port is already bound, another cooperating
instance is assumed to be serving the callback and the failure is not
fatal.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlparse

from gcal_auth.auth.pages import error_page, not_found_page

logger = logging.getLogger("gcal_auth.auth.callback_server")

_READ_TIMEOUT = 10.0
_MAX_HEADER_LINES = 100


@dataclass
class CallbackResponse:
    """HTML response produced for one callback request."""

    status_code: int
    body: str


CallbackHandler = Callable[[dict[str, str]], Awaitable[CallbackResponse]]


class OAuthCallbackServer:
    """Local HTTP server to capture the OAuth2 callback.

    Usage::

        server = OAuthCallbackServer(handler, host="localhost", port=4153)
        await server.start()          # False if another process owns the port
        ...
        await server.stop()           # only closes a listener this object owns
    """

    def __init__(
        self,
        handler: CallbackHandler,
        *,
        host: str = "localhost",
        port: int = 4153,
        callback_path: str = "/oauth2callback",
    ) -> None:
        self._handler = handler
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self._server: asyncio.AbstractServer | None = None

    @property
    def owns_listener(self) -> bool:
        return self._server is not None

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def get_redirect_uri(self) -> str:
        """Get the redirect URI served by this listener."""
        return f"http://{self.host}:{self.port}{self.callback_path}"

    async def start(self) -> bool:
        """Bind the listener if it is not bound yet.

        Returns:
            True if this object now owns a listener, False if the port is
            already in use by someone else.

        Raises:
            OSError: For bind failures other than "address in use".
        """
        if self._server is not None:
            return True
        try:
            self._server = await asyncio.start_server(self._handle_connection, self.host, self.port)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                logger.warning(
                    "Port %d is already in use, assuming another instance is serving the OAuth callback",
                    self.port,
                )
                return False
            raise
        if self.port == 0 and self._server.sockets:
            self.port = self._server.sockets[0].getsockname()[1]
        logger.info("OAuth callback server started on %s:%d", self.host, self.port)
        return True

    async def stop(self) -> None:
        """Close the listener if this object owns it."""
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        logger.info("OAuth callback server stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            response = await self._dispatch(reader)
            await self._write_response(writer, response)
        except (asyncio.TimeoutError, ConnectionError) as e:
            logger.debug("Dropped callback connection: %s", type(e).__name__)
        except Exception:
            logger.exception("Unexpected error while serving OAuth callback")
            await self._write_response(
                writer, CallbackResponse(HTTPStatus.INTERNAL_SERVER_ERROR, error_page())
            )
        finally:
            writer.close()

    async def _dispatch(self, reader: asyncio.StreamReader) -> CallbackResponse:
        request_line = await asyncio.wait_for(reader.readline(), _READ_TIMEOUT)
        await self._drain_headers(reader)

        parts = request_line.decode("latin-1").split()
        if len(parts) < 2:
            return CallbackResponse(HTTPStatus.BAD_REQUEST, error_page())

        method, target = parts[0], parts[1]
        url = urlparse(target)
        if url.path != self.callback_path:
            return CallbackResponse(HTTPStatus.NOT_FOUND, not_found_page())
        if method != "GET":
            return CallbackResponse(HTTPStatus.METHOD_NOT_ALLOWED, error_page())

        query = {key: values[0] for key, values in parse_qs(url.query).items()}
        return await self._handler(query)

    async def _drain_headers(self, reader: asyncio.StreamReader) -> None:
        for _ in range(_MAX_HEADER_LINES):
            line = await asyncio.wait_for(reader.readline(), _READ_TIMEOUT)
            if line in (b"\r\n", b"\n", b""):
                return

    async def _write_response(self, writer: asyncio.StreamWriter, response: CallbackResponse) -> None:
        body = response.body.encode("utf-8")
        status = HTTPStatus(response.status_code)
        head = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            "Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Cache-Control: no-store\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        writer.write(head.encode("latin-1") + body)
        try:
            await writer.drain()
        except ConnectionError:
            logger.debug("Client disconnected before the callback response was sent")
