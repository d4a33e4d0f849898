"""
Authorization Code + PKCE handshake coordinator.

Flow for one identity::

    initiate(identity)
      -> PKCE verifier/challenge + CSRF state registered (10 minutes)
      -> browser opened on the consent URL, local listener bound
      -> GET /oauth2callback?code=...&state=...   (handle_callback)
      -> code exchanged with the recorded verifier, tokens stored encrypted
      -> watcher observes the access credential in the TokenStore
      -> pending future resolved with a Credential

At most one handshake runs per identity; concurrent callers share the same
future. Every wait is bounded by ``timeout`` (5 minutes by default).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import webbrowser
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

from rich.console import Console

from gcal_auth.auth.callback_server import CallbackResponse, OAuthCallbackServer
from gcal_auth.auth.errors import (
    AuthorizationTimeoutError,
    CsrfValidationError,
    GCalAuthError,
    TokenExchangeError,
)
from gcal_auth.auth.google_client import GoogleOAuthClient
from gcal_auth.auth.models import AuthorizationState, Credential, FlowStatus
from gcal_auth.auth.pages import error_page, success_page
from gcal_auth.auth.pkce import generate_pkce_pair, generate_state_token
from gcal_auth.auth.prompt import CodeReader, StdinCodeReader
from gcal_auth.auth.state_registry import AuthorizationStateRegistry
from gcal_auth.auth.token_store import TokenStore, load_credential, save_tokens

logger = logging.getLogger("gcal_auth.auth.flow")

AUTHORIZATION_TIMEOUT = 5 * 60
POLL_INTERVAL = 1.0


@dataclass
class PendingAuthorization:
    """An in-flight handshake for one identity."""

    identity: str
    state_token: str
    authorization_url: str
    future: asyncio.Future[Credential]
    status: FlowStatus = FlowStatus.AWAITING_USER_ACTION
    task: asyncio.Task[None] | None = None


def parse_manual_input(raw: str) -> tuple[str | None, str | None]:
    """Accept a bare authorization code or the full redirected URL.

    Returns:
        Tuple of (code, state); state is None for a bare code.
    """
    text = raw.strip()
    if not text:
        return None, None
    if text.startswith(("http://", "https://")):
        query = parse_qs(urlparse(text).query)
        return query.get("code", [None])[0], query.get("state", [None])[0]
    return text, None


class AuthorizationFlowCoordinator:
    """Runs the redirect-based OAuth2 + PKCE handshake.

    Usage::

        coordinator = AuthorizationFlowCoordinator(store, client, redirect_uri=...)
        coordinator.start()
        credential = await coordinator.initiate("default-user")
        await coordinator.stop()

    ``browser_opener`` and ``code_reader_factory`` can be replaced in tests;
    ``server`` defaults to an :class:`OAuthCallbackServer` bound to
    ``host``/``port`` that routes requests to :meth:`handle_callback`.
    """

    def __init__(
        self,
        store: TokenStore,
        client: GoogleOAuthClient,
        *,
        redirect_uri: str,
        host: str = "localhost",
        port: int = 4153,
        states: AuthorizationStateRegistry | None = None,
        server: OAuthCallbackServer | None = None,
        use_manual_auth: bool = False,
        timeout: float = AUTHORIZATION_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        browser_opener: Callable[[str], bool] = webbrowser.open,
        code_reader_factory: Callable[[], CodeReader] = StdinCodeReader,
        console: Console | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._client = client
        self.redirect_uri = redirect_uri
        self.use_manual_auth = use_manual_auth
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._states = states or AuthorizationStateRegistry(clock=clock)
        self._server = server or OAuthCallbackServer(
            self.handle_callback,
            host=host,
            port=port,
            callback_path=urlparse(redirect_uri).path or "/oauth2callback",
        )
        self._browser_opener = browser_opener
        self._code_reader_factory = code_reader_factory
        self._console = console or Console(stderr=True)
        self._pending: dict[str, PendingAuthorization] = {}

    @property
    def states(self) -> AuthorizationStateRegistry:
        return self._states

    @property
    def server(self) -> OAuthCallbackServer:
        return self._server

    def pending_authorization(self, identity: str) -> PendingAuthorization | None:
        return self._pending.get(identity)

    def status(self, identity: str) -> FlowStatus:
        pending = self._pending.get(identity)
        return pending.status if pending is not None else FlowStatus.IDLE

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep of abandoned authorization states."""
        self._states.start()

    async def stop(self) -> None:
        """Cancel in-flight handshakes, the state sweep and an owned listener."""
        tasks = [p.task for p in self._pending.values() if p.task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._pending.clear()
        await self._states.stop()
        await self._server.stop()

    def statistics(self) -> dict[str, Any]:
        return {
            "is_running": self._server.is_running,
            "owns_listener": self._server.owns_listener,
            "pending_authorizations": len(self._pending),
            "authorization_states": len(self._states),
            "host": self._server.host,
            "port": self._server.port,
            "manual_auth": self.use_manual_auth,
        }

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate(self, identity: str) -> asyncio.Future[Credential]:
        """Start (or join) the interactive authorization for ``identity``.

        Must be called from a running event loop. Returns a future that
        resolves to the new :class:`Credential`, or fails with
        :class:`AuthorizationTimeoutError`, :class:`TokenExchangeError` or
        :class:`CsrfValidationError`.
        """
        existing = self._pending.get(identity)
        if existing is not None and not existing.future.done():
            logger.debug("Authorization already in progress for %s", identity)
            return existing.future

        loop = asyncio.get_running_loop()
        code_verifier, code_challenge = generate_pkce_pair()
        state_token = generate_state_token()
        self._states.register(
            state_token,
            identity=identity,
            code_verifier=code_verifier,
            redirect_uri=self.redirect_uri,
        )
        pending = PendingAuthorization(
            identity=identity,
            state_token=state_token,
            authorization_url=self._client.get_authorization_url(
                self.redirect_uri, state_token, code_challenge
            ),
            future=loop.create_future(),
        )
        self._pending[identity] = pending

        runner = self._run_manual if self.use_manual_auth else self._run_browser
        pending.task = loop.create_task(runner(pending))
        logger.info(
            "Started %s authorization for %s",
            "manual" if self.use_manual_auth else "browser",
            identity,
        )
        return pending.future

    async def _surface_url(self, url: str) -> None:
        self._console.print(
            "\n[bold]Authorize Google Calendar access by visiting this URL:[/bold]\n"
            f"{url}\n",
            markup=True,
            highlight=False,
        )
        loop = asyncio.get_running_loop()
        try:
            opened = await loop.run_in_executor(None, self._browser_opener, url)
        except Exception as e:
            logger.warning("Failed to open browser automatically: %s", e)
            opened = False
        if opened:
            logger.info("Opening browser for authorization...")
        else:
            logger.warning("Could not launch a browser; please open the authorization URL printed above")

    # ------------------------------------------------------------------
    # Browser flow
    # ------------------------------------------------------------------

    async def _run_browser(self, pending: PendingAuthorization) -> None:
        try:
            await self._server.start()
            await self._surface_url(pending.authorization_url)
            credential = await asyncio.wait_for(self._poll_for_credential(pending), self.timeout)
            if credential is not None:
                self._resolve(pending, credential)
        except asyncio.TimeoutError:
            logger.warning("Authorization timed out for %s", pending.identity)
            self._fail(
                pending,
                AuthorizationTimeoutError(
                    f"Authorization timed out after {self.timeout:.0f} seconds"
                ),
                FlowStatus.TIMED_OUT,
            )
        except OSError as e:
            logger.error("Could not start OAuth callback listener: %s", e)
            self._fail(pending, e)
        except Exception as e:
            logger.exception("Authorization failed unexpectedly for %s", pending.identity)
            self._fail(pending, e)
        finally:
            await self._finish(pending)

    async def _poll_for_credential(self, pending: PendingAuthorization) -> Credential | None:
        # The callback handler writes to the TokenStore; completion is observed here.
        while not pending.future.done():
            credential = load_credential(self._store, pending.identity)
            if credential is not None:
                return credential
            # Wakes early when handle_callback rejects the future.
            await asyncio.wait({pending.future}, timeout=self.poll_interval)
        return None

    async def handle_callback(self, query: dict[str, str]) -> CallbackResponse:
        """Process ``GET /oauth2callback``.

        Invalid ``state`` (missing, unknown, expired) or a missing ``code``
        is answered with 400 and never reaches the token endpoint.
        """
        auth_state = self._states.get(query.get("state"))
        if auth_state is None:
            logger.warning("Rejected OAuth callback: %s", CsrfValidationError.__name__)
            return CallbackResponse(HTTPStatus.BAD_REQUEST, error_page())

        pending = self._pending.get(auth_state.identity)
        if query.get("error"):
            self._states.discard(auth_state.state_token)
            logger.warning("Authorization was not granted for %s", auth_state.identity)
            self._fail(pending, TokenExchangeError("Authorization was not granted by the user"))
            return CallbackResponse(
                HTTPStatus.BAD_REQUEST, error_page("Authorization was not granted.")
            )

        code = query.get("code")
        if not code:
            logger.warning("Rejected OAuth callback without an authorization code")
            return CallbackResponse(HTTPStatus.BAD_REQUEST, error_page())

        # Consumed before the exchange: one exchange per issued URL.
        self._states.discard(auth_state.state_token)
        self._set_status(pending, FlowStatus.CALLBACK_RECEIVED)
        try:
            await self._exchange(auth_state, code, pending)
        except GCalAuthError as e:
            logger.error("Authorization code exchange failed for %s: %s", auth_state.identity, e)
            self._fail(pending, e)
            return CallbackResponse(HTTPStatus.INTERNAL_SERVER_ERROR, error_page())

        return CallbackResponse(HTTPStatus.OK, success_page())

    async def _exchange(
        self,
        auth_state: AuthorizationState,
        code: str,
        pending: PendingAuthorization | None,
    ) -> None:
        self._set_status(pending, FlowStatus.EXCHANGING_CODE)
        tokens = await self._client.exchange_code(
            code, auth_state.redirect_uri, auth_state.code_verifier
        )
        save_tokens(self._store, auth_state.identity, tokens)
        logger.info("Authorization completed for %s", auth_state.identity)

    # ------------------------------------------------------------------
    # Manual flow
    # ------------------------------------------------------------------

    async def _run_manual(self, pending: PendingAuthorization) -> None:
        try:
            raw = await asyncio.wait_for(self._read_manual_code(pending), self.timeout)
            code, state = parse_manual_input(raw)
            if not code:
                raise TokenExchangeError("No authorization code provided")
            if state is not None and state != pending.state_token:
                raise CsrfValidationError("State in the pasted URL does not match this request")

            auth_state = self._states.consume(pending.state_token)
            if auth_state is None:
                raise CsrfValidationError("Authorization request expired; please start again")

            self._set_status(pending, FlowStatus.CALLBACK_RECEIVED)
            await self._exchange(auth_state, code, pending)
            credential = load_credential(self._store, pending.identity)
            if credential is None:
                raise TokenExchangeError("Failed to obtain access token")
            self._resolve(pending, credential)
        except asyncio.TimeoutError:
            logger.warning("Manual authorization input timed out for %s", pending.identity)
            self._fail(
                pending,
                AuthorizationTimeoutError(
                    f"Authentication input timeout ({self.timeout:.0f} seconds)"
                ),
                FlowStatus.TIMED_OUT,
            )
        except GCalAuthError as e:
            logger.error("Manual authorization failed for %s: %s", pending.identity, e)
            self._fail(pending, e)
        except (OSError, ValueError) as e:
            # stdin is closed, a regular file or otherwise not pollable
            logger.error("Could not read the authorization code for %s: %s", pending.identity, e)
            error = TokenExchangeError("Could not read the authorization code from stdin")
            error.__cause__ = e
            self._fail(pending, error)
        except Exception as e:
            logger.exception("Manual authorization failed unexpectedly for %s", pending.identity)
            self._fail(pending, e)
        finally:
            await self._finish(pending)

    async def _read_manual_code(self, pending: PendingAuthorization) -> str:
        reader = self._code_reader_factory()
        try:
            await self._surface_url(pending.authorization_url)
            return await reader.readline(
                "After authorizing, paste the authorization code (or the full redirected URL): "
            )
        finally:
            reader.close()

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _set_status(self, pending: PendingAuthorization | None, status: FlowStatus) -> None:
        if pending is not None and not pending.status.is_terminal:
            pending.status = status

    def _resolve(self, pending: PendingAuthorization, credential: Credential) -> None:
        pending.status = FlowStatus.COMPLETE
        if not pending.future.done():
            pending.future.set_result(credential)
        logger.info("Authentication completed successfully for %s", pending.identity)

    def _fail(
        self,
        pending: PendingAuthorization | None,
        error: BaseException,
        status: FlowStatus = FlowStatus.FAILED,
    ) -> None:
        if pending is None:
            return
        pending.status = status
        if not pending.future.done():
            pending.future.set_exception(error)

    async def _finish(self, pending: PendingAuthorization) -> None:
        if not pending.future.done():
            pending.future.cancel()
        if self._pending.get(pending.identity) is pending:
            del self._pending[pending.identity]
        self._states.discard(pending.state_token)
        if not self._pending and self._server.owns_listener:
            await self._server.stop()
