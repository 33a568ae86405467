"""
Async HTTP transport for the logbook sync server.

requests is synchronous; we run it in a thread pool executor so it
doesn't block the asyncio event loop.

Authentication is the server's cookie flow: POST /login with the user's
credentials, the session cookie lands in the requests.Session cookie jar and
rides along on the following call. When `settings.auth` is set every get()
and post() logs in again first, so no session state is trusted across calls.
"""
import asyncio
import logging
from typing import Any, Optional

import requests

from logbook.errors import AuthError, DecodeError, TransportError
from logbook.sync.settings_store import SyncSettings

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
DEFAULT_TIMEOUT = 30.0


class RemoteTransport:
    """
    Thin async wrapper over requests.Session for the sync endpoints.

    Every failure is raised as a typed error:
      - AuthError       login rejected (non-200 from /login)
      - TransportError  network failure, timeout or non-200 response
      - DecodeError     GET response body is not JSON
    """

    def __init__(
        self,
        settings: SyncSettings,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Args:
            settings: Sync settings for this cycle (copied by value).
            session: requests.Session to use. Defaults to a fresh one, which
                     also acts as the cookie jar.
            timeout: Per-request timeout in seconds.
        """
        self.settings = settings.model_copy()
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def url(self, path: str) -> str:
        return f"{self.settings.url.rstrip('/')}{path}"

    async def _run(self, fn, *args, **kwargs):
        """Run a sync requests call in the thread pool."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        url = self.url(path)
        try:
            return await self._run(
                self._session.request, method, url, timeout=self.timeout, **kwargs
            )
        except requests.Timeout as exc:
            raise TransportError(f"{method} {path} timed out") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

    # ─── Auth ─────────────────────────────────────────────────────────────────

    async def authenticate(self) -> None:
        """
        Exchange credentials for a session cookie.

        Raises:
            AuthError: if the server does not answer 200.
            TransportError: on a network failure.
        """
        payload = {"login": self.settings.user, "password": self.settings.password}
        response = await self._send(
            "POST", LOGIN_PATH, json=payload, allow_redirects=False
        )
        if response.status_code != 200:
            raise AuthError(
                f"Cannot auth - {response.reason or response.status_code}",
                status=response.status_code,
            )
        logger.debug("Authenticated against %s", self.settings.url)

    async def _authenticate_if_required(self) -> None:
        if self.settings.auth:
            await self.authenticate()

    # ─── Requests ─────────────────────────────────────────────────────────────

    async def get(self, path: str) -> Any:
        """GET `path` and return the decoded JSON body."""
        await self._authenticate_if_required()
        response = await self._send("GET", path)
        _check_status(response, "GET", path)
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"GET {path}: response is not JSON") from exc

    async def post(self, path: str, payload: Any) -> Any:
        """POST `payload` as JSON; returns the decoded body, or None if empty."""
        await self._authenticate_if_required()
        response = await self._send("POST", path, json=payload)
        _check_status(response, "POST", path)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Acknowledged with a non-JSON body (e.g. plain "OK")
            return None


def _check_status(response: requests.Response, method: str, path: str) -> None:
    if response.status_code != 200:
        raise TransportError(
            f"{method} {path}: {response.status_code} {response.reason or ''}".rstrip(),
            status=response.status_code,
        )
