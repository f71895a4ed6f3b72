"""
Authenticated, serialized access to the Spotify Web API.

Every remote call of spot-sync goes through a single RequestGateway. The
gateway owns the bearer token (the Session) and the admission queue, so
the authentication header and the rate limit state are never shared by
two in-flight requests.

Admission:
    Callers are admitted one at a time in arrival order (FIFO). A caller
    that finds no live session fails with UnauthorizedError right away
    and the next caller is admitted.

Retry policy (one admitted call retries in place, it never requeues):
    HTTP 429        wait rate_limit_backoff, doubled on each further 429
    HTTP 5xx        wait server_error_delay
    other non-2xx   invalidate the session, raise RemoteRejectedError

    Retries are unbounded unless gateway.max_retries is configured.

Usage:
    gateway = RequestGateway(config)
    gateway.open_session(token, expires_in=3600)

    profile = await gateway.call("GET", "me")
    page = await gateway.call("GET", "search", params={"q": "...", "type": "track"})
    await gateway.call("PUT", "me/albums", body=["4aawyAB9vmqN3uQ7FjRGTy"])

    await gateway.close()
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import aiohttp

from spot_sync.core.config import Config
from spot_sync.core.exceptions import (
    NetworkError,
    RateLimitedError,
    RemoteRejectedError,
    RemoteUnavailableError,
    UnauthorizedError,
)
from spot_sync.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Session:
    """
    A live Spotify access token and its expiry.

    Attributes:
        token: OAuth bearer token.
        expires_at: Timezone-aware UTC expiry time.
    """
    token: str
    expires_at: datetime

    @classmethod
    def create(cls, token: str, expires_in: float) -> "Session":
        """Create a session expiring `expires_in` seconds from now."""
        return cls(token=token, expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in))

    @property
    def seconds_left(self) -> float:
        return (self.expires_at - datetime.now(timezone.utc)).total_seconds()

    @property
    def expired(self) -> bool:
        return self.seconds_left <= 0


class RequestGateway:
    """
    Single admission channel to the Spotify Web API.

    Attributes:
        _config: Application configuration (base URL and retry policy).
        _session: The live Session, or None when logged out.
        _admission: FIFO lock admitting one request at a time.
        _http: Lazily created aiohttp client session.
        _invalidation_listeners: Callbacks run when the gateway itself
                                 drops the session after a rejected request.

    Thread Safety:
        Not thread-safe. All methods must run on one event loop.
    """

    def __init__(self, config: Config, http: aiohttp.ClientSession | None = None) -> None:
        """
        Initialize the gateway.

        Args:
            config: Application configuration.
            http: Optional aiohttp session to use. When omitted the gateway
                  creates (and later closes) its own.
        """
        self._config = config
        self._session: Session | None = None
        self._admission = asyncio.Lock()
        self._http = http
        self._owns_http = http is None
        self._invalidation_listeners: list[Callable[[], None]] = []

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def session(self) -> Session | None:
        """The live session, or None when logged out or expired."""
        if self._session is not None and self._session.expired:
            return None
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def open_session(self, token: str, expires_in: float) -> Session:
        """
        Start a session with a freshly acquired token.

        Replaces any previous session.

        Args:
            token: OAuth bearer token.
            expires_in: Token lifetime in seconds.

        Returns:
            The new Session.
        """
        self._session = Session.create(token, expires_in)
        logger.debug(f"Session opened, expires at {self._session.expires_at.isoformat()}")
        return self._session

    def restore_session(self, session: Session) -> bool:
        """
        Resume a previously persisted session.

        Returns:
            True if the session was restored, False if it has already expired.
        """
        if session.expired:
            logger.debug("Persisted session has expired, not restoring it")
            return False
        self._session = session
        return True

    def close_session(self) -> None:
        """Drop the session. Calls already admitted run to completion."""
        self._session = None

    def on_session_invalidated(self, listener: Callable[[], None]) -> None:
        """
        Register a callback run when a rejected request invalidates the session.

        Not called by close_session(), which is the caller's own logout.
        """
        self._invalidation_listeners.append(listener)

    def _invalidate_session(self) -> None:
        if self._session is None:
            return
        self._session = None
        logger.warning("Spotify session invalidated, log in again")
        for listener in self._invalidation_listeners:
            listener()

    # =========================================================================
    # Requests
    # =========================================================================

    async def call(
        self,
        method: str,
        resource: str,
        body: Any = None,
        params: dict[str, str] | None = None
    ) -> Any:
        """
        Send one authenticated request, retrying transient failures.

        Args:
            method: HTTP method ("GET", "POST", "PUT").
            resource: Absolute URL or path relative to spotify.api_base_url.
            body: Optional JSON-serializable request body.
            params: Optional query parameters.

        Returns:
            The decoded JSON response body, or None for an empty body.

        Raises:
            UnauthorizedError: No live session when the call was admitted.
            NetworkError: The request failed without an HTTP response.
            RemoteRejectedError: Non-retryable error response (session invalidated).
            RateLimitedError: 429 past gateway.max_retries.
            RemoteUnavailableError: 5xx past gateway.max_retries.
        """
        url = self._resolve(resource)

        async with self._admission:
            session = self.session
            if session is None:
                raise UnauthorizedError("Unauthorized", details={"url": url})

            policy = self._config.gateway
            backoff = policy.rate_limit_backoff
            retries = 0

            while True:
                status, reason, payload = await self._send(method, url, session.token, body, params)

                if 200 <= status < 300:
                    return payload

                if status == 429 or 500 <= status < 600:
                    if policy.max_retries is not None and retries >= policy.max_retries:
                        error_class = RateLimitedError if status == 429 else RemoteUnavailableError
                        raise error_class(
                            f"{reason} (gave up after {retries} retries)",
                            details={"url": url, "method": method},
                            status=status
                        )
                    retries += 1

                    if status == 429:
                        # Retry-After is not reliable here, so back off on our own
                        logger.warning(f"Rate limited on {method} {url}, retrying in {backoff:.1f}s")
                        await asyncio.sleep(backoff)
                        backoff *= 2
                    else:
                        delay = policy.server_error_delay
                        logger.warning(f"Spotify returned {status} on {method} {url}, retrying in {delay:.1f}s")
                        await asyncio.sleep(delay)
                    continue

                logger.error(f"{method} {url} rejected: {status} {reason}")
                self._invalidate_session()
                raise RemoteRejectedError(
                    reason,
                    details={"url": url, "method": method, "response": payload},
                    status=status
                )

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        body: Any,
        params: dict[str, str] | None
    ) -> tuple[int, str, Any]:
        """
        Perform one HTTP attempt.

        Returns:
            Tuple of (status code, status text, decoded JSON body or None).

        Raises:
            NetworkError: On connection errors and timeouts.
        """
        http = self._get_http()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        data = None if body is None else json.dumps(body)

        logger.debug(f"{method} {url}" + (f" {params}" if params else ""))

        try:
            async with http.request(method, url, headers=headers, data=data, params=params) as response:
                text = await response.text()
                status = response.status
                reason = response.reason or str(status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                f"Request to Spotify failed: {e}",
                details={"url": url, "method": method, "original_error": str(e)}
            ) from e

        payload = None
        if text:
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                payload = text
        return status, reason, payload

    def _resolve(self, resource: str) -> str:
        if resource.startswith(("http://", "https://")):
            return resource
        return f"{self._config.spotify.api_base_url}/{resource.lstrip('/')}"

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.gateway.request_timeout)
            self._http = aiohttp.ClientSession(timeout=timeout)
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        """Close the HTTP session if the gateway created it."""
        if self._http is not None and self._owns_http and not self._http.closed:
            await self._http.close()
        self._http = None

    async def __aenter__(self) -> "RequestGateway":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
