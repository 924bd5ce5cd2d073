"""Async LINE Messaging API client.

Wraps the two endpoints the relay needs -- profile lookup and multicast
push -- on top of a single shared httpx.AsyncClient created at startup.

Profile lookups never raise: the outcome is returned as one of
``Profile``, ``Blocked`` or ``TransientError`` so callers can branch on the
result type instead of inspecting HTTP status codes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Union

import httpx
import structlog

from billrelay.config import settings

log = structlog.get_logger()

# LINE answers 404 for users who blocked the account; some older channels
# still answer 403.
_BLOCKED_STATUSES = {403, 404}

# A retry key the platform has already accepted is reported as 409.
_DUPLICATE_RETRY_STATUS = 409


# ---------------------------------------------------------------------------
# Profile lookup results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Profile:
    """A reachable subscriber's public profile."""

    user_id: str
    display_name: str | None = None
    picture_url: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class Blocked:
    """The subscriber blocked or unfollowed the account."""

    user_id: str


@dataclass(frozen=True)
class TransientError:
    """Any other lookup failure (timeout, 5xx, auth, network)."""

    user_id: str
    reason: str


ProfileResult = Union[Profile, Blocked, TransientError]


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------

class LineApiError(Exception):
    """Raised when a push request is rejected by the Messaging API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LineTimeoutError(LineApiError):
    """Raised when a push request exceeds its timeout."""


# ---------------------------------------------------------------------------
# LineClient
# ---------------------------------------------------------------------------

class LineClient:
    """Async client for the LINE Messaging API."""

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.LINE_API_BASE_URL).rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout or settings.LINE_API_TIMEOUT),
            headers={
                "Authorization": f"Bearer {access_token or settings.CHANNEL_ACCESS_TOKEN}",
            },
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> ProfileResult:
        """Fetch a subscriber profile and classify the outcome."""
        try:
            response = await self._http.get(f"/v2/bot/profile/{user_id}")
        except httpx.TimeoutException:
            return TransientError(user_id=user_id, reason="timeout")
        except httpx.HTTPError as exc:
            return TransientError(user_id=user_id, reason=f"{type(exc).__name__}: {exc}")

        if response.status_code in _BLOCKED_STATUSES:
            return Blocked(user_id=user_id)
        if response.status_code != 200:
            return TransientError(
                user_id=user_id, reason=f"HTTP {response.status_code}",
            )

        try:
            return self._parse_profile(user_id, response.json())
        except ValueError:
            return TransientError(user_id=user_id, reason="malformed profile body")

    async def multicast(
        self,
        to: list[str],
        messages: list[dict[str, Any]],
        retry_key: str | None = None,
    ) -> str:
        """Push *messages* to every id in *to*.

        Each call carries an ``X-Line-Retry-Key`` so a transport-level retry
        of the same request is not delivered twice. Returns the retry key
        used.

        Raises:
            LineTimeoutError: on request timeout.
            LineApiError: on any other failure.
        """
        retry_key = retry_key or str(uuid.uuid4())
        try:
            response = await self._http.post(
                "/v2/bot/message/multicast",
                json={"to": to, "messages": messages},
                headers={"X-Line-Retry-Key": retry_key},
            )
        except httpx.TimeoutException as exc:
            raise LineTimeoutError("LINE multicast timed out") from exc
        except httpx.HTTPError as exc:
            raise LineApiError(f"Cannot reach LINE API at {self.base_url}") from exc

        if response.status_code == _DUPLICATE_RETRY_STATUS:
            log.info("line_multicast_duplicate_retry_key", retry_key=retry_key)
            return retry_key
        if response.status_code != 200:
            raise LineApiError(
                f"LINE multicast rejected: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        return retry_key

    async def get_bot_info(self) -> dict[str, Any]:
        """Return the channel's bot info; used by the healthcheck script."""
        response = await self._http.get("/v2/bot/info")
        if response.status_code != 200:
            raise LineApiError(
                f"LINE bot info failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_profile(user_id: str, data: Any) -> Profile:
        if not isinstance(data, dict):
            raise ValueError("profile body is not an object")
        return Profile(
            user_id=data.get("userId") or user_id,
            display_name=data.get("displayName"),
            picture_url=data.get("pictureUrl"),
            language=data.get("language"),
        )
