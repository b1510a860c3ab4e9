# src/saglikhep_client/token_refresh.py

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from .credential_store import CredentialStore
from .errors import ApiError, SessionExpired
from .http_client import ApiClient

logger = logging.getLogger(__name__)

Navigator = Callable[[str], None]


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    FAILED = "failed"


def log_navigation(path: str) -> None:
    logger.warning("TokenRefresher: session expired, the UI should navigate to %s", path)


class TokenRefresher:
    """
    Renews the access token after an authorization failure.

    Concurrent callers are coalesced behind a single in-flight renewal, so one
    expiry event costs one call to the renewal endpoint. With coalesce=False
    every caller renews on its own, racing to write the credential store.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        renewal_client: ApiClient,
        navigator: Optional[Navigator] = None,
        renewal_path: str = "/api/auth/refresh",
        login_path: str = "/login",
        coalesce: bool = True,
    ):
        self.credentials = credentials
        self.renewal_client = renewal_client
        self.navigator = navigator or log_navigation
        self.renewal_path = renewal_path
        self.login_path = login_path
        self.coalesce = coalesce
        self.state = RefreshState.IDLE
        # Number of calls made to the renewal endpoint
        self.renewal_count = 0
        self._inflight: Optional["asyncio.Task[str]"] = None

    async def refresh(self, stale_token: Optional[str] = None) -> str:
        """
        Returns a usable access token or raises SessionExpired.
        stale_token is the bearer value that was just rejected.
        """
        if self.state is RefreshState.FAILED and not self.credentials.read().refresh_token:
            # Already torn down; a later sign-in stores a new refresh token
            logger.debug("TokenRefresher: refresh - session already expired")
            raise SessionExpired(ApiError("No refresh token available."))

        if not self.coalesce:
            return await self._renew()

        current = self.credentials.read().access_token
        if stale_token and current and current != stale_token:
            logger.debug("TokenRefresher: refresh - token already rotated, reusing it")
            return current

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._renew())
            self._inflight.add_done_callback(self._forget_inflight)
        else:
            logger.debug("TokenRefresher: refresh - joining in-flight renewal")
        return await asyncio.shield(self._inflight)

    def _forget_inflight(self, task: "asyncio.Task[str]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Marks the exception as retrieved even when every waiter went away
            task.exception()

    async def _renew(self) -> str:
        self.state = RefreshState.REFRESHING
        session = self.credentials.read()
        try:
            if not session.refresh_token:
                raise ApiError("No refresh token available.")
            self.renewal_count += 1
            logger.info("TokenRefresher: renewing access token")
            payload = await self.renewal_client.post(self.renewal_path, {"refreshToken": session.refresh_token})
            access_token, refresh_token = self._parse_token_pair(payload)
        except asyncio.CancelledError:
            self.state = RefreshState.IDLE
            raise
        except ApiError as e:
            self._fail(e)
            raise SessionExpired(e) from e

        self.credentials.write(access_token, refresh_token)
        self.state = RefreshState.IDLE
        logger.info("TokenRefresher: access token renewed")
        return access_token

    @staticmethod
    def _parse_token_pair(payload: Any) -> Tuple[str, str]:
        if isinstance(payload, dict):
            access_token = payload.get("accessToken") or payload.get("token")
            refresh_token = payload.get("refreshToken")
            if access_token and refresh_token:
                return access_token, refresh_token
        raise ApiError("Renewal response did not contain a token pair.")

    def _fail(self, error: Exception) -> None:
        logger.warning("TokenRefresher: renewal failed: %s", error)
        self.credentials.clear()
        self.state = RefreshState.FAILED
        try:
            self.navigator(self.login_path)
        except Exception:
            logger.exception("TokenRefresher: navigator failed")
