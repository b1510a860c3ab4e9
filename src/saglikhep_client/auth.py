# src/saglikhep_client/auth.py

import logging
from typing import Any, Dict, Mapping, Optional

from .credential_store import CredentialStore
from .errors import ApiError
from .events import SessionEvents
from .http_client import ApiClient
from .session_data import UserRecord

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class AuthService:
    """
    Login, logout and account flows.

    Credential-issuing calls go through the anonymous-auth client so that an
    expired token can never interfere with them.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        api: ApiClient,
        auth_client: ApiClient,
        public_client: ApiClient,
        events: SessionEvents,
    ):
        self.credentials = credentials
        self.api = api
        self.auth_client = auth_client
        self.public_client = public_client
        self.events = events

    # --- Session ---

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self.auth_client.post("/api/auth/login", {"email": email, "password": password})
        if not isinstance(response, dict) or not response.get("accessToken") or not response.get("refreshToken"):
            raise ApiError("Login response did not contain a token pair.")

        user = UserRecord.model_validate(response.get("user") or {})
        self.credentials.write(
            response["accessToken"],
            response["refreshToken"],
            user,
            is_admin=user.role == ADMIN_ROLE,
        )
        logger.info("AuthService: login - user '%s' signed in", user.username or user.id or "N/A")
        self.events.publish()
        return response

    async def register(self, user_data: Mapping[str, Any]) -> Any:
        # Errors are propagated as-is so the form can show field messages
        return await self.auth_client.post("/api/auth/register", dict(user_data))

    async def logout(self) -> None:
        try:
            if self.credentials.read().access_token:
                await self.api.post("/api/auth/logout")
        except ApiError as e:
            logger.warning("AuthService: logout - server call failed: %s", e)
        finally:
            self.credentials.clear()

    def is_authenticated(self) -> bool:
        return self.credentials.read().is_authenticated

    def current_user(self) -> Optional[UserRecord]:
        return self.credentials.read().user

    def token(self) -> Optional[str]:
        return self.credentials.read().access_token

    # --- Profile ---

    async def get_profile(self) -> Any:
        response = await self.api.get("/api/auth/profile")
        if isinstance(response, dict) and "user" in response:
            return response["user"]
        return response

    async def update_profile(self, user_data: Mapping[str, Any]) -> UserRecord:
        response = await self.api.put("/api/auth/profile", dict(user_data))
        raw_user = response.get("user") if isinstance(response, dict) and "user" in response else response
        user = UserRecord.model_validate(raw_user or {})
        # Keep the persisted snapshot in step with the server
        self.credentials.set_user(user)
        return user

    async def change_password(self, current_password: str, new_password: str) -> None:
        await self.api.post(
            "/api/auth/change-password",
            {"currentPassword": current_password, "newPassword": new_password},
        )

    async def resend_verification_email(self) -> None:
        await self.api.post("/api/auth/resend-verification")

    # --- Token-less flows ---

    async def request_password_reset(self, email: str) -> None:
        await self.auth_client.post("/api/auth/forgot-password", {"email": email})

    async def reset_password(self, token: str, new_password: str) -> None:
        await self.auth_client.post("/api/auth/reset-password", {"token": token, "newPassword": new_password})

    async def verify_email(self, token: str) -> None:
        await self.public_client.post("/api/auth/verify-email", {"token": token})
