# src/saglikhep_client/client.py

import logging
from typing import Any, Optional

import httpx

from .auth import AuthService
from .config import Settings, settings as default_settings
from .credential_store import CredentialStore, JsonFileStorage, KeyValueStorage, MemoryStorage
from .events import SessionEvents, session_events
from .http_client import ApiClient, ClientMode
from .stores import build_stores
from .token_refresh import Navigator, TokenRefresher
from .uploads import UploadService

logger = logging.getLogger(__name__)


class SaglikhepClient:
    """
    Wires the session layer and the resource stores together.

        async with SaglikhepClient() as client:
            await client.auth.login(email, password)
            await client.posts.fetch({"page": 1})

    Three HTTP clients share one base URL: `api` carries the bearer token and
    renews it on 401, `auth_client` never sends a token (login, register,
    renewal), and `public` reads the {success, data} envelope.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[KeyValueStorage] = None,
        events: Optional[SessionEvents] = None,
        navigator: Optional[Navigator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or default_settings
        self.session_events = events or session_events

        if storage is None:
            if self.settings.CREDENTIALS_FILE:
                storage = JsonFileStorage(self.settings.CREDENTIALS_FILE)
            else:
                storage = MemoryStorage()
        self.credentials = CredentialStore(storage, self.session_events)

        common = dict(
            base_url=self.settings.BASE_URL,
            timeout=self.settings.REQUEST_TIMEOUT,
            transport=transport,
            upload_chunk_size=self.settings.UPLOAD_CHUNK_SIZE,
        )
        self.auth_client = ApiClient(mode=ClientMode.ANONYMOUS_AUTH, **common)
        self.refresher = TokenRefresher(
            self.credentials,
            self.auth_client,
            navigator=navigator,
            renewal_path=self.settings.REFRESH_PATH,
            login_path=self.settings.LOGIN_PATH,
            coalesce=self.settings.COALESCE_REFRESH,
        )
        self.api = ApiClient(
            mode=ClientMode.AUTHENTICATED,
            credentials=self.credentials,
            refresher=self.refresher,
            **common,
        )
        self.public = ApiClient(mode=ClientMode.PUBLIC, **common)

        self.auth = AuthService(self.credentials, self.api, self.auth_client, self.public, self.session_events)
        self.uploads = UploadService(self.api)

        stores = build_stores(self.api, optimistic=self.settings.OPTIMISTIC_TOGGLES)
        self.posts = stores.posts
        self.blogs = stores.blogs
        self.comments = stores.comments
        self.events = stores.events
        self.experts = stores.experts

        logger.debug(
            "SaglikhepClient: initialised for %s (storage=%s)",
            self.settings.BASE_URL, type(storage).__name__,
        )

    async def __aenter__(self) -> "SaglikhepClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for client in (self.api, self.auth_client, self.public):
            await client.aclose()
