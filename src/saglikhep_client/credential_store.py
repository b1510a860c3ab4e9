# src/saglikhep_client/credential_store.py

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Union

from pydantic import ValidationError

from .events import SessionEvents, session_events
from .session_data import SessionData, UserRecord

logger = logging.getLogger(__name__)

# Persisted layout shared with the web front end's localStorage
ACCESS_TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"
ADMIN_FLAG_KEY = "isAdmin"
ALL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, ADMIN_FLAG_KEY)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def update_many(self, values: Mapping[str, Optional[str]]) -> None:
        """Applies all values in one transaction; a None value removes the key."""
        ...


class MemoryStorage:
    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def update_many(self, values: Mapping[str, Optional[str]]) -> None:
        data = dict(self._data)
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self._data = data

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileStorage:
    """
    Durable storage kept as one JSON document.
    Every update rewrites the whole document through a temporary file and
    os.replace, so a reader sees either the old or the new set of keys.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("JsonFileStorage: %s is not valid JSON, treating it as empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("JsonFileStorage: %s does not hold an object, treating it as empty", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def update_many(self, values: Mapping[str, Optional[str]]) -> None:
        data = self._load()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class CredentialStore:
    """
    Persists the access token, refresh token and user snapshot.

    Pure storage: no renewal policy lives here. The two tokens are always
    written and removed together.
    """

    def __init__(self, storage: Optional[KeyValueStorage] = None, events: Optional[SessionEvents] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self.events = events if events is not None else session_events
        self._lock = threading.RLock()

    def read(self) -> SessionData:
        with self._lock:
            access_token = self.storage.get(ACCESS_TOKEN_KEY)
            refresh_token = self.storage.get(REFRESH_TOKEN_KEY)
            raw_user = self.storage.get(USER_KEY)
            raw_admin = self.storage.get(ADMIN_FLAG_KEY)
        return SessionData(
            access_token=access_token or None,
            refresh_token=refresh_token or None,
            user=self._parse_user(raw_user),
            is_admin=raw_admin == "true",
        )

    def write(
        self,
        access_token: str,
        refresh_token: str,
        user: Union[UserRecord, Mapping, None] = None,
        is_admin: Optional[bool] = None,
    ) -> None:
        if not access_token or not refresh_token:
            raise ValueError("Access and refresh tokens must be written together.")
        values: Dict[str, Optional[str]] = {
            ACCESS_TOKEN_KEY: access_token,
            REFRESH_TOKEN_KEY: refresh_token,
        }
        if user is not None:
            values[USER_KEY] = self._dump_user(user)
        if is_admin is not None:
            values[ADMIN_FLAG_KEY] = "true" if is_admin else None
        with self._lock:
            self.storage.update_many(values)
        logger.debug("CredentialStore: write - token pair stored (user updated: %s)", user is not None)

    def set_user(self, user: Union[UserRecord, Mapping]) -> None:
        with self._lock:
            self.storage.update_many({USER_KEY: self._dump_user(user)})

    def set_admin(self, is_admin: bool) -> None:
        with self._lock:
            self.storage.update_many({ADMIN_FLAG_KEY: "true" if is_admin else None})

    def clear(self) -> None:
        with self._lock:
            self.storage.update_many({key: None for key in ALL_KEYS})
        logger.info("CredentialStore: clear - session credentials removed")
        self.events.publish()

    @staticmethod
    def _dump_user(user: Union[UserRecord, Mapping]) -> str:
        if not isinstance(user, UserRecord):
            user = UserRecord.model_validate(dict(user))
        return user.model_dump_json(exclude_none=True)

    @staticmethod
    def _parse_user(raw: Optional[str]) -> Optional[UserRecord]:
        if not raw:
            return None
        try:
            return UserRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("CredentialStore: stored user record is unreadable: %s", e)
            return None
