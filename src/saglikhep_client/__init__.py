from .auth import AuthService
from .client import SaglikhepClient
from .config import Settings, settings
from .credential_store import CredentialStore, JsonFileStorage, MemoryStorage
from .errors import (
    ApiError,
    NetworkFailure,
    ServerFailure,
    SessionExpired,
    ValidationFailure,
    format_api_error,
)
from .events import SessionEvents, session_events
from .http_client import ApiClient, ClientMode
from .logging_config import configure_logging
from .session_data import SessionData, UserRecord
from .token_refresh import RefreshState, TokenRefresher
from .uploads import UploadFile, UploadService

__version__ = "0.1.0"
