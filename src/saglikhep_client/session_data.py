# src/saglikhep_client/session_data.py

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """
    Denormalised snapshot of the authenticated identity.
    Unknown server fields are kept so the record round-trips through storage.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("lastName", "last_name"))
    role: Optional[str] = None


class SessionData(BaseModel):
    """
    Represents the credential state persisted across reloads.
    Tokens are never verified client-side; presence only means "possibly authenticated".
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: Optional[UserRecord] = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)
