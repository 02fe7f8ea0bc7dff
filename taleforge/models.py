"""Core domain models.

Every entity is owned by the backend; these are transient local copies.
Pydantic is used for validation at the wire boundary. The backend speaks
camelCase JSON, so models accept camelCase keys and expose snake_case
attributes.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ROLE_CLAIM = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TokenPayload(BaseModel):
    """Claims read from a bearer token. Never verified client-side.

    Claims are read by their wire names only; the role lives under the
    URI-style ROLE_CLAIM key and nowhere else. A claim of an unexpected type
    is kept as-is (or dropped to None for `exp`/`email`) rather than failing
    the whole payload.
    """

    model_config = ConfigDict(extra="allow")

    sub: Any = None
    player_id: Any = Field(default=None, alias="playerId")
    email: str | None = None
    jti: Any = None
    role: Any = Field(default=None, alias=ROLE_CLAIM)
    exp: float | None = None
    iss: Any = None
    aud: Any = None

    @field_validator("exp", mode="before")
    @classmethod
    def _numeric_exp(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _string_email(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class Character(WireModel):
    character_id: int
    name: str
    character_class: str | None = None
    level: int | None = None
    character_sheet: str = ""
    backstory: str | None = None
    image_url: str | None = None
    player_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class AdventureSession(WireModel):
    """A narrative session tied to one character."""

    session_id: str
    character_id: int
    summary: str = ""
    narrative_direction: str | None = None


class NarrativeResult(WireModel):
    # older backends answer with PascalCase keys
    narrative: str = Field(validation_alias=AliasChoices("narrative", "Narrative"))
    dm_notes: str | None = Field(
        default=None, validation_alias=AliasChoices("dmNotes", "DmNotes", "DMNotes")
    )


class Submission(WireModel):
    """One (player action, narrative) exchange."""

    sequence: int
    action: str
    narrative: str


class HistoryPage(WireModel):
    submissions: list[Submission] = Field(default_factory=list)
    page: int = 1
    page_size: int = 4
    total_pages: int = 1
    total_count: int = 0


class ChatMessage(BaseModel):
    """A turn in the character-creation conversation."""

    sender: Literal["user", "ai"]
    text: str


class SessionDocument(WireModel):
    file_name: str = "session.md"
    content: str


class ApiProvider(WireModel):
    provider: int
    display_name: str


class ApiProviderInfo(WireModel):
    current_provider: int
    display_name: str
    available_providers: list[ApiProvider] = Field(default_factory=list)


class SubscriptionInfo(WireModel):
    has_subscription: bool = False
    tier: str = ""
    status: str = ""
    is_admin_granted: bool = False
    current_period_start: str | None = None
    current_period_end: str | None = None
    cancelled_at: str | None = None


class Transaction(WireModel):
    transaction_id: int
    type: str
    status: str
    amount: float
    currency: str = "USD"
    description: str | None = None
    created_at: str
    processed_at: str | None = None
    failure_reason: str | None = None


class AdminUser(WireModel):
    """A row of the admin user listing. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    player_id: int
    email: str = ""
    tier: str | None = None
    status: str | None = None
    is_admin_granted: bool = False


class DeploymentInfo(BaseModel):
    service: str
    status: Literal["healthy", "error", "unknown"]
    url: str
    last_checked: str
    version: str | None = None
    error: str | None = None
