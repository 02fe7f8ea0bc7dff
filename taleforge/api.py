"""API client: the single choke point for every call to the backend.

    client = ApiClient(session, "http://localhost:5095/api")
    characters = await client.list_characters()

Responsibilities:

  * attach `Authorization: Bearer <token>` from the SessionContext
  * refresh the token when it expires within the lookahead window (30 min by
    default). Concurrent callers share one in-flight refresh; the pending
    task is dropped once it settles, success or failure.
  * turn every failure into ApiError. Transport problems carry status None;
    non-2xx responses carry the backend's `message` when there is one.
  * a failed refresh, or a 401/403 on an authenticated call, invalidates the
    session and raises UnauthenticatedError. Navigation is left to whoever
    subscribes to the session.

Domain calls (characters, sessions, AI provider...) are thin wrappers with
fixed endpoint paths that return pydantic models.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from taleforge.auth import expires_within
from taleforge.config import DEFAULT_API_URL, Settings
from taleforge.models import (
    AdventureSession,
    ApiProviderInfo,
    Character,
    ChatMessage,
    HistoryPage,
    NarrativeResult,
    SessionDocument,
)
from taleforge.session import SessionContext

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

REFRESH_ENDPOINT = "auth/refresh"
DEFAULT_REFRESH_LOOKAHEAD = 30 * 60
AUTH_FAILURE_STATUSES = (401, 403)


class ApiError(RuntimeError):
    """Raised for every failed request. `status` is None for transport failures."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class UnauthenticatedError(ApiError):
    """The backend no longer accepts the session; the user has to log in again."""


def _error_message(response: httpx.Response) -> str:
    fallback = f"HTTP error! status: {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return json.dumps(data, separators=(",", ":"))


def _handle_response(response: httpx.Response) -> Any:
    if not response.is_success:
        raise ApiError(_error_message(response), response.status_code)
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise ApiError(
            f"Invalid JSON in response (status {response.status_code})", response.status_code
        ) from e


class ApiClient:
    """Async REST client for the storytelling backend.

    Args:
        session:           Where the bearer token lives.
        base_url:          API root, e.g. "http://localhost:5095/api".
        refresh_lookahead: Seconds before expiry at which the token is refreshed.
        timeout:           HTTP timeout in seconds.
        transport:         Optional httpx transport (tests mount an ASGI app here).
    """

    def __init__(
        self,
        session: SessionContext,
        base_url: str = DEFAULT_API_URL,
        *,
        refresh_lookahead: float = DEFAULT_REFRESH_LOOKAHEAD,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._refresh_lookahead = refresh_lookahead
        self._timeout = timeout
        self._transport = transport
        self._refresh_task: asyncio.Task[str] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session: SessionContext,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ApiClient:
        return cls(
            session,
            settings.api_url,
            refresh_lookahead=settings.refresh_lookahead_seconds,
            timeout=settings.timeout,
            transport=transport,
        )

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    def _headers(self, token: str | None) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        token: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = self._url(endpoint)
        logger.debug("api %s %s auth=%s", method, url, bool(token))
        kwargs: dict[str, Any] = {"headers": self._headers(token)}
        if body is not None:
            kwargs["json"] = body
        if params:
            kwargs["params"] = params

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ApiError(f"Request to {endpoint} timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise ApiError(f"Cannot connect to backend at {self._base_url}") from e

        logger.debug("api %s %s -> %d", method, url, response.status_code)
        return response

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def _current_token(self) -> str | None:
        token = self._session.token
        if token and expires_within(token, self._refresh_lookahead):
            token = await self._refresh(token)
        return token

    async def _refresh(self, token: str) -> str:
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._run_refresh(token))
            self._refresh_task.add_done_callback(_retrieve_exception)
        # shielded so one cancelled caller does not cancel the shared refresh
        return await asyncio.shield(self._refresh_task)

    async def _run_refresh(self, token: str) -> str:
        logger.debug("refreshing token")
        try:
            response = await self._send("POST", REFRESH_ENDPOINT, {"token": token}, token)
            data = _handle_response(response)
            new_token = data.get("token") if isinstance(data, dict) else None
            if not new_token:
                raise ApiError("Token not provided by backend.", response.status_code)
        except ApiError as e:
            self._session.invalidate(f"token refresh failed: {e}")
            raise UnauthenticatedError(f"Session expired: {e}", e.status) from e
        finally:
            self._refresh_task = None

        self._session.replace_token(new_token)
        return new_token

    # ------------------------------------------------------------------
    # Generic requests
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        token = await self._current_token()
        response = await self._send(method, endpoint, body, token, params)
        if response.status_code in AUTH_FAILURE_STATUSES:
            message = _error_message(response)
            if token:
                self._session.invalidate(f"{method} {endpoint} rejected: {message}")
            raise UnauthenticatedError(message, response.status_code)
        return _handle_response(response)

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: Any = None) -> Any:
        return await self._request("POST", endpoint, body)

    async def put(self, endpoint: str, body: Any = None) -> Any:
        return await self._request("PUT", endpoint, body)

    async def delete(self, endpoint: str) -> Any:
        return await self._request("DELETE", endpoint)

    async def post_public(self, endpoint: str, body: Any = None) -> Any:
        """POST without a bearer token, for login endpoints."""
        response = await self._send("POST", endpoint, body)
        return _handle_response(response)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login_google(self, id_token: str) -> str:
        """Exchange a Google ID token for a bearer token."""
        data = await self.post_public("auth/google", {"idToken": id_token})
        return _token_from(data)

    async def dev_login(self, email: str) -> str:
        data = await self.post_public("auth/dev-login", {"email": email})
        return _token_from(data)

    async def test_admin(self) -> Any:
        return await self.get("auth/admin/test")

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    async def list_characters(self) -> list[Character]:
        data = await self.get("characters")
        return [_parse(Character, c) for c in _list(data)]

    async def get_character(self, character_id: int) -> Character:
        return _parse(Character, await self.get(f"character/{character_id}"))

    async def delete_character(self, character_id: int) -> None:
        await self.delete(f"character/{character_id}")

    async def save_character_from_conversation(
        self, name: str, character_sheet: str, conversation: Iterable[ChatMessage]
    ) -> int:
        """Persist a character built through the AI conversation. Returns its id."""
        data = await self.post("character/saveFromConversation", {
            "name": name,
            "characterSheet": character_sheet,
            "conversation": [m.model_dump() for m in conversation],
            "isMarkdown": True,
        })
        character_id = _field(data, "characterId")
        try:
            return int(character_id)
        except (TypeError, ValueError) as e:
            raise ApiError(f"Unexpected characterId in response: {character_id!r}") from e

    async def update_character_sheet(self, character_id: int, character_sheet: str) -> None:
        await self.put(f"character/{character_id}/sheet", {"characterSheet": character_sheet})

    async def generate_character_image(self, character_id: int) -> str:
        """Ask the AI service for a portrait. Returns the image URL (not yet saved)."""
        data = await self.post(f"character/{character_id}/image/generate", {})
        return _field(data, "imageUrl")

    async def save_character_image(self, character_id: int, image_url: str) -> None:
        await self.put(f"character/{character_id}/image", {"imageUrl": image_url})

    async def negotiate(self, messages: Iterable[ChatMessage]) -> str:
        """One character-creation turn: send the conversation, get the AI reply."""
        data = await self.post("ai/negotiate", {"messages": [m.model_dump() for m in messages]})
        return _field(data, "response")

    # ------------------------------------------------------------------
    # Narrative sessions
    # ------------------------------------------------------------------

    async def get_or_create_session(self, character_id: int) -> AdventureSession:
        data = await self.post(f"session/character/{character_id}", {})
        return _parse(AdventureSession, data)

    async def start_session(self, session_id: str) -> NarrativeResult:
        data = await self.post(f"dm/session/{session_id}/start", {})
        return _parse(NarrativeResult, data)

    async def submit_action(self, session_id: str, action: str) -> NarrativeResult:
        data = await self.post(f"dm/session/{session_id}/action", {"action": action})
        return _parse(NarrativeResult, data)

    async def get_session_history(
        self, session_id: str, page: int = 1, page_size: int = 4
    ) -> HistoryPage:
        data = await self.get(
            f"sessions/{session_id}/history", params={"page": page, "pageSize": page_size}
        )
        return _parse(HistoryPage, data)

    async def finalize_session(self, session_id: str) -> SessionDocument:
        data = await self.post(f"sessions/{session_id}/finalize", {})
        return _parse(SessionDocument, data)

    # ------------------------------------------------------------------
    # AI provider (admin)
    # ------------------------------------------------------------------

    async def get_api_provider(self) -> ApiProviderInfo:
        return _parse(ApiProviderInfo, await self.get("admin/api-provider"))

    async def set_api_provider(self, provider: int) -> Any:
        return await self.post("admin/api-provider/set", {"provider": provider})


def _token_from(data: Any) -> str:
    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        raise ApiError("Token not provided by backend.")
    return token


def _parse(model: type[M], data: Any) -> M:
    """Validate a 2xx body. A body of the wrong shape is an ApiError like any other."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("Unexpected %s payload: %s", model.__name__, e)
        raise ApiError(f"Unexpected response from backend ({model.__name__})") from e


def _list(data: Any) -> list[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ApiError("Unexpected response from backend (expected a list)")
    return data


def _field(data: Any, key: str) -> Any:
    if not isinstance(data, dict) or data.get(key) is None:
        raise ApiError(f"Unexpected response from backend (missing {key})")
    return data[key]


def _retrieve_exception(task: asyncio.Task) -> None:
    # every waiter may have been cancelled; mark the outcome as seen
    if not task.cancelled():
        task.exception()
