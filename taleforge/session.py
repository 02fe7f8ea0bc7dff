"""Session context: the one owner of the persisted bearer token.

The token and the ephemeral `user` / `player` flags live in a small JSON file
under the data directory:

    {data_dir}/
      session.json    {"token": ..., "user": ..., "player": ...}

Everything that needs the token reads it from a SessionContext instead of the
file. Changes are announced to subscribers:

    login        a fresh token from a login endpoint
    refreshed    the token was replaced by a refresh
    logout       the user signed out
    invalidated  the backend rejected the session (refresh failure, 401/403)

The UI layer subscribes and decides where to navigate; nothing in the data
access layer navigates on its own.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Literal

from taleforge.auth import get_token_payload

logger = logging.getLogger(__name__)

SessionEvent = Literal["login", "refreshed", "logout", "invalidated"]
Listener = Callable[[SessionEvent, "SessionContext"], None]

_EMPTY: dict[str, Any] = {"token": None, "user": None, "player": None}


class TokenStore:
    """JSON file persistence for the session. A missing file is an empty session."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        state = dict(_EMPTY)
        if self._path.is_file():
            try:
                stored = json.loads(self._path.read_text())
            except json.JSONDecodeError:
                logger.warning("Ignoring unreadable session file %s", self._path)
                return state
            if isinstance(stored, dict):
                state.update({k: stored.get(k) for k in _EMPTY})
        return state

    def save(self, state: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(state, indent=2))

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class SessionContext:
    def __init__(self, store: TokenStore) -> None:
        self._store = store
        self._state = store.load()
        self._listeners: list[Listener] = []

    @property
    def token(self) -> str | None:
        return self._state["token"]

    @property
    def user(self) -> str | None:
        return self._state["user"]

    @property
    def player(self) -> str | None:
        return self._state["player"]

    @property
    def is_logged_in(self) -> bool:
        return bool(self.token)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def login(self, token: str) -> None:
        payload = get_token_payload(token)
        player = payload.player_id if payload else None
        self._state = {
            "token": token,
            "user": payload.email if payload else None,
            "player": str(player) if player is not None else None,
        }
        self._store.save(self._state)
        self._notify("login")

    def replace_token(self, token: str) -> None:
        self._state["token"] = token
        self._store.save(self._state)
        self._notify("refreshed")

    def logout(self) -> None:
        self._clear()
        self._notify("logout")

    def invalidate(self, reason: str = "") -> None:
        logger.info("Session invalidated: %s", reason or "no reason given")
        self._clear()
        self._notify("invalidated")

    def _clear(self) -> None:
        self._state = dict(_EMPTY)
        self._store.clear()

    def _notify(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            listener(event, self)
