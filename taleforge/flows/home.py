"""Character list: pick a character to play, or delete one."""

from __future__ import annotations

import logging

from taleforge.api import ApiClient, ApiError
from taleforge.models import Character

from .navigation import LOGIN_ROUTE, Navigator, session_route

logger = logging.getLogger(__name__)


class HomeFlow:
    def __init__(self, api: ApiClient, navigator: Navigator) -> None:
        self.api = api
        self.navigator = navigator
        self.characters: list[Character] = []
        self.error: str | None = None

    async def load(self) -> list[Character]:
        """Fetch the character list. Any failure sends the user back to login."""
        try:
            self.characters = await self.api.list_characters()
        except ApiError as e:
            logger.error("Failed to load characters: %s", e)
            self.error = e.message
            self.navigator.go(LOGIN_ROUTE)
        return self.characters

    async def select_character(self, character_id: int) -> bool:
        self.error = None
        try:
            await self.api.get_or_create_session(character_id)
        except ApiError as e:
            logger.error("Error selecting character %s: %s", character_id, e)
            self.error = "Could not start a session for this character."
            return False
        self.navigator.go(session_route(character_id))
        return True

    async def delete_character(self, character_id: int) -> bool:
        """Delete a character with all its sessions, then reload the list.

        Deleting an id the backend no longer knows is reported as an error.
        """
        self.error = None
        try:
            await self.api.delete_character(character_id)
            self.characters = await self.api.list_characters()
        except ApiError as e:
            logger.error("Error deleting character %s: %s", character_id, e)
            self.error = f"Failed to delete character: {e.message}"
            return False
        return True
