"""Play screen: the narrative session for one character.

The narrative feed is a list of events ("action" from the player, "narrative"
from the dungeon master). Recent exchanges are also kept in a bounded
SubmissionWindow for paging. The session summary is replaced by the latest
narrative after every action.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from taleforge.api import ApiClient, ApiError
from taleforge.history import SubmissionWindow
from taleforge.models import (
    AdventureSession,
    Character,
    ChatMessage,
    NarrativeResult,
    SessionDocument,
)

logger = logging.getLogger(__name__)


class NarrativeEvent(BaseModel):
    type: Literal["action", "narrative"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def parse_backstory(backstory: str | None) -> list[ChatMessage]:
    """Backstory is the JSON-encoded creation conversation, or plain text.

    Plain text, or JSON that is not a list of messages, yields [].
    """
    if not backstory:
        return []
    try:
        data = json.loads(backstory)
    except ValueError:
        return []
    if not isinstance(data, list):
        return []
    try:
        return [ChatMessage.model_validate(m) for m in data]
    except ValidationError as e:
        logger.warning("Failed to parse backstory: %s", e)
        return []


class PlayFlow:
    def __init__(self, api: ApiClient, window_size: int = 4) -> None:
        self.api = api
        self.character: Character | None = None
        self.session: AdventureSession | None = None
        self.conversation: list[ChatMessage] = []
        self.narrative: list[NarrativeEvent] = []
        self.window = SubmissionWindow(window_size)
        self.dm_notes: str | None = None
        self.error: str | None = None

    @property
    def character_sheet(self) -> str:
        if self.character is None or not self.character.character_sheet:
            return "No character sheet available."
        return self.character.character_sheet

    async def load(self, character_id: int) -> bool:
        """Load the character and get-or-create its session."""
        self.error = None
        try:
            self.character = await self.api.get_character(character_id)
        except ApiError as e:
            self.error = f"Failed to load character: {e.message}"
            return False
        self.conversation = parse_backstory(self.character.backstory)

        try:
            self.session = await self.api.get_or_create_session(character_id)
        except ApiError as e:
            self.error = e.message
            return False
        self.narrative = []
        self.window.clear()
        if self.session.summary:
            self.narrative.append(NarrativeEvent(type="narrative", content=self.session.summary))
        return True

    async def start(self) -> NarrativeResult | None:
        """Ask the dungeon master for the opening narrative."""
        if self.session is None:
            return None
        try:
            result = await self.api.start_session(self.session.session_id)
        except ApiError as e:
            self._record_error(e)
            return None
        self._record_narrative(result)
        return result

    async def submit(self, action: str) -> NarrativeResult | None:
        """Submit a player action. Failures show up as an error narrative."""
        if not action.strip() or self.session is None:
            return None

        self.narrative.append(NarrativeEvent(type="action", content=action))
        try:
            result = await self.api.submit_action(self.session.session_id, action)
        except ApiError as e:
            self._record_error(e)
            return None
        self._record_narrative(result)
        self.window.add(action, result.narrative)
        return result

    async def load_history(self, page: int = 1) -> bool:
        """Fill the window from the backend's recent history."""
        if self.session is None:
            return False
        try:
            history = await self.api.get_session_history(
                self.session.session_id, page=page, page_size=self.window.size
            )
        except ApiError as e:
            self.error = e.message
            return False
        self.window.clear()
        self.window.extend(history.submissions)
        return True

    async def save_sheet(self, sheet: str) -> bool:
        if self.character is None:
            return False
        try:
            await self.api.update_character_sheet(self.character.character_id, sheet)
        except ApiError as e:
            self.error = f"Failed to save character sheet: {e.message}"
            return False
        self.character.character_sheet = sheet
        return True

    async def generate_image(self) -> str | None:
        """Generate a portrait. The URL is returned for review, not saved."""
        if self.character is None:
            return None
        try:
            return await self.api.generate_character_image(self.character.character_id)
        except ApiError as e:
            self.error = f"Failed to generate image: {e.message}"
            return None

    async def save_image(self, image_url: str) -> bool:
        if self.character is None:
            return False
        try:
            await self.api.save_character_image(self.character.character_id, image_url)
        except ApiError as e:
            self.error = f"Failed to save image: {e.message}"
            return False
        self.character.image_url = image_url
        return True

    async def finalize(self) -> SessionDocument | None:
        """Render the session as a downloadable document."""
        if self.session is None:
            return None
        try:
            return await self.api.finalize_session(self.session.session_id)
        except ApiError as e:
            self.error = f"Failed to finalize session: {e.message}"
            return None

    def _record_narrative(self, result: NarrativeResult) -> None:
        self.narrative.append(NarrativeEvent(type="narrative", content=result.narrative))
        self.dm_notes = result.dm_notes
        if self.session is not None:
            self.session.summary = result.narrative

    def _record_error(self, e: ApiError) -> None:
        self.narrative.append(NarrativeEvent(type="narrative", content=f"Error: {e.message}"))
