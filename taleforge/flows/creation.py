"""Character creation: a conversation with the AI that ends in a saved character."""

from __future__ import annotations

import logging
import re

from taleforge.api import ApiClient, ApiError
from taleforge.models import ChatMessage

from .navigation import Navigator, session_route

logger = logging.getLogger(__name__)

_H4 = re.compile(r"^#### (.*)$", re.MULTILINE)


def format_ai_text(text: str) -> str:
    """Flatten the AI's markdown for display.

    "#### Stats\\n\\nSTR 12" → "• Stats\\nSTR 12"
    """
    return _H4.sub(r"• \1", text).replace("\n\n", "\n")


class CharacterCreationFlow:
    def __init__(self, api: ApiClient, navigator: Navigator) -> None:
        self.api = api
        self.navigator = navigator
        self.messages: list[ChatMessage] = []
        self.is_loading = False
        self.error: str | None = None

    async def send(self, text: str) -> ChatMessage | None:
        """Send one user message and append the AI reply.

        Failures are shown in the conversation as an AI message "Error: ...".
        Blank input, or input while a request is in flight, is ignored.
        """
        if not text.strip() or self.is_loading:
            return None

        self.messages.append(ChatMessage(sender="user", text=text))
        self.is_loading = True
        try:
            reply = ChatMessage(sender="ai", text=await self.api.negotiate(self.messages))
        except ApiError as e:
            reply = ChatMessage(sender="ai", text=f"Error: {e.message}")
        finally:
            self.is_loading = False
        self.messages.append(reply)
        return reply

    def final_sheet(self) -> str:
        """The last AI message is taken as the finished character sheet."""
        for message in reversed(self.messages):
            if message.sender == "ai":
                return message.text
        return ""

    async def save(self, name: str) -> int | None:
        """Save the character, open its session, and navigate to it.

        Returns the new character id, or None if nothing was saved.
        """
        if not name.strip():
            return None

        self.error = None
        self.is_loading = True
        try:
            character_id = await self.api.save_character_from_conversation(
                name.strip(), self.final_sheet(), self.messages
            )
            await self.api.get_or_create_session(character_id)
        except ApiError as e:
            logger.error("Save character error: %s", e)
            self.error = f"Error saving character: {e.message or 'Unknown error occurred'}"
            return None
        finally:
            self.is_loading = False

        self.navigator.go(session_route(character_id))
        return character_id
