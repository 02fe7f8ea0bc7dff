"""Route state for the front-end, and the reaction to session invalidation."""

from __future__ import annotations

import logging

from taleforge.session import SessionContext, SessionEvent

logger = logging.getLogger(__name__)

LOGIN_ROUTE = "/"
HOME_ROUTE = "/home"
CREATE_ROUTE = "/character-creation"
ADMIN_ROUTE = "/admin"
SUBSCRIPTION_ROUTE = "/subscription"


def session_route(character_id: int) -> str:
    return f"/session/{character_id}"


class Navigator:
    """Holds the current route. Sends the user to login when the session dies.

    There is no recoverable unauthenticated state: an invalidated or logged-out
    session always lands on LOGIN_ROUTE.
    """

    def __init__(self, session: SessionContext, route: str | None = None) -> None:
        self.route = route or (HOME_ROUTE if session.is_logged_in else LOGIN_ROUTE)
        self.history: list[str] = [self.route]
        self.notice: str | None = None
        self._unsubscribe = session.subscribe(self._on_session_event)

    def go(self, route: str) -> None:
        logger.debug("navigate %s -> %s", self.route, route)
        self.route = route
        self.history.append(route)

    def close(self) -> None:
        self._unsubscribe()

    def _on_session_event(self, event: SessionEvent, session: SessionContext) -> None:
        if event == "invalidated":
            self.notice = "Your session has expired. Please log in again."
            self.go(LOGIN_ROUTE)
        elif event == "logout":
            self.go(LOGIN_ROUTE)
