"""Login and logout."""

from __future__ import annotations

import logging

from taleforge.api import ApiClient, ApiError
from taleforge.session import SessionContext

from .navigation import HOME_ROUTE, Navigator

logger = logging.getLogger(__name__)


class LoginFlow:
    def __init__(self, api: ApiClient, session: SessionContext, navigator: Navigator) -> None:
        self.api = api
        self.session = session
        self.navigator = navigator
        self.error: str | None = None

    async def login_with_google(self, id_token: str) -> bool:
        return await self._login(self.api.login_google(id_token))

    async def dev_login(self, email: str) -> bool:
        return await self._login(self.api.dev_login(email))

    async def _login(self, exchange) -> bool:
        self.error = None
        try:
            token = await exchange
        except ApiError as e:
            logger.error("Login error: %s", e)
            self.error = f"Login failed: {e.message}"
            return False
        self.session.login(token)
        self.navigator.notice = None
        self.navigator.go(HOME_ROUTE)
        return True

    def logout(self) -> None:
        # the navigator moves to LOGIN_ROUTE on the logout event
        self.session.logout()
