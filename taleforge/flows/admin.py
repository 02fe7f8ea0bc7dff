"""Administrator panel: user subscriptions and the active AI provider.

Entry is gated on the local token (valid and carrying the Administrator role)
but that only decides what to show. Every call here is re-authorized by the
backend.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from taleforge.api import ApiClient, ApiError
from taleforge.auth import get_user_email, has_administrator_role, is_token_valid
from taleforge.models import AdminUser, ApiProviderInfo
from taleforge.session import SessionContext

from .navigation import HOME_ROUTE, LOGIN_ROUTE, Navigator

logger = logging.getLogger(__name__)


class AdminFlow:
    def __init__(self, api: ApiClient, session: SessionContext, navigator: Navigator) -> None:
        self.api = api
        self.session = session
        self.navigator = navigator
        self.is_admin = False
        self.email: str | None = None
        self.users: list[AdminUser] = []
        self.provider: ApiProviderInfo | None = None
        self.test_result: Any = None
        self.error: str | None = None

    def enter(self) -> bool:
        """Check local access. Redirects to login or home when not allowed."""
        token = self.session.token
        if not token or not is_token_valid(token):
            self.navigator.go(LOGIN_ROUTE)
            return False
        if not has_administrator_role(token):
            self.navigator.go(HOME_ROUTE)
            return False
        self.is_admin = True
        self.email = get_user_email(token)
        return True

    async def test_endpoint(self) -> Any:
        try:
            self.test_result = await self.api.test_admin()
        except ApiError as e:
            self.test_result = {"error": e.message}
        return self.test_result

    async def load_users(self) -> list[AdminUser]:
        self.error = None
        try:
            data = await self.api.get("admin/subscription/users")
            rows = data.get("users") if isinstance(data, dict) else None
            users = [AdminUser.model_validate(u) for u in rows or []]
        except (ApiError, ValidationError) as e:
            logger.error("Failed to load users: %s", e)
            self.error = "Failed to load users"
            return self.users
        self.users = users
        return self.users

    async def grant_free_access(self, player_id: int, reason: str) -> bool:
        return await self._user_action(
            "grant free access", "admin/subscription/grant-free-access", player_id, reason
        )

    async def revoke_free_access(self, player_id: int, reason: str) -> bool:
        return await self._user_action(
            "revoke free access", "admin/subscription/revoke-free-access", player_id, reason
        )

    async def suspend(self, player_id: int, reason: str) -> bool:
        return await self._user_action("suspend user", "admin/subscription/suspend", player_id, reason)

    async def reactivate(self, player_id: int) -> bool:
        return await self._user_action("reactivate user", "admin/subscription/reactivate", player_id)

    async def _user_action(
        self, label: str, endpoint: str, player_id: int, reason: str | None = None
    ) -> bool:
        """Run one user-management action and reload the list.

        Actions that take a reason are cancelled when it is blank.
        """
        body: dict[str, Any] = {"playerId": player_id}
        if reason is not None:
            if not reason.strip():
                return False
            body["reason"] = reason.strip()

        self.error = None
        try:
            await self.api.post(endpoint, body)
        except ApiError as e:
            self.error = f"Failed to {label}: {e.message or 'Unknown error'}"
            return False
        await self.load_users()
        return True

    async def load_provider(self) -> ApiProviderInfo | None:
        try:
            self.provider = await self.api.get_api_provider()
        except ApiError as e:
            logger.error("Failed to load API provider: %s", e)
        return self.provider

    async def set_provider(self, provider: int) -> bool:
        self.error = None
        try:
            await self.api.set_api_provider(provider)
        except ApiError as e:
            logger.error("Failed to set API provider: %s", e)
            self.error = "Failed to change API provider. Please try again."
            return False
        await self.load_provider()
        return True
