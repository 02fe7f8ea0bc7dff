"""Subscription management screen."""

from __future__ import annotations

from taleforge import subscription as subs
from taleforge.api import ApiClient, ApiError
from taleforge.auth import is_token_valid
from taleforge.models import SubscriptionInfo, Transaction
from taleforge.session import SessionContext

from .navigation import LOGIN_ROUTE, Navigator


class SubscriptionFlow:
    def __init__(self, api: ApiClient, session: SessionContext, navigator: Navigator) -> None:
        self.api = api
        self.session = session
        self.navigator = navigator
        self.subscription: SubscriptionInfo | None = None
        self.transactions: list[Transaction] = []
        self.error: str | None = None

    @property
    def premium(self) -> bool:
        return subs.can_access_premium_features(self.subscription)

    def enter(self) -> bool:
        if not is_token_valid(self.session.token):
            self.navigator.go(LOGIN_ROUTE)
            return False
        return True

    async def load(self) -> SubscriptionInfo | None:
        self.subscription = await subs.get_subscription_status(self.api)
        if self.subscription is not None and self.subscription.has_subscription:
            self.transactions = await subs.get_transaction_history(self.api)
        else:
            self.transactions = []
        return self.subscription

    async def create(self, tier: str) -> bool:
        return await self._act("create subscription", subs.create_subscription(self.api, tier))

    async def upgrade(self) -> bool:
        return await self._act("upgrade subscription", subs.upgrade_subscription(self.api))

    async def cancel(self) -> bool:
        return await self._act("cancel subscription", subs.cancel_subscription(self.api))

    async def _act(self, label: str, call) -> bool:
        self.error = None
        try:
            await call
        except ApiError as e:
            self.error = f"Failed to {label}: {e.message or 'Unknown error'}"
            return False
        await self.load()
        return True
