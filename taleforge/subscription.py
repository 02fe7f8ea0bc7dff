"""Subscription lookups, display helpers and lifecycle calls.

Read calls (status, transactions, access check) log and degrade to an empty
answer on failure so a page can still render; action calls (create, upgrade,
cancel) raise ApiError for the caller to show.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import ValidationError

from taleforge.api import ApiClient, ApiError
from taleforge.models import SubscriptionInfo, Transaction

logger = logging.getLogger(__name__)

TIER_FREE = "Free"
TIER_PREMIUM = "Premium"
TIER_ADMIN_GRANTED = "AdminGranted"

STATUS_ACTIVE = "Active"
STATUS_SUSPENDED = "Suspended"
STATUS_CANCELLED = "Cancelled"
STATUS_PAST_DUE = "PastDue"
STATUS_TRIALING = "Trialing"

_TIER_NAMES = {
    TIER_FREE: "Free",
    TIER_PREMIUM: "Premium",
    TIER_ADMIN_GRANTED: "Complimentary",
}

_STATUS_NAMES = {
    STATUS_ACTIVE: "Active",
    STATUS_SUSPENDED: "Suspended",
    STATUS_CANCELLED: "Cancelled",
    STATUS_PAST_DUE: "Payment Past Due",
    STATUS_TRIALING: "Trial",
}

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}


# ── Display helpers ──────────────────────────────────────


def get_subscription_display_name(tier: str) -> str:
    return _TIER_NAMES.get(tier, "Unknown")


def get_status_display_name(status: str) -> str:
    return _STATUS_NAMES.get(status, status)


def is_premium_tier(tier: str) -> bool:
    return tier in (TIER_PREMIUM, TIER_ADMIN_GRANTED)


def can_access_premium_features(subscription: SubscriptionInfo | None) -> bool:
    if subscription is None or not subscription.has_subscription:
        return False
    return is_premium_tier(subscription.tier) and subscription.status in (
        STATUS_ACTIVE,
        STATUS_TRIALING,
    )


def format_currency(amount: float, currency: str = "USD") -> str:
    """en-US style amount: format_currency(1234.5) → "$1,234.50"."""
    code = currency.upper()
    symbol = _CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_date(value: str) -> str:
    """ISO timestamp → "Jan 5, 2025". Unparseable input is returned as-is."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


# ── Lifecycle calls ──────────────────────────────────────


async def get_subscription_status(api: ApiClient) -> SubscriptionInfo | None:
    try:
        return SubscriptionInfo.model_validate(await api.get("subscription/status"))
    except (ApiError, ValidationError) as e:
        logger.warning("Failed to get subscription status: %s", e)
        return None


async def create_subscription(api: ApiClient, tier: str):
    return await api.post("subscription/create", {"tier": tier})


async def upgrade_subscription(api: ApiClient, new_tier: str = TIER_PREMIUM):
    return await api.put("subscription/upgrade", {"newTier": new_tier})


async def cancel_subscription(api: ApiClient):
    return await api.post("subscription/cancel")


async def get_transaction_history(api: ApiClient) -> list[Transaction]:
    try:
        data = await api.get("subscription/transactions")
        rows = data.get("transactions") if isinstance(data, dict) else None
        return [Transaction.model_validate(t) for t in rows or []]
    except (ApiError, ValidationError) as e:
        logger.warning("Failed to get transaction history: %s", e)
        return []


async def validate_access(api: ApiClient, required_tier: str) -> bool:
    try:
        data = await api.post("subscription/validate-access", {"requiredTier": required_tier})
    except ApiError as e:
        logger.warning("Failed to validate access: %s", e)
        return False
    return isinstance(data, dict) and bool(data.get("hasAccess"))
