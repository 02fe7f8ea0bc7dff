"""Page-level flows.

Each flow is the controller behind one screen: it loads state, issues API
calls in response to user actions and keeps the result for rendering. Flows
catch ApiError and expose the message (`error`, or an error entry in the
conversation/narrative); they never navigate on auth failures themselves.
The Navigator reacts to session invalidation.
"""

from .admin import AdminFlow
from .creation import CharacterCreationFlow
from .home import HomeFlow
from .login import LoginFlow
from .navigation import (
    ADMIN_ROUTE,
    CREATE_ROUTE,
    HOME_ROUTE,
    LOGIN_ROUTE,
    SUBSCRIPTION_ROUTE,
    Navigator,
    session_route,
)
from .play import PlayFlow
from .status import DeploymentStatus
from .subscription import SubscriptionFlow

__all__ = [
    "ADMIN_ROUTE",
    "CREATE_ROUTE",
    "HOME_ROUTE",
    "LOGIN_ROUTE",
    "SUBSCRIPTION_ROUTE",
    "AdminFlow",
    "CharacterCreationFlow",
    "DeploymentStatus",
    "HomeFlow",
    "LoginFlow",
    "Navigator",
    "PlayFlow",
    "SubscriptionFlow",
    "session_route",
]
