from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from classifieds.services.errors import UnauthorizedError

ROLE_SCOPES: dict[str, set[str]] = {
    "user": {"ads:write"},
    "moderator": {"ads:write", "moderation:read", "moderation:write", "catalog:write"},
}
KNOWN_ROLES = frozenset(ROLE_SCOPES)


class Action(str, Enum):
    CREATE_AD = "create_ad"
    EDIT_AD = "edit_ad"
    VIEW_AD = "view_ad"
    LIST_OWN_ADS = "list_own_ads"
    READ_MODERATION = "read_moderation"
    MODERATE_AD = "moderate_ad"
    MANAGE_CATALOG = "manage_catalog"


ACTION_SCOPES: dict[Action, str] = {
    Action.CREATE_AD: "ads:write",
    Action.EDIT_AD: "ads:write",
    Action.LIST_OWN_ADS: "ads:write",
    Action.READ_MODERATION: "moderation:read",
    Action.MODERATE_AD: "moderation:write",
    Action.MANAGE_CATALOG: "catalog:write",
}


@dataclass(slots=True)
class Principal:
    user_id: str
    role: str = "user"
    email: str | None = None
    name: str | None = None
    scopes: set[str] = field(default_factory=set)

    @classmethod
    def for_role(cls, user_id: str, role: str, *, email: str | None = None, name: str | None = None) -> "Principal":
        resolved = role if role in KNOWN_ROLES else "user"
        return cls(user_id=user_id, role=resolved, email=email, name=name, scopes=set(ROLE_SCOPES[resolved]))

    @property
    def is_moderator(self) -> bool:
        return self.role == "moderator"


def is_allowed(principal: Principal | None, action: Action, resource: Mapping[str, Any] | None = None) -> bool:
    """Single authorization decision point for every service operation.

    ``resource`` is the ad view for ad-scoped actions; it is ignored otherwise.
    Approved ads are public. Everything else needs an authenticated principal
    holding the action's scope, and editing additionally needs ownership.
    """
    if action is Action.VIEW_AD:
        if resource is not None and resource.get("status") == "approved":
            return True
        if principal is None:
            return False
        return principal.is_moderator or _owner_id(resource) == principal.user_id

    if principal is None or not principal.user_id:
        return False
    scope = ACTION_SCOPES.get(action)
    if scope is None or scope not in principal.scopes:
        return False
    if action is Action.EDIT_AD:
        return _owner_id(resource) == principal.user_id
    return True


def authorize(principal: Principal | None, action: Action, resource: Mapping[str, Any] | None = None) -> Principal:
    if principal is None or not is_allowed(principal, action, resource):
        raise UnauthorizedError("Unauthorized")
    return principal


def _owner_id(resource: Mapping[str, Any] | None) -> str | None:
    if not resource:
        return None
    owner_id = resource.get("owner_id")
    if owner_id:
        return str(owner_id)
    owner = resource.get("owner")
    if isinstance(owner, Mapping) and owner.get("id"):
        return str(owner["id"])
    return None
