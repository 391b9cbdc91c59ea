"""
Principals, roles and the single capability check.

One function decides allow/deny for every protected operation: the caller
names the capabilities it needs and passes the verified principal. Ownership
is a capability too (`own` resources pass with the *_OWN capability).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

from contribution_review.core.exceptions import ForbiddenError
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)


class Role(str, enum.Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    SUBMIT_CONTRIBUTION = "contribution:submit"
    READ_OWN_CONTRIBUTIONS = "contribution:read_own"
    READ_ALL_CONTRIBUTIONS = "contribution:read_all"
    REVIEW_CONTRIBUTIONS = "contribution:review"
    RECONCILE_CREDITS = "contribution:reconcile"
    READ_OWN_ACCOUNT = "user:read_own"
    READ_ALL_ACCOUNTS = "user:read_all"
    MANAGE_USERS = "user:manage"
    MANAGE_COINS = "coin:manage"


_USER_CAPABILITIES = frozenset(
    {
        Capability.SUBMIT_CONTRIBUTION,
        Capability.READ_OWN_CONTRIBUTIONS,
        Capability.READ_OWN_ACCOUNT,
    }
)
_MODERATOR_CAPABILITIES = _USER_CAPABILITIES | {
    Capability.READ_ALL_CONTRIBUTIONS,
    Capability.REVIEW_CONTRIBUTIONS,
}
_ADMIN_CAPABILITIES = _MODERATOR_CAPABILITIES | {
    Capability.RECONCILE_CREDITS,
    Capability.READ_ALL_ACCOUNTS,
    Capability.MANAGE_USERS,
    Capability.MANAGE_COINS,
}

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: _USER_CAPABILITIES,
    Role.MODERATOR: frozenset(_MODERATOR_CAPABILITIES),
    Role.ADMIN: frozenset(_ADMIN_CAPABILITIES),
}

# *_ALL capabilities an owner satisfies with the *_OWN variant
_OWN_EQUIVALENT = {
    Capability.READ_ALL_CONTRIBUTIONS: Capability.READ_OWN_CONTRIBUTIONS,
    Capability.READ_ALL_ACCOUNTS: Capability.READ_OWN_ACCOUNT,
}


@dataclass(frozen=True)
class Principal:
    """Verified caller identity supplied by the authentication layer."""

    id: str
    role: Role

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES.get(self.role, frozenset())


def check_capability(
    principal: Principal,
    required: Iterable[Capability],
    *,
    owner_id: str | None = None,
) -> bool:
    """
    Return True if the principal holds every required capability.

    When owner_id is given and equals the principal id, each *_ALL capability
    in `required` is satisfied by its *_OWN counterpart.
    """
    granted = principal.capabilities
    is_owner = owner_id is not None and owner_id == principal.id
    for capability in required:
        if capability in granted:
            continue
        own = _OWN_EQUIVALENT.get(capability)
        if is_owner and own is not None and own in granted:
            continue
        return False
    return True


def require_capability(
    principal: Principal,
    required: Iterable[Capability],
    *,
    owner_id: str | None = None,
) -> None:
    """Raise ForbiddenError unless check_capability() allows the call."""
    required = tuple(required)
    if not check_capability(principal, required, owner_id=owner_id):
        logger.warning(
            "capability_denied",
            principal_id=principal.id,
            role=principal.role.value,
            required=[c.value for c in required],
        )
        raise ForbiddenError(
            "access denied: requires " + ", ".join(c.value for c in required)
        )

