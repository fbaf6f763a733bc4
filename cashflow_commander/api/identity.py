"""Caller identity and role capabilities."""
from dataclasses import dataclass
from typing import Optional

from cashflow_commander.config import ROLE_CAPABILITIES
from cashflow_commander.api.errors import NotAuthenticatedError


@dataclass(frozen=True)
class Identity:
    """An authenticated caller as resolved from the identity provider."""

    user_id: str
    role: str = "user"

    def can(self, capability: str) -> bool:
        """Check whether this caller's role grants a capability."""
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())


def require_identity(identity: Optional[Identity]) -> Identity:
    """Return the identity or raise if the caller is anonymous."""
    if identity is None:
        raise NotAuthenticatedError()
    return identity
