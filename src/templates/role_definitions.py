"""
Role definitions for the StockMaster role hierarchy.

This module contains:
- AppRole enum: The role values stored in role grants
- RoleDefinition: Dataclass describing a role and its privilege level
- Helpers to compare roles by level
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional


class AppRole(str, Enum):
    """
    Roles an identity can be granted.

    Values match the wire format used by the StockMaster UI.
    """

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    ALMOXARIFE = "almoxarife"  # Warehouse operator
    AUDITOR = "auditor"
    OPERADOR = "operador"  # Operator


@dataclass(frozen=True)
class RoleDefinition:
    """
    Defines a role and where it sits in the hierarchy.

    Attributes:
        name: Role value as stored in user_roles.role
        display_name: Human-readable role name used in emails
        level: Higher level = more privileges (superadmin=5 ... operador=1)
        description: Human-readable description of the role
    """

    name: str
    display_name: str
    level: int
    description: Optional[str] = None


ROLE_DEFINITIONS: Dict[str, RoleDefinition] = {
    AppRole.SUPERADMIN.value: RoleDefinition(
        name=AppRole.SUPERADMIN.value,
        display_name="Super Administrador",
        level=5,
        description="Full access across every organization",
    ),
    AppRole.ADMIN.value: RoleDefinition(
        name=AppRole.ADMIN.value,
        display_name="Administrador",
        level=4,
        description="Manages users, invitations and settings of an organization",
    ),
    AppRole.ALMOXARIFE.value: RoleDefinition(
        name=AppRole.ALMOXARIFE.value,
        display_name="Almoxarife",
        level=3,
        description="Manages stock movements and warehouse records",
    ),
    AppRole.AUDITOR.value: RoleDefinition(
        name=AppRole.AUDITOR.value,
        display_name="Auditor",
        level=2,
        description="Read-only access to records and reports",
    ),
    AppRole.OPERADOR.value: RoleDefinition(
        name=AppRole.OPERADOR.value,
        display_name="Operador",
        level=1,
        description="Day-to-day operation",
    ),
}


def _role_value(role) -> str:
    return role.value if isinstance(role, AppRole) else str(role)


def role_level(role) -> int:
    """Privilege level of a role; unknown roles map to 0."""
    definition = ROLE_DEFINITIONS.get(_role_value(role))
    return definition.level if definition else 0


def highest_role(roles: Iterable) -> Optional[str]:
    """
    Return the most privileged known role among ``roles``.

    Returns None when no role is known.
    """
    best = None
    best_level = 0
    for role in roles:
        level = role_level(role)
        if level > best_level:
            best, best_level = _role_value(role), level
    return best


def is_role_at_least(roles: Iterable, required) -> bool:
    """True when the maximum level among ``roles`` is >= the required role's level."""
    levels = [role_level(role) for role in roles]
    if not levels:
        return False
    return max(levels) >= role_level(required)


def display_name(role) -> str:
    """Human-readable name for a role, falling back to the raw value."""
    definition = ROLE_DEFINITIONS.get(_role_value(role))
    return definition.display_name if definition else _role_value(role)


def is_valid_role(role) -> bool:
    return _role_value(role) in ROLE_DEFINITIONS
