"""
Role hierarchy for StockMaster.

Roles are plain values stored in user_roles; their ordering lives in code.
"""

from src.templates.role_definitions import (
    AppRole,
    RoleDefinition,
    ROLE_DEFINITIONS,
    display_name,
    highest_role,
    is_role_at_least,
    is_valid_role,
    role_level,
)

__all__ = [
    "AppRole",
    "RoleDefinition",
    "ROLE_DEFINITIONS",
    "display_name",
    "highest_role",
    "is_role_at_least",
    "is_valid_role",
    "role_level",
]
