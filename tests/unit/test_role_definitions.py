"""Unit tests for the role hierarchy"""

import pytest

from src.templates.role_definitions import (
    AppRole,
    display_name,
    highest_role,
    is_role_at_least,
    role_level,
)


@pytest.mark.unit
def test_levels_follow_hierarchy():
    assert role_level(AppRole.SUPERADMIN) == 5
    assert role_level("admin") == 4
    assert role_level("almoxarife") == 3
    assert role_level("auditor") == 2
    assert role_level("operador") == 1


@pytest.mark.unit
def test_unknown_role_is_level_zero():
    assert role_level("owner") == 0


@pytest.mark.unit
def test_highest_role_picks_maximum():
    assert highest_role(["operador", "admin", "auditor"]) == "admin"
    assert highest_role([]) is None
    assert highest_role(["owner"]) is None


@pytest.mark.unit
def test_is_role_at_least():
    assert is_role_at_least(["admin"], AppRole.ADMIN) is True
    assert is_role_at_least(["superadmin"], "admin") is True
    assert is_role_at_least(["almoxarife", "operador"], "admin") is False
    assert is_role_at_least(["owner"], "operador") is False


@pytest.mark.unit
def test_no_roles_is_never_enough():
    assert is_role_at_least([], "operador") is False


@pytest.mark.unit
def test_display_names():
    assert display_name("superadmin") == "Super Administrador"
    assert display_name(AppRole.ALMOXARIFE) == "Almoxarife"
    assert display_name("custom") == "custom"
