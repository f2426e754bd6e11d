from __future__ import annotations

import pytest

from leaveflow.exceptions import ValidationError
from leaveflow.models.enums import Role
from leaveflow.services.roles import (
    ADMINISTRATIVE_ROLES,
    is_administrative_role,
    is_approver_role,
    is_read_only_role,
    normalize_role,
)


@pytest.mark.parametrize("role", list(Role))
def test_canonical_names_resolve_to_themselves(role: Role) -> None:
    assert normalize_role(role.value) is role
    assert normalize_role(role) is role


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("hr", Role.HR_OFFICER),
        ("HR_Assistant", Role.HR_OFFICER),
        ("manager", Role.SUPERVISOR),
        ("directorate_head", Role.DIRECTOR),
        ("deputy-director", Role.DIRECTOR),
        ("HOD", Role.UNIT_HEAD),
        ("head of department", Role.UNIT_HEAD),
        ("internal_auditor", Role.AUDITOR),
        ("admin", Role.SYSTEM_ADMIN),
        ("SYS_ADMIN", Role.SYSTEM_ADMIN),
        ("regional_manager", Role.REGIONAL_MANAGER),
        ("division_head", Role.DIVISION_HEAD),
        ("  supervisor ", Role.SUPERVISOR),
    ],
)
def test_legacy_aliases(raw: str, expected: Role) -> None:
    assert normalize_role(raw) is expected


@pytest.mark.parametrize("raw", ["", "superuser", "hr director assistant"])
def test_unknown_role_is_rejected(raw: str) -> None:
    with pytest.raises(ValidationError):
        normalize_role(raw)


def test_role_classification() -> None:
    assert is_approver_role(Role.SUPERVISOR)
    assert is_approver_role(Role.CHIEF_DIRECTOR)
    assert not is_approver_role(Role.EMPLOYEE)
    assert not is_approver_role(Role.AUDITOR)

    assert is_read_only_role(Role.AUDITOR)
    assert not is_read_only_role(Role.HR_OFFICER)

    assert ADMINISTRATIVE_ROLES == {Role.HR_OFFICER, Role.HR_DIRECTOR, Role.SYSTEM_ADMIN}
    assert is_administrative_role(Role.SYSTEM_ADMIN)
    assert not is_administrative_role(Role.DIRECTOR)
