from __future__ import annotations

from leaveflow.exceptions import ValidationError
from leaveflow.models.enums import Role

# Legacy spellings accepted from upstream identity providers. Keys are
# lowercased with dashes and spaces folded to underscores.
_LEGACY_ALIASES: dict[str, Role] = {
    "staff": Role.EMPLOYEE,
    "manager": Role.SUPERVISOR,
    "line_manager": Role.SUPERVISOR,
    "hod": Role.UNIT_HEAD,
    "head_of_department": Role.UNIT_HEAD,
    "head_of_independent_unit": Role.UNIT_HEAD,
    "directorate_head": Role.DIRECTOR,
    "deputy_director": Role.DIRECTOR,
    "hr": Role.HR_OFFICER,
    "hr_assistant": Role.HR_OFFICER,
    "internal_auditor": Role.AUDITOR,
    "admin": Role.SYSTEM_ADMIN,
    "sys_admin": Role.SYSTEM_ADMIN,
}


def _fold(raw: str) -> str:
    return raw.strip().lower().replace("-", "_").replace(" ", "_")


def _build_lookup() -> dict[str, Role]:
    lookup = {_fold(role.value): role for role in Role}
    for alias, role in _LEGACY_ALIASES.items():
        if alias in lookup:
            raise RuntimeError(f"Role alias '{alias}' shadows canonical role {lookup[alias]}")
        lookup[alias] = role
    return lookup


_ROLE_LOOKUP: dict[str, Role] = _build_lookup()

APPROVER_ROLES: frozenset[Role] = frozenset(
    {
        Role.SUPERVISOR,
        Role.UNIT_HEAD,
        Role.DIVISION_HEAD,
        Role.DIRECTOR,
        Role.REGIONAL_MANAGER,
        Role.HR_OFFICER,
        Role.HR_DIRECTOR,
        Role.CHIEF_DIRECTOR,
    }
)
READ_ONLY_ROLES: frozenset[Role] = frozenset({Role.AUDITOR})
ADMINISTRATIVE_ROLES: frozenset[Role] = frozenset({Role.HR_OFFICER, Role.HR_DIRECTOR, Role.SYSTEM_ADMIN})

# Roles whose approval counts as the mandatory HR validation of a request.
VALIDATING_ROLES: frozenset[Role] = frozenset({Role.HR_OFFICER, Role.HR_DIRECTOR})

# Roles that record PSC/OHCS clearance outcomes on study leave.
CLEARANCE_ROLES: frozenset[Role] = frozenset({Role.CHIEF_DIRECTOR, Role.HR_DIRECTOR})

# Next authority for a stale step whose chain offers no higher non-validating level.
ESCALATION_TARGETS: dict[Role, Role] = {
    Role.HR_OFFICER: Role.HR_DIRECTOR,
    Role.SUPERVISOR: Role.CHIEF_DIRECTOR,
    Role.UNIT_HEAD: Role.CHIEF_DIRECTOR,
    Role.DIVISION_HEAD: Role.CHIEF_DIRECTOR,
    Role.REGIONAL_MANAGER: Role.CHIEF_DIRECTOR,
    Role.DIRECTOR: Role.CHIEF_DIRECTOR,
}


def normalize_role(raw: str | Role) -> Role:
    """Resolve a canonical or legacy role name to a ``Role``.

    Raises ``ValidationError`` for anything not in the lookup table.
    """
    if isinstance(raw, Role):
        return raw
    role = _ROLE_LOOKUP.get(_fold(raw))
    if role is None:
        raise ValidationError(f"Unknown role '{raw}'")
    return role


def is_approver_role(role: Role) -> bool:
    return role in APPROVER_ROLES


def is_read_only_role(role: Role) -> bool:
    return role in READ_ONLY_ROLES


def is_administrative_role(role: Role) -> bool:
    return role in ADMINISTRATIVE_ROLES


def can_record_clearance(role: Role) -> bool:
    return role in CLEARANCE_ROLES
