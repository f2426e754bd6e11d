from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from leaveflow.models.enums import DutyStation


class StaffContext(BaseModel):
    """Organizational attributes of a staff member from the directory."""

    staff_id: str
    duty_station: DutyStation | None = None
    directorate: str | None = None
    division: str | None = None
    unit: str | None = None
    supervisor_id: str | None = None
    grade: str | None = None
    position: str | None = None
    acting_officer_id: str | None = None
    active: bool = True


@runtime_checkable
class OrganizationDirectory(Protocol):
    """Interface for the organizational directory."""

    async def get_staff(self, staff_id: str) -> StaffContext | None:
        """Fetch a staff member's context. Returns None if not found."""
        ...

    async def list_active_staff(self) -> list[StaffContext]:
        """List all active staff."""
        ...


class InMemoryOrganizationDirectory:
    """In-memory stub implementation for development and tests."""

    def __init__(self) -> None:
        self._staff: dict[str, StaffContext] = {}

    def seed(self, staff: StaffContext) -> None:
        """Seed a staff member."""
        self._staff[staff.staff_id] = staff

    async def get_staff(self, staff_id: str) -> StaffContext | None:
        """Fetch a staff member's context. Returns None if not found."""
        return self._staff.get(staff_id)

    async def list_active_staff(self) -> list[StaffContext]:
        """List all active staff, ordered by id."""
        return sorted((s for s in self._staff.values() if s.active), key=lambda s: s.staff_id)


# ---------------------------------------------------------------------------
# Unit registry
# ---------------------------------------------------------------------------

HRMU = "HRMU"
AUDIT = "AUDIT"


@dataclass(frozen=True)
class UnitConfig:
    """A known unit, its directorate (None = reports to the chief director) and workflow flag."""

    unit: str
    directorate: str | None
    special_workflow: str | None = None


_FINANCE_ADMIN = "Finance & Administration Directorate"
_PPME = "Policy, Planning, Monitoring & Evaluation (PPME) Directorate"

DEFAULT_UNITS: tuple[UnitConfig, ...] = (
    UnitConfig("Ministerial Secretariat", None),
    UnitConfig("Protocol Unit", None),
    UnitConfig("Public Affairs / Communications Unit", None),
    UnitConfig("Policy, Planning, Monitoring & Evaluation (PPME)", None),
    UnitConfig("Internal Audit Unit", None, AUDIT),
    UnitConfig("Legal Unit", None),
    UnitConfig("Research, Statistics & Information Management (RSIM) Unit", None),
    UnitConfig("Procurement Unit", None),
    UnitConfig("Human Resource Management Unit (HRMU)", _FINANCE_ADMIN, HRMU),
    UnitConfig("Accounts Unit", _FINANCE_ADMIN),
    UnitConfig("Budget Unit", _FINANCE_ADMIN),
    UnitConfig("Stores Unit", _FINANCE_ADMIN),
    UnitConfig("Transport & Logistics Unit", _FINANCE_ADMIN),
    UnitConfig("Records / Registry Unit", _FINANCE_ADMIN),
    UnitConfig("Policy Analysis Unit", _PPME),
    UnitConfig("Monitoring & Evaluation Unit", _PPME),
    UnitConfig("Project Coordination Unit", _PPME),
    UnitConfig("ICT Unit", _PPME),
)


class UnitRegistry:
    """Maps unit names to their directorate and special-workflow flags."""

    def __init__(self, units: tuple[UnitConfig, ...] | list[UnitConfig] = DEFAULT_UNITS) -> None:
        self._units = tuple(units)

    def find(self, unit: str | None) -> UnitConfig | None:
        """Case-insensitive exact match first, then substring match either way."""
        if not unit:
            return None
        needle = unit.strip().lower()
        for config in self._units:
            if config.unit.lower() == needle:
                return config
        for config in self._units:
            name = config.unit.lower()
            if name in needle or needle in name:
                return config
        return None

    def reports_to_chief_director(self, unit: str | None, directorate: str | None) -> bool:
        config = self.find(unit)
        if config is not None:
            return config.directorate is None
        return not (directorate and directorate.strip())

    def is_hrmu(self, unit: str | None) -> bool:
        if not unit:
            return False
        config = self.find(unit)
        lowered = unit.lower()
        return (config is not None and config.special_workflow == HRMU) or (
            "human resource management" in lowered or "hrmu" in lowered
        )

    def is_internal_audit(self, unit: str | None) -> bool:
        if not unit:
            return False
        config = self.find(unit)
        return (config is not None and config.special_workflow == AUDIT) or "internal audit" in unit.lower()

    def directorate_for(self, unit: str | None) -> str | None:
        config = self.find(unit)
        return config.directorate if config is not None else None


# ---------------------------------------------------------------------------
# Position classifiers
# ---------------------------------------------------------------------------


def is_director_position(position: str | None, grade: str | None) -> bool:
    """Director-level staff: 'director' in the position title or grade."""
    return "director" in (position or "").lower() or "director" in (grade or "").lower()


def is_unit_head_position(position: str | None) -> bool:
    if not position:
        return False
    lowered = position.lower()
    return any(title in lowered for title in ("unit head", "head of unit", "unit manager"))


def requires_acting_officer(staff: StaffContext, units: UnitRegistry) -> bool:
    """Unit heads, directors and staff of the audit and legal units must name an acting officer."""
    return (
        is_unit_head_position(staff.position)
        or is_director_position(staff.position, staff.grade)
        or units.is_internal_audit(staff.unit)
        or (staff.unit or "").strip().lower() == "legal unit"
    )
