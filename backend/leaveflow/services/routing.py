"""Workflow router: derives a request's approval chain from organizational context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from leaveflow.models.enums import DutyStation, Role
from leaveflow.services.directory import UnitRegistry, is_director_position

if TYPE_CHECKING:
    from leaveflow.models.enums import LeaveType
    from leaveflow.services.directory import StaffContext

logger = logging.getLogger(__name__)

_FIELD_STATIONS = frozenset({DutyStation.REGION, DutyStation.DISTRICT})


@dataclass(frozen=True)
class StepTemplate:
    """One level of a computed chain, before it is persisted."""

    level: int
    required_role: Role
    assigned_approver_id: str | None = None


class WorkflowRouter:
    """Deterministic chain builder.

    Senior staff go straight to the HR director and then the chief director.
    Everyone else starts with their supervisor and always ends with the HR
    officer's validation; the levels in between depend on duty station,
    unit, division and directorate. Levels are numbered from 1 without gaps.
    """

    def __init__(self, units: UnitRegistry | None = None) -> None:
        self._units = units or UnitRegistry()

    def build_chain(self, staff: StaffContext, leave_type: LeaveType, days: float) -> list[StepTemplate]:
        if is_director_position(staff.position, staff.grade):
            roles: list[tuple[Role, str | None]] = [(Role.HR_DIRECTOR, None), (Role.CHIEF_DIRECTOR, None)]
        elif staff.duty_station is None or staff.duty_station == DutyStation.HQ:
            roles = self._headquarters_chain(staff)
        elif staff.duty_station in _FIELD_STATIONS:
            roles = self._field_chain(staff)
        else:
            roles = [self._supervisor_step(staff), (Role.HR_OFFICER, None)]

        chain = [
            StepTemplate(level=index, required_role=role, assigned_approver_id=approver)
            for index, (role, approver) in enumerate(roles, start=1)
        ]
        logger.debug(
            "Chain for staff=%s type=%s days=%s: %s",
            staff.staff_id,
            leave_type,
            days,
            [step.required_role.value for step in chain],
        )
        return chain

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _supervisor_step(staff: StaffContext) -> tuple[Role, str | None]:
        supervisor = staff.supervisor_id
        if supervisor == staff.staff_id:
            supervisor = None
        return Role.SUPERVISOR, supervisor

    def _headquarters_chain(self, staff: StaffContext) -> list[tuple[Role, str | None]]:
        roles = [self._supervisor_step(staff)]
        if staff.unit:
            roles.append((Role.UNIT_HEAD, None))
        if staff.division:
            roles.append((Role.DIVISION_HEAD, None))
        if self._units.reports_to_chief_director(staff.unit, staff.directorate):
            roles.append((Role.CHIEF_DIRECTOR, None))
        else:
            roles.append((Role.DIRECTOR, None))
        if self._units.is_hrmu(staff.unit):
            roles.append((Role.HR_DIRECTOR, None))
        roles.append((Role.HR_OFFICER, None))
        return roles

    def _field_chain(self, staff: StaffContext) -> list[tuple[Role, str | None]]:
        roles = [self._supervisor_step(staff), (Role.REGIONAL_MANAGER, None)]
        if staff.directorate or self._units.directorate_for(staff.unit):
            roles.append((Role.DIRECTOR, None))
        roles.append((Role.HR_OFFICER, None))
        return roles
