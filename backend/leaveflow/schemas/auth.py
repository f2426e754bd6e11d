from __future__ import annotations

from pydantic import BaseModel

from leaveflow.models.enums import Role


class ActorContext(BaseModel):
    """Identity of the caller, supplied by the upstream identity provider."""

    staff_id: str
    role: Role = Role.EMPLOYEE
