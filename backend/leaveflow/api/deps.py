# ruff: noqa: B008
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header

from leaveflow.container import LeaveCore, get_core
from leaveflow.exceptions import PermissionDeniedError
from leaveflow.schemas.auth import ActorContext
from leaveflow.services.roles import is_administrative_role, is_read_only_role, normalize_role


async def get_actor_context(
    x_staff_id: str = Header(min_length=1, max_length=64),
    x_role: str = Header(default="EMPLOYEE"),
) -> ActorContext:
    """Extract dev identity from request headers; legacy role names are accepted."""
    return ActorContext(staff_id=x_staff_id, role=normalize_role(x_role))


ActorDep = Annotated[ActorContext, Depends(get_actor_context)]


def get_leave_core() -> LeaveCore:
    return get_core()


CoreDep = Annotated[LeaveCore, Depends(get_leave_core)]


async def require_writer(actor: ActorDep) -> ActorContext:
    """Reject read-only roles on state-changing endpoints."""
    if is_read_only_role(actor.role):
        raise PermissionDeniedError(f"Role {actor.role} is read-only")
    return actor


WriterDep = Annotated[ActorContext, Depends(require_writer)]


async def require_administrator(actor: ActorDep) -> ActorContext:
    """Require an administrative role for the request."""
    if not is_administrative_role(actor.role):
        raise PermissionDeniedError("Administrative role required")
    return actor


AdminDep = Annotated[ActorContext, Depends(require_administrator)]
