"""
Caller identity as handed over by the upstream auth gateway.

The gateway verifies the session and forwards the user id and role in the
X-User-Id / X-User-Role headers. This module only reads them.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from .errors import Forbidden, Unauthenticated

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Caller:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: str = Header("user"),
) -> Caller:
    """Dependency returning the authenticated caller, 401 when absent."""
    if not x_user_id or not x_user_id.strip().isdigit():
        raise Unauthenticated()
    return Caller(id=int(x_user_id), role=x_user_role.strip().lower())


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    """Dependency for admin-only routes, 403 for everyone else."""
    if not caller.is_admin:
        raise Forbidden()
    return caller
