"""Authorization guards evaluated before procedure handlers.

A guard is a pure callable taking a :class:`ProcedureContext` and returning
the context to hand to the next stage, or raising a :class:`ProcedureError`.
Chains run in order, so authentication always precedes role checks.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable

from shared.http.errors import ForbiddenError, UnauthenticatedError
from shared.models.identity import Role

from .context import ProcedureContext

Guard = Callable[[ProcedureContext], ProcedureContext]


class GuardLevel(str, Enum):
    """Capability a caller needs to invoke a procedure."""

    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


def require_session(context: ProcedureContext) -> ProcedureContext:
    """Reject anonymous callers."""

    if context.identity is None:
        raise UnauthenticatedError()
    return context


def require_role(role: Role) -> Guard:
    """Return a guard that admits only identities holding ``role``.

    The returned guard is meant to follow :func:`require_session`; evaluated
    on its own it still reports a missing session as unauthenticated.
    """

    def _require_role(context: ProcedureContext) -> ProcedureContext:
        identity = require_session(context).identity
        assert identity is not None
        if identity.role is not role:
            raise ForbiddenError(f"{role.value.capitalize()} access required")
        return context

    _require_role.__name__ = f"require_role_{role.value.lower()}"
    return _require_role


require_admin = require_role(Role.ADMIN)

GUARD_CHAINS: dict[GuardLevel, tuple[Guard, ...]] = {
    GuardLevel.PUBLIC: (),
    GuardLevel.AUTHENTICATED: (require_session,),
    GuardLevel.ADMIN: (require_session, require_admin),
}


def guards_for(level: GuardLevel) -> tuple[Guard, ...]:
    return GUARD_CHAINS[level]


def run_guards(guards: Iterable[Guard], context: ProcedureContext) -> ProcedureContext:
    """Apply ``guards`` in order, threading the context through each one."""

    for guard in guards:
        context = guard(context)
    return context


__all__ = [
    "GUARD_CHAINS",
    "Guard",
    "GuardLevel",
    "guards_for",
    "require_admin",
    "require_role",
    "require_session",
    "run_guards",
]
