"""
Caller identity and role checks for externally reachable operations.

Entry points declare the roles they need with ``@requires_role(...)``; the
guard runs before the wrapped operation does anything.
"""

import functools
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from .database import User

ROLES = ("admin", "moderator", "user")


class AuthenticationError(Exception):
    """Raised when an operation is called without a known caller."""
    pass


class AuthorizationError(Exception):
    """Raised when the caller lacks a required role."""
    pass


@dataclass(frozen=True)
class Caller:
    user_id: str
    handle: str
    role: str


def resolve_caller(session: Session, handle: Optional[str]) -> Caller:
    """
    Look up the caller by handle.

    Raises:
        AuthenticationError: If no handle is given or no such user exists
        AuthorizationError: If the stored role is not one of ROLES
    """
    if not handle:
        raise AuthenticationError("Unauthorized")
    user = session.query(User).filter_by(handle=handle).first()
    if user is None:
        raise AuthenticationError(f"Unknown user: {handle}")
    if user.role not in ROLES:
        raise AuthorizationError(f"Forbidden: unknown role {user.role!r}")
    return Caller(user_id=user.id, handle=user.handle, role=user.role)


def assert_role(caller: Optional[Caller], roles: Iterable[str]) -> None:
    if caller is None:
        raise AuthenticationError("Unauthorized")
    allowed = set(roles)
    if caller.role not in allowed:
        raise AuthorizationError(f"Forbidden: requires role {', '.join(sorted(allowed))}")


def requires_role(*roles: str) -> Callable:
    """
    Decorator for service methods taking the caller as first argument.

    Example:
        @requires_role("admin")
        def backfill_skill_summaries(self, caller, dry_run=False): ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self, caller, *args, **kwargs):
            assert_role(caller, roles)
            return func(self, caller, *args, **kwargs)

        wrapper.required_roles = roles
        return wrapper
    return decorator
