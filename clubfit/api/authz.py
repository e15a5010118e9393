from __future__ import annotations

from typing import Callable
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db
from clubfit.auth import read_access_token
from clubfit.errors import UnauthenticatedError, ForbiddenError
from clubfit.models import User, UserRole


def bearer_token(header: str | None) -> str:
    """
    'Bearer <jwt>' -> '<jwt>'. Scheme is case-insensitive and extra whitespace is ignored.
    A doubled 'Bearer Bearer <jwt>' from sloppy clients still works, the last part wins.
    """
    if not header:
        raise UnauthenticatedError("Not signed in")
    scheme, _, rest = header.strip().partition(" ")
    pieces = rest.split()
    if scheme.lower() != "bearer" or not pieces:
        raise UnauthenticatedError("Authorization header must be 'Bearer <token>'")
    return pieces[-1]


def get_current_user(
    db: Session = Depends(get_db),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> User:
    user_id = read_access_token(bearer_token(authorization))
    if user_id is None:
        raise UnauthenticatedError("Session expired or token invalid")

    # role comes from the database, not the token, so a role change applies straight away
    user = db.get(User, user_id)
    if user is None:
        raise UnauthenticatedError("Account no longer exists")
    return user


def require_roles(*allowed: UserRole | str) -> Callable[[User], User]:
    """
    Dependency factory: the signed in user, as long as their role is one of `allowed`.
    Strings are matched case-insensitively. No arguments means any role.
    """
    roles = {UserRole(str(getattr(r, "value", r)).upper()) for r in allowed} or set(UserRole)

    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError(f"Requires role {' or '.join(sorted(r.value for r in roles))}")
        return user

    return _dep
