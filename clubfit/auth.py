"""
Passwords and access tokens for ClubFit accounts.

Tokens are HS256 JWTs issued by "clubfit". They carry the user id as `sub` and the role the user
had at sign-in, for clients to show the right screens. The API never trusts that role, it
reloads the user on every request.
"""
from __future__ import annotations

import os
import datetime as dt
from typing import Optional

import jwt
from passlib.context import CryptContext
from dotenv import load_dotenv

from .models import User

load_dotenv()

JWT_SECRET = os.getenv("CLUBFIT_JWT_SECRET", "CHANGE_ME_DEV_ONLY")
JWT_ALGORITHM = os.getenv("CLUBFIT_JWT_ALGORITHM", "HS256")
JWT_EXPIRE_SEC = int(os.getenv("CLUBFIT_JWT_EXPIRE_SEC", "28800"))
TOKEN_ISSUER = "clubfit"

# PBKDF2 keeps us clear of bcrypt build problems
_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(pw: str) -> str:
    return _pwd.hash(pw)

def verify_password(pw: str, pw_hash: Optional[str]) -> bool:
    """False for a wrong password and for a stored hash passlib can't read."""
    if not pw_hash:
        return False
    try:
        return _pwd.verify(pw, pw_hash)
    except ValueError:
        return False


def issue_access_token(user: User, *, expires_in: int = JWT_EXPIRE_SEC) -> str:
    issued = dt.datetime.now(dt.timezone.utc)
    claims = {
        "iss": TOKEN_ISSUER,
        "sub": str(user.id),  # PyJWT wants a string subject
        "role": user.role.value,
        "iat": issued,
        "exp": issued + dt.timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)

def read_access_token(token: str) -> Optional[int]:
    """
    The user id a token was issued for, or None when it is expired, tampered with,
    from another issuer or has no numeric subject.
    """
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            issuer=TOKEN_ISSUER,
            options={"require": ["exp", "sub", "iss"]},
        )
    except jwt.PyJWTError:
        return None
    sub = claims["sub"]
    return int(sub) if str(sub).isdigit() else None
