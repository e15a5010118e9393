# tests/test_auth.py
import datetime as dt
import jwt

from clubfit import auth
from clubfit.models import UserRole


def test_password_hash_round_trip_and_bad_hashes():
    h = auth.hash_password("password1")
    assert h != "password1"
    assert auth.verify_password("password1", h)
    assert not auth.verify_password("password2", h)
    # unreadable or missing stored hashes just fail
    assert not auth.verify_password("password1", "not-a-hash")
    assert not auth.verify_password("password1", None)


def test_token_carries_user_and_role(make_user):
    coach = make_user("coach@example.com", UserRole.COACH)
    token = auth.issue_access_token(coach)

    assert auth.read_access_token(token) == coach.id
    claims = jwt.decode(token, options={"verify_signature": False})
    assert claims["role"] == "COACH"
    assert claims["iss"] == "clubfit"


def test_rejected_tokens(make_user):
    u = make_user("u@example.com")

    assert auth.read_access_token(auth.issue_access_token(u, expires_in=-5)) is None
    assert auth.read_access_token("garbage") is None

    forged = jwt.encode({"iss": "clubfit", "sub": str(u.id), "exp": dt.datetime.now(dt.timezone.utc) + dt.timedelta(minutes=5)},
                        "some-other-secret", algorithm="HS256")
    assert auth.read_access_token(forged) is None

    def signed(claims):
        return jwt.encode(claims, auth.JWT_SECRET, algorithm=auth.JWT_ALGORITHM)

    later = dt.datetime.now(dt.timezone.utc) + dt.timedelta(minutes=5)
    assert auth.read_access_token(signed({"iss": "elsewhere", "sub": str(u.id), "exp": later})) is None
    assert auth.read_access_token(signed({"iss": "clubfit", "sub": "abc", "exp": later})) is None
    # no expiry at all is not accepted
    assert auth.read_access_token(signed({"iss": "clubfit", "sub": str(u.id)})) is None
