# tests/conftest.py
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from clubfit.db import Base  # also switches on sqlite foreign keys for every engine
from clubfit.models import User, UserRole
from clubfit.auth import hash_password


@pytest.fixture()
def db_session(tmp_path):
    # file-based sqlite so multiple connections see the same data
    db_file = tmp_path / "test_clubfit.db"
    engine = create_engine(f"sqlite+pysqlite:///{db_file}", future=True, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def make_user(db_session: Session):
    """
    make_user("a@example.com") -> User, creating it on first use.
    """
    def _make(email: str, role: UserRole = UserRole.USER, name: str | None = None) -> User:
        u = db_session.query(User).filter(User.email == email).first()
        if u is None:
            u = User(email=email, name=name or email.split("@")[0], password_hash=hash_password("password1"), role=role)
            db_session.add(u)
            db_session.commit()
            db_session.refresh(u)
        elif u.role != role:
            u.role = role
            db_session.commit()
            db_session.refresh(u)
        return u
    return _make


class FakeClock:
    """Monotonic clock the tests move by hand."""
    def __init__(self, start: float = 1000.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
