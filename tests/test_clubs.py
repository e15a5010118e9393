# tests/test_clubs.py
import datetime as dt
import random
import pytest
from sqlalchemy.exc import IntegrityError

from clubfit import clubs, workouts
from clubfit.errors import ConflictError, ForbiddenError, NotFoundError
from clubfit.models import ClubMember, ClubSession
from clubfit.schemas import WorkoutCreate, SplitCreate, ActivityCreate
from clubfit.time_utils import now


def test_generate_code_alphabet_and_length():
    rng = random.Random(7)
    for _ in range(200):
        code = clubs.generate_code(rng)
        assert len(code) == 6
        assert set(code) <= set(clubs.CODE_ALPHABET)
    for ch in "01IO":
        assert ch not in clubs.CODE_ALPHABET


def test_create_session_adds_host_and_blocks_second(db_session, make_user):
    host = make_user("host@example.com")
    s = clubs.create_session(host.id, "Sunday long run", db=db_session)
    assert s.is_active is True
    assert s.name == "Sunday long run"

    members = db_session.query(ClubMember).filter(ClubMember.club_session_id == s.id).all()
    assert [m.user_id for m in members] == [host.id]

    with pytest.raises(ConflictError) as exc:
        clubs.create_session(host.id, db=db_session)
    assert exc.value.session_id == s.id

    # once ended, hosting again is fine
    clubs.end_session(s.id, host.id, db=db_session)
    assert clubs.create_session(host.id, db=db_session).id != s.id


def test_code_retries_are_bounded(db_session, make_user, monkeypatch):
    first = make_user("first@example.com")
    clash = clubs.create_session(first.id, db=db_session)

    calls = []
    def always_same(rng=None):
        calls.append(1)
        return clash.code
    monkeypatch.setattr(clubs, "generate_code", always_same)

    second = make_user("second@example.com")
    s = clubs.create_session(second.id, db=db_session)
    # first try plus CODE_ATTEMPTS retries, then the colliding code is taken anyway
    assert len(calls) == clubs.CODE_ATTEMPTS + 1
    assert s.code == clash.code


def test_join_by_code_case_insensitive_and_conflict(db_session, make_user):
    host = make_user("host@example.com")
    guest = make_user("guest@example.com")
    s = clubs.create_session(host.id, db=db_session)

    joined = clubs.join_by_code(guest.id, s.code.lower(), db=db_session)
    assert joined.id == s.id

    with pytest.raises(ConflictError) as exc:
        clubs.join_by_code(guest.id, s.code, db=db_session)
    assert exc.value.session_id == s.id

    with pytest.raises(NotFoundError):
        clubs.join_by_code(guest.id, "ZZZZZZ", db=db_session)


def test_join_ignores_ended_sessions(db_session, make_user):
    host = make_user("host@example.com")
    s = clubs.create_session(host.id, db=db_session)
    clubs.end_session(s.id, host.id, db=db_session)
    with pytest.raises(NotFoundError):
        clubs.join_by_code(make_user("late@example.com").id, s.code, db=db_session)


def test_end_session_host_only_and_releases_members(db_session, make_user):
    host = make_user("host@example.com")
    a = make_user("a@example.com")
    b = make_user("b@example.com")
    s = clubs.create_session(host.id, db=db_session)
    clubs.join_by_code(a.id, s.code, db=db_session)
    clubs.join_by_code(b.id, s.code, db=db_session)

    with pytest.raises(ForbiddenError):
        clubs.end_session(s.id, a.id, db=db_session)
    with pytest.raises(NotFoundError):
        clubs.end_session(9999, host.id, db=db_session)

    ended = clubs.end_session(s.id, host.id, db=db_session)
    assert ended.is_active is False
    assert ended.end_time is not None

    db_session.expire_all()
    members = db_session.query(ClubMember).filter(ClubMember.club_session_id == s.id).all()
    assert len(members) == 3
    assert all(m.left_at is not None for m in members)


def test_leave_session(db_session, make_user):
    host = make_user("host@example.com")
    guest = make_user("guest@example.com")
    s = clubs.create_session(host.id, db=db_session)

    with pytest.raises(NotFoundError):
        clubs.leave_session(s.id, guest.id, db=db_session)

    clubs.join_by_code(guest.id, s.code, db=db_session)
    clubs.leave_session(s.id, guest.id, db=db_session)
    with pytest.raises(NotFoundError):
        clubs.leave_session(s.id, guest.id, db=db_session)

    # host walking away doesn't end anything
    clubs.leave_session(s.id, host.id, db=db_session)
    assert db_session.get(ClubSession, s.id).is_active is True

    # and the guest can come back
    clubs.join_by_code(guest.id, s.code, db=db_session)


def test_session_view(db_session, make_user):
    host = make_user("host@example.com")
    runner = make_user("runner@example.com")
    stranger = make_user("stranger@example.com")
    s = clubs.create_session(host.id, db=db_session)
    clubs.join_by_code(runner.id, s.code, db=db_session)

    w = workouts.create_workout(runner.id, WorkoutCreate(category="RUNNING", club_session_id=s.id), db=db_session)
    for i in range(6):
        workouts.add_split(w.id, runner.id, SplitCreate(distance=1.0, duration=300 + i), db=db_session)
    for name in ("Drills", "Strides", "Hill", "Cooldown"):
        workouts.add_activity(w.id, runner.id, ActivityCreate(name=name), db=db_session)

    with pytest.raises(ForbiddenError):
        clubs.get_session_view(s.id, stranger.id, db=db_session)
    with pytest.raises(NotFoundError):
        clubs.get_session_view(9999, host.id, db=db_session)

    view = clubs.get_session_view(s.id, host.id, db=db_session)
    assert view["code"] == s.code
    assert {m["user_id"] for m in view["members"]} == {host.id, runner.id}
    assert len(view["workouts"]) == 1

    wv = view["workouts"][0]
    assert [sp["split_number"] for sp in wv["recent_splits"]] == [6, 5, 4, 3, 2]
    assert len(wv["recent_activities"]) == 3
    assert wv["recent_reactions"] == []

    # left members can still look, they just aren't listed
    clubs.leave_session(s.id, runner.id, db=db_session)
    view = clubs.get_session_view(s.id, runner.id, db=db_session)
    assert {m["user_id"] for m in view["members"]} == {host.id}


def test_list_sessions_hosted_and_joined(db_session, make_user):
    me = make_user("me@example.com")
    friend = make_user("friend@example.com")
    mine = clubs.create_session(me.id, db=db_session)
    theirs = clubs.create_session(friend.id, db=db_session)
    clubs.join_by_code(me.id, theirs.code, db=db_session)
    clubs.leave_session(theirs.id, me.id, db=db_session)
    clubs.join_by_code(me.id, theirs.code, db=db_session)

    out = clubs.list_sessions(me.id, db=db_session)
    assert [s["id"] for s in out["hosted"]] == [mine.id]
    # rejoining doesn't list the session twice
    assert [s["id"] for s in out["joined"]] == [theirs.id]


def test_expire_idle_sessions(db_session, make_user):
    host = make_user("host@example.com")
    guest = make_user("guest@example.com")
    s = clubs.create_session(host.id, db=db_session)
    clubs.join_by_code(guest.id, s.code, db=db_session)
    t = now()

    assert clubs.expire_idle_sessions(30, at=t + dt.timedelta(minutes=5), db=db_session) == []
    assert db_session.get(ClubSession, s.id).is_active is True

    ended = clubs.expire_idle_sessions(30, at=t + dt.timedelta(minutes=31), db=db_session)
    assert ended == [s.id]
    db_session.expire_all()
    assert db_session.get(ClubSession, s.id).is_active is False
    open_members = db_session.query(ClubMember).filter(ClubMember.club_session_id == s.id, ClubMember.left_at.is_(None)).count()
    assert open_members == 0


def test_database_allows_one_active_session_per_host(db_session, make_user):
    host = make_user("host@example.com")
    s = clubs.create_session(host.id, db=db_session)

    # straight to the table, no service pre-check
    db_session.add(ClubSession(host_id=host.id, code="ZZZZZZ", is_active=True, start_time=now()))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

    # ended sessions don't count against the host
    db_session.add(ClubSession(host_id=host.id, code="YYYYYY", is_active=False, start_time=now(), end_time=now()))
    db_session.commit()
    assert db_session.query(ClubSession).filter(ClubSession.host_id == host.id, ClubSession.is_active.is_(True)).count() == 1
    assert s.is_active


def test_database_allows_one_open_membership(db_session, make_user):
    host = make_user("host@example.com")
    guest = make_user("guest@example.com")
    s = clubs.create_session(host.id, db=db_session)
    clubs.join_by_code(guest.id, s.code, db=db_session)

    db_session.add(ClubMember(user_id=guest.id, club_session_id=s.id, joined_at=now()))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

    # after leaving, a fresh open membership is fine next to the closed one
    clubs.leave_session(s.id, guest.id, db=db_session)
    db_session.add(ClubMember(user_id=guest.id, club_session_id=s.id, joined_at=now()))
    db_session.commit()
    rows = db_session.query(ClubMember).filter(ClubMember.club_session_id == s.id, ClubMember.user_id == guest.id).all()
    assert sorted(m.left_at is None for m in rows) == [False, True]


def test_create_session_race_becomes_conflict(db_session, make_user, monkeypatch):
    host = make_user("host@example.com")

    # another request for the same host commits between the pre-check and our insert
    def competing_insert(db, rng=None):
        db.add(ClubSession(host_id=host.id, code="RACE22", is_active=True, start_time=now()))
        db.commit()
        return "MINE22"
    monkeypatch.setattr(clubs, "_pick_code", competing_insert)

    with pytest.raises(ConflictError):
        clubs.create_session(host.id, db=db_session)

    active = db_session.query(ClubSession).filter(ClubSession.host_id == host.id, ClubSession.is_active.is_(True)).all()
    assert [s.code for s in active] == ["RACE22"]


def test_join_race_becomes_conflict_with_session_id(db_session, make_user, monkeypatch):
    host = make_user("host@example.com")
    guest = make_user("guest@example.com")
    s = clubs.create_session(host.id, db=db_session)
    clubs.join_by_code(guest.id, s.code, db=db_session)

    # pre-check misses the membership a parallel join already wrote
    monkeypatch.setattr(clubs, "_open_membership", lambda db, session_id, user_id: None)
    with pytest.raises(ConflictError) as exc:
        clubs.join_by_code(guest.id, s.code, db=db_session)
    assert exc.value.session_id == s.id

    open_rows = db_session.query(ClubMember).filter(
        ClubMember.club_session_id == s.id, ClubMember.user_id == guest.id, ClubMember.left_at.is_(None)
    ).count()
    assert open_rows == 1
