from __future__ import annotations

import datetime as dt
import random
import secrets
from typing import Optional

from loguru import logger
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .db import SessionLocal
from .errors import ConflictError, ForbiddenError, NotFoundError
from .models import ClubSession, ClubMember, Workout, WorkoutStatus, WorkoutReaction, Split, Activity, User
from .time_utils import now as clock_now
from . import metrics

# no 0/O or 1/I, people read these out loud
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
CODE_ATTEMPTS = 10

VIEW_SPLITS = 5
VIEW_ACTIVITIES = 3
VIEW_REACTIONS = 10
VIEW_REACTION_WINDOW_SEC = 30

LIST_LIMIT = 10
IDLE_MINUTES = 30


def generate_code(rng: Optional[random.Random] = None) -> str:
    rng = rng or secrets.SystemRandom()
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _code_in_use(db: Session, code: str) -> bool:
    q = select(ClubSession.id).where(ClubSession.code == code).where(ClubSession.is_active.is_(True))
    return db.execute(q).first() is not None


def _pick_code(db: Session, rng: Optional[random.Random] = None) -> str:
    """
    Up to CODE_ATTEMPTS tries for a code no active session is using.
    If every try collides the last one is used anyway: lookups only ever see active
    sessions and a clash is rare enough that a bounded loop beats an unbounded one.
    """
    code = generate_code(rng)
    attempts = 0
    while attempts < CODE_ATTEMPTS and _code_in_use(db, code):
        code = generate_code(rng)
        attempts += 1
    if attempts == CODE_ATTEMPTS:
        logger.warning(f"Club code retries exhausted, going with {code} unchecked")
    return code


def _open_membership(db: Session, session_id: int, user_id: int) -> Optional[ClubMember]:
    q = (
        select(ClubMember)
        .where(ClubMember.club_session_id == session_id)
        .where(ClubMember.user_id == user_id)
        .where(ClubMember.left_at.is_(None))
    )
    return db.execute(q).scalars().first()


def _get_session(db: Session, session_id: int) -> ClubSession:
    s = db.get(ClubSession, session_id)
    if s is None:
        raise NotFoundError("Club session not found")
    return s


def _close_memberships(db: Session, session_id: int, at: dt.datetime) -> int:
    result = db.execute(
        update(ClubMember)
        .where(ClubMember.club_session_id == session_id)
        .where(ClubMember.left_at.is_(None))
        .values(left_at=at)
    )
    return result.rowcount


def _user_brief(u: User) -> dict:
    return {"id": u.id, "name": u.name, "email": u.email}


def session_to_dict(s: ClubSession) -> dict:
    return {
        "id": s.id,
        "code": s.code,
        "name": s.name,
        "host_id": s.host_id,
        "is_active": s.is_active,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat() if s.end_time else None,
    }


def member_to_dict(m: ClubMember) -> dict:
    return {
        "id": m.id,
        "user_id": m.user_id,
        "user": _user_brief(m.user),
        "joined_at": m.joined_at.isoformat(),
        "left_at": m.left_at.isoformat() if m.left_at else None,
    }


def create_session(host_id: int, name: Optional[str] = None, rng: Optional[random.Random] = None, *, db: Optional[Session] = None) -> ClubSession:
    """
    Open a club session hosted by host_id and make the host its first member.
    ConflictError if the host already runs an active one.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        active = db.execute(
            select(ClubSession.id).where(ClubSession.host_id == host_id).where(ClubSession.is_active.is_(True))
        ).first()
        if active is not None:
            raise ConflictError("You already have an active club session", session_id=active[0])

        at = clock_now()
        s = ClubSession(host_id=host_id, code=_pick_code(db, rng), name=name or None, is_active=True, start_time=at)
        db.add(s)
        try:
            db.flush()
            db.add(ClubMember(user_id=host_id, club_session_id=s.id, joined_at=at))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("You already have an active club session")
        db.refresh(s)
        logger.info(f"Club session {s.id} ({s.code}) opened by user {host_id}")
        return s
    finally:
        if owns:
            db.close()


def join_by_code(user_id: int, code: str, *, db: Optional[Session] = None) -> ClubSession:
    """
    Join the active session with this code (any case).
    Already in it -> ConflictError carrying the session id, so the client can just go there.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        code = (code or "").strip().upper()
        s = db.execute(
            select(ClubSession)
            .where(ClubSession.code == code)
            .where(ClubSession.is_active.is_(True))
            .order_by(ClubSession.start_time.desc(), ClubSession.id.desc())
        ).scalars().first()
        if s is None:
            raise NotFoundError("No active club session with that code")

        if _open_membership(db, s.id, user_id) is not None:
            raise ConflictError("You are already in this session", session_id=s.id)

        db.add(ClubMember(user_id=user_id, club_session_id=s.id, joined_at=clock_now()))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("You are already in this session", session_id=s.id)
        logger.info(f"User {user_id} joined club session {s.id}")
        return s
    finally:
        if owns:
            db.close()


def end_session(session_id: int, caller_id: int, *, db: Optional[Session] = None) -> ClubSession:
    """
    Host ends the session. Everyone still in it is marked as left at the same moment.
    Ending an already ended session is a no-op.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        s = _get_session(db, session_id)
        if s.host_id != caller_id:
            raise ForbiddenError("Only the host can end this session")
        if s.is_active:
            at = clock_now()
            s.is_active = False
            s.end_time = at
            left = _close_memberships(db, s.id, at)
            db.commit()
            db.refresh(s)
            logger.info(f"Club session {s.id} ended by host, {left} member(s) released")
        return s
    finally:
        if owns:
            db.close()


def leave_session(session_id: int, user_id: int, *, db: Optional[Session] = None) -> None:
    """
    Close the caller's open membership. The host leaving does not end the session.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        m = _open_membership(db, session_id, user_id)
        if m is None:
            raise NotFoundError("You are not a member of this session")
        m.left_at = clock_now()
        db.commit()
        logger.info(f"User {user_id} left club session {session_id}")
    finally:
        if owns:
            db.close()


def _workout_view(db: Session, w: Workout, since: dt.datetime) -> dict:
    splits = db.execute(
        select(Split).where(Split.workout_id == w.id).order_by(Split.split_number.desc()).limit(VIEW_SPLITS)
    ).scalars().all()
    activities = db.execute(
        select(Activity).where(Activity.workout_id == w.id).order_by(Activity.timestamp.desc(), Activity.id.desc()).limit(VIEW_ACTIVITIES)
    ).scalars().all()
    reactions = db.execute(
        select(WorkoutReaction)
        .options(selectinload(WorkoutReaction.from_user))
        .where(WorkoutReaction.to_workout_id == w.id)
        .where(WorkoutReaction.created_at >= since)
        .order_by(WorkoutReaction.created_at.desc(), WorkoutReaction.id.desc())
        .limit(VIEW_REACTIONS)
    ).scalars().all()

    return {
        "id": w.id,
        "user": _user_brief(w.user),
        "category": w.category.value,
        "status": w.status.value,
        "start_time": w.start_time.isoformat(),
        "distance": w.distance,
        "distance_formatted": metrics.format_distance(w.distance) if w.distance else None,
        "recent_splits": [
            {
                "split_number": s.split_number,
                "distance": s.distance,
                "duration": s.duration,
                "pace": s.pace,
                "pace_formatted": metrics.format_pace(s.pace),
            }
            for s in splits
        ],
        "recent_activities": [
            {"name": a.name, "sets": a.sets, "reps": a.reps, "weight": a.weight, "timestamp": a.timestamp.isoformat()}
            for a in activities
        ],
        "recent_reactions": [
            {"emoji": r.emoji, "from_user": _user_brief(r.from_user), "created_at": r.created_at.isoformat()}
            for r in reactions
        ],
    }


def get_session_view(session_id: int, caller_id: int, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> dict:
    """
    What a club screen polls for: the session, who is in it right now and
    what each in-progress workout has been doing lately.

    Anyone who ever joined may look (an ended session still shows its final state);
    someone who never joined gets ForbiddenError.
    """
    owns = db is None
    db = db or SessionLocal()
    at = at or clock_now()
    try:
        s = _get_session(db, session_id)

        ever_joined = db.execute(
            select(ClubMember.id)
            .where(ClubMember.club_session_id == s.id)
            .where(ClubMember.user_id == caller_id)
        ).first()
        if ever_joined is None:
            raise ForbiddenError("You are not a member of this session")

        members = db.execute(
            select(ClubMember)
            .options(selectinload(ClubMember.user))
            .where(ClubMember.club_session_id == s.id)
            .where(ClubMember.left_at.is_(None))
            .order_by(ClubMember.joined_at)
        ).scalars().all()

        workouts = db.execute(
            select(Workout)
            .options(selectinload(Workout.user))
            .where(Workout.club_session_id == s.id)
            .where(Workout.status == WorkoutStatus.IN_PROGRESS)
            .order_by(Workout.start_time)
        ).scalars().all()

        since = at - dt.timedelta(seconds=VIEW_REACTION_WINDOW_SEC)
        view = session_to_dict(s)
        view["host"] = _user_brief(s.host)
        view["members"] = [member_to_dict(m) for m in members]
        view["workouts"] = [_workout_view(db, w, since) for w in workouts]
        return view
    finally:
        if owns:
            db.close()


def list_sessions(user_id: int, *, db: Optional[Session] = None) -> dict:
    """
    {'hosted': [...], 'joined': [...]}, most recent first, LIST_LIMIT each.
    'joined' leaves out sessions the user hosts and lists each session once.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        hosted = db.execute(
            select(ClubSession)
            .where(ClubSession.host_id == user_id)
            .order_by(ClubSession.start_time.desc(), ClubSession.id.desc())
            .limit(LIST_LIMIT)
        ).scalars().all()

        last_join = func.max(ClubMember.joined_at).label("last_join")
        joined_rows = db.execute(
            select(ClubSession, last_join)
            .join(ClubMember, ClubMember.club_session_id == ClubSession.id)
            .where(ClubMember.user_id == user_id)
            .where(ClubSession.host_id != user_id)
            .group_by(ClubSession.id)
            .order_by(last_join.desc())
            .limit(LIST_LIMIT)
        ).all()

        return {
            "hosted": [session_to_dict(s) for s in hosted],
            "joined": [session_to_dict(row[0]) for row in joined_rows],
        }
    finally:
        if owns:
            db.close()


def last_activity_at(db: Session, s: ClubSession) -> dt.datetime:
    """Latest of: session start, most recent member join, most recent update to a session workout."""
    latest_join = db.execute(
        select(func.max(ClubMember.joined_at)).where(ClubMember.club_session_id == s.id)
    ).scalar()
    latest_workout = db.execute(
        select(func.max(Workout.updated_at)).where(Workout.club_session_id == s.id)
    ).scalar()
    return max(t for t in (s.start_time, latest_join, latest_workout) if t is not None)


def expire_idle_sessions(idle_minutes: int = IDLE_MINUTES, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> list[int]:
    """
    End every active session that has been quiet for idle_minutes or more,
    releasing members exactly like end_session. Returns the ended session ids.
    """
    owns = db is None
    db = db or SessionLocal()
    at = at or clock_now()
    cutoff = at - dt.timedelta(minutes=idle_minutes)
    try:
        active = db.execute(select(ClubSession).where(ClubSession.is_active.is_(True))).scalars().all()
        ended = []
        for s in active:
            if last_activity_at(db, s) > cutoff:
                continue
            s.is_active = False
            s.end_time = at
            _close_memberships(db, s.id, at)
            ended.append(s.id)
        db.commit()
        if ended:
            logger.info(f"Expired {len(ended)} idle club session(s): {ended}")
        return ended
    finally:
        if owns:
            db.close()
