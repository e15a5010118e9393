from __future__ import annotations

import datetime as dt
from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import SessionLocal
from .models import Streak
from .time_utils import days_between, now as clock_now


def next_streak_value(current: int, last_workout_at: Optional[dt.datetime], completed_at: dt.datetime) -> int:
    """
    Work out the new current streak from the last completion day.

    - never completed anything -> 1
    - same calendar day        -> unchanged (second workout of the day doesn't count twice)
    - the next day             -> +1
    - a gap of 2+ days         -> back to 1
    - last day in the future   -> unchanged, clock skew shouldn't punish anyone
    """
    if last_workout_at is None:
        return 1
    diff_days = days_between(last_workout_at, completed_at)
    if diff_days == 1:
        return current + 1
    if diff_days > 1:
        return 1
    return current


def _lock_streak(db: Session, user_id: int) -> Optional[Streak]:
    q = select(Streak).where(Streak.user_id == user_id).with_for_update()
    return db.execute(q).scalars().first()


def record_completion(user_id: int, completed_at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> Streak:
    """
    Fold one workout completion into the user's streak row, creating it if missing.
    Row is locked for the read-modify-write so two devices completing at once can't lose an update.
    """
    owns = db is None
    db = db or SessionLocal()
    completed_at = completed_at or clock_now()
    try:
        streak = _lock_streak(db, user_id)
        if streak is None:
            try:
                streak = Streak(user_id=user_id, current_streak=0, longest_streak=0)
                db.add(streak)
                db.flush()
            except IntegrityError:
                # someone else created it first, use theirs
                db.rollback()
                streak = _lock_streak(db, user_id)

        before = streak.current_streak
        streak.current_streak = next_streak_value(streak.current_streak, streak.last_workout_at, completed_at)
        streak.longest_streak = max(streak.longest_streak, streak.current_streak)
        streak.last_workout_at = completed_at
        db.commit()
        db.refresh(streak)

        if streak.current_streak != before:
            logger.debug(f"Streak for user {user_id}: {before} -> {streak.current_streak} (longest {streak.longest_streak})")
        return streak
    finally:
        if owns:
            db.close()


def get_streak(user_id: int, *, db: Optional[Session] = None) -> Optional[Streak]:
    owns = db is None
    db = db or SessionLocal()
    try:
        return db.execute(select(Streak).where(Streak.user_id == user_id)).scalars().first()
    finally:
        if owns:
            db.close()
