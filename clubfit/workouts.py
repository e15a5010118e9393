from __future__ import annotations # for forward references

import datetime as dt
from typing import Optional

from loguru import logger
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .db import SessionLocal # Session management
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Workout, WorkoutStatus, Split, Activity, ClubSession, ClubMember
from .schemas import WorkoutCreate, SplitCreate, ActivityCreate, WorkoutUpdate
from .time_utils import elapsed_seconds, now as clock_now
from . import metrics, streaks, weekly


def _owned_workout(db: Session, workout_id: int, user_id: int, *, in_progress: bool = False, for_update: bool = False) -> Workout:
    """
    Load a workout only if the caller owns it (and, optionally, it's still running).
    Missing, someone else's and already-finished all look the same from outside.
    """
    q = select(Workout).where(Workout.id == workout_id).where(Workout.user_id == user_id)
    if in_progress:
        q = q.where(Workout.status == WorkoutStatus.IN_PROGRESS)
    if for_update:
        q = q.with_for_update()
    w = db.execute(q).scalars().first()
    if w is None:
        if in_progress:
            raise NotFoundError("Active workout not found")
        raise NotFoundError("Workout not found")
    return w


def split_to_dict(s: Split) -> dict:
    return {
        "id": s.id,
        "workout_id": s.workout_id,
        "split_number": s.split_number,
        "distance": s.distance,
        "duration": s.duration,
        "pace": s.pace,
        "pace_formatted": metrics.format_pace(s.pace),
        "timestamp": s.timestamp.isoformat(),
    }

def activity_to_dict(a: Activity) -> dict:
    return {
        "id": a.id,
        "workout_id": a.workout_id,
        "name": a.name,
        "sets": a.sets,
        "reps": a.reps,
        "weight": a.weight,
        "duration": a.duration,
        "elapsed_at": a.elapsed_at,
        "notes": a.notes,
        "timestamp": a.timestamp.isoformat(),
    }

def workout_to_dict(w: Workout, *, children: bool = True) -> dict:
    """
    Flatten a workout for the API, with display strings alongside the raw numbers.
    """
    item = {
        "id": w.id,
        "user_id": w.user_id,
        "category": w.category.value,
        "status": w.status.value,
        "start_time": w.start_time.isoformat(),
        "end_time": w.end_time.isoformat() if w.end_time else None,
        "total_duration": w.total_duration,
        "goal_duration": w.goal_duration,
        "distance": w.distance,
        "goal_distance": w.goal_distance,
        "pace": w.pace,
        "calories_burned": w.calories_burned,
        "calories_source": w.calories_source,
        "notes": w.notes,
        "club_session_id": w.club_session_id,
        # Nice looking strings for the summary screen
        "duration_formatted": metrics.format_duration(w.total_duration) if w.total_duration is not None else None,
        "pace_formatted": metrics.format_pace(w.pace) if w.pace is not None else None,
        "distance_formatted": metrics.format_distance(w.distance) if w.distance is not None else None,
    }
    if children:
        item["splits"] = [split_to_dict(s) for s in w.splits]
        item["activities"] = [activity_to_dict(a) for a in w.activities]
    return item


def get_active_workout(user_id: int, *, db: Optional[Session] = None) -> Optional[Workout]:
    owns = db is None
    db = db or SessionLocal()
    try:
        q = (
            select(Workout)
            .where(Workout.user_id == user_id)
            .where(Workout.status == WorkoutStatus.IN_PROGRESS)
        )
        return db.execute(q).scalars().first()
    finally:
        if owns:
            db.close()


def create_workout(user_id: int, data: WorkoutCreate, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> Workout:
    """
    Start a workout for user_id.

    Fails with ConflictError while another workout of theirs is IN_PROGRESS. The pre-check
    gives the friendly message, the partial unique index catches two requests racing past it.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        if get_active_workout(user_id, db=db) is not None:
            raise ConflictError("You already have an active workout")

        if data.club_session_id is not None:
            membership = db.execute(
                select(ClubMember)
                .join(ClubSession, ClubSession.id == ClubMember.club_session_id)
                .where(ClubMember.club_session_id == data.club_session_id)
                .where(ClubMember.user_id == user_id)
                .where(ClubMember.left_at.is_(None))
                .where(ClubSession.is_active.is_(True))
            ).scalars().first()
            if membership is None:
                raise ValidationError("Club session is not active or you are not in it")

        w = Workout(
            user_id=user_id,
            category=data.category,
            status=WorkoutStatus.IN_PROGRESS,
            start_time=at or clock_now(),
            goal_duration=data.goal_duration,
            goal_distance=data.goal_distance,
            club_session_id=data.club_session_id,
        )
        db.add(w)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("You already have an active workout")
        db.refresh(w)
        logger.info(f"Workout {w.id} started by user {user_id} ({w.category.value})")
        return w
    finally:
        if owns:
            db.close()


def get_workout(workout_id: int, user_id: int, *, db: Optional[Session] = None) -> Workout:
    """
    One workout with splits (by number) and activities (by time). Owner only.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        q = (
            select(Workout)
            .options(selectinload(Workout.splits), selectinload(Workout.activities))
            .where(Workout.id == workout_id)
            .where(Workout.user_id == user_id)
        )
        w = db.execute(q).scalars().first()
        if w is None:
            raise NotFoundError("Workout not found")
        return w
    finally:
        if owns:
            db.close()


def list_workouts(
        user_id: int,
        limit: int = 20,
        offset: int = 0,
        status: Optional[WorkoutStatus] = None,
        category=None,
        *,
        db: Optional[Session] = None
) -> list[Workout]:
    """
    The user's workouts, newest start first, optionally filtered by status/category.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        q = (
            select(Workout)
            .options(selectinload(Workout.splits), selectinload(Workout.activities))
            .where(Workout.user_id == user_id)
            .order_by(Workout.start_time.desc(), Workout.id.desc())
        )
        if status is not None:
            q = q.where(Workout.status == status)
        if category is not None:
            q = q.where(Workout.category == category)
        q = q.offset(offset).limit(limit)
        return list(db.execute(q).scalars().all())
    finally:
        if owns:
            db.close()


def add_split(workout_id: int, user_id: int, data: SplitCreate, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> Split:
    """
    Append a split to a running workout the caller owns.

    split_number = splits so far + 1. The workout row is locked while counting and the
    (workout_id, split_number) constraint rejects a duplicate number if two inserts race anyway.
    Workout distance is then recomputed from every split in one UPDATE, never incremented.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        w = _owned_workout(db, workout_id, user_id, in_progress=True, for_update=True)

        count = db.execute(select(func.count(Split.id)).where(Split.workout_id == w.id)).scalar_one()
        s = Split(
            workout_id=w.id,
            split_number=count + 1,
            distance=data.distance,
            duration=data.duration,
            pace=metrics.compute_pace(data.duration, data.distance),
            timestamp=at or clock_now(),
        )
        db.add(s)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Another split was recorded at the same time, try again")

        total = select(func.sum(Split.distance)).where(Split.workout_id == w.id).scalar_subquery()
        db.execute(
            update(Workout)
            .where(Workout.id == w.id)
            .values(distance=total, updated_at=clock_now())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.expire(w)
        db.refresh(s)
        return s
    finally:
        if owns:
            db.close()


def add_activity(workout_id: int, user_id: int, data: ActivityCreate, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> Activity:
    owns = db is None
    db = db or SessionLocal()
    try:
        w = _owned_workout(db, workout_id, user_id, in_progress=True)
        a = Activity(
            workout_id=w.id,
            name=data.name,
            sets=data.sets,
            reps=data.reps,
            weight=data.weight,
            duration=data.duration,
            elapsed_at=data.elapsed_at,
            notes=data.notes,
            timestamp=at or clock_now(),
        )
        db.add(a)
        # counts as club activity for idle detection
        w.updated_at = clock_now()
        db.commit()
        db.refresh(a)
        return a
    finally:
        if owns:
            db.close()


def remove_activity(workout_id: int, user_id: int, activity_id: int, *, db: Optional[Session] = None) -> None:
    """
    Delete one activity from a workout the caller owns, whatever its status.
    The activity has to actually belong to that workout.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        w = _owned_workout(db, workout_id, user_id)
        a = db.execute(
            select(Activity).where(Activity.id == activity_id).where(Activity.workout_id == w.id)
        ).scalars().first()
        if a is None:
            raise NotFoundError("Activity not found")
        db.delete(a)
        db.commit()
    finally:
        if owns:
            db.close()


def _record_completion_side_effects(w: Workout, at: dt.datetime, db: Session) -> None:
    """
    Streak + weekly stats for a workout that is already committed as COMPLETED.
    The workout is the source of truth, so a failure here is logged and left for repair.
    """
    try:
        streaks.record_completion(w.user_id, at, db=db)
    except Exception:
        db.rollback()
        logger.exception(f"Streak update failed for completed workout {w.id} (user {w.user_id})")

    try:
        weekly.add_completed_workout(w.user_id, w, at, db=db)
    except Exception:
        db.rollback()
        logger.exception(f"Weekly stat update failed for completed workout {w.id} (user {w.user_id})")


def update_workout(workout_id: int, user_id: int, patch: WorkoutUpdate, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> Workout:
    """
    Apply a partial update from the owner.

    - status=COMPLETED: only from IN_PROGRESS. Sets end_time, total_duration (given or
      measured from start_time), pace when a distance is known, then updates streak and
      weekly stats.
    - status=CANCELLED: only from IN_PROGRESS. Sets end_time, no stats.
    - calories/notes/distance: applied whatever the status.
    A status change asked of a finished workout is ignored, the other fields still apply.
    """
    owns = db is None
    db = db or SessionLocal()
    at = at or clock_now()
    try:
        w = _owned_workout(db, workout_id, user_id, for_update=True)
        fields = patch.model_fields_set

        was_running = w.status == WorkoutStatus.IN_PROGRESS
        completing = patch.status == WorkoutStatus.COMPLETED.value and was_running
        cancelling = patch.status == WorkoutStatus.CANCELLED.value and was_running
        if patch.status is not None and not was_running:
            logger.debug(f"Ignoring status={patch.status} for workout {w.id}, already {w.status.value}")

        if "distance" in fields:
            w.distance = patch.distance

        if "calories_burned" in fields:
            w.calories_burned = patch.calories_burned
            w.calories_source = (patch.calories_source or "manual") if patch.calories_burned is not None else None

        if "notes" in fields:
            w.notes = patch.notes

        if completing:
            w.status = WorkoutStatus.COMPLETED
            w.end_time = at
            w.total_duration = patch.total_duration or elapsed_seconds(w.start_time, at)
            if w.distance:
                w.pace = metrics.compute_pace(w.total_duration, w.distance)
            if patch.estimate_calories and w.calories_burned is None:
                w.calories_burned = metrics.estimate_calories(w.category, w.total_duration / 60)
                w.calories_source = "estimated"

        if cancelling:
            w.status = WorkoutStatus.CANCELLED
            w.end_time = at

        db.commit()
        db.refresh(w)

        if completing:
            logger.info(f"Workout {w.id} completed by user {user_id}: {w.total_duration}s, {w.distance or 0} km")
            _record_completion_side_effects(w, at, db)
        elif cancelling:
            logger.info(f"Workout {w.id} cancelled by user {user_id}")

        return get_workout(w.id, user_id, db=db)
    finally:
        if owns:
            db.close()


def delete_workout(workout_id: int, user_id: int, *, db: Optional[Session] = None) -> None:
    """
    Owner deletes a workout in any status. Splits, activities and reactions go with it.
    Streak/weekly rows are left as they are.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        w = _owned_workout(db, workout_id, user_id)
        db.delete(w)
        db.commit()
        logger.info(f"Workout {workout_id} deleted by user {user_id}")
    finally:
        if owns:
            db.close()
