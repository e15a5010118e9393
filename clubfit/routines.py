from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import select, delete, func
from sqlalchemy.orm import Session, selectinload

from .db import SessionLocal
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import User, CoachRoutine, RoutineExercise, RoutineCompletion
from .schemas import RoutineCreate, RoutineUpdate, RoutineExerciseIn, CompletionCreate, CompletionUpdate
from .time_utils import now as clock_now
from . import policy

RECENT_COMPLETIONS = 50


def _exercise_rows(exercises: list[RoutineExerciseIn]) -> list[RoutineExercise]:
    # order_index follows the order they were sent in
    return [
        RoutineExercise(
            name=ex.name,
            description=ex.description,
            duration=ex.duration,
            count_direction=ex.count_direction,
            rest_after=ex.rest_after,
            order_index=i,
            sets=ex.sets,
            reps=ex.reps,
            message=ex.message,
        )
        for i, ex in enumerate(exercises)
    ]


def _load_routine(db: Session, routine_id: int) -> CoachRoutine:
    r = db.get(CoachRoutine, routine_id)
    if r is None:
        raise NotFoundError("Routine not found")
    return r


def _completion_counts(db: Session, routine_ids: list[int]) -> dict[int, int]:
    if not routine_ids:
        return {}
    rows = db.execute(
        select(RoutineCompletion.routine_id, func.count(RoutineCompletion.id))
        .where(RoutineCompletion.routine_id.in_(routine_ids))
        .group_by(RoutineCompletion.routine_id)
    ).all()
    return {rid: n for rid, n in rows}


def exercise_to_dict(ex: RoutineExercise) -> dict:
    return {
        "id": ex.id,
        "name": ex.name,
        "description": ex.description,
        "duration": ex.duration,
        "count_direction": ex.count_direction,
        "rest_after": ex.rest_after,
        "order_index": ex.order_index,
        "sets": ex.sets,
        "reps": ex.reps,
        "message": ex.message,
    }

def completion_to_dict(c: RoutineCompletion) -> dict:
    return {
        "id": c.id,
        "routine_id": c.routine_id,
        "user_id": c.user_id,
        "workout_id": c.workout_id,
        "completed": c.completed,
        "exercises_completed": c.exercises_completed,
        "started_at": c.started_at.isoformat(),
        "completed_at": c.completed_at.isoformat() if c.completed_at else None,
    }

def routine_to_dict(r: CoachRoutine, completion_count: Optional[int] = None) -> dict:
    item = {
        "id": r.id,
        "coach": {"id": r.coach.id, "name": r.coach.name},
        "name": r.name,
        "description": r.description,
        "category": r.category.value,
        "pre_workout_message": r.pre_workout_message,
        "playlist_link": r.playlist_link,
        "is_active": r.is_active,
        "created_at": r.created_at.isoformat(),
        "exercises": [exercise_to_dict(ex) for ex in r.exercises],
    }
    if completion_count is not None:
        item["completion_count"] = completion_count
    return item


def list_routines(user: User, category=None, coach_only: bool = False, *, db: Optional[Session] = None) -> list[dict]:
    """
    Active routines, newest first, for picking one before a workout.
    coach_only narrows to the caller's own routines, and only means something for coaches/admins.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        q = (
            select(CoachRoutine)
            .options(selectinload(CoachRoutine.exercises), selectinload(CoachRoutine.coach))
            .where(CoachRoutine.is_active.is_(True))
            .order_by(CoachRoutine.created_at.desc(), CoachRoutine.id.desc())
        )
        if category is not None:
            q = q.where(CoachRoutine.category == category)
        if coach_only and policy.can_author_routines(user):
            q = q.where(CoachRoutine.coach_id == user.id)
        routines = db.execute(q).scalars().all()
        counts = _completion_counts(db, [r.id for r in routines])
        return [routine_to_dict(r, counts.get(r.id, 0)) for r in routines]
    finally:
        if owns:
            db.close()


def get_routine(routine_id: int, *, db: Optional[Session] = None) -> dict:
    owns = db is None
    db = db or SessionLocal()
    try:
        r = _load_routine(db, routine_id)
        recent = db.execute(
            select(RoutineCompletion)
            .where(RoutineCompletion.routine_id == r.id)
            .order_by(RoutineCompletion.started_at.desc(), RoutineCompletion.id.desc())
            .limit(RECENT_COMPLETIONS)
        ).scalars().all()
        item = routine_to_dict(r, _completion_counts(db, [r.id]).get(r.id, 0))
        item["completions"] = [completion_to_dict(c) for c in recent]
        return item
    finally:
        if owns:
            db.close()


def create_routine(user: User, data: RoutineCreate, *, db: Optional[Session] = None) -> CoachRoutine:
    owns = db is None
    db = db or SessionLocal()
    try:
        if not policy.can_author_routines(user):
            raise ForbiddenError("Coach access required")
        r = CoachRoutine(
            coach_id=user.id,
            name=data.name,
            description=data.description,
            category=data.category,
            pre_workout_message=data.pre_workout_message,
            playlist_link=data.playlist_link,
            is_active=True,
            created_at=clock_now(),
        )
        r.exercises = _exercise_rows(data.exercises)
        db.add(r)
        db.commit()
        db.refresh(r)
        logger.info(f"Routine {r.id} '{r.name}' created by user {user.id} with {len(data.exercises)} exercise(s)")
        return r
    finally:
        if owns:
            db.close()


def update_routine(user: User, routine_id: int, patch: RoutineUpdate, *, db: Optional[Session] = None) -> CoachRoutine:
    """
    Owner or admin. Given exercises replace the old list entirely.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        r = _load_routine(db, routine_id)
        if not policy.can_manage_routine(user, r):
            raise ForbiddenError("Not authorized to edit this routine")

        fields = patch.model_fields_set
        if "name" in fields and patch.name is not None:
            r.name = patch.name
        if "description" in fields:
            r.description = patch.description
        if "category" in fields and patch.category is not None:
            r.category = patch.category
        if "is_active" in fields and patch.is_active is not None:
            r.is_active = patch.is_active

        if patch.exercises is not None:
            db.execute(delete(RoutineExercise).where(RoutineExercise.routine_id == r.id))
            db.expire(r, ["exercises"])
            for ex in _exercise_rows(patch.exercises):
                ex.routine_id = r.id
                db.add(ex)

        db.commit()
        db.refresh(r)
        return r
    finally:
        if owns:
            db.close()


def delete_routine(user: User, routine_id: int, *, db: Optional[Session] = None) -> None:
    owns = db is None
    db = db or SessionLocal()
    try:
        r = _load_routine(db, routine_id)
        if not policy.can_manage_routine(user, r):
            raise ForbiddenError("Not authorized to delete this routine")
        db.delete(r)
        db.commit()
        logger.info(f"Routine {routine_id} deleted by user {user.id}")
    finally:
        if owns:
            db.close()


def record_completion(user: User, routine_id: int, data: CompletionCreate, *, db: Optional[Session] = None) -> RoutineCompletion:
    """Any user may start/finish a routine, this just writes down that they did."""
    owns = db is None
    db = db or SessionLocal()
    try:
        r = _load_routine(db, routine_id)
        at = clock_now()
        c = RoutineCompletion(
            routine_id=r.id,
            user_id=user.id,
            workout_id=data.workout_id,
            completed=data.completed,
            exercises_completed=data.exercises_completed,
            started_at=at,
            completed_at=at if data.completed else None,
        )
        db.add(c)
        db.commit()
        db.refresh(c)
        return c
    finally:
        if owns:
            db.close()


def update_completion(user: User, routine_id: int, patch: CompletionUpdate, *, db: Optional[Session] = None) -> RoutineCompletion:
    """
    Find a completion by completion_id, or by workout_id within this routine for this user,
    then update it. Only whoever recorded it may change it.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        if patch.completion_id is None and patch.workout_id is None:
            raise ValidationError("Completion ID or Workout ID required")

        if patch.completion_id is not None:
            c = db.get(RoutineCompletion, patch.completion_id)
            if c is not None and c.routine_id != routine_id:
                c = None
        else:
            c = db.execute(
                select(RoutineCompletion)
                .where(RoutineCompletion.workout_id == patch.workout_id)
                .where(RoutineCompletion.routine_id == routine_id)
                .where(RoutineCompletion.user_id == user.id)
                .order_by(RoutineCompletion.started_at.desc())
            ).scalars().first()
        if c is None:
            raise NotFoundError("Completion record not found")
        if c.user_id != user.id:
            raise ForbiddenError("Not authorized")

        if patch.completed is not None:
            c.completed = patch.completed
            if patch.completed:
                c.completed_at = clock_now()
        if patch.exercises_completed is not None:
            c.exercises_completed = patch.exercises_completed

        db.commit()
        db.refresh(c)
        return c
    finally:
        if owns:
            db.close()
