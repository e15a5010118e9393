from __future__ import annotations

import math
from typing import Optional

from loguru import logger
from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session, selectinload

from .db import SessionLocal
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import User, UserRole, Workout, WorkoutStatus, CoachRoutine
from .workouts import workout_to_dict
from . import policy


def user_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "role": u.role.value,
        "created_at": u.created_at.isoformat(),
    }


def _require_admin(admin: User) -> None:
    if not policy.can_moderate_users(admin):
        raise ForbiddenError("Admin access required")


def _get_user(db: Session, user_id: int) -> User:
    u = db.get(User, user_id)
    if u is None:
        raise NotFoundError("User not found")
    return u


def list_users(admin: User, search: Optional[str] = None, page: int = 1, limit: int = 20, *, db: Optional[Session] = None) -> dict:
    """
    Newest users first, with how many workouts and routines each has.
    search matches name or email, case-insensitive.
    Returns {'users': [...], 'pagination': {page, limit, total, total_pages}}.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        _require_admin(admin)
        page = max(1, page)
        limit = max(1, limit)

        conds = []
        if search:
            pattern = f"%{search.strip().lower()}%"
            conds.append(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))

        total = db.execute(select(func.count(User.id)).where(*conds)).scalar_one()

        workout_count = (
            select(func.count(Workout.id)).where(Workout.user_id == User.id).correlate(User).scalar_subquery()
        )
        routine_count = (
            select(func.count(CoachRoutine.id)).where(CoachRoutine.coach_id == User.id).correlate(User).scalar_subquery()
        )
        rows = db.execute(
            select(User, workout_count.label("workouts"), routine_count.label("routines"))
            .where(*conds)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        users = []
        for u, n_workouts, n_routines in rows:
            item = user_to_dict(u)
            item["counts"] = {"workouts": n_workouts, "routines": n_routines}
            users.append(item)

        return {
            "users": users,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
        }
    finally:
        if owns:
            db.close()


def change_role(admin: User, target_id: int, role: UserRole, *, db: Optional[Session] = None) -> User:
    owns = db is None
    db = db or SessionLocal()
    try:
        _require_admin(admin)
        if not policy.can_change_role(admin, target_id):
            raise ValidationError("Cannot change your own role")
        u = _get_user(db, target_id)
        before = u.role
        u.role = role
        db.commit()
        db.refresh(u)
        logger.info(f"Admin {admin.id} changed role of user {u.id}: {before.value} -> {u.role.value}")
        return u
    finally:
        if owns:
            db.close()


def delete_user(admin: User, target_id: int, *, db: Optional[Session] = None) -> None:
    """
    Remove a user and everything they own in one transaction.
    An admin can't delete themselves.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        _require_admin(admin)
        if admin.id == target_id:
            raise ValidationError("Cannot delete your own account")
        u = _get_user(db, target_id)
        db.delete(u)
        db.commit()
        logger.info(f"Admin {admin.id} deleted user {target_id}")
    finally:
        if owns:
            db.close()


def user_workout_history(admin: User, target_id: int, *, db: Optional[Session] = None) -> dict:
    """
    Everything an admin needs to look at one user's training:
    the user, all workouts newest first with splits/activities, and summary stats.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        _require_admin(admin)
        u = _get_user(db, target_id)
        workouts = db.execute(
            select(Workout)
            .options(selectinload(Workout.splits), selectinload(Workout.activities))
            .where(Workout.user_id == u.id)
            .order_by(Workout.start_time.desc(), Workout.id.desc())
        ).scalars().all()

        category_counts = {}
        for w in workouts:
            category_counts[w.category.value] = category_counts.get(w.category.value, 0) + 1

        stats = {
            "total_workouts": len(workouts),
            "completed_workouts": sum(1 for w in workouts if w.status == WorkoutStatus.COMPLETED),
            "total_duration": sum(w.total_duration or 0 for w in workouts),
            "total_distance": sum(w.distance or 0 for w in workouts),
            "total_calories": sum(w.calories_burned or 0 for w in workouts),
            "category_counts": category_counts,
        }
        return {
            "user": user_to_dict(u),
            "workouts": [workout_to_dict(w) for w in workouts],
            "stats": stats,
        }
    finally:
        if owns:
            db.close()


def bootstrap_admin(email: str, *, db: Optional[Session] = None) -> User:
    """
    Promote the user with this email to ADMIN. Meant to be run once from the command line
    on a fresh deployment, so there's someone to hand out roles.
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        email = (email or "").strip().lower()
        u = db.execute(select(User).where(func.lower(User.email) == email)).scalars().first()
        if u is None:
            raise NotFoundError(f"No user with email {email}")
        if u.role != UserRole.ADMIN:
            u.role = UserRole.ADMIN
            db.commit()
            db.refresh(u)
            logger.warning(f"User {u.id} ({u.email}) promoted to ADMIN by bootstrap")
        return u
    finally:
        if owns:
            db.close()
