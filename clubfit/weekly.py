from __future__ import annotations

import datetime as dt
from typing import Optional

from loguru import logger
from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .db import SessionLocal
from .models import WeeklyStat, Workout, WorkoutStatus, WorkoutCategory
from .streaks import get_streak
from .time_utils import week_bounds, now as clock_now

CATEGORY_COUNTERS = {
    WorkoutCategory.RUNNING.value: "running_count",
    WorkoutCategory.STRENGTH.value: "strength_count",
    WorkoutCategory.WALKING.value: "walking_count",
    WorkoutCategory.SPORTS.value: "sports_count",
}

# dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def workout_contribution(workout: Workout) -> dict:
    """
    What one completed workout adds to its week.
    Missing duration/distance/calories count as 0, exactly one category counter is 1.
    """
    category = getattr(workout.category, "value", workout.category)
    values = {
        "total_workouts": 1,
        "total_duration": int(workout.total_duration or 0),
        "total_distance": float(workout.distance or 0),
        "total_calories": int(workout.calories_burned or 0),
    }
    for counter in CATEGORY_COUNTERS.values():
        values[counter] = 0
    values[CATEGORY_COUNTERS[category]] = 1
    return values


def add_completed_workout(user_id: int, workout: Workout, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> WeeklyStat:
    """
    Upsert the (user, week) row for the week containing `at` (defaults to now).
    Creates it with this workout's numbers, otherwise increments in place.

    The increment happens inside one INSERT ... ON CONFLICT statement so concurrent
    completions for the same user can't overwrite each other.
    """
    owns = db is None
    db = db or SessionLocal()
    at = at or clock_now()
    start, end = week_bounds(at)
    values = workout_contribution(workout)
    try:
        dialect = db.get_bind().dialect.name
        insert_fn = _UPSERT_INSERTS.get(dialect)
        if insert_fn is not None:
            stmt = insert_fn(WeeklyStat).values(user_id=user_id, week_start=start, week_end=end, **values)
            increments = {}
            for col in values:
                increments[col] = getattr(WeeklyStat, col) + getattr(stmt.excluded, col)
            stmt = stmt.on_conflict_do_update(index_elements=["user_id", "week_start"], set_=increments)
            db.execute(stmt)
        else:
            # no native upsert: conditional increment, insert when nothing matched
            increments = {}
            for col, val in values.items():
                increments[col] = getattr(WeeklyStat, col) + val
            result = db.execute(
                update(WeeklyStat)
                .where(WeeklyStat.user_id == user_id)
                .where(WeeklyStat.week_start == start)
                .values(**increments)
            )
            if result.rowcount == 0:
                db.add(WeeklyStat(user_id=user_id, week_start=start, week_end=end, **values))
        db.commit()

        row = db.execute(
            select(WeeklyStat)
            .where(WeeklyStat.user_id == user_id)
            .where(WeeklyStat.week_start == start)
            .execution_options(populate_existing=True)
        ).scalars().one()
        logger.debug(f"Weekly stat for user {user_id} week {start.date()}: {row.total_workouts} workouts")
        return row
    finally:
        if owns:
            db.close()


def weekly_stat_to_dict(row: Optional[WeeklyStat]) -> Optional[dict]:
    if row is None:
        return None
    return {
        "week_start": row.week_start.isoformat(),
        "week_end": row.week_end.isoformat(),
        "total_workouts": row.total_workouts,
        "total_duration": row.total_duration,
        "total_distance": row.total_distance,
        "total_calories": row.total_calories,
        "running_count": row.running_count,
        "strength_count": row.strength_count,
        "walking_count": row.walking_count,
        "sports_count": row.sports_count,
    }


def get_week(user_id: int, at: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> Optional[WeeklyStat]:
    owns = db is None
    db = db or SessionLocal()
    try:
        start, _ = week_bounds(at or clock_now())
        q = (
            select(WeeklyStat)
            .where(WeeklyStat.user_id == user_id)
            .where(WeeklyStat.week_start == start)
        )
        return db.execute(q).scalars().first()
    finally:
        if owns:
            db.close()


def stats_overview(user_id: int, at: Optional[dt.datetime] = None, weeks: int = 4, *, db: Optional[Session] = None) -> dict:
    """
    Everything the stats screen shows:
    - 'streak': current/longest/last workout
    - 'current_week': this week's totals, None if nothing completed yet
    - 'history': the latest `weeks` weekly rows, newest first
    - 'all_time': totals over every COMPLETED workout
    - 'by_category': completed workout count per category
    """
    owns = db is None
    db = db or SessionLocal()
    try:
        streak = get_streak(user_id, db=db)
        current = get_week(user_id, at, db=db)

        history_rows = db.execute(
            select(WeeklyStat)
            .where(WeeklyStat.user_id == user_id)
            .order_by(WeeklyStat.week_start.desc())
            .limit(weeks)
        ).scalars().all()

        completed = (Workout.user_id == user_id, Workout.status == WorkoutStatus.COMPLETED)
        totals = db.execute(
            select(
                func.count(Workout.id),
                func.coalesce(func.sum(Workout.total_duration), 0),
                func.coalesce(func.sum(Workout.distance), 0.0),
                func.coalesce(func.sum(Workout.calories_burned), 0),
            ).where(*completed)
        ).one()

        by_category: dict[str, int] = {}
        for category in WorkoutCategory:
            by_category[category.value] = 0
        grouped = db.execute(
            select(Workout.category, func.count(Workout.id)).where(*completed).group_by(Workout.category)
        ).all()
        for category, count in grouped:
            by_category[getattr(category, "value", category)] = count

        return {
            "streak": {
                "current_streak": streak.current_streak if streak else 0,
                "longest_streak": streak.longest_streak if streak else 0,
                "last_workout_at": streak.last_workout_at.isoformat() if streak and streak.last_workout_at else None,
            },
            "current_week": weekly_stat_to_dict(current),
            "history": [weekly_stat_to_dict(r) for r in history_rows],
            "all_time": {
                "total_workouts": int(totals[0]),
                "total_duration": int(totals[1]),
                "total_distance": float(totals[2]),
                "total_calories": int(totals[3]),
            },
            "by_category": by_category,
        }
    finally:
        if owns:
            db.close()
