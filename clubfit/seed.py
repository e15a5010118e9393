from __future__ import annotations
import argparse
import datetime as dt
import os
import random
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy.orm import Session

from .db import Base, SessionLocal, init_db
from .errors import ClubFitError
from .logger import setup_logger
from .models import User, UserRole, WorkoutCategory
from .auth import hash_password
from .schemas import WorkoutCreate, SplitCreate, ActivityCreate, WorkoutUpdate
from . import workouts, clubs, users

load_dotenv()

DEFAULT_RNG_SEED = 1337

STRENGTH_MOVES = ["Squat", "Deadlift", "Bench Press", "Pull Up", "Overhead Press", "Lunge"]


def wipe_data(db: Session) -> None:
    """
    Delete rows from child -> parent order.
    Doesn't drop tables.
    """
    for table in reversed(Base.metadata.sorted_tables):
        db.execute(table.delete())
    db.commit()


def ensure_user(db: Session, email: str, name: str, role: UserRole = UserRole.USER) -> User:
    """
    Creates a demo user with password 'changeme' if missing; ensures the role.
    """
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name=name, password_hash=hash_password("changeme"), role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
    elif user.role != role:
        user.role = role
        db.commit()
        db.refresh(user)
    return user


def _demo_workout(db: Session, rng: random.Random, user: User, start: dt.datetime) -> None:
    """
    One completed workout going through the normal lifecycle, so streaks and weekly stats fill in.
    """
    category = rng.choice(list(WorkoutCategory))
    w = workouts.create_workout(user.id, WorkoutCreate(category=category), at=start, db=db)
    elapsed = 0

    if category in (WorkoutCategory.RUNNING, WorkoutCategory.WALKING):
        per_km = rng.randint(270, 390) if category == WorkoutCategory.RUNNING else rng.randint(540, 720)
        for _ in range(rng.randint(2, 6)):
            duration = per_km + rng.randint(-15, 15)
            elapsed += duration
            workouts.add_split(w.id, user.id, SplitCreate(distance=1.0, duration=duration), at=start + dt.timedelta(seconds=elapsed), db=db)
    else:
        for move in rng.sample(STRENGTH_MOVES, k=3):
            elapsed += rng.randint(240, 600)
            workouts.add_activity(
                w.id, user.id,
                ActivityCreate(name=move, sets=rng.randint(3, 5), reps=rng.randint(5, 12), weight=float(rng.randint(20, 100)), elapsed_at=elapsed),
                at=start + dt.timedelta(seconds=elapsed),
                db=db,
            )

    end = start + dt.timedelta(seconds=max(elapsed, 600))
    workouts.update_workout(w.id, user.id, WorkoutUpdate(status="COMPLETED", estimate_calories=True), at=end, db=db)


def seed_dataset(
    *,
    users_count: int = 3,
    days_span: int = 14,
    rng_seed: int = DEFAULT_RNG_SEED,
    reset: bool = False,
    db: Optional[Session] = None,
) -> dict:
    """
    Demo data for local development and tests.

    Creates:
      - 1 coach, N users
      - completed workouts over the last `days_span` days (roughly two days in three)
      - an active club session hosted by the first user with the second one in it

    Returns a dict summary.
    """
    owns = db is None
    if owns:
        init_db()
    db = db or SessionLocal()

    try:
        if reset:
            wipe_data(db)

        rng = random.Random(rng_seed)
        coach = ensure_user(db, "coach@example.com", "Coach", UserRole.COACH)
        people = [ensure_user(db, f"user{i + 1}@example.com", f"User {i + 1}") for i in range(users_count)]

        today = dt.datetime.combine(dt.date.today(), dt.time(0, 0))
        total = 0
        for u in people:
            for back in range(days_span - 1, 0, -1):
                if rng.random() > 0.66:
                    continue
                start = today - dt.timedelta(days=back) + dt.timedelta(hours=rng.randint(6, 19), minutes=rng.randint(0, 59))
                _demo_workout(db, rng, u, start)
                total += 1

        session_id = None
        if len(people) >= 2:
            try:
                s = clubs.create_session(people[0].id, "Morning crew", rng=rng, db=db)
                clubs.join_by_code(people[1].id, s.code, db=db)
                session_id = s.id
            except ClubFitError as exc:
                # re-running without --reset, the host already has one going
                logger.info(f"Demo club session skipped: {exc.detail}")

        return {"coach_id": coach.id, "users": len(people), "workouts": total, "club_session_id": session_id}
    finally:
        if owns:
            db.close()


def main(argv: Optional[list[str]] = None) -> None:
    """
    CLI entrypoint: python -m clubfit.seed [options]
    """
    parser = argparse.ArgumentParser(description="Maintenance and demo data for the ClubFit database.")
    parser.add_argument("--init-db", action="store_true", help="Create all tables.")
    parser.add_argument(
        "--bootstrap-admin", nargs="?", const="", default=None, metavar="EMAIL",
        help="Promote a user to ADMIN (defaults to CLUBFIT_BOOTSTRAP_ADMIN_EMAIL).",
    )
    parser.add_argument(
        "--expire-idle-clubs", nargs="?", type=int, const=clubs.IDLE_MINUTES, default=None, metavar="MINUTES",
        help=f"End club sessions idle for this many minutes (default {clubs.IDLE_MINUTES}).",
    )
    parser.add_argument("--demo", action="store_true", help="Create demo users, workouts and a club session.")
    parser.add_argument("--users", type=int, default=3, help="Demo users to create.")
    parser.add_argument("--days", type=int, default=14, help="Days of demo history.")
    parser.add_argument("--rng-seed", type=int, default=DEFAULT_RNG_SEED, help="Random seed.")
    parser.add_argument("--reset", action="store_true", help="Delete existing rows before seeding.")
    parser.add_argument("--log-level", type=str, default=None, help="Overrides CLUBFIT_LOG_LEVEL.")

    args = parser.parse_args(argv)
    setup_logger(args.log_level)

    if not (args.init_db or args.demo or args.bootstrap_admin is not None or args.expire_idle_clubs is not None):
        parser.print_help()
        return

    if args.init_db:
        init_db()
        logger.info("Tables created")

    if args.demo:
        summary = seed_dataset(
            users_count=max(0, args.users),
            days_span=max(1, args.days),
            rng_seed=args.rng_seed,
            reset=args.reset,
        )
        logger.info(
            f"Seed complete: coach_id={summary['coach_id']}, users={summary['users']}, "
            f"workouts={summary['workouts']}, club_session_id={summary['club_session_id']}"
        )

    if args.bootstrap_admin is not None:
        email = args.bootstrap_admin or os.getenv("CLUBFIT_BOOTSTRAP_ADMIN_EMAIL")
        if not email:
            raise SystemExit("No email given and CLUBFIT_BOOTSTRAP_ADMIN_EMAIL is not set")
        try:
            admin = users.bootstrap_admin(email)
        except ClubFitError as exc:
            raise SystemExit(exc.detail)
        logger.info(f"{admin.email} is ADMIN")

    if args.expire_idle_clubs is not None:
        ended = clubs.expire_idle_sessions(max(1, args.expire_idle_clubs))
        logger.info(f"Ended {len(ended)} idle club session(s)")


if __name__ == "__main__":
    main()
