from .db import Base
from sqlalchemy import Integer, String, Text, Float, Boolean, DateTime, ForeignKey, Enum, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import datetime as dt
import enum
from typing import Optional

from .time_utils import now


class UserRole(str, enum.Enum):
    USER = "USER"
    COACH = "COACH"
    ADMIN = "ADMIN"

class WorkoutCategory(str, enum.Enum):
    RUNNING = "RUNNING"
    STRENGTH = "STRENGTH"
    WALKING = "WALKING"
    SPORTS = "SPORTS"

class WorkoutStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False, default=UserRole.USER)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)

    # everything a user owns goes with them
    workouts: Mapped[list["Workout"]] = relationship(back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    streak: Mapped[Optional["Streak"]] = relationship(back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    weekly_stats: Mapped[list["WeeklyStat"]] = relationship(back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    hosted_sessions: Mapped[list["ClubSession"]] = relationship(back_populates="host", cascade="all, delete-orphan", passive_deletes=True)
    memberships: Mapped[list["ClubMember"]] = relationship(back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    sent_reactions: Mapped[list["WorkoutReaction"]] = relationship(back_populates="from_user", cascade="all, delete-orphan", passive_deletes=True)
    routines: Mapped[list["CoachRoutine"]] = relationship(back_populates="coach", cascade="all, delete-orphan", passive_deletes=True)
    routine_completions: Mapped[list["RoutineCompletion"]] = relationship(back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class Workout(Base):
    __tablename__ = "workouts"
    __table_args__ = (
        # one IN_PROGRESS workout per user, held by the database not just the service
        Index(
            "uq_workouts_one_in_progress_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'IN_PROGRESS'"),
            postgresql_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category: Mapped[WorkoutCategory] = mapped_column(Enum(WorkoutCategory), nullable=False)
    status: Mapped[WorkoutStatus] = mapped_column(Enum(WorkoutStatus), nullable=False, default=WorkoutStatus.IN_PROGRESS)
    start_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)
    end_time: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    total_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    goal_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    distance: Mapped[float | None] = mapped_column(Float, nullable=True)  # km
    goal_distance: Mapped[float | None] = mapped_column(Float, nullable=True)  # km
    pace: Mapped[float | None] = mapped_column(Float, nullable=True)  # min/km
    calories_burned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calories_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    club_session_id: Mapped[int | None] = mapped_column(ForeignKey("club_sessions.id", ondelete="SET NULL"), nullable=True, index=True)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now, onupdate=now)

    user: Mapped["User"] = relationship(back_populates="workouts")
    club_session: Mapped[Optional["ClubSession"]] = relationship(back_populates="workouts")
    splits: Mapped[list["Split"]] = relationship(back_populates="workout", cascade="all, delete-orphan", passive_deletes=True, order_by="Split.split_number")
    activities: Mapped[list["Activity"]] = relationship(back_populates="workout", cascade="all, delete-orphan", passive_deletes=True, order_by="Activity.timestamp")
    reactions: Mapped[list["WorkoutReaction"]] = relationship(back_populates="workout", cascade="all, delete-orphan", passive_deletes=True)


class Split(Base):
    __tablename__ = "splits"
    __table_args__ = (UniqueConstraint("workout_id", "split_number", name="uq_splits_workout_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workout_id: Mapped[int] = mapped_column(ForeignKey("workouts.id", ondelete="CASCADE"), nullable=False, index=True)
    split_number: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based
    distance: Mapped[float] = mapped_column(Float, nullable=False)  # km
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    pace: Mapped[float] = mapped_column(Float, nullable=False)  # min/km
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)

    workout: Mapped["Workout"] = relationship(back_populates="splits")


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workout_id: Mapped[int] = mapped_column(ForeignKey("workouts.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    sets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    elapsed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds since workout start
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)

    workout: Mapped["Workout"] = relationship(back_populates="activities")


class Streak(Base):
    __tablename__ = "streaks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_workout_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="streak")


class WeeklyStat(Base):
    __tablename__ = "weekly_stats"
    __table_args__ = (UniqueConstraint("user_id", "week_start", name="uq_weekly_stats_user_week"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    week_end: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    total_workouts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_distance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_calories: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    running_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    strength_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    walking_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sports_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user: Mapped["User"] = relationship(back_populates="weekly_stats")


class ClubSession(Base):
    __tablename__ = "club_sessions"
    __table_args__ = (
        # a host runs at most one active session; codes are deliberately not unique-indexed
        Index(
            "uq_club_sessions_one_active_per_host",
            "host_id",
            unique=True,
            sqlite_where=text("is_active"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_club_sessions_code_active", "code", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    host_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)
    end_time: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    host: Mapped["User"] = relationship(back_populates="hosted_sessions")
    members: Mapped[list["ClubMember"]] = relationship(back_populates="club_session", cascade="all, delete-orphan", passive_deletes=True)
    workouts: Mapped[list["Workout"]] = relationship(back_populates="club_session", passive_deletes=True)


class ClubMember(Base):
    __tablename__ = "club_members"
    __table_args__ = (
        Index(
            "uq_club_members_one_open_membership",
            "user_id",
            "club_session_id",
            unique=True,
            sqlite_where=text("left_at IS NULL"),
            postgresql_where=text("left_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    club_session_id: Mapped[int] = mapped_column(ForeignKey("club_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)
    left_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="memberships")
    club_session: Mapped["ClubSession"] = relationship(back_populates="members")


class WorkoutReaction(Base):
    __tablename__ = "workout_reactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    to_workout_id: Mapped[int] = mapped_column(ForeignKey("workouts.id", ondelete="CASCADE"), nullable=False, index=True)
    emoji: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now, index=True)

    from_user: Mapped["User"] = relationship(back_populates="sent_reactions")
    workout: Mapped["Workout"] = relationship(back_populates="reactions")


class CoachRoutine(Base):
    __tablename__ = "coach_routines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    coach_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[WorkoutCategory] = mapped_column(Enum(WorkoutCategory), nullable=False)
    pre_workout_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    playlist_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)

    coach: Mapped["User"] = relationship(back_populates="routines")
    exercises: Mapped[list["RoutineExercise"]] = relationship(back_populates="routine", cascade="all, delete-orphan", passive_deletes=True, order_by="RoutineExercise.order_index")
    completions: Mapped[list["RoutineCompletion"]] = relationship(back_populates="routine", cascade="all, delete-orphan", passive_deletes=True)


class RoutineExercise(Base):
    __tablename__ = "routine_exercises"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    routine_id: Mapped[int] = mapped_column(ForeignKey("coach_routines.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    count_direction: Mapped[str] = mapped_column(String(4), nullable=False, default="down")
    rest_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    sets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    routine: Mapped["CoachRoutine"] = relationship(back_populates="exercises")


class RoutineCompletion(Base):
    __tablename__ = "routine_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    routine_id: Mapped[int] = mapped_column(ForeignKey("coach_routines.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    workout_id: Mapped[int | None] = mapped_column(ForeignKey("workouts.id", ondelete="SET NULL"), nullable=True, index=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exercises_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=now)
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    routine: Mapped["CoachRoutine"] = relationship(back_populates="completions")
    user: Mapped["User"] = relationship(back_populates="routine_completions")
