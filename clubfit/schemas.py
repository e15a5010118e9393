from pydantic import BaseModel, Field, field_validator, EmailStr
from typing import Literal, Optional

from .models import WorkoutCategory, UserRole

# Reactions a club member can send, nothing else gets through
REACTION_EMOJIS = ("💪", "🔥", "⚡", "👏", "🏃", "❤️", "🎉", "💯")

CALORIE_SOURCES = {"manual", "estimated"}


class WorkoutCreate(BaseModel):
    """Schema for starting a workout.

    -'category': one of RUNNING, STRENGTH, WALKING, SPORTS (case-insensitive).
    -'goal_duration' / 'goal_distance': optional targets, seconds and km.
    -'club_session_id': optional, ties the workout to a club session the caller is in.
    """
    category: WorkoutCategory = Field(..., description="RUNNING, STRENGTH, WALKING or SPORTS")
    goal_duration: Optional[int] = Field(None, gt=0, le=86400, description="Target duration in seconds")
    goal_distance: Optional[float] = Field(None, gt=0, le=500, description="Target distance in km")
    club_session_id: Optional[int] = Field(None, description="Club session this workout belongs to")

    @field_validator("category", mode="before")
    @classmethod
    def normalise_category(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class SplitCreate(BaseModel):
    """One split: distance covered and how long it took."""
    distance: float = Field(..., gt=0, le=100, description="Split distance in km")
    duration: int = Field(..., gt=0, le=86400, description="Split duration in seconds")


class ActivityCreate(BaseModel):
    """Schema for logging an exercise/activity inside a workout.
    Only the name is required, everything else is whatever the user tracked.
    """
    name: str = Field(..., min_length=1, max_length=120)
    sets: Optional[int] = Field(None, ge=1, le=100)
    reps: Optional[int] = Field(None, ge=1, le=1000)
    weight: Optional[float] = Field(None, ge=0, le=1000, description="Weight in kg")
    duration: Optional[int] = Field(None, ge=0, le=86400, description="Seconds")
    elapsed_at: Optional[int] = Field(None, ge=0, description="Seconds since workout start")
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class WorkoutUpdate(BaseModel):
    """Partial update of a workout.

    Any field left out is untouched. 'status' only accepts the two terminal states,
    moving back to IN_PROGRESS is not a thing.
    """
    status: Optional[Literal["COMPLETED", "CANCELLED"]] = None
    calories_burned: Optional[int] = Field(None, ge=0, le=20000)
    calories_source: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)
    distance: Optional[float] = Field(None, ge=0, le=1000, description="km")
    total_duration: Optional[int] = Field(None, gt=0, description="Seconds, computed from start time if left out")
    estimate_calories: bool = Field(False, description="Fill calories from MET table on completion when none given")

    @field_validator("calories_source")
    @classmethod
    def validate_calories_source(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        value = v.strip().lower()
        if value not in CALORIE_SOURCES:
            raise ValueError(f"calories_source must be one of: {', '.join(sorted(CALORIE_SOURCES))}")
        return value


class ClubSessionCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=120)


class JoinClubSession(BaseModel):
    code: str = Field(..., min_length=1, max_length=12)

    @field_validator("code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        # codes are shown uppercase but typed however
        return v.strip().upper()


class ReactionCreate(BaseModel):
    # emoji is checked by the gateway so a bad one is a 400 like everything else there
    to_workout_id: int
    emoji: str = Field(..., min_length=1, max_length=16)


class RoutineExerciseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    duration: int = Field(..., gt=0, le=86400, description="Seconds")
    count_direction: Literal["up", "down"] = "down"
    rest_after: Optional[int] = Field(None, ge=0, le=3600)
    sets: Optional[int] = Field(None, ge=1)
    reps: Optional[int] = Field(None, ge=1)
    message: Optional[str] = Field(None, max_length=500)


class RoutineCreate(BaseModel):
    """A coach routine needs a name, category and at least one exercise."""
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    category: WorkoutCategory
    pre_workout_message: Optional[str] = None
    playlist_link: Optional[str] = Field(None, max_length=500)
    exercises: list[RoutineExerciseIn] = Field(..., min_length=1)


class RoutineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    category: Optional[WorkoutCategory] = None
    is_active: Optional[bool] = None
    exercises: Optional[list[RoutineExerciseIn]] = None


class CompletionCreate(BaseModel):
    workout_id: Optional[int] = None
    completed: bool = False
    exercises_completed: int = Field(0, ge=0)


class CompletionUpdate(BaseModel):
    completion_id: Optional[int] = None
    workout_id: Optional[int] = None
    completed: Optional[bool] = None
    exercises_completed: Optional[int] = Field(None, ge=0)


class RoleUpdate(BaseModel):
    role: UserRole

    @field_validator("role", mode="before")
    @classmethod
    def normalise_role(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class Signup(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: Optional[str] = Field(None, max_length=120)

class Login(BaseModel):
    email: EmailStr
    password: str
