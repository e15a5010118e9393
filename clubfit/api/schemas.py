from __future__ import annotations
from pydantic import BaseModel
from typing import Optional, List, Dict

#Workout shapes
class SplitResponse(BaseModel):
    id: int
    workout_id: int
    split_number: int
    distance: float
    duration: int
    pace: float
    pace_formatted: str
    timestamp: str

class ActivityResponse(BaseModel):
    id: int
    workout_id: int
    name: str
    sets: Optional[int]
    reps: Optional[int]
    weight: Optional[float]
    duration: Optional[int]
    elapsed_at: Optional[int]
    notes: Optional[str]
    timestamp: str

class WorkoutResponse(BaseModel):
    id: int
    user_id: int
    category: str
    status: str
    start_time: str
    end_time: Optional[str]
    total_duration: Optional[int]
    goal_duration: Optional[int]
    distance: Optional[float]
    goal_distance: Optional[float]
    pace: Optional[float]
    calories_burned: Optional[int]
    calories_source: Optional[str]
    notes: Optional[str]
    club_session_id: Optional[int]
    duration_formatted: Optional[str]
    pace_formatted: Optional[str]
    distance_formatted: Optional[str]
    splits: List[SplitResponse] = []
    activities: List[ActivityResponse] = []

class ActiveWorkoutResponse(BaseModel):
    workout: Optional[WorkoutResponse]

#Club shapes
class ClubSessionResponse(BaseModel):
    id: int
    code: str
    name: Optional[str]
    host_id: int
    is_active: bool
    start_time: str
    end_time: Optional[str]

class ClubSessionListResponse(BaseModel):
    hosted: List[ClubSessionResponse]
    joined: List[ClubSessionResponse]

#Reaction shapes
class ReactionResponse(BaseModel):
    id: int
    from_user_id: int
    from_user: Optional[dict]
    to_workout_id: int
    emoji: str
    created_at: str

#Stats shapes
class StreakSummary(BaseModel):
    current_streak: int
    longest_streak: int
    last_workout_at: Optional[str]

class WeekSummary(BaseModel):
    week_start: str
    week_end: str
    total_workouts: int
    total_duration: int
    total_distance: float
    total_calories: int
    running_count: int
    strength_count: int
    walking_count: int
    sports_count: int

class AllTimeSummary(BaseModel):
    total_workouts: int
    total_duration: int
    total_distance: float
    total_calories: int

class StatsResponse(BaseModel):
    streak: StreakSummary
    current_week: Optional[WeekSummary]
    history: List[WeekSummary]
    all_time: AllTimeSummary
    by_category: Dict[str, int]

#Routine shapes
class CompletionResponse(BaseModel):
    id: int
    routine_id: int
    user_id: int
    workout_id: Optional[int]
    completed: bool
    exercises_completed: int
    started_at: str
    completed_at: Optional[str]

#User shapes
class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str]
    role: str
    created_at: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

class OkResponse(BaseModel):
    ok: bool = True
