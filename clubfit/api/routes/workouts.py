from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db
from clubfit.api.authz import get_current_user
from clubfit.api.schemas import WorkoutResponse, ActiveWorkoutResponse, SplitResponse, ActivityResponse, OkResponse
from clubfit.models import User, WorkoutStatus, WorkoutCategory
from clubfit.schemas import WorkoutCreate, WorkoutUpdate, SplitCreate, ActivityCreate
from clubfit import workouts

router = APIRouter()

@router.get("", response_model=list[WorkoutResponse])
def list_my_workouts(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: Optional[WorkoutStatus] = Query(None, alias="status"),
    category: Optional[WorkoutCategory] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    """
    Caller's workouts, newest first.
    """
    rows = workouts.list_workouts(current_user.id, limit=limit, offset=offset, status=status_filter, category=category, db=db)
    return [workouts.workout_to_dict(w) for w in rows]

@router.post("", response_model=WorkoutResponse, status_code=status.HTTP_201_CREATED)
def start_workout(payload: WorkoutCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    w = workouts.create_workout(current_user.id, payload, db=db)
    return workouts.workout_to_dict(w)

@router.get("/active", response_model=ActiveWorkoutResponse)
def active_workout(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    """
    The caller's IN_PROGRESS workout, or {"workout": null}.
    """
    w = workouts.get_active_workout(current_user.id, db=db)
    return {"workout": workouts.workout_to_dict(w) if w else None}

@router.get("/{workout_id}", response_model=WorkoutResponse)
def get_workout(workout_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    w = workouts.get_workout(workout_id, current_user.id, db=db)
    return workouts.workout_to_dict(w)

@router.patch("/{workout_id}", response_model=WorkoutResponse)
def update_workout(workout_id: int, payload: WorkoutUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    """
    Finish, cancel, or fill in calories/notes/distance.
    """
    w = workouts.update_workout(workout_id, current_user.id, payload, db=db)
    return workouts.workout_to_dict(w)

@router.delete("/{workout_id}", response_model=OkResponse)
def delete_workout(workout_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    workouts.delete_workout(workout_id, current_user.id, db=db)
    return {"ok": True}

@router.post("/{workout_id}/splits", response_model=SplitResponse, status_code=status.HTTP_201_CREATED)
def add_split(workout_id: int, payload: SplitCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    s = workouts.add_split(workout_id, current_user.id, payload, db=db)
    return workouts.split_to_dict(s)

@router.post("/{workout_id}/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def add_activity(workout_id: int, payload: ActivityCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    a = workouts.add_activity(workout_id, current_user.id, payload, db=db)
    return workouts.activity_to_dict(a)

@router.delete("/{workout_id}/activities/{activity_id}", response_model=OkResponse)
def remove_activity(workout_id: int, activity_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    workouts.remove_activity(workout_id, current_user.id, activity_id, db=db)
    return {"ok": True}
