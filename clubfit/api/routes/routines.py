from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db
from clubfit.api.authz import get_current_user, require_roles
from clubfit.api.schemas import CompletionResponse, OkResponse
from clubfit.models import User, UserRole, WorkoutCategory
from clubfit.schemas import RoutineCreate, RoutineUpdate, CompletionCreate, CompletionUpdate
from clubfit import routines

router = APIRouter()

@router.get("/routines")
def list_routines(
    category: Optional[WorkoutCategory] = Query(None),
    coach_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[dict]:
    return routines.list_routines(current_user, category=category, coach_only=coach_only, db=db)

@router.post("/routines", status_code=status.HTTP_201_CREATED)
def create_routine(
    payload: RoutineCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.COACH, UserRole.ADMIN)),
) -> dict:
    r = routines.create_routine(current_user, payload, db=db)
    return routines.routine_to_dict(r)

@router.get("/routines/{routine_id}")
def get_routine(routine_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    """
    Routine, exercises in order, the last 50 completions and how many there are overall.
    """
    return routines.get_routine(routine_id, db=db)

@router.patch("/routines/{routine_id}")
def update_routine(routine_id: int, payload: RoutineUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    r = routines.update_routine(current_user, routine_id, payload, db=db)
    return routines.routine_to_dict(r)

@router.delete("/routines/{routine_id}", response_model=OkResponse)
def delete_routine(routine_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    routines.delete_routine(current_user, routine_id, db=db)
    return {"ok": True}

@router.post("/routines/{routine_id}/completions", response_model=CompletionResponse, status_code=status.HTTP_201_CREATED)
def record_completion(routine_id: int, payload: CompletionCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    c = routines.record_completion(current_user, routine_id, payload, db=db)
    return routines.completion_to_dict(c)

@router.patch("/routines/{routine_id}/completions", response_model=CompletionResponse)
def update_completion(routine_id: int, payload: CompletionUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    c = routines.update_completion(current_user, routine_id, payload, db=db)
    return routines.completion_to_dict(c)
