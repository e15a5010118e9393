from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db
from clubfit.api.authz import require_roles
from clubfit.api.schemas import UserResponse, OkResponse
from clubfit.models import User, UserRole
from clubfit.schemas import RoleUpdate
from clubfit import users

router = APIRouter()

# every route here is admin only
admin_only = require_roles(UserRole.ADMIN)

@router.get("/users")
def list_users(
    search: Optional[str] = Query(None, max_length=120),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(admin_only),
) -> dict:
    return users.list_users(admin, search=search, page=page, limit=limit, db=db)

@router.patch("/users/{user_id}", response_model=UserResponse)
def change_role(user_id: int, payload: RoleUpdate, db: Session = Depends(get_db), admin: User = Depends(admin_only)) -> dict:
    u = users.change_role(admin, user_id, payload.role, db=db)
    return users.user_to_dict(u)

@router.delete("/users/{user_id}", response_model=OkResponse)
def delete_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(admin_only)) -> dict:
    users.delete_user(admin, user_id, db=db)
    return {"ok": True}

@router.get("/users/{user_id}/workouts")
def user_workouts(user_id: int, db: Session = Depends(get_db), admin: User = Depends(admin_only)) -> dict:
    """
    One user's full workout history plus summary stats.
    """
    return users.user_workout_history(admin, user_id, db=db)
