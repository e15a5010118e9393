from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db
from clubfit.api.authz import get_current_user
from clubfit.api.schemas import ClubSessionResponse, ClubSessionListResponse, OkResponse
from clubfit.models import User
from clubfit.schemas import ClubSessionCreate, JoinClubSession
from clubfit import clubs

router = APIRouter()

@router.get("", response_model=ClubSessionListResponse)
def list_my_sessions(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    """
    Sessions the caller hosted and sessions they joined, 10 of each.
    """
    return clubs.list_sessions(current_user.id, db=db)

@router.post("", response_model=ClubSessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(payload: ClubSessionCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    s = clubs.create_session(current_user.id, payload.name, db=db)
    return clubs.session_to_dict(s)

@router.post("/join", response_model=ClubSessionResponse)
def join_session(payload: JoinClubSession, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    s = clubs.join_by_code(current_user.id, payload.code, db=db)
    return clubs.session_to_dict(s)

@router.get("/{session_id}")
def view_session(session_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    """
    Polled by the club screen: members, in-progress workouts, recent splits/activities/reactions.
    """
    return clubs.get_session_view(session_id, current_user.id, db=db)

@router.post("/{session_id}/end", response_model=ClubSessionResponse)
def end_session(session_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    s = clubs.end_session(session_id, current_user.id, db=db)
    return clubs.session_to_dict(s)

@router.post("/{session_id}/leave", response_model=OkResponse)
def leave_session(session_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> dict:
    clubs.leave_session(session_id, current_user.id, db=db)
    return {"ok": True}
