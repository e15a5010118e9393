import datetime as dt
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db, get_reaction_gateway
from clubfit.api.authz import get_current_user
from clubfit.api.schemas import ReactionResponse
from clubfit.models import User
from clubfit.reactions import ReactionGateway, reaction_to_dict
from clubfit.schemas import ReactionCreate

router = APIRouter()

@router.post("", response_model=ReactionResponse, status_code=status.HTTP_201_CREATED)
def send_reaction(
    payload: ReactionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: ReactionGateway = Depends(get_reaction_gateway),
) -> dict:
    r = gateway.send_reaction(current_user.id, payload.to_workout_id, payload.emoji, db=db)
    return reaction_to_dict(r)

@router.get("", response_model=list[ReactionResponse])
def list_reactions(
    workout_id: int = Query(...),
    since: Optional[dt.datetime] = Query(None, description="Only reactions after this time, defaults to the last 30 seconds"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: ReactionGateway = Depends(get_reaction_gateway),
) -> list[dict]:
    rows = gateway.list_reactions(workout_id, since, db=db)
    return [reaction_to_dict(r) for r in rows]
