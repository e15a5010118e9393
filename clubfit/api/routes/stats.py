from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clubfit.api.deps import get_db
from clubfit.api.authz import get_current_user
from clubfit.api.schemas import StatsResponse
from clubfit.models import User
from clubfit.weekly import stats_overview

router = APIRouter()

@router.get("", response_model=StatsResponse)
def my_stats(
    weeks: int = Query(4, ge=1, le=52, description="How many weekly rows of history"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    """
    Streak, this week, recent weeks, all-time totals and per-category counts.
    Read only, the numbers are only ever written when a workout completes.
    """
    return stats_overview(current_user.id, weeks=weeks, db=db)
