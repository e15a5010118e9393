from __future__ import annotations

import datetime as dt
import math
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .db import SessionLocal
from .errors import NotFoundError, RateLimitError, ValidationError
from .models import Workout, WorkoutReaction, WorkoutStatus
from .schemas import REACTION_EMOJIS
from .time_utils import now as clock_now

load_dotenv()

REACTION_COOLDOWN_SEC = float(os.getenv("CLUBFIT_REACTION_COOLDOWN_SEC", "5"))
LIST_WINDOW_SEC = 30
LIST_LIMIT = 20


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    wait_seconds: int = 0


# One accepted reaction per sender per window. Lives in process memory only,
# a restart just forgets who reacted last.
class ReactionRateLimiter:
    def __init__(self, window_seconds: float = REACTION_COOLDOWN_SEC, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last: dict[int, float] = {}
        # previous timestamp per sender while a reservation is outstanding
        self._held: dict[int, Optional[float]] = {}
        self._lock = threading.Lock()

    def _decide(self, last: Optional[float], now_ts: float) -> RateLimitDecision:
        if last is None or now_ts - last >= self.window_seconds:
            return RateLimitDecision(allowed=True)
        wait_s = math.ceil(self.window_seconds - (now_ts - last))
        return RateLimitDecision(allowed=False, wait_seconds=max(1, wait_s))

    def check(self, user_id: int) -> RateLimitDecision:
        """Peek only, nothing is reserved."""
        now_ts = self._clock()
        with self._lock:
            return self._decide(self._last.get(user_id), now_ts)

    def try_acquire(self, user_id: int) -> RateLimitDecision:
        """
        Check and take the sender's slot in one step, so two concurrent sends can't both pass.
        An allowed decision must be followed by confirm() or release().
        """
        now_ts = self._clock()
        with self._lock:
            last = self._last.get(user_id)
            decision = self._decide(last, now_ts)
            if decision.allowed:
                self._held[user_id] = last
                self._last[user_id] = now_ts
            return decision

    def confirm(self, user_id: int) -> None:
        with self._lock:
            self._held.pop(user_id, None)

    def release(self, user_id: int) -> None:
        """Give the slot back, the sender is where they were before try_acquire."""
        with self._lock:
            if user_id not in self._held:
                return
            previous = self._held.pop(user_id)
            if previous is None:
                self._last.pop(user_id, None)
            else:
                self._last[user_id] = previous

    def record(self, user_id: int) -> None:
        with self._lock:
            self._last[user_id] = self._clock()

    def reset(self) -> None:
        with self._lock:
            self._last.clear()
            self._held.clear()


def reaction_to_dict(r: WorkoutReaction) -> dict:
    return {
        "id": r.id,
        "from_user_id": r.from_user_id,
        "from_user": {"id": r.from_user.id, "name": r.from_user.name} if r.from_user else None,
        "to_workout_id": r.to_workout_id,
        "emoji": r.emoji,
        "created_at": r.created_at.isoformat(),
    }


class ReactionGateway:
    """
    Sends reactions between club members.

    Checks run in a fixed order and the first failure wins:
    emoji allowed -> sender not throttled -> workout exists -> still IN_PROGRESS
    -> part of a club session -> not the sender's own workout.
    The sender's throttle slot is taken before the workout checks and handed back
    if the reaction is not stored, so only stored reactions start a cooldown.
    """

    def __init__(self, limiter: Optional[ReactionRateLimiter] = None):
        self.limiter = limiter or ReactionRateLimiter()

    def send_reaction(self, from_user_id: int, to_workout_id: int, emoji: str, *, db: Optional[Session] = None) -> WorkoutReaction:
        owns = db is None
        db = db or SessionLocal()
        try:
            if emoji not in REACTION_EMOJIS:
                raise ValidationError("Invalid reaction emoji")

            decision = self.limiter.try_acquire(from_user_id)
            if not decision.allowed:
                logger.debug(f"Reaction from user {from_user_id} throttled for {decision.wait_seconds}s")
                raise RateLimitError(
                    f"Please wait {decision.wait_seconds} seconds before sending another reaction",
                    retry_after=decision.wait_seconds,
                )

            try:
                r = self._store(db, from_user_id, to_workout_id, emoji)
            except Exception:
                self.limiter.release(from_user_id)
                raise
            self.limiter.confirm(from_user_id)
            return r
        finally:
            if owns:
                db.close()

    def _store(self, db: Session, from_user_id: int, to_workout_id: int, emoji: str) -> WorkoutReaction:
        w = db.get(Workout, to_workout_id)
        if w is None:
            raise NotFoundError("Workout not found")
        if w.status != WorkoutStatus.IN_PROGRESS:
            raise ValidationError("Can only react to active workouts")
        if w.club_session_id is None:
            raise ValidationError("Can only react to workouts in club sessions")
        if w.user_id == from_user_id:
            raise ValidationError("Cannot react to your own workout")

        r = WorkoutReaction(from_user_id=from_user_id, to_workout_id=w.id, emoji=emoji, created_at=clock_now())
        db.add(r)
        db.commit()
        db.refresh(r)
        return r

    def list_reactions(self, workout_id: int, since: Optional[dt.datetime] = None, *, db: Optional[Session] = None) -> list[WorkoutReaction]:
        """Reactions on a workout from `since` on (default: last 30 seconds), newest first."""
        owns = db is None
        db = db or SessionLocal()
        try:
            if since is None:
                since = clock_now() - dt.timedelta(seconds=LIST_WINDOW_SEC)
            q = (
                select(WorkoutReaction)
                .options(selectinload(WorkoutReaction.from_user))
                .where(WorkoutReaction.to_workout_id == workout_id)
                .where(WorkoutReaction.created_at >= since)
                .order_by(WorkoutReaction.created_at.desc(), WorkoutReaction.id.desc())
                .limit(LIST_LIMIT)
            )
            return list(db.execute(q).scalars().all())
        finally:
            if owns:
                db.close()
