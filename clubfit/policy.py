"""
Who may do what. One function per capability so callers never compare roles by hand.
"""
from __future__ import annotations

from .models import User, UserRole, CoachRoutine


def can_author_routines(user: User) -> bool:
    return user.role in (UserRole.COACH, UserRole.ADMIN)

def can_manage_routine(user: User, routine: CoachRoutine) -> bool:
    # the coach who wrote it, or any admin
    return routine.coach_id == user.id or user.role == UserRole.ADMIN

def can_moderate_users(user: User) -> bool:
    return user.role == UserRole.ADMIN

def can_change_role(user: User, target_id: int) -> bool:
    """Admins change anyone's role except their own."""
    return can_moderate_users(user) and user.id != target_id
