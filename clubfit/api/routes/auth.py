from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy.orm import Session
from clubfit.api.deps import get_db
from clubfit.api.authz import get_current_user
from clubfit.api.schemas import TokenResponse, UserResponse
from clubfit.schemas import Signup, Login
from clubfit.models import User, UserRole
from clubfit.auth import hash_password, verify_password, issue_access_token
from clubfit.errors import ConflictError, UnauthenticatedError
from clubfit.time_utils import now
from clubfit.users import user_to_dict

router = APIRouter()

def _token_for(user: User) -> dict:
    token = issue_access_token(user)
    return {"access_token": token, "token_type": "bearer", "user": user_to_dict(user)}

@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: Signup, db: Session = Depends(get_db)) -> dict:
    """
    Everyone signs up as USER. Coaches/admins are made by an admin afterwards.
    """
    email = payload.email.strip().lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise ConflictError("Email already registered")
    user = User(
        email=email,
        name=(payload.name or "").strip() or None,
        password_hash=hash_password(payload.password),
        role=UserRole.USER,
        created_at=now(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"New user {user.id} signed up")
    return _token_for(user)

@router.post("/login", response_model=TokenResponse)
def login(payload: Login, db: Session = Depends(get_db)) -> dict:
    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise UnauthenticatedError("Invalid credentials")
    return _token_for(user)

@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> dict:
    return user_to_dict(current_user)
