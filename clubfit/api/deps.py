from fastapi import Request
from clubfit.db import SessionLocal
from clubfit.reactions import ReactionGateway


def get_db():
    """
    FastAPI dependency, yields a database session as well as ensures that
    the database is closed after request ends.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_reaction_gateway(request: Request) -> ReactionGateway:
    """
    The app's one reaction gateway, so the throttle is shared by every request.
    """
    return request.app.state.reaction_gateway
