"""Service helpers for user API operations."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.db.models.user import User
from app.db.repository.users import create_user
from app.db.repository.users import get_user
from app.db.repository.users import list_users
from app.schemas.user import UserCreate


def list_users_service(session: Session) -> list[User]:
    """List every user."""
    return list_users(session)


def get_user_service(session: Session, user_id: int) -> User | None:
    """Fetch a user, returning ``None`` when it does not exist."""
    return get_user(session, user_id)


def create_user_service(session: Session, payload: UserCreate) -> User:
    """Create and persist a new user.

    Storage failures such as a duplicate email propagate unchanged so the
    shared error handlers can classify them.
    """
    try:
        user = create_user(
            session,
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
        session.commit()
        return user
    except SQLAlchemyError:
        session.rollback()
        raise
