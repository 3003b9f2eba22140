"""Repository primitives for user entities."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models.user import User


def list_users(session: Session) -> list[User]:
    """List all users ordered by id."""
    stmt = select(User).order_by(User.id.asc())
    return list(session.scalars(stmt))


def get_user(session: Session, user_id: int) -> User | None:
    """Fetch a user by id."""
    return session.get(User, user_id)


def create_user(
    session: Session,
    *,
    email: str,
    password_hash: str,
    first_name: str,
    last_name: str,
) -> User:
    """Create and return a user row."""
    user = User(
        email=email,
        password_hash=password_hash,
        first_name=first_name,
        last_name=last_name,
    )
    session.add(user)
    session.flush()
    session.refresh(user)
    return user
