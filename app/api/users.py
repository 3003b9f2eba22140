"""User API routes."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi import Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db.base import get_db_session
from app.schemas.user import User
from app.schemas.user import UserCreate
from app.schemas.user import UserNotFound
from app.services.users import create_user_service
from app.services.users import get_user_service
from app.services.users import list_users_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/", response_model=list[User])
def list_users_endpoint(session: Session = Depends(get_db_session)) -> list[User]:
    """List users."""
    return list_users_service(session)


@router.get("/{user_id}", response_model=User, responses={404: {"model": UserNotFound}})
def get_user_endpoint(
    user_id: int,
    session: Session = Depends(get_db_session),
) -> User | JSONResponse:
    """Get a single user by id."""
    user = get_user_service(session, user_id)
    if user is None:
        # Long-standing contract: a bare message rather than the error envelope.
        return JSONResponse(status_code=404, content={"message": "User not found"})
    return user


@router.post("/", response_model=User, status_code=201)
def create_user_endpoint(
    payload: UserCreate,
    session: Session = Depends(get_db_session),
) -> User:
    """Create a user."""
    return create_user_service(session, payload)
