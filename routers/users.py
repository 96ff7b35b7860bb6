# routers/users.py
from typing import List

from fastapi import APIRouter, HTTPException, Query
from sqlmodel import select

from db import SessionDep
from models import User
from schemas import UserPublic
from .auth import UserRoleDep

router = APIRouter(tags=["users"])


@router.get("/leaderboard", response_model=List[UserPublic])
def leaderboard(
    session: SessionDep,
    current: UserRoleDep,
    limit: int = Query(default=10, ge=1, le=100),
):
    """
    Users with the highest impact score.
    """
    users = session.exec(
        select(User).order_by(User.impact_score.desc(), User.id).limit(limit)
    ).all()
    return users


@router.get("/{user_id}", response_model=UserPublic)
def get_user(user_id: int, session: SessionDep, current: UserRoleDep):
    """
    Get a single user by ID.
    """
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
