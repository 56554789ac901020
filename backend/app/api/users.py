"""User lookup and follow endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import FollowState, PublicUser
from app.services import UserDirectory, toggle_follow

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/by-username/{username}", response_model=PublicUser)
def get_user_by_username(
    username: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PublicUser:
    return UserDirectory(db).find_by_username(username)


@router.get("/{user_id}", response_model=PublicUser)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PublicUser:
    return UserDirectory(db).find_by_id(user_id)


@router.post("/{user_id}/follow", response_model=FollowState)
def follow_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowState:
    """Follow ``user_id``, or unfollow when already following."""

    following = toggle_follow(current_user.id, user_id, db)
    return FollowState(user_id=user_id, following=following)
