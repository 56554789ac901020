"""Identity lookups and the social graph used for contact suggestions."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from app.core.errors import InvalidArgumentError, NotFoundError
from app.models import User, UserFollow, utcnow
from app.schemas import PublicUser


class UserDirectory:
    """Read access to user identity projections."""

    def __init__(self, session: Session):
        self._session = session

    def get(self, user_id: int) -> User:
        user = self._session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def find_by_id(self, user_id: int) -> PublicUser:
        return PublicUser.model_validate(self.get(user_id))

    def find_by_username(self, username: str) -> PublicUser:
        stmt = select(User).where(User.username == username.strip())
        user = self._session.execute(stmt).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return PublicUser.model_validate(user)

    def set_online(self, user_id: int, online: bool) -> None:
        """Record a presence transition for the user."""

        user = self._session.get(User, user_id)
        if user is None:
            return
        user.is_online = online
        user.last_active_at = utcnow()
        self._session.commit()


def mutual_contacts(user_id: int, db: Session) -> list[PublicUser]:
    """Users that both follow and are followed by ``user_id``."""

    inbound = aliased(UserFollow)
    outbound = aliased(UserFollow)
    stmt = (
        select(User)
        .join(inbound, (inbound.follower_id == User.id) & (inbound.followee_id == user_id))
        .join(outbound, (outbound.followee_id == User.id) & (outbound.follower_id == user_id))
    )
    users = db.execute(stmt).scalars().all()
    contacts = [PublicUser.model_validate(user) for user in users]
    contacts.sort(key=lambda contact: contact.display_name.lower())
    return contacts


def toggle_follow(follower_id: int, followee_id: int, db: Session) -> bool:
    """Create or remove a follow edge, returning whether it now exists."""

    if follower_id == followee_id:
        raise InvalidArgumentError("Users cannot follow themselves")
    if db.get(User, followee_id) is None:
        raise NotFoundError("User not found")

    stmt = select(UserFollow).where(
        UserFollow.follower_id == follower_id,
        UserFollow.followee_id == followee_id,
    )
    edge = db.execute(stmt).scalar_one_or_none()
    if edge is not None:
        db.delete(edge)
        db.commit()
        return False

    db.add(UserFollow(follower_id=follower_id, followee_id=followee_id))
    db.commit()
    return True
