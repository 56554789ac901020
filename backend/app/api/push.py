"""Web push subscription endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.config import get_settings
from app.database import get_db
from app.models import PushSubscription, User
from app.schemas import PushSubscriptionCreate, PushSubscriptionRead, VapidPublicKey
from app.services import upsert_subscription

router = APIRouter(prefix="/push", tags=["push"])
settings = get_settings()


@router.post("/subscribe", response_model=PushSubscriptionRead, status_code=status.HTTP_201_CREATED)
def subscribe(
    payload: PushSubscriptionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PushSubscription:
    """Register a browser push endpoint for the current user."""

    return upsert_subscription(
        current_user.id,
        payload.endpoint,
        payload.keys.p256dh,
        payload.keys.auth,
        db,
    )


@router.get("/vapid-public-key", response_model=VapidPublicKey)
def get_vapid_public_key() -> VapidPublicKey:
    return VapidPublicKey(public_key=settings.web_push_vapid_public_key)
