"""Read access to subscription records."""
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from kenflash.clock import SystemClock, get_clock
from kenflash.config import get_settings
from kenflash.database import get_db
from kenflash.schemas.subscription import ActiveSubscriptionResponse, SubscriptionResponse
from kenflash.services.subscription_store import find_active_subscription, list_subscriptions

router = APIRouter(tags=["subscriptions"])


def verify_platform_admin(
    x_platform_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Verify the platform admin key.

    Uses 404 to avoid revealing the existence of admin endpoints.
    """
    admin_key = get_settings().platform_admin_key
    if not admin_key or not x_platform_admin_key:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if not secrets.compare_digest(admin_key, x_platform_admin_key):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


@router.get("/subscriptions/active", response_model=ActiveSubscriptionResponse)
def get_active_subscription(
    email: Annotated[str, Query(min_length=1)],
    db: Session = Depends(get_db),
    clock: SystemClock = Depends(get_clock),
) -> ActiveSubscriptionResponse:
    """Look up the most permissive unexpired subscription for an email.

    Anyone may ask about any email; subscriber identity is not verified.
    """
    subscription = find_active_subscription(db, email, clock.now())
    return ActiveSubscriptionResponse(
        email=email,
        active=subscription is not None,
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
    )


@router.get(
    "/v1/admin/subscriptions",
    response_model=list[SubscriptionResponse],
    dependencies=[Depends(verify_platform_admin)],
)
def admin_list_subscriptions(
    email: str | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    clock: SystemClock = Depends(get_clock),
) -> list[SubscriptionResponse]:
    """List recorded subscriptions for payment review (admin only)."""
    rows = list_subscriptions(db, email=email, active_only=active_only, now=clock.now())
    return [SubscriptionResponse.model_validate(row) for row in rows]
