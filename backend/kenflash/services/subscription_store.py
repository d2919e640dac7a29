"""Subscription record store.

Rows are additive: one per verified payment, never updated or deleted.
Inserts are keyed on ``transaction_ref`` so a repeated verification of the
same payment returns the existing row instead of granting access twice.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kenflash.models.subscription import Subscription, SubscriptionStatus
from kenflash.services.plans import compute_expiry

logger = logging.getLogger(__name__)


@dataclass
class RecordResult:
    """Outcome of :func:`record_subscription`."""
    subscription: Subscription
    created: bool


def get_by_transaction_ref(db: Session, transaction_ref: str) -> Subscription | None:
    return db.query(Subscription).filter(
        Subscription.transaction_ref == transaction_ref
    ).first()


def record_subscription(
    db: Session,
    email: str,
    plan_name: str,
    transaction_ref: str,
    now: datetime,
) -> RecordResult:
    """Insert a subscription row unless this transaction is already recorded.

    Args:
        db: Database session.
        email: Subscriber email.
        plan_name: A known plan name; determines the expiry.
        transaction_ref: Provider transaction id or local reference.
        now: Purchase time.

    Returns:
        The stored row and whether this call created it.

    Raises:
        UnknownPlanError: If ``plan_name`` is not in the catalog.
        SQLAlchemyError: If the insert fails for any reason other than a
            duplicate ``transaction_ref``.
    """
    existing = get_by_transaction_ref(db, transaction_ref)
    if existing is not None:
        logger.info("Transaction %s already recorded as subscription %s", transaction_ref, existing.id)
        return RecordResult(subscription=existing, created=False)

    subscription = Subscription(
        email=email,
        plan=plan_name,
        expiry_time=compute_expiry(plan_name, now),
        transaction_ref=transaction_ref,
        status=SubscriptionStatus.active.value,
        created_at=now,
    )
    db.add(subscription)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent verification of the same transaction
        db.rollback()
        existing = get_by_transaction_ref(db, transaction_ref)
        if existing is None:
            raise
        return RecordResult(subscription=existing, created=False)
    db.refresh(subscription)
    return RecordResult(subscription=subscription, created=True)


def find_active_subscription(db: Session, email: str, now: datetime) -> Subscription | None:
    """Return the longest-lasting unexpired subscription for an email."""
    return db.query(Subscription).filter(
        Subscription.email == email,
        Subscription.expiry_time > now,
    ).order_by(Subscription.expiry_time.desc(), Subscription.id.desc()).first()


def list_subscriptions(
    db: Session,
    email: str | None = None,
    active_only: bool = False,
    now: datetime | None = None,
) -> list[Subscription]:
    """List subscription rows, newest first."""
    query = db.query(Subscription)
    if email:
        query = query.filter(Subscription.email == email)
    if active_only and now is not None:
        query = query.filter(Subscription.expiry_time > now)
    return query.order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()
