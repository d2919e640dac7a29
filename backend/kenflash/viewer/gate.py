"""Subscription gate: decides whether this device may show premium content."""
import logging
from datetime import datetime

from kenflash.clock import SystemClock, parse_timestamp
from kenflash.services.plans import compute_expiry
from kenflash.viewer.functions_client import FunctionsClient, FunctionsUnavailableError
from kenflash.viewer.local_store import LocalStore
from kenflash.viewer.session import VisitorSubscription

logger = logging.getLogger(__name__)


class SubscriptionGate:
    """Entitlement state for one device.

    Local state is the source of truth between loads; the record store is only
    consulted when the viewer asks to reconcile by email.
    """

    def __init__(self, store: LocalStore, functions: FunctionsClient, clock: SystemClock | None = None):
        self._store = store
        self._functions = functions
        self._clock = clock or SystemClock()
        self._state = VisitorSubscription()

    def load(self) -> bool:
        """Read cached entitlement at app start, clearing it once expired."""
        state = VisitorSubscription.load(self._store)
        if not state.email:
            # Only a stored email and expiry together form a cached subscription
            self._state = VisitorSubscription()
            return False
        expired = state.expires_at is not None and state.expires_at <= self._clock.now()
        if expired or state.expiry_unreadable:
            logger.info("Cached subscription for %s is no longer valid; clearing", state.email)
            VisitorSubscription.clear(self._store)
            state = VisitorSubscription()
        self._state = state
        return self.is_visitor_subscribed

    @property
    def is_visitor_subscribed(self) -> bool:
        return self._state.is_active(self._clock.now())

    @property
    def visitor_email(self) -> str | None:
        return self._state.email if self.is_visitor_subscribed else None

    @property
    def expires_at(self) -> datetime | None:
        return self._state.expires_at

    def subscribe_visitor(self, email: str, plan_name: str, expires_at: datetime | None = None) -> None:
        """Record a completed purchase locally so the gate opens without a reload.

        Raises:
            UnknownPlanError: If no expiry is given and the plan is unknown.
        """
        if expires_at is None:
            expires_at = compute_expiry(plan_name, self._clock.now())
        state = VisitorSubscription(email=email, expires_at=expires_at)
        state.save(self._store)
        self._state = state
        logger.info("Visitor %s subscribed to %s until %s", email, plan_name, expires_at.isoformat())

    def check_existing_subscription(self, email: str) -> bool:
        """Adopt an unexpired subscription bought for ``email`` on any device."""
        try:
            row = self._functions.find_active_subscription(email)
        except FunctionsUnavailableError as exc:
            logger.error("Error checking existing subscription for %s: %s", email, exc)
            return False
        if not row:
            return False

        try:
            expires_at = parse_timestamp(row["expiry_time"])
        except (KeyError, TypeError, ValueError):
            logger.error("Subscription lookup for %s returned no usable expiry: %s", email, row)
            return False
        if not expires_at > self._clock.now():
            return False

        state = VisitorSubscription(email=email, expires_at=expires_at)
        state.save(self._store)
        self._state = state
        return True
