"""Typed views over the device's local storage keys.

Call sites go through these objects instead of reading raw keys, and each
object owns the load/save/clear lifecycle of its own keys.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from kenflash.clock import parse_timestamp, to_iso
from kenflash.viewer.local_store import LocalStore

logger = logging.getLogger(__name__)

IS_LOGGED_IN_KEY = "isLoggedIn"
USER_ROLE_KEY = "userRole"
IS_USER_APPROVED_KEY = "isUserApproved"
VISITOR_EMAIL_KEY = "visitorEmail"
SUBSCRIPTION_EXPIRY_KEY = "subscriptionExpiryTime"
PENDING_EMAIL_KEY = "pendingSubscriptionEmail"
PENDING_PLAN_KEY = "pendingPlanName"
PENDING_TRANSACTION_KEY = "pendingTransactionId"
THEME_KEY = "theme"
AGE_VERIFIED_KEY = "ageVerified"
COOKIE_CONSENT_KEY = "cookieConsent"


def _flag(value: str | None) -> bool:
    return value == "true"


def _flag_str(value: bool) -> str:
    return "true" if value else "false"


@dataclass
class VisitorSubscription:
    """The device's cached belief about its own entitlement."""
    email: str | None = None
    expires_at: datetime | None = None
    expiry_unreadable: bool = False

    @classmethod
    def load(cls, store: LocalStore) -> "VisitorSubscription":
        raw_expiry = store.get_item(SUBSCRIPTION_EXPIRY_KEY)
        expires_at = None
        unreadable = False
        if raw_expiry:
            try:
                expires_at = parse_timestamp(raw_expiry)
            except (ValueError, OverflowError):
                logger.warning("Ignoring unreadable %s value %r", SUBSCRIPTION_EXPIRY_KEY, raw_expiry)
                unreadable = True
        return cls(
            email=store.get_item(VISITOR_EMAIL_KEY),
            expires_at=expires_at,
            expiry_unreadable=unreadable,
        )

    def save(self, store: LocalStore) -> None:
        if not self.email or self.expires_at is None:
            raise ValueError("email and expires_at are both required")
        store.set_item(VISITOR_EMAIL_KEY, self.email)
        store.set_item(SUBSCRIPTION_EXPIRY_KEY, to_iso(self.expires_at))

    @staticmethod
    def clear(store: LocalStore) -> None:
        store.remove_item(VISITOR_EMAIL_KEY)
        store.remove_item(SUBSCRIPTION_EXPIRY_KEY)

    def is_active(self, now: datetime) -> bool:
        return bool(self.email) and self.expires_at is not None and now < self.expires_at


@dataclass
class PendingCheckout:
    """Marker bridging a redirect to hosted checkout and the return trip."""
    email: str | None = None
    plan_name: str | None = None
    transaction_id: str | None = None

    def save(self, store: LocalStore) -> None:
        store.set_item(PENDING_EMAIL_KEY, self.email or "")
        store.set_item(PENDING_PLAN_KEY, self.plan_name or "")
        store.set_item(PENDING_TRANSACTION_KEY, self.transaction_id or "")

    @classmethod
    def take(cls, store: LocalStore) -> "PendingCheckout":
        """Read and delete the marker in one step, whatever happens next."""
        marker = cls(
            email=store.get_item(PENDING_EMAIL_KEY) or None,
            plan_name=store.get_item(PENDING_PLAN_KEY) or None,
            transaction_id=store.get_item(PENDING_TRANSACTION_KEY) or None,
        )
        cls.clear(store)
        return marker

    @staticmethod
    def clear(store: LocalStore) -> None:
        store.remove_item(PENDING_EMAIL_KEY)
        store.remove_item(PENDING_PLAN_KEY)
        store.remove_item(PENDING_TRANSACTION_KEY)

    def missing_fields(self) -> list[str]:
        fields = {
            "email": self.email,
            "planName": self.plan_name,
            "transactionId": self.transaction_id,
        }
        return [name for name, value in fields.items() if not value]


@dataclass
class LoginState:
    """Creator/admin login flags."""
    is_logged_in: bool = False
    user_role: str = "none"
    is_user_approved: bool = False

    @classmethod
    def load(cls, store: LocalStore) -> "LoginState":
        return cls(
            is_logged_in=_flag(store.get_item(IS_LOGGED_IN_KEY)),
            user_role=store.get_item(USER_ROLE_KEY) or "none",
            is_user_approved=_flag(store.get_item(IS_USER_APPROVED_KEY)),
        )

    @classmethod
    def login(cls, store: LocalStore, role: str, approved: bool = False) -> "LoginState":
        state = cls(is_logged_in=True, user_role=role, is_user_approved=approved)
        state.save(store)
        return state

    def save(self, store: LocalStore) -> None:
        store.set_item(IS_LOGGED_IN_KEY, _flag_str(self.is_logged_in))
        store.set_item(USER_ROLE_KEY, self.user_role)
        store.set_item(IS_USER_APPROVED_KEY, _flag_str(self.is_user_approved))

    @staticmethod
    def clear(store: LocalStore) -> "LoginState":
        """Log out: drop the flags and fall back to the anonymous role."""
        store.remove_item(IS_LOGGED_IN_KEY)
        store.remove_item(USER_ROLE_KEY)
        store.remove_item(IS_USER_APPROVED_KEY)
        return LoginState()


@dataclass
class Preferences:
    theme: str = "light"
    age_verified: bool = False
    cookie_consent: bool = False

    @classmethod
    def load(cls, store: LocalStore) -> "Preferences":
        return cls(
            theme=store.get_item(THEME_KEY) or "light",
            age_verified=_flag(store.get_item(AGE_VERIFIED_KEY)),
            cookie_consent=_flag(store.get_item(COOKIE_CONSENT_KEY)),
        )

    def save(self, store: LocalStore) -> None:
        store.set_item(THEME_KEY, self.theme)
        store.set_item(AGE_VERIFIED_KEY, _flag_str(self.age_verified))
        store.set_item(COOKIE_CONSENT_KEY, _flag_str(self.cookie_consent))

    @staticmethod
    def clear(store: LocalStore) -> None:
        store.remove_item(THEME_KEY)
        store.remove_item(AGE_VERIFIED_KEY)
        store.remove_item(COOKIE_CONSENT_KEY)
