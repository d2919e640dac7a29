"""Payment gateway adapter for the viewer's subscription purchase.

Two checkout mechanisms share one contract:

* ``widget``: an embedded checkout opened in an overlay. The adapter hands
  back the widget configuration; the widget's result comes back through
  :meth:`CheckoutAdapter.on_widget_result`.
* ``redirect``: the browser leaves for a hosted checkout page created by the
  charge initialization function and comes back to a fixed return URL,
  handled by :meth:`CheckoutAdapter.complete_redirect`.

Either way, access is granted only after the verification function confirms
the payment with the provider; the device then caches the entitlement
through the :class:`~kenflash.viewer.gate.SubscriptionGate`.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from kenflash.clock import SystemClock, parse_timestamp
from kenflash.config import get_settings
from kenflash.services.plans import get_plan
from kenflash.viewer.functions_client import FunctionsClient, FunctionsUnavailableError
from kenflash.viewer.gate import SubscriptionGate
from kenflash.viewer.local_store import LocalStore
from kenflash.viewer.session import PendingCheckout

logger = logging.getLogger(__name__)

WIDGET_MODE = "widget"
REDIRECT_MODE = "redirect"

HOME_PATH = "/"
SUBSCRIBE_PATH = "/subscribe"
SUCCESS_REDIRECT_DELAY_SECONDS = 3
FAILURE_REDIRECT_DELAY_SECONDS = 5


class CheckoutError(RuntimeError):
    """Raised when a checkout attempt cannot be started."""


class CheckoutConfigError(CheckoutError):
    """Raised when the widget public key is missing."""


@dataclass
class WidgetCheckout:
    """Everything the embedded widget needs to open."""
    public_key: str
    email: str
    amount: int  # minor units
    currency: str
    reference: str
    plan_name: str


@dataclass
class CheckoutInitiation:
    mode: str
    plan_name: str
    email: str
    transaction_id: str
    checkout_url: str | None = None
    widget: WidgetCheckout | None = None


@dataclass
class CheckoutOutcome:
    """Terminal, user-visible result of one checkout attempt."""
    success: bool
    message: str
    next_path: str
    reference: str | None = None
    redirect_delay: int = FAILURE_REDIRECT_DELAY_SECONDS


def generate_reference(now: datetime, prefix: str = "KF") -> str:
    """Fresh time-based transaction reference."""
    return f"{prefix}_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


class CheckoutAdapter:
    def __init__(
        self,
        store: LocalStore,
        functions: FunctionsClient,
        gate: SubscriptionGate,
        clock: SystemClock | None = None,
        public_key: str | None = None,
        mode: str = REDIRECT_MODE,
        currency: str = "KES",
        support_email: str = "support@draftey.com",
    ):
        if mode not in (WIDGET_MODE, REDIRECT_MODE):
            raise ValueError(f"Unknown checkout mode: {mode}")
        self._store = store
        self._functions = functions
        self._gate = gate
        self._clock = clock or SystemClock()
        self.public_key = public_key
        self.mode = mode
        self.currency = currency
        self.support_email = support_email

    @classmethod
    def from_settings(
        cls,
        store: LocalStore,
        functions: FunctionsClient,
        gate: SubscriptionGate,
        mode: str = REDIRECT_MODE,
        clock: SystemClock | None = None,
    ) -> "CheckoutAdapter":
        """Build an adapter configured from the environment."""
        settings = get_settings()
        return cls(
            store, functions, gate, clock,
            public_key=settings.korapay_public_key,
            mode=mode,
            currency=settings.korapay_currency,
            support_email=settings.support_email,
        )

    def initiate(self, plan_name: str, email: str) -> CheckoutInitiation:
        """Start a purchase of ``plan_name`` for ``email``.

        Raises:
            UnknownPlanError: If the plan is not in the catalog.
            CheckoutConfigError: Widget mode without a public key.
            CheckoutError: The charge could not be initialized.
        """
        if not email:
            raise CheckoutError("Please enter your email address.")
        plan = get_plan(plan_name)
        reference = generate_reference(self._clock.now())

        if self.mode == WIDGET_MODE:
            if not self.public_key:
                logger.error("Checkout widget public key is not configured")
                raise CheckoutConfigError("Payment system is not configured. Please try again later.")
            widget = WidgetCheckout(
                public_key=self.public_key,
                email=email,
                amount=plan.amount_minor_units,
                currency=self.currency,
                reference=reference,
                plan_name=plan.name,
            )
            return CheckoutInitiation(
                mode=WIDGET_MODE, plan_name=plan.name, email=email,
                transaction_id=reference, widget=widget,
            )

        try:
            result = self._functions.initialize_charge(email, plan.name, plan.price, reference)
        except FunctionsUnavailableError as exc:
            raise CheckoutError("Could not start payment. Please check your connection and try again.") from exc
        checkout_url = result.data.get("checkoutUrl")
        if not result.success or not checkout_url:
            raise CheckoutError(f"Could not start payment: {result.error or 'no checkout URL returned'}")

        PendingCheckout(email=email, plan_name=plan.name, transaction_id=reference).save(self._store)
        logger.info("Redirecting %s to hosted checkout for %s (%s)", email, plan.name, reference)
        return CheckoutInitiation(
            mode=REDIRECT_MODE, plan_name=plan.name, email=email,
            transaction_id=reference, checkout_url=checkout_url,
        )

    def on_widget_result(self, success: bool, reference: str | None, plan_name: str, email: str) -> CheckoutOutcome:
        """Handle the widget's callback; a close without success is abandoned."""
        if not success or not reference:
            logger.info("Widget checkout for %s closed without payment", email)
            return self._failure("Payment was not completed. No charge was recorded.", reference)
        return self._verify(reference, email, plan_name)

    def complete_redirect(self, query_params: Mapping[str, str]) -> CheckoutOutcome:
        """Finish a redirect checkout when the provider sends the browser back.

        The pending marker is consumed here exactly once. Query parameters only
        signal that the provider is done; the purchase details come from the
        marker.
        """
        marker = PendingCheckout.take(self._store)
        provider_reference = query_params.get("reference") or query_params.get("trxref")
        logger.info(
            "Returned from hosted checkout: status=%s reference=%s pending=%s",
            query_params.get("status"), provider_reference, marker.transaction_id,
        )

        missing = marker.missing_fields()
        if missing:
            logger.warning("Checkout return without pending details: missing %s", ", ".join(missing))
            return self._failure(
                f"Missing payment details ({', '.join(missing)}). "
                f"Please contact {self.support_email} if you were charged.",
                provider_reference,
            )
        return self._verify(marker.transaction_id, marker.email, marker.plan_name)

    def _verify(self, transaction_id: str, email: str, plan_name: str) -> CheckoutOutcome:
        try:
            result = self._functions.verify_payment(transaction_id, email, plan_name)
        except FunctionsUnavailableError:
            return self._failure(
                f"Could not verify your payment. Please contact {self.support_email} "
                f"with reference: {transaction_id}",
                transaction_id,
            )

        if not result.success:
            if result.status_code == 402:
                message = (
                    "Payment was not confirmed. Please try again or contact "
                    f"{self.support_email} with reference: {transaction_id}"
                )
            else:
                message = (
                    f"Failed to activate subscription: {result.error}. Please contact "
                    f"{self.support_email} with reference: {transaction_id}"
                )
            return self._failure(message, transaction_id)

        expires_at = None
        raw_expiry = result.data.get("expiryTime")
        if raw_expiry:
            try:
                expires_at = parse_timestamp(raw_expiry)
            except ValueError:
                logger.warning("Ignoring unreadable expiryTime %r from verification", raw_expiry)
        self._gate.subscribe_visitor(email, plan_name, expires_at=expires_at)
        return CheckoutOutcome(
            success=True,
            message="Subscription activated successfully! Redirecting to homepage...",
            next_path=HOME_PATH,
            reference=transaction_id,
            redirect_delay=SUCCESS_REDIRECT_DELAY_SECONDS,
        )

    def _failure(self, message: str, reference: str | None) -> CheckoutOutcome:
        return CheckoutOutcome(success=False, message=message, next_path=SUBSCRIBE_PATH, reference=reference)
