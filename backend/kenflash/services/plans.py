"""Catalog of viewer subscription plans."""
from dataclasses import dataclass
from datetime import datetime, timedelta


class UnknownPlanError(ValueError):
    """Raised when a plan name is not in the catalog."""

    def __init__(self, plan_name: str | None):
        super().__init__(f"Unknown plan: {plan_name}")
        self.plan_name = plan_name


@dataclass(frozen=True)
class SubscriptionPlan:
    """A purchasable block of timed access."""
    name: str
    duration: timedelta
    price: int  # major currency units (KES)

    @property
    def amount_minor_units(self) -> int:
        return amount_in_minor_units(self.price)


ONE_DAY_PLAN = "1 Day Plan"
TWO_HOUR_PLAN = "2 Hour Plan"

PLANS: dict[str, SubscriptionPlan] = {
    ONE_DAY_PLAN: SubscriptionPlan(name=ONE_DAY_PLAN, duration=timedelta(hours=24), price=20),
    TWO_HOUR_PLAN: SubscriptionPlan(name=TWO_HOUR_PLAN, duration=timedelta(hours=2), price=20),
}


def amount_in_minor_units(amount: float) -> int:
    """Convert a major-unit amount to minor units (20 KES -> 2000)."""
    return int(round(amount * 100))


def get_plan(plan_name: str | None) -> SubscriptionPlan:
    """Look up a plan by its exact name.

    Raises:
        UnknownPlanError: If the name is not one of the known plans.
    """
    plan = PLANS.get(plan_name) if plan_name else None
    if plan is None:
        raise UnknownPlanError(plan_name)
    return plan


def plan_duration(plan_name: str | None) -> timedelta:
    """Return the fixed access duration for a known plan."""
    return get_plan(plan_name).duration


def compute_expiry(plan_name: str | None, now: datetime) -> datetime:
    """Expiry for a purchase made at ``now``."""
    return now + plan_duration(plan_name)
