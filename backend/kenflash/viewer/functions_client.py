"""HTTP client the viewer uses to reach the payment functions and record store."""
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class FunctionsUnavailableError(RuntimeError):
    """Raised when the backend cannot be reached or answers unusably."""


@dataclass
class FunctionResult:
    """Normalized answer from a payment function."""
    status_code: int
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class FunctionsClient:
    """Calls the backend over an ``httpx.Client`` (a ``TestClient`` works too)."""

    def __init__(self, http: httpx.Client):
        self._http = http

    @classmethod
    def from_base_url(cls, base_url: str, timeout: float = 15.0) -> "FunctionsClient":
        return cls(httpx.Client(base_url=base_url, timeout=timeout))

    def _post(self, path: str, payload: dict[str, Any]) -> FunctionResult:
        try:
            response = self._http.post(path, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", path, exc)
            raise FunctionsUnavailableError(f"Could not reach {path}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        success = response.is_success and bool(body.get("success"))
        error = None
        if not success:
            error = body.get("error") or f"Request failed (HTTP {response.status_code})"
            logger.warning("%s returned HTTP %s: %s", path, response.status_code, error)
        return FunctionResult(status_code=response.status_code, success=success, data=body, error=error)

    def initialize_charge(
        self, email: str, plan_name: str, amount: float, transaction_id: str
    ) -> FunctionResult:
        return self._post("/initialize-korapay-charge", {
            "email": email,
            "planName": plan_name,
            "amount": amount,
            "transactionId": transaction_id,
        })

    def verify_payment(self, transaction_id: str, email: str, plan_name: str) -> FunctionResult:
        return self._post("/verify-korapay-payment", {
            "transactionId": transaction_id,
            "email": email,
            "planName": plan_name,
        })

    def find_active_subscription(self, email: str) -> dict[str, Any] | None:
        """Return the active subscription row for ``email`` or ``None``."""
        try:
            response = self._http.get("/subscriptions/active", params={"email": email})
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FunctionsUnavailableError(f"Subscription lookup failed: {exc}") from exc
        if not body.get("active"):
            return None
        return body.get("subscription")
