"""Korapay merchant API client used by the payment functions."""
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from kenflash.config import DEFAULT_KORAPAY_BASE_URL, get_settings
from kenflash.schemas.korapay import (
    KorapayChargeRequest,
    KorapayInitializeResponse,
    KorapayTransaction,
    KorapayTransactionList,
)

logger = logging.getLogger(__name__)

INITIALIZE_CHARGE_PATH = "/merchant/api/v1/charges/initialize"
TRANSACTIONS_PATH = "/v1/transactions"


class KorapayConfigError(RuntimeError):
    """Raised when the Korapay secret key is not configured."""


class KorapayError(RuntimeError):
    """Raised when Korapay answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class KorapayResponseError(RuntimeError):
    """Raised when a Korapay response is not JSON or does not match its schema."""


@dataclass
class KorapayClient:
    """Thin async wrapper over the two Korapay endpoints the functions use."""

    secret_key: str
    base_url: str = DEFAULT_KORAPAY_BASE_URL
    transport: httpx.AsyncBaseTransport | None = None
    timeout: float = 10.0

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.request(method, url, headers=headers, json=json, params=params)

        logger.info("Korapay %s %s -> HTTP %s", method, path, response.status_code)
        if not response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = {"body": response.text}
            if not isinstance(payload, dict):
                payload = {"body": payload}
            logger.warning("Korapay API error %s: %s", response.status_code, payload)
            message = payload.get("message") or f"Korapay request failed (HTTP Status: {response.status_code})"
            raise KorapayError(response.status_code, message, payload=payload)

        try:
            return response.json()
        except ValueError as exc:
            logger.error("Korapay returned non-JSON response for %s: %s", path, response.text[:500])
            raise KorapayResponseError("Korapay returned non-JSON response") from exc

    async def initialize_charge(self, charge: KorapayChargeRequest) -> KorapayInitializeResponse:
        """Create a hosted checkout for ``charge``."""
        logger.info("Initializing Korapay charge reference=%s amount=%s", charge.reference, charge.amount)
        payload = await self._request(
            "POST", INITIALIZE_CHARGE_PATH, json=charge.model_dump(exclude_none=True)
        )
        try:
            return KorapayInitializeResponse.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Unexpected Korapay charge response: %s", payload)
            raise KorapayResponseError("Unexpected response from Korapay charge initialization") from exc

    async def list_transactions(
        self,
        payment_reference: str,
        customer_email: str,
        amount: int,
        currency: str = "KES",
        status: str = "success",
        limit: int = 10,
    ) -> KorapayTransactionList:
        """Query transactions matching a reference and customer."""
        params = {
            "payment_reference": payment_reference,
            "status": status,
            "customer_email": customer_email,
            "amount": str(amount),
            "currency": currency,
            "limit": str(limit),
        }
        payload = await self._request("GET", TRANSACTIONS_PATH, params=params)
        try:
            return KorapayTransactionList.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Unexpected Korapay transaction list: %s", payload)
            raise KorapayResponseError("Unexpected response from Korapay transaction list") from exc


def find_matching_transaction(
    transactions: list[KorapayTransaction],
    transaction_id: str,
    email: str,
    expected_minor_units: int,
) -> KorapayTransaction | None:
    """Pick the successful transaction that pays for this purchase, if any.

    The provider's filtered response is trusted as-is; no signature is checked.
    """
    for tx in transactions:
        if (
            tx.status == "success"
            and tx.customer is not None
            and tx.customer.email == email
            and tx.payment_reference == transaction_id
            and tx.amount == expected_minor_units
        ):
            return tx
    return None


def get_korapay_client() -> KorapayClient:
    """Build a client from the server-side settings.

    Raises:
        KorapayConfigError: If KORAPAY_SECRET_KEY is not set.
    """
    settings = get_settings()
    if not settings.korapay_secret_key:
        raise KorapayConfigError("KORAPAY_SECRET_KEY is not set")
    return KorapayClient(secret_key=settings.korapay_secret_key, base_url=settings.korapay_base_url)
