"""Pydantic schemas for the Korapay merchant API.

Only the fields the payment functions read are declared; anything else the
provider sends is ignored.
"""
from pydantic import BaseModel, Field


class KorapayCustomer(BaseModel):
    """Customer block shared by charge requests and transactions."""
    email: str | None = None
    name: str | None = None


class KorapayChargeRequest(BaseModel):
    """Body for ``POST /merchant/api/v1/charges/initialize``."""
    amount: int = Field(..., gt=0, description="Minor units")
    currency: str
    reference: str
    description: str
    redirect_url: str
    notification_url: str | None = None
    customer: KorapayCustomer
    metadata: dict[str, str] = Field(default_factory=dict)
    merchant_bears_cost: bool = True


class KorapayCheckoutData(BaseModel):
    checkout_url: str | None = None
    reference: str | None = None


class KorapayInitializeResponse(BaseModel):
    """Response from the charge initialization endpoint."""
    status: bool
    message: str | None = None
    data: KorapayCheckoutData | None = None


class KorapayTransaction(BaseModel):
    """One entry of the transaction list."""
    id: str | int | None = None
    status: str | None = None
    amount: float | None = None
    currency: str | None = None
    payment_reference: str | None = None
    reference: str | None = None
    customer: KorapayCustomer | None = None


class KorapayTransactionList(BaseModel):
    """Response from ``GET /v1/transactions``."""
    status: bool | None = None
    message: str | None = None
    data: list[KorapayTransaction]
