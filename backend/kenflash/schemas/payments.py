"""Request and response bodies for the payment functions.

Field names on the wire are camelCase to match the web client.
"""
from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChargeInitRequest(_CamelModel):
    """Body of ``POST /initialize-korapay-charge``.

    All fields are optional at the schema level so a missing one is reported
    as a 400 with the function's own message rather than a 422.
    """
    email: str | None = None
    plan_name: str | None = Field(None, alias="planName")
    amount: float | None = None
    transaction_id: str | None = Field(None, alias="transactionId")


class ChargeInitResponse(_CamelModel):
    success: bool = True
    message: str = "Charge initiated successfully"
    checkout_url: str = Field(..., alias="checkoutUrl")
    korapay_reference: str | None = Field(None, alias="korapayReference")


class VerifyPaymentRequest(_CamelModel):
    """Body of ``POST /verify-korapay-payment``."""
    transaction_id: str | None = Field(None, alias="transactionId")
    email: str | None = None
    plan_name: str | None = Field(None, alias="planName")


class VerifyPaymentResponse(_CamelModel):
    success: bool = True
    message: str
    expiry_time: str = Field(..., alias="expiryTime")
    transaction_ref: str = Field(..., alias="transactionRef")


class FunctionErrorResponse(BaseModel):
    """Error body shared by both functions."""
    success: bool = False
    error: str
