"""Payment functions: Korapay charge initialization and payment verification.

Both endpoints hold the Korapay secret key server-side. Only verification
writes to the database, and only after Korapay reports a matching successful
transaction.
"""
import logging

import httpx
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kenflash.clock import SystemClock, get_clock, to_iso
from kenflash.config import get_settings
from kenflash.database import get_db
from kenflash.schemas.korapay import KorapayChargeRequest, KorapayCustomer
from kenflash.schemas.payments import (
    ChargeInitRequest,
    ChargeInitResponse,
    FunctionErrorResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from kenflash.services.korapay import (
    KorapayConfigError,
    KorapayError,
    KorapayResponseError,
    find_matching_transaction,
    get_korapay_client,
)
from kenflash.services.plans import UnknownPlanError, amount_in_minor_units, get_plan
from kenflash.services.subscription_store import record_subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])

INITIALIZE_CHARGE_PATH = "/initialize-korapay-charge"
VERIFY_PAYMENT_PATH = "/verify-korapay-payment"

ERROR_RESPONSES = {
    400: {"model": FunctionErrorResponse},
    500: {"model": FunctionErrorResponse},
}


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _secret_prefix(secret: str) -> str:
    return f"{secret[:5]}..."


@router.post(
    INITIALIZE_CHARGE_PATH,
    response_model=ChargeInitResponse,
    responses=ERROR_RESPONSES,
)
async def initialize_korapay_charge(request: ChargeInitRequest):
    """Create a hosted Korapay checkout and return its URL.

    No database writes happen here; the caller keeps ``transactionId`` and
    presents it to the verification function after checkout.
    """
    if not (request.email and request.plan_name and request.amount and request.transaction_id):
        return _failure(
            status.HTTP_400_BAD_REQUEST,
            "Missing required parameters: email, planName, amount, transactionId",
        )
    if request.amount < 0:
        return _failure(status.HTTP_400_BAD_REQUEST, "amount must be positive")

    settings = get_settings()
    try:
        korapay = get_korapay_client()
    except KorapayConfigError:
        logger.error("KORAPAY_SECRET_KEY is not set; cannot initialize charge")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error")

    logger.info(
        "Initializing Korapay charge for email=%s plan=%s amount=%s transactionId=%s (key %s)",
        request.email, request.plan_name, request.amount, request.transaction_id,
        _secret_prefix(korapay.secret_key),
    )
    charge = KorapayChargeRequest(
        amount=amount_in_minor_units(request.amount),
        currency=settings.korapay_currency,
        reference=request.transaction_id,
        description=f"{request.plan_name} Content Access",
        redirect_url=settings.redirect_url,
        notification_url=settings.notification_url,
        customer=KorapayCustomer(email=request.email, name="Draftey Customer"),
        metadata={"plan_name": request.plan_name, "user_email": request.email},
    )

    try:
        result = await korapay.initialize_charge(charge)
    except KorapayError as exc:
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Korapay charge initiation failed (HTTP Status: {exc.status_code})",
        )
    except KorapayResponseError as exc:
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except httpx.HTTPError as exc:
        logger.error("Could not reach Korapay to initialize charge %s: %s", request.transaction_id, exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Could not reach Korapay")

    if result.status and result.data and result.data.checkout_url:
        logger.info("Korapay checkout URL received for %s", request.transaction_id)
        return ChargeInitResponse(
            checkout_url=result.data.checkout_url,
            korapay_reference=result.data.reference,
        )

    logger.error("Korapay charge response had no checkout_url: %s", result.model_dump())
    return _failure(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        result.message or "Failed to get checkout URL from Korapay",
    )


@router.post(
    VERIFY_PAYMENT_PATH,
    response_model=VerifyPaymentResponse,
    responses={**ERROR_RESPONSES, 402: {"model": FunctionErrorResponse}},
)
async def verify_korapay_payment(
    request: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    clock: SystemClock = Depends(get_clock),
):
    """Confirm a payment with Korapay and record the subscription it buys.

    Korapay's filtered transaction list is the only proof of payment. A
    transaction that was already recorded is acknowledged without a second row.
    """
    if not (request.transaction_id and request.email and request.plan_name):
        return _failure(
            status.HTTP_400_BAD_REQUEST,
            "Missing required parameters: transactionId, email, planName",
        )

    try:
        plan = get_plan(request.plan_name)
    except UnknownPlanError as exc:
        logger.warning("Verification requested for unknown plan %r", request.plan_name)
        return _failure(status.HTTP_400_BAD_REQUEST, str(exc))

    settings = get_settings()
    try:
        korapay = get_korapay_client()
    except KorapayConfigError:
        logger.error("KORAPAY_SECRET_KEY is not set; cannot verify payment")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error")

    logger.info("Verifying payment for transaction ID %s via Korapay", request.transaction_id)
    expected_amount = plan.amount_minor_units
    try:
        listing = await korapay.list_transactions(
            payment_reference=request.transaction_id,
            customer_email=request.email,
            amount=expected_amount,
            currency=settings.korapay_currency,
        )
    except (KorapayError, KorapayResponseError, httpx.HTTPError) as exc:
        logger.error("Korapay verification failed for %s: %s", request.transaction_id, exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Korapay payment verification failed")

    match = find_matching_transaction(
        listing.data, request.transaction_id, request.email, expected_amount
    )
    if match is None:
        logger.warning(
            "Payment not found or not successful for transactionId %s (%d candidates)",
            request.transaction_id, len(listing.data),
        )
        return _failure(status.HTTP_402_PAYMENT_REQUIRED, "Payment not confirmed by Korapay")

    transaction_ref = str(match.id) if match.id else request.transaction_id
    logger.info("Payment confirmed by Korapay for reference %s", transaction_ref)

    try:
        result = record_subscription(db, request.email, plan.name, transaction_ref, clock.now())
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Payment %s for %s confirmed by Korapay but the subscription was not recorded",
            transaction_ref, request.email,
        )
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to record subscription in database")

    subscription = result.subscription
    return VerifyPaymentResponse(
        message="Subscription activated" if result.created else "Subscription already active",
        expiry_time=to_iso(subscription.expiry_time),
        transaction_ref=subscription.transaction_ref,
    )
