"""
Billing Router - Stripe webhook and plan catalogue
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from backend.utils.responses import success_response
from config.settings import settings, get_plans
from database import get_db
from services.billing_service import BillingService

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


def _webhook_ack(ok: bool, **extra) -> JSONResponse:
    # Stripe retries anything but 2xx, so every outcome is acknowledged with 200
    return JSONResponse(status_code=200, content={"ok": ok, "received": True, **extra})


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Handle Stripe webhook events with signature verification.

    Only verified events are processed. Subscription events keep the local
    subscription records in sync with Stripe.

    Args:
        request: FastAPI Request object (for raw body)
        db: Database session dependency

    Returns:
        JSON response with 200 status code
    """
    try:
        webhook_secret = settings.stripe_webhook_secret
        if not webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET environment variable is not set")
            return _webhook_ack(False, error="Webhook secret not configured")

        # Raw body is required for signature verification
        payload = await request.body()

        stripe_signature = request.headers.get("stripe-signature")
        if not stripe_signature:
            logger.error("Missing Stripe-Signature header")
            return _webhook_ack(False, error="Missing signature header")

        try:
            event = stripe.Webhook.construct_event(
                payload,
                stripe_signature,
                webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            logger.error(f"Stripe webhook signature verification failed: {e}")
            return _webhook_ack(False, error="Invalid webhook signature")
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            return _webhook_ack(False, error="Invalid payload format")

        result = await BillingService(db).process_webhook(event)

        return _webhook_ack(not result.get("is_error", True), event_type=event.type)

    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        return _webhook_ack(False, error=str(e))


@billing_router.get("/plans")
async def list_plans():
    """
    Plans available for subscription and the free trial length.
    """
    plans = [
        {"key": key, "name": plan["name"], "stripe_id": plan["stripe_id"]}
        for key, plan in get_plans().items()
    ]
    return success_response({"plans": plans, "trial_days": settings.subscription_trial_days})
