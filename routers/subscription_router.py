"""
Subscription Router - subscribe, cancel, resume, trial, payment method and invoices
"""

import logging
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from backend.utils.responses import success_response, error_response
from config.settings import (
    get_plans,
    PERMISSION_CANCEL,
    PERMISSION_GET_INVOICE,
    PERMISSION_RESUME,
    PERMISSION_START_TRIAL,
    PERMISSION_SUBSCRIBE,
    ROLE_PREMIUM,
    ROLE_TRIAL,
)
from crud.user import UserRepository
from database import get_db
from database_models import User
from models.resources import invoice_collection, user_resource
from models.subscription import SubscribeRequest, UpdatePaymentMethodRequest
from services.activity_service import ActivityService
from services.billing_service import BillingService, IncompletePayment, invoice_filename
from services.role_service import RoleService, can
from services.trial_service import TrialService

logger = logging.getLogger(__name__)

subscription_router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@subscription_router.post("/subscribe")
async def subscribe(
    request: SubscribeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Subscribe to a plan, or swap plans when already subscribed.
    """
    if not can(user, PERMISSION_SUBSCRIBE):
        return error_response("Unauthorized to subscribe", 403)

    try:
        plans = get_plans()
        if request.plan not in plans:
            return error_response("Invalid subscription plan", 422)

        plan = plans[request.plan]
        user_repo = UserRepository(db)
        billing = BillingService(db, user_repo)

        if await billing.subscribed(user):
            await billing.swap(await billing.subscription(user), plan["stripe_id"])
            description = "changed subscription plan"
            message = "Subscription plan changed successfully"
        else:
            await billing.create_subscription(user, plan["stripe_id"], request.payment_method)
            description = "subscribed to plan"
            message = "Subscription created successfully"

        await RoleService(user_repo).assign_billing_role(user, ROLE_PREMIUM)
        await ActivityService(db).log(user, description, {"plan": plan["name"]})

        await user_repo.refresh(user)
        return success_response(user_resource(user), message)
    except IncompletePayment as exception:
        return error_response(
            "Incomplete payment, please confirm your payment",
            402,
            {"payment_intent": exception.payment.id}
        )
    except Exception as e:
        logger.error(f"Subscription error: {e}", exc_info=True)
        return error_response(f"Failed to process subscription: {str(e)}", 500)


@subscription_router.get("")
async def show(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Current subscription and trial status.
    """
    billing = BillingService(db)
    on_trial = await billing.on_trial(user)

    if not await billing.subscribed(user) and not on_trial:
        return success_response({
            "status": "free",
            "on_trial": False,
        })

    subscription = await billing.subscription(user)
    data = {
        "status": subscription.stripe_status if subscription else "no_subscription",
        "on_trial": on_trial,
        "trial_ends_at": user.trial_ends_at,
    }

    if subscription:
        data["plan"] = subscription.type
        data["ends_at"] = subscription.ends_at
        data["canceled"] = subscription.canceled()

    return success_response(data)


@subscription_router.post("/cancel")
async def cancel(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel the subscription at the end of the billing period.
    """
    if not can(user, PERMISSION_CANCEL):
        return error_response("Unauthorized to cancel subscription", 403)

    billing = BillingService(db)
    if not await billing.subscribed(user):
        return error_response("You do not have an active subscription", 400)

    await billing.cancel(await billing.subscription(user))
    await ActivityService(db).log(user, "cancelled subscription")

    return success_response(None, "Subscription has been cancelled")


@subscription_router.post("/resume")
async def resume(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Resume a cancelled subscription that is still on its grace period.
    """
    if not can(user, PERMISSION_RESUME):
        return error_response("Unauthorized to resume subscription", 403)

    billing = BillingService(db)
    subscription = await billing.subscription(user)
    if not subscription or not subscription.canceled() or not subscription.on_grace_period():
        return error_response("Subscription cannot be resumed", 400)

    await billing.resume(subscription)
    await ActivityService(db).log(user, "resumed subscription")

    return success_response(None, "Subscription has been resumed")


@subscription_router.post("/trial")
async def start_trial(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Start the one-time free trial.
    """
    if not can(user, PERMISSION_START_TRIAL):
        return error_response("Unauthorized to start trial", 403)

    user_repo = UserRepository(db)
    trial_service = TrialService(db, user_repo)
    billing = BillingService(db, user_repo)

    if await billing.on_trial(user) or trial_service.has_used_trial(user):
        return error_response("You have already used your trial period", 400)

    if await billing.subscribed(user):
        return error_response("You already have a premium subscription, no need for a trial", 400)

    trial_days = trial_service.trial_days
    await trial_service.start_trial(user, trial_days)
    await RoleService(user_repo).assign_billing_role(user, ROLE_TRIAL)
    await ActivityService(db).log(user, "started trial", {"days": trial_days})

    await user_repo.refresh(user)
    return success_response(user_resource(user), f"Your {trial_days}-day trial has started")


@subscription_router.post("/payment-method")
async def update_payment_method(
    request: UpdatePaymentMethodRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Replace the default payment method.
    """
    try:
        user_repo = UserRepository(db)
        billing = BillingService(db, user_repo)

        await billing.update_default_payment_method(user, request.payment_method)
        await billing.update_default_payment_method_from_stripe(user)
        await ActivityService(db).log(user, "updated payment method")

        await user_repo.refresh(user)
        return success_response(user_resource(user), "Payment method updated successfully")
    except Exception as e:
        logger.error(f"Payment method update error: {e}", exc_info=True)
        return error_response(f"Failed to update payment method: {str(e)}", 500)


@subscription_router.get("/invoices")
async def list_invoices(
    include_pending: bool = Query(default=False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List the user's invoices.
    """
    if not can(user, PERMISSION_GET_INVOICE):
        return error_response("Unauthorized to view invoices", 403)

    try:
        if not user.stripe_id:
            return success_response({"invoices": []}, "No invoices found")

        invoices = BillingService(db).invoices(user, include_pending=include_pending)
        await ActivityService(db).log(user, "viewed invoices")

        return success_response(invoice_collection(invoices))
    except Exception as e:
        logger.error(f"List invoices error: {e}", exc_info=True)
        return error_response(f"Failed to retrieve invoices: {str(e)}", 500)


@subscription_router.get("/invoices/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Download an invoice as PDF.
    """
    if not can(user, PERMISSION_GET_INVOICE):
        return error_response("Unauthorized to view invoices", 403)

    try:
        billing = BillingService(db)
        invoice = billing.find_invoice(user, invoice_id)
        if not invoice:
            return error_response("Invoice not found", 404)

        content = await billing.download_invoice(invoice)
        await ActivityService(db).log(user, "downloaded invoice", {"invoice_id": invoice_id})

        return Response(
            content=content,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{invoice_filename(invoice)}"'}
        )
    except Exception as e:
        logger.error(f"Invoice download error: {e}", exc_info=True)
        return error_response(f"Failed to download invoice: {str(e)}", 500)
