"""
Billing Service - Stripe customers, subscriptions, payment methods and invoices
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings, DEFAULT_SUBSCRIPTION, ROLE_USER
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository
from database_models import Subscription, User
from services.activity_service import ActivityService
from services.role_service import RoleService

logger = logging.getLogger(__name__)

# Initialize Stripe client
if settings.stripe_secret_key:
    stripe.api_key = settings.stripe_secret_key
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")


class BillingError(Exception):
    """Base error for billing operations."""


class InvalidCustomer(BillingError):
    """The user has no Stripe customer yet."""


class IncompletePayment(BillingError):
    """
    The subscription payment could not be completed.

    payment is the Stripe PaymentIntent the client has to confirm or retry.
    """

    def __init__(self, payment, message: str = "The payment attempt could not be completed."):
        super().__init__(message)
        self.payment = payment


def stripe_field(stripe_object, key: str, default=None):
    """
    Read an optional field from a Stripe API object.

    StripeObject stopped being a dict in newer SDK releases, so ``.get`` is
    not available on every version; item access guarded by ``in`` is.
    """
    if stripe_object is None or key not in stripe_object:
        return default
    value = stripe_object[key]
    return default if value is None else value


def _timestamp(value) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to a naive UTC datetime."""
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def _first_item(stripe_subscription):
    items = stripe_field(stripe_field(stripe_subscription, "items"), "data", [])
    return items[0] if items else None


def _period_end(stripe_subscription) -> Optional[datetime]:
    # Newer API versions only carry the period on the subscription items
    period_end = stripe_field(stripe_subscription, "cancel_at") or stripe_field(stripe_subscription, "current_period_end")
    if not period_end:
        period_end = stripe_field(_first_item(stripe_subscription), "current_period_end")
    return _timestamp(period_end)


def _ends_at(stripe_subscription, trial_ends_at: Optional[datetime]) -> Optional[datetime]:
    """
    When a subscription synced from Stripe stops: the trial or period end
    for a cancellation at period end, otherwise the scheduled or actual
    cancellation time.
    """
    if stripe_field(stripe_subscription, "cancel_at_period_end"):
        if trial_ends_at is not None and trial_ends_at > datetime.utcnow():
            return trial_ends_at
        return _period_end(stripe_subscription)

    cancelled = stripe_field(stripe_subscription, "cancel_at") or stripe_field(stripe_subscription, "canceled_at")
    return _timestamp(cancelled)


def invoice_filename(invoice) -> str:
    return f"invoice_{stripe_field(invoice, 'number') or invoice.id}.pdf"


class BillingService:
    """
    Service class for Stripe billing operations on behalf of a user.
    Keeps the local Subscription mirror in sync with Stripe.
    """

    def __init__(self, db: AsyncSession, user_repo: Optional[UserRepository] = None):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            user_repo: UserRepository instance, created from db if omitted
        """
        self.db = db
        self.user_repo = user_repo or UserRepository(db)
        self.subscription_repo = SubscriptionRepository(db)

    # ------------------------------------------------------------------
    # Subscription state
    # ------------------------------------------------------------------

    async def subscription(self, user: User, type: str = DEFAULT_SUBSCRIPTION) -> Optional[Subscription]:
        return await self.subscription_repo.get_for_user(user, type)

    async def subscribed(self, user: User, type: str = DEFAULT_SUBSCRIPTION) -> bool:
        """True if the user has a valid (active, trialing or grace period) subscription."""
        subscription = await self.subscription(user, type)
        return subscription is not None and subscription.valid()

    async def on_trial(self, user: User, type: str = DEFAULT_SUBSCRIPTION) -> bool:
        """True if the user is on a generic trial or their subscription is trialing."""
        if user.trial_ends_at is not None and user.trial_ends_at > datetime.utcnow():
            return True
        subscription = await self.subscription(user, type)
        return subscription is not None and subscription.on_trial()

    # ------------------------------------------------------------------
    # Customers and payment methods
    # ------------------------------------------------------------------

    async def create_or_get_stripe_customer(self, user: User) -> str:
        """
        Return the user's Stripe customer ID, creating the customer if needed.
        """
        if user.stripe_id:
            return user.stripe_id

        customer = stripe.Customer.create(
            email=user.email,
            metadata={"user_id": str(user.id)}
        )
        await self.user_repo.update_user(user, {"stripe_id": customer.id})
        logger.info(f"Created Stripe customer {customer.id} for user {user.id}")
        return customer.id

    def _assert_customer_exists(self, user: User) -> None:
        if not user.stripe_id:
            raise InvalidCustomer(f"User {user.id} is not a Stripe customer yet.")

    async def update_default_payment_method(self, user: User, payment_method_id: str):
        """
        Make a payment method the customer's default for invoices.
        Attaches the payment method to the customer first when needed.

        Args:
            user: Billing customer
            payment_method_id: Stripe PaymentMethod ID (pm_...)

        Returns:
            The Stripe PaymentMethod
        """
        self._assert_customer_exists(user)

        payment_method = stripe.PaymentMethod.retrieve(payment_method_id)
        if stripe_field(payment_method, "customer") != user.stripe_id:
            payment_method = stripe.PaymentMethod.attach(payment_method_id, customer=user.stripe_id)

        stripe.Customer.modify(
            user.stripe_id,
            invoice_settings={"default_payment_method": payment_method.id}
        )
        await self._fill_payment_method_details(user, payment_method)
        return payment_method

    async def update_default_payment_method_from_stripe(self, user: User) -> User:
        """
        Copy the customer's default payment method summary from Stripe to the user.
        """
        self._assert_customer_exists(user)

        customer = stripe.Customer.retrieve(
            user.stripe_id,
            expand=["invoice_settings.default_payment_method"]
        )
        invoice_settings = stripe_field(customer, "invoice_settings")
        default_method = stripe_field(invoice_settings, "default_payment_method")
        if default_method:
            await self._fill_payment_method_details(user, default_method)
        else:
            await self.user_repo.update_user(user, {"pm_type": None, "pm_last_four": None})
        return user

    async def _fill_payment_method_details(self, user: User, payment_method) -> None:
        if payment_method.type == "card":
            details = {"pm_type": payment_method.card.brand, "pm_last_four": payment_method.card.last4}
        else:
            method_details = stripe_field(payment_method, payment_method.type)
            details = {"pm_type": payment_method.type, "pm_last_four": stripe_field(method_details, "last4")}
        await self.user_repo.update_user(user, details)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def create_subscription(
        self,
        user: User,
        price_id: str,
        payment_method: Optional[str] = None,
        type: str = DEFAULT_SUBSCRIPTION,
    ) -> Subscription:
        """
        Create a Stripe subscription for the user and store its local mirror.

        Args:
            user: Subscriber
            price_id: Stripe price ID of the plan
            payment_method: Optional PaymentMethod ID made default before subscribing
            type: Subscription type

        Returns:
            Created Subscription

        Raises:
            IncompletePayment: The first payment needs confirmation or a new
                payment method. The subscription is stored regardless.
        """
        customer_id = await self.create_or_get_stripe_customer(user)

        if payment_method:
            await self.update_default_payment_method(user, payment_method)

        stripe_subscription = stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            payment_behavior="allow_incomplete",
            expand=["latest_invoice.payment_intent"],
            metadata={"type": type, "user_id": str(user.id)},
        )

        subscription = await self.subscription_repo.create(user, {
            "type": type,
            "stripe_id": stripe_subscription.id,
            "stripe_status": stripe_subscription.status,
            "stripe_price": price_id,
            "quantity": 1,
            "trial_ends_at": _timestamp(stripe_field(stripe_subscription, "trial_end")),
            "ends_at": None,
        })
        logger.info(f"Created subscription {subscription.stripe_id} ({subscription.stripe_status}) for user {user.id}")

        if subscription.has_incomplete_payment():
            self._validate_payment(stripe_subscription)
        return subscription

    async def swap(self, subscription: Subscription, price_id: str) -> Subscription:
        """
        Move a subscription to another price, prorating the difference.
        A pending cancellation is lifted.
        """
        current = stripe.Subscription.retrieve(subscription.stripe_id)
        item = _first_item(current)

        stripe_subscription = stripe.Subscription.modify(
            subscription.stripe_id,
            cancel_at_period_end=False,
            items=[{"id": item["id"], "price": price_id}],
            proration_behavior="create_prorations",
            payment_behavior="allow_incomplete",
            expand=["latest_invoice.payment_intent"],
        )

        subscription = await self.subscription_repo.update(subscription, {
            "stripe_status": stripe_subscription.status,
            "stripe_price": price_id,
            "ends_at": None,
        })
        logger.info(f"Swapped subscription {subscription.stripe_id} to {price_id}")

        if subscription.has_incomplete_payment():
            self._validate_payment(stripe_subscription)
        return subscription

    async def cancel(self, subscription: Subscription) -> Subscription:
        """
        Cancel at the end of the current period. The subscription stays
        valid until then (grace period).
        """
        stripe_subscription = stripe.Subscription.modify(
            subscription.stripe_id,
            cancel_at_period_end=True
        )

        if subscription.on_trial():
            ends_at = subscription.trial_ends_at
        else:
            ends_at = _period_end(stripe_subscription)

        return await self.subscription_repo.update(subscription, {
            "stripe_status": stripe_subscription.status,
            "ends_at": ends_at,
        })

    async def resume(self, subscription: Subscription) -> Subscription:
        """
        Undo a cancellation while the subscription is on its grace period.

        Raises:
            BillingError: The grace period is over
        """
        if not subscription.on_grace_period():
            raise BillingError("Unable to resume subscription that is not within grace period.")

        stripe_subscription = stripe.Subscription.modify(
            subscription.stripe_id,
            cancel_at_period_end=False
        )

        return await self.subscription_repo.update(subscription, {
            "stripe_status": stripe_subscription.status,
            "ends_at": None,
        })

    def _validate_payment(self, stripe_subscription) -> None:
        latest_invoice = stripe_field(stripe_subscription, "latest_invoice")
        payment_intent = stripe_field(latest_invoice, "payment_intent")
        if not payment_intent:
            return

        if payment_intent.status == "requires_payment_method":
            raise IncompletePayment(
                payment_intent,
                "The payment attempt failed because of an invalid payment method."
            )
        if payment_intent.status in ("requires_action", "requires_confirmation"):
            raise IncompletePayment(
                payment_intent,
                "The payment attempt failed because additional action is required before it can be completed."
            )

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def find_invoice(self, user: User, invoice_id: str):
        """
        Retrieve one of the user's invoices.

        Returns:
            The Stripe Invoice, or None if it does not exist or belongs to
            another customer
        """
        try:
            invoice = stripe.Invoice.retrieve(invoice_id)
        except stripe.InvalidRequestError as e:
            logger.info(f"Invoice {invoice_id} not found: {e}")
            return None

        if not user.stripe_id or invoice.customer != user.stripe_id:
            logger.warning(f"User {user.id} requested invoice {invoice_id} of another customer")
            return None
        return invoice

    def invoices(self, user: User, include_pending: bool = False, limit: int = 24) -> list:
        """
        The user's invoices, newest first.

        Args:
            user: Billing customer
            include_pending: Also return invoices that are not paid yet
            limit: Maximum number of invoices fetched from Stripe
        """
        if not user.stripe_id:
            return []

        result = stripe.Invoice.list(customer=user.stripe_id, limit=limit)
        return [invoice for invoice in result.data if include_pending or invoice.status == "paid"]

    async def download_invoice(self, invoice) -> bytes:
        """
        Fetch the invoice PDF rendered by Stripe.

        Raises:
            BillingError: Stripe has no PDF for this invoice yet
            httpx.HTTPError: The download failed
        """
        pdf_url = stripe_field(invoice, "invoice_pdf")
        if not pdf_url:
            raise BillingError(f"Invoice {invoice.id} has no PDF available yet.")

        async with httpx.AsyncClient(follow_redirects=True) as client:
            response = await client.get(pdf_url, timeout=30)
        response.raise_for_status()
        return response.content

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def process_webhook(self, event):
        """
        Process a verified Stripe webhook event.

        Subscription events update the local mirror; other events are
        acknowledged without changes.

        Args:
            event: Verified Stripe Event object (from webhook signature verification)

        Returns:
            Normalized response: {"data": True, "is_error": False} or {"error": str(e), "is_error": True}
        """
        try:
            event_type = event.type
            logger.info(f"Processing Stripe webhook event: {event_type}")

            stripe_subscription = event.data.object
            if event_type in ("customer.subscription.created", "customer.subscription.updated"):
                await self._sync_subscription(stripe_subscription)
            elif event_type == "customer.subscription.deleted":
                await self._mark_subscription_ended(stripe_subscription)

            return {"data": True, "is_error": False}

        except Exception as e:
            logger.error(f"Error processing webhook: {e}", exc_info=True)
            # Nothing from a half-applied event may be committed
            await self.db.rollback()
            return {"error": str(e), "is_error": True}

    async def _sync_subscription(self, stripe_subscription) -> Optional[Subscription]:
        item = _first_item(stripe_subscription)
        trial_ends_at = _timestamp(stripe_field(stripe_subscription, "trial_end"))
        values = {
            "stripe_status": stripe_subscription.status,
            "stripe_price": item["price"]["id"] if item else None,
            "quantity": stripe_field(item, "quantity"),
            "trial_ends_at": trial_ends_at,
            "ends_at": _ends_at(stripe_subscription, trial_ends_at),
        }

        subscription = await self.subscription_repo.get_by_stripe_id(stripe_subscription.id)
        if subscription is not None:
            return await self.subscription_repo.update(subscription, values)

        user = await self.user_repo.get_user_by_stripe_id(stripe_subscription.customer)
        if user is None:
            logger.warning(f"No user for Stripe customer {stripe_subscription.customer}; skipping subscription sync")
            return None

        metadata = stripe_field(stripe_subscription, "metadata")
        values["type"] = stripe_field(metadata, "type", DEFAULT_SUBSCRIPTION)
        values["stripe_id"] = stripe_subscription.id
        return await self.subscription_repo.create(user, values)

    async def _mark_subscription_ended(self, stripe_subscription) -> Optional[Subscription]:
        subscription = await self.subscription_repo.get_by_stripe_id(stripe_subscription.id)
        if subscription is None:
            logger.warning(f"Received deletion for unknown subscription {stripe_subscription.id}")
            return None

        subscription = await self.subscription_repo.update(subscription, {
            "stripe_status": "canceled",
            "ends_at": datetime.utcnow(),
        })

        user = await self.user_repo.get_user_by_id(subscription.user_id)
        if user is not None:
            # Another valid subscription of the same type keeps its role
            if not await self.subscribed(user, subscription.type):
                await RoleService(self.user_repo).assign_billing_role(user, ROLE_USER)
            await ActivityService(self.db).log(user, "subscription ended", {"subscription": subscription.stripe_id})
        return subscription
