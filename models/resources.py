"""
Response serializers for users, subscriptions and invoices
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

from database_models import Subscription, User
from services.billing_service import stripe_field


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def subscription_resource(subscription: Subscription) -> dict:
    return {
        "type": subscription.type,
        "stripe_status": subscription.stripe_status,
        "stripe_price": subscription.stripe_price,
        "quantity": subscription.quantity,
        "trial_ends_at": _iso(subscription.trial_ends_at),
        "ends_at": _iso(subscription.ends_at),
        "canceled": subscription.canceled(),
    }


def user_resource(user: User) -> dict:
    """
    Public representation of a user. Never exposes the password hash or
    the Stripe customer ID.
    """
    return {
        "id": user.id,
        "email": user.email,
        "roles": user.role_names,
        "trial_ends_at": _iso(user.trial_ends_at),
        "pm_type": user.pm_type,
        "pm_last_four": user.pm_last_four,
        "subscriptions": [subscription_resource(s) for s in user.subscriptions],
        "created_at": _iso(user.created_at),
    }


def invoice_resource(invoice) -> dict:
    created = stripe_field(invoice, "created")
    return {
        "id": invoice.id,
        "number": stripe_field(invoice, "number"),
        "date": datetime.fromtimestamp(created, tz=timezone.utc).isoformat() if created else None,
        "total": stripe_field(invoice, "total"),
        "amount_paid": stripe_field(invoice, "amount_paid"),
        "currency": stripe_field(invoice, "currency"),
        "status": stripe_field(invoice, "status"),
        "hosted_invoice_url": stripe_field(invoice, "hosted_invoice_url"),
        "invoice_pdf": stripe_field(invoice, "invoice_pdf"),
    }


def invoice_collection(invoices: Iterable) -> dict:
    return {"invoices": [invoice_resource(invoice) for invoice in invoices]}
