"""
Subscription request models
"""
from typing import Optional
from pydantic import BaseModel, Field


class SubscribeRequest(BaseModel):
    plan: str = Field(..., min_length=1)
    payment_method: Optional[str] = None


class UpdatePaymentMethodRequest(BaseModel):
    payment_method: str = Field(..., min_length=1)
