# app/schemas/purchase.py
# Pydantic response models for checkout and payment webhook endpoints

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CheckoutResponse(BaseModel):
    """
    status=active  -> access granted now
    status=pending -> frontend opens Razorpay checkout with payment_reference
    status=failed  -> declined; error explains
    """
    kind: str                            # session | schedule
    purchase_id: UUID
    status: str
    amount_paise: int = 0
    payment_reference: Optional[str] = None
    error: Optional[str] = None
    already_entitled: bool = False


class WebhookResponse(BaseModel):
    received: bool
    event: str
    processed: bool
    message: Optional[str] = None
