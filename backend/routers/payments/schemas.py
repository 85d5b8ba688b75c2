from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from routers.orders.schemas import OrderResponse
import uuid


class PaymentCreate(BaseModel):
    order_id: uuid.UUID = Field(description="Approved stock order, or retail order placed with online payment")


class PaymentResponse(BaseModel):
    id: str
    user_id: str
    order_id: Optional[str] = None
    amount: float
    currency: str
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    status: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentVerification(BaseModel):
    razorpay_order_id: str = Field(description="Razorpay order ID")
    razorpay_payment_id: str = Field(description="Razorpay payment ID")
    razorpay_signature: str = Field(description="Razorpay signature for verification")


class PaymentCancel(BaseModel):
    razorpay_order_id: str = Field(description="Razorpay order ID")
    reason: Optional[str] = Field(None, max_length=255, description="Gateway error or user cancellation")


class PaymentOrderResponse(BaseModel):
    order_id: str = Field(description="Razorpay order ID")
    amount: float = Field(description="Payment amount in rupees")
    amount_subunits: int = Field(description="Payment amount in paise, as sent to the gateway")
    currency: str = Field(description="Currency code")
    key: str = Field(description="Razorpay public key")
    payment_id: str = Field(description="Internal payment record ID")


class PaymentVerificationResponse(BaseModel):
    message: str = Field(description="Success message")
    payment_id: str = Field(description="Razorpay payment ID")
    order: OrderResponse
