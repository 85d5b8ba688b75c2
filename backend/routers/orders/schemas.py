from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum
import uuid


class OrderType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class RetailAction(str, Enum):
    PROCESS = "process"
    DISPATCH = "dispatch"
    DELIVER = "deliver"
    CANCEL = "cancel"


class CartLine(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(gt=0)


class CheckoutRequest(BaseModel):
    items: List[CartLine] = Field(min_length=1)
    order_type: OrderType = OrderType.DELIVERY
    payment_method: Optional[str] = Field(None, description="online or cash_on_delivery; pickup orders are paid at the store")
    delivery_address: Optional[str] = None
    delivery_lat: Optional[float] = Field(None, ge=-90, le=90)
    delivery_lng: Optional[float] = Field(None, ge=-180, le=180)
    scheduled_delivery: Optional[datetime] = None


class OrderItemResponse(BaseModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    price: float


class OrderResponse(BaseModel):
    id: str
    order_class: str
    buyer_id: str
    seller_id: str
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    total_price: float
    payment_method: Optional[str] = None
    is_paid: bool = False
    payment_id: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_lat: Optional[float] = None
    delivery_lng: Optional[float] = None
    scheduled_delivery: Optional[datetime] = None
    status: str
    items: List[OrderItemResponse] = []
    created_at: datetime
    updated_at: datetime


class OrderWithDetailsResponse(OrderResponse):
    buyer_name: Optional[str] = None
    seller_name: Optional[str] = None
    allowed_actions: List[str] = []


class OrderListResponse(BaseModel):
    orders: List[OrderWithDetailsResponse]
    total: int


class CheckoutResponse(BaseModel):
    orders: List[OrderResponse]
    message: str


class OrderActionResponse(BaseModel):
    order: OrderResponse
    message: str


class ClearCompletedResponse(BaseModel):
    deleted: int
    message: str
