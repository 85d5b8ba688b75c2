from pydantic import BaseModel, Field
from enum import Enum
import uuid


class StockPaymentMethod(str, Enum):
    ONLINE = "online"
    CASH_ON_DELIVERY = "cash_on_delivery"


class StockOrderCreate(BaseModel):
    product_id: uuid.UUID = Field(description="Wholesale listing to order from")
    quantity: int = Field(gt=0)


class StockOrderConfirm(BaseModel):
    payment_method: StockPaymentMethod = Field(
        description="cash_on_delivery confirms immediately; online orders are confirmed by /payments/verify"
    )
