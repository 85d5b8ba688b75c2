from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
import uuid


class ReviewCreate(BaseModel):
    product_id: uuid.UUID
    order_id: uuid.UUID = Field(description="Delivered retail order containing the product")
    rating: int = Field(..., ge=1, le=5, description="1-5 stars")
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    id: str
    product_id: str
    user_id: str
    order_id: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    reviewer_name: Optional[str] = None
    created_at: datetime


class ProductReviewsResponse(BaseModel):
    product_id: str
    reviews: List[ReviewResponse]
    average_rating: Optional[float] = None
    total: int
