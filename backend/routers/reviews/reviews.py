from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select
from config import get_db
from models import UserProfile, Review
from routers.auth.auth import get_current_profile
from dependencies.rbac import require_review_read, require_review_write, require_customer
from services.lifecycle import OrderClass, RetailStatus
from services.stores import OrderStore
from utils.errors import MarketplaceError
from utils.response_helpers import safe_model_validate
from .schemas import ReviewCreate, ReviewResponse, ProductReviewsResponse
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])


def review_response(review: Review) -> ReviewResponse:
    review_dict = safe_model_validate(ReviewResponse, review).model_dump()
    review_dict["reviewer_name"] = review.user.full_name if review.user else None
    return ReviewResponse.model_validate(review_dict)


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    review_data: ReviewCreate,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_review_write),
    __: bool = Depends(require_customer)
):
    """Review a product from one of the caller's delivered orders"""
    try:
        order = await OrderStore(db).get(review_data.order_id)
        if not order or order.order_class != OrderClass.RETAIL.value or order.buyer_id != profile.id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found"
            )

        if order.status != RetailStatus.DELIVERED.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only delivered orders can be reviewed"
            )

        if review_data.product_id not in {item.product_id for item in order.items}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Product is not part of this order"
            )

        existing = await db.execute(
            select(Review.id).where(
                Review.user_id == profile.id,
                Review.order_id == order.id,
                Review.product_id == review_data.product_id
            )
        )
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You have already reviewed this product for this order"
            )

        review = Review(user_id=profile.id, **review_data.model_dump())
        review.user = profile
        db.add(review)
        await db.commit()
        logger.info(f"Review by {profile.id} on product {review.product_id}")

        return review_response(review)

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error creating review: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create review"
        )


@router.get("/product/{product_id}", response_model=ProductReviewsResponse)
async def get_product_reviews(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_review_read)
):
    """Reviews for a product, newest first, with the average rating"""
    try:
        result = await db.execute(
            select(Review)
            .options(selectinload(Review.user))
            .where(Review.product_id == product_id)
            .order_by(Review.created_at.desc())
        )
        reviews = list(result.scalars().all())

        average_rating = None
        if reviews:
            average_rating = round(sum(review.rating for review in reviews) / len(reviews), 1)

        return ProductReviewsResponse(
            product_id=str(product_id),
            reviews=[review_response(review) for review in reviews],
            average_rating=average_rating,
            total=len(reviews)
        )

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting reviews for product {product_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve reviews"
        )
