from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from config import get_db
from models import UserProfile
from routers.auth.auth import get_current_profile
from routers.orders.helpers import order_response
from dependencies.rbac import require_payment_read, require_payment_write
from services.payments import PaymentService, get_payment_gateway
from utils.errors import MarketplaceError
from utils.payment_gateway import RazorpayGateway, to_subunits
from utils.response_helpers import safe_model_validate_list
from .schemas import (
    PaymentCreate, PaymentResponse, PaymentVerification, PaymentCancel,
    PaymentOrderResponse, PaymentVerificationResponse
)
from typing import List
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-order", response_model=PaymentOrderResponse)
async def create_payment_order(
    payment_data: PaymentCreate,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    _: bool = Depends(require_payment_write)
):
    """
    Create a Razorpay order for an approved stock order or an online retail order
    """
    try:
        payment, gateway_order = await PaymentService(db, gateway).initiate(profile, payment_data.order_id)

        return PaymentOrderResponse(
            order_id=gateway_order["id"],
            amount=payment.amount,
            amount_subunits=to_subunits(payment.amount),
            currency=payment.currency,
            key=gateway.key_id,
            payment_id=str(payment.id)
        )

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error creating payment order: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create payment order"
        )


@router.post("/verify", response_model=PaymentVerificationResponse)
async def verify_payment(
    verification_data: PaymentVerification,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    _: bool = Depends(require_payment_write)
):
    """
    Verify the Razorpay signature and resume the order
    """
    try:
        payment, order = await PaymentService(db, gateway).verify(
            profile,
            verification_data.razorpay_order_id,
            verification_data.razorpay_payment_id,
            verification_data.razorpay_signature
        )

        return PaymentVerificationResponse(
            message="Payment verified successfully",
            payment_id=payment.razorpay_payment_id,
            order=order_response(order)
        )

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error verifying payment: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify payment"
        )


@router.post("/cancel")
async def cancel_payment(
    cancel_data: PaymentCancel,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    _: bool = Depends(require_payment_write)
):
    """
    Record a failed or abandoned payment; the order stays as it was
    """
    try:
        await PaymentService(db, gateway).cancel(profile, cancel_data.razorpay_order_id, cancel_data.reason)
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error cancelling payment: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel payment"
        )


@router.get("/history", response_model=List[PaymentResponse])
async def get_payment_history(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    _: bool = Depends(require_payment_read)
):
    """
    Get user's payment history
    """
    try:
        payments = await PaymentService(db, gateway).history(profile)
        return safe_model_validate_list(PaymentResponse, payments)

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting payment history: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve payment history"
        )
