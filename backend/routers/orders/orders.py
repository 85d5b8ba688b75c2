from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from config import get_db
from models import UserProfile
from routers.auth.auth import get_current_profile
from dependencies.rbac import (
    require_order_read, require_order_write, require_order_delete,
    require_customer, require_retailer
)
from services.lifecycle import OrderClass
from services.orders import OrderService
from utils.errors import MarketplaceError
from .helpers import order_response, orders_with_details, cleared_response
from .schemas import (
    CheckoutRequest, CheckoutResponse, OrderListResponse, OrderWithDetailsResponse,
    OrderActionResponse, ClearCompletedResponse, RetailAction
)
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

ACTION_MESSAGES = {
    RetailAction.PROCESS: "Order is being prepared",
    RetailAction.DISPATCH: "Order is out for delivery",
    RetailAction.DELIVER: "Order marked as delivered",
    RetailAction.CANCEL: "Order cancelled",
}


@router.post("/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    checkout_data: CheckoutRequest,
    background_tasks: BackgroundTasks,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_write),
    __: bool = Depends(require_customer)
):
    """
    Place the cart: one order per seller, stock is reserved immediately
    """
    service = OrderService(db)
    try:
        orders = await service.checkout(
            profile,
            [(line.product_id, line.quantity) for line in checkout_data.items],
            checkout_data.order_type.value,
            payment_method=checkout_data.payment_method,
            delivery_address=checkout_data.delivery_address,
            delivery_lat=checkout_data.delivery_lat,
            delivery_lng=checkout_data.delivery_lng,
            scheduled_delivery=checkout_data.scheduled_delivery,
        )
        service.schedule(background_tasks)

        return CheckoutResponse(
            orders=[order_response(order) for order in orders],
            message=f"Placed {len(orders)} order(s) successfully"
        )

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error placing order: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to place order"
        )


@router.get("/my-orders", response_model=OrderListResponse)
async def get_my_orders(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_read)
):
    """
    Retail orders the current user has placed, newest first
    """
    try:
        orders = await OrderService(db).orders_for(profile, OrderClass.RETAIL, "buyer")
        details = await orders_with_details(db, orders, profile)
        return OrderListResponse(orders=details, total=len(details))

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting orders: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )


@router.get("/seller", response_model=OrderListResponse)
async def get_seller_orders(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_read),
    __: bool = Depends(require_retailer)
):
    """
    Customer orders received by the current retailer
    """
    try:
        orders = await OrderService(db).orders_for(profile, OrderClass.RETAIL, "seller")
        details = await orders_with_details(db, orders, profile)
        return OrderListResponse(orders=details, total=len(details))

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting seller orders: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )


@router.get("/schedule", response_model=OrderListResponse)
async def get_delivery_schedule(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_read),
    __: bool = Depends(require_retailer)
):
    """
    Active orders with a delivery slot, soonest first
    """
    try:
        orders = await OrderService(db).delivery_schedule(profile)
        details = await orders_with_details(db, orders, profile)
        return OrderListResponse(orders=details, total=len(details))

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting delivery schedule: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve delivery schedule"
        )


@router.delete("/completed", response_model=ClearCompletedResponse)
async def clear_completed_orders(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_delete),
    __: bool = Depends(require_retailer)
):
    """
    Permanently delete delivered and cancelled customer orders
    """
    try:
        count = await OrderService(db).clear_completed(profile, OrderClass.RETAIL)
        return cleared_response(count)

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error clearing orders: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to clear completed orders"
        )


@router.get("/{order_id}", response_model=OrderWithDetailsResponse)
async def get_order(
    order_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_read)
):
    try:
        order = await OrderService(db).get_for(profile, order_id)
        details = await orders_with_details(db, [order], profile)
        return details[0]

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error getting order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve order"
        )


@router.post("/{order_id}/{action}", response_model=OrderActionResponse)
async def update_order_status(
    order_id: uuid.UUID,
    action: RetailAction,
    background_tasks: BackgroundTasks,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_order_write),
    __: bool = Depends(require_retailer)
):
    """
    Move a customer order along: process, dispatch, deliver or cancel
    """
    service = OrderService(db)
    try:
        order = await service.advance_retail(profile, order_id, action.value)
        service.schedule(background_tasks)
        return OrderActionResponse(order=order_response(order), message=ACTION_MESSAGES[action])

    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        logger.error(f"Error updating order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update order"
        )
