from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from config import get_db
from models import UserProfile
from routers.auth.auth import get_current_profile
from routers.orders.helpers import order_response, orders_with_details, cleared_response
from routers.orders.schemas import OrderResponse, OrderListResponse, OrderActionResponse, ClearCompletedResponse
from dependencies.rbac import (
    require_stock_order_read, require_stock_order_write, require_stock_order_delete,
    require_retailer, require_wholesaler, require_seller
)
from services.lifecycle import OrderClass, StockStatus
from services.orders import OrderService
from utils.errors import MarketplaceError
from .schemas import StockOrderCreate, StockOrderConfirm
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stock-orders", tags=["Stock Orders"])


def _failed(operation: str, e: Exception) -> HTTPException:
    logger.error(f"Error during {operation}: {str(e)}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation}"
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def request_stock(
    request_data: StockOrderCreate,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_retailer)
):
    """
    Ask a wholesaler for stock; the request waits for approval
    """
    try:
        order = await OrderService(db).request_stock(profile, request_data.product_id, request_data.quantity)
        return order_response(order)
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("request stock", e)


@router.get("/outgoing", response_model=OrderListResponse)
async def get_outgoing_requests(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_read),
    __: bool = Depends(require_retailer)
):
    """
    Stock requests the current retailer has placed
    """
    try:
        orders = await OrderService(db).orders_for(profile, OrderClass.STOCK, "buyer")
        details = await orders_with_details(db, orders, profile)
        return OrderListResponse(orders=details, total=len(details))
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("retrieve stock requests", e)


@router.get("/incoming", response_model=OrderListResponse)
async def get_incoming_requests(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_read),
    __: bool = Depends(require_wholesaler)
):
    """
    Stock requests retailers have sent to the current wholesaler
    """
    try:
        orders = await OrderService(db).orders_for(profile, OrderClass.STOCK, "seller")
        details = await orders_with_details(db, orders, profile)
        return OrderListResponse(orders=details, total=len(details))
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("retrieve stock requests", e)


@router.delete("/completed", response_model=ClearCompletedResponse)
async def clear_completed_requests(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_delete),
    __: bool = Depends(require_wholesaler)
):
    """
    Permanently delete delivered, cancelled and rejected stock requests
    """
    try:
        count = await OrderService(db).clear_completed(profile, OrderClass.STOCK)
        return cleared_response(count)
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("clear completed orders", e)


@router.post("/{order_id}/approve", response_model=OrderActionResponse)
async def approve_request(
    order_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_wholesaler)
):
    """
    Approve a pending request and deduct the stock. A request for more than
    is in stock is rejected instead.
    """
    service = OrderService(db)
    try:
        order = await service.approve_stock(profile, order_id)
        service.schedule(background_tasks)

        if order.status == StockStatus.REJECTED.value:
            message = f"Insufficient stock for {order.quantity} units. Order rejected."
        else:
            message = f"Order approved! Stock deducted: {order.quantity} units"
        return OrderActionResponse(order=order_response(order), message=message)
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("approve order", e)


@router.post("/{order_id}/cancel", response_model=OrderActionResponse)
async def cancel_request(
    order_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_seller)
):
    try:
        order = await OrderService(db).cancel_stock(profile, order_id)
        return OrderActionResponse(order=order_response(order), message="Stock request cancelled")
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("cancel order", e)


@router.post("/{order_id}/confirm", response_model=OrderActionResponse)
async def confirm_request(
    order_id: uuid.UUID,
    confirm_data: StockOrderConfirm,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_retailer)
):
    """
    Confirm an approved request with cash on delivery. Online payments are
    confirmed through /payments/create-order and /payments/verify.
    """
    try:
        order = await OrderService(db).confirm_stock(profile, order_id, confirm_data.payment_method.value)
        return OrderActionResponse(order=order_response(order), message="Order confirmed with cash on delivery")
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("confirm order", e)


@router.post("/{order_id}/ship", response_model=OrderActionResponse)
async def ship_request(
    order_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_wholesaler)
):
    try:
        order = await OrderService(db).ship_stock(profile, order_id)
        return OrderActionResponse(order=order_response(order), message="Order shipped")
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("ship order", e)


@router.post("/{order_id}/deliver", response_model=OrderActionResponse)
async def deliver_request(
    order_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_wholesaler)
):
    try:
        order = await OrderService(db).deliver_stock(profile, order_id)
        return OrderActionResponse(order=order_response(order), message="Order marked as delivered")
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("deliver order", e)


@router.post("/{order_id}/receive", response_model=OrderActionResponse)
async def receive_request(
    order_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_stock_order_write),
    __: bool = Depends(require_retailer)
):
    """
    Add a delivered order to the retailer's inventory
    """
    try:
        order = await OrderService(db).receive_stock(profile, order_id)
        return OrderActionResponse(
            order=order_response(order),
            message=f"Added {order.quantity} units of {order.product_name} to inventory"
        )
    except (HTTPException, MarketplaceError):
        raise
    except Exception as e:
        raise _failed("add stock to inventory", e)
