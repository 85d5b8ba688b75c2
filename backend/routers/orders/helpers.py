from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models import Order, UserProfile
from services.lifecycle import Action, OrderClass, allowed_actions
from utils.response_helpers import safe_model_validate
from .schemas import OrderResponse, OrderWithDetailsResponse, ClearCompletedResponse
from typing import List

# Rejection only happens when an approval finds too little stock
INTERNAL_ACTIONS = {Action.REJECT}


def order_response(order: Order) -> OrderResponse:
    return safe_model_validate(OrderResponse, order, include=("items",))


async def orders_with_details(
    db: AsyncSession,
    orders: List[Order],
    viewer: UserProfile
) -> List[OrderWithDetailsResponse]:
    """Attach party names and the actions the viewer can take next"""
    party_ids = {order.buyer_id for order in orders} | {order.seller_id for order in orders}
    names = {}
    if party_ids:
        result = await db.execute(select(UserProfile).where(UserProfile.id.in_(party_ids)))
        names = {profile.id: profile.display_name for profile in result.scalars().all()}

    details = []
    for order in orders:
        order_dict = order_response(order).model_dump()
        order_dict["buyer_name"] = names.get(order.buyer_id)
        order_dict["seller_name"] = names.get(order.seller_id)
        if viewer.id in (order.buyer_id, order.seller_id):
            order_dict["allowed_actions"] = [
                action.value
                for action in allowed_actions(OrderClass(order.order_class), order.status, viewer.role)
                if action not in INTERNAL_ACTIONS
            ]
        details.append(OrderWithDetailsResponse.model_validate(order_dict))
    return details


def cleared_response(count: int) -> ClearCompletedResponse:
    if count == 0:
        return ClearCompletedResponse(deleted=0, message="No completed orders to clear")
    return ClearCompletedResponse(deleted=count, message=f"Cleared {count} completed order(s)")
