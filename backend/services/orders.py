"""
Order service

Applies lifecycle transitions to persisted orders together with their side
effects (stock movements, notifications). Every public operation runs as one
unit of work: all writes are committed together or rolled back together.
Out-of-band e-mail/SMS deliveries are collected in `outbox` and handed to
BackgroundTasks by the caller once the commit succeeded.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models import Order, Payment, UserProfile
from config import RETAIL_MARKUP
from services.lifecycle import (
    Action,
    OrderClass,
    PaymentMethod,
    PaymentStatus,
    RetailStatus,
    Role,
    StockStatus,
    CLEARABLE_STATUSES,
    TERMINAL_STATUSES,
    SELLER_ROLE,
    next_status,
    parse_role,
)
from services.stores import OrderStore, ProductStore, NotificationStore, as_uuid
from utils.errors import Forbidden, NotFound, PreconditionFailed, ValidationError
from utils.notifications import (
    NOTIFICATION_ORDER_STATUS,
    NOTIFICATION_STOCK_ALERT,
    RETAIL_STATUS_MESSAGES,
    order_status_title,
    stock_alert_message,
    dispatch_order_status,
    dispatch_stock_alert,
)
from typing import Dict, Iterable, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

SELF_PICKUP_ADDRESS = "Self Pickup from Store"
RECEIVED_STOCK_CATEGORY = "Wholesale Received"

ORDER_TYPE_DELIVERY = "delivery"
ORDER_TYPE_PICKUP = "pickup"


def contact_of(profile: Optional[UserProfile]) -> dict:
    if profile is None:
        return {}
    return {"email": profile.email, "phone": profile.phone}


def order_summary(order: Order) -> dict:
    return {
        "id": str(order.id),
        "product_name": order.product_name,
        "quantity": order.quantity,
        "total_price": order.total_price,
    }


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class OrderService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.orders = OrderStore(db)
        self.products = ProductStore(db)
        self.notifications = NotificationStore(db)
        self.outbox: List[Tuple] = []
        self._in_unit_of_work = False

    @asynccontextmanager
    async def unit_of_work(self):
        """Commit once at the end of the outermost block; roll back on any error"""
        if self._in_unit_of_work:
            yield
            return

        self._in_unit_of_work = True
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            self.outbox.clear()
            raise
        finally:
            self._in_unit_of_work = False

    def schedule(self, background_tasks):
        """Hand collected e-mail/SMS deliveries to FastAPI BackgroundTasks"""
        for func, *args in self.outbox:
            background_tasks.add_task(func, *args)
        self.outbox.clear()

    # --- shared helpers ---

    async def _profile(self, profile_id) -> Optional[UserProfile]:
        return await self.db.get(UserProfile, as_uuid(profile_id))

    async def _order(self, order_id, order_class: OrderClass) -> Order:
        order = await self.orders.get(order_id)
        if order is None or order.order_class != order_class.value:
            raise NotFound(f"{order_class.value.title()} order not found")
        return order

    async def _payment_in_progress(self, order_id) -> bool:
        result = await self.db.execute(
            select(Payment.id)
            .where(Payment.order_id == as_uuid(order_id), Payment.status == PaymentStatus.PENDING.value)
            .limit(1)
        )
        return result.first() is not None

    @staticmethod
    def _require_party(order: Order, actor: UserProfile, *sides: str):
        allowed = {getattr(order, f"{side}_id") for side in sides}
        if actor.id not in allowed:
            logger.warning(f"User {actor.id} is not a party of order {order.id}")
            raise Forbidden("You are not allowed to act on this order")

    async def _notify_retail_status(self, order: Order, status: RetailStatus, buyer: Optional[UserProfile] = None):
        await self.notifications.append(
            order.buyer_id,
            NOTIFICATION_ORDER_STATUS,
            order_status_title(order.id),
            RETAIL_STATUS_MESSAGES[status.value],
            order_id=order.id,
        )
        buyer = buyer or await self._profile(order.buyer_id)
        self.outbox.append((dispatch_order_status, contact_of(buyer), order_summary(order), status.value))

    async def _alert_if_depleted(self, product_id, remaining: int, product_name: str, seller_id):
        if remaining != 0:
            return
        title, message = stock_alert_message(product_name)
        await self.notifications.append(seller_id, NOTIFICATION_STOCK_ALERT, title, message)
        seller = await self._profile(seller_id)
        self.outbox.append((dispatch_stock_alert, contact_of(seller), product_name))
        logger.info(f"Product {product_id} ran out of stock")

    # --- retail orders ---

    async def checkout(
        self,
        buyer: UserProfile,
        lines: Iterable[Tuple[str, int]],
        order_type: str,
        payment_method: Optional[str] = None,
        delivery_address: Optional[str] = None,
        delivery_lat: Optional[float] = None,
        delivery_lng: Optional[float] = None,
        scheduled_delivery: Optional[datetime] = None,
    ) -> List[Order]:
        """
        Place one retail order per seller for the given cart lines.
        Stock for every line is taken atomically; if any line cannot be
        fulfilled nothing is written.
        """
        if parse_role(buyer.role) != Role.CUSTOMER:
            raise Forbidden("Only customers can place retail orders")

        quantities: Dict[str, int] = {}
        for product_id, quantity in lines:
            if quantity is None or quantity <= 0:
                raise ValidationError("Quantity must be greater than zero")
            key = str(product_id)
            quantities[key] = quantities.get(key, 0) + quantity
        if not quantities:
            raise ValidationError("Your cart is empty")

        if order_type == ORDER_TYPE_PICKUP:
            method = PaymentMethod.PAY_AT_STORE
            delivery_address, delivery_lat, delivery_lng = SELF_PICKUP_ADDRESS, None, None
        elif order_type == ORDER_TYPE_DELIVERY:
            if not delivery_address or not delivery_address.strip():
                raise ValidationError("Delivery address is required for home delivery")
            try:
                method = PaymentMethod(payment_method)
            except ValueError:
                raise ValidationError(f"Unsupported payment method '{payment_method}'")
            if method == PaymentMethod.PAY_AT_STORE:
                raise ValidationError("Pay at store is only available for store pickup")
            delivery_address = delivery_address.strip()
        else:
            raise ValidationError(f"Unknown order type '{order_type}'")

        if scheduled_delivery is not None:
            scheduled_delivery = _as_aware(scheduled_delivery)
            if scheduled_delivery < datetime.now(timezone.utc):
                raise ValidationError("Scheduled delivery cannot be in the past")

        async with self.unit_of_work():
            products = {str(product.id): product for product in await self.products.get_many(quantities)}

            by_seller: Dict[str, list] = {}
            for product_id, quantity in quantities.items():
                product = products.get(product_id)
                if product is None:
                    raise NotFound(f"Product {product_id} not found")
                if product.is_bulk:
                    raise ValidationError(f"{product.name} is only sold wholesale")
                if product.seller_id == buyer.id:
                    raise ValidationError("You cannot order your own products")
                by_seller.setdefault(str(product.seller_id), []).append((product, quantity))

            created = []
            for seller_id, entries in by_seller.items():
                items = []
                for product, quantity in entries:
                    # Snapshot before the decrement refreshes the row
                    name, price = product.name, product.price
                    remaining = await self.products.try_decrement(product.id, quantity)
                    if remaining is None:
                        raise ValidationError(
                            f"Insufficient stock for {name}. Available: {product.stock}"
                        )
                    await self._alert_if_depleted(product.id, remaining, name, product.seller_id)
                    items.append({
                        "product_id": product.id,
                        "product_name": name,
                        "quantity": quantity,
                        "price": price,
                    })

                order = await self.orders.create(
                    items=items,
                    order_class=OrderClass.RETAIL.value,
                    buyer_id=buyer.id,
                    seller_id=as_uuid(seller_id),
                    product_name=", ".join(item["product_name"] for item in items),
                    quantity=sum(item["quantity"] for item in items),
                    total_price=sum(item["price"] * item["quantity"] for item in items),
                    payment_method=method.value,
                    is_paid=False,
                    delivery_address=delivery_address,
                    delivery_lat=delivery_lat,
                    delivery_lng=delivery_lng,
                    scheduled_delivery=scheduled_delivery,
                    status=RetailStatus.PLACED.value,
                )
                await self._notify_retail_status(order, RetailStatus.PLACED, buyer)
                created.append(order)

        logger.info(f"Customer {buyer.id} placed {len(created)} order(s)")
        return created

    async def advance_retail(self, actor: UserProfile, order_id, action) -> Order:
        """Move a retail order along placed -> processed -> out_for_delivery -> delivered"""
        async with self.unit_of_work():
            order = await self._order(order_id, OrderClass.RETAIL)
            self._require_party(order, actor, "seller")
            target = next_status(OrderClass.RETAIL, order.status, action, actor.role)
            await self.orders.update(order, status=target.value)
            await self._notify_retail_status(order, target)

        logger.info(f"Retail order {order.id} is now {target.value}")
        return order

    async def mark_retail_paid(self, actor: UserProfile, order_id, payment_id: str) -> Order:
        """Record a verified online payment; the order status does not change"""
        async with self.unit_of_work():
            order = await self.retail_order_for_payment(actor, order_id)
            await self.orders.update(order, is_paid=True, payment_id=payment_id)
        return order

    async def delivery_schedule(self, actor: UserProfile) -> List[Order]:
        """Active retail orders of this seller with a delivery slot, soonest first"""
        terminal = [status.value for status in TERMINAL_STATUSES[OrderClass.RETAIL]]
        return await self.orders.query(
            Order.order_class == OrderClass.RETAIL.value,
            Order.seller_id == actor.id,
            Order.scheduled_delivery.is_not(None),
            Order.status.not_in(terminal),
            order_by=Order.scheduled_delivery.asc(),
        )

    async def clear_completed(self, actor: UserProfile, order_class) -> int:
        """
        Delete the seller's finished orders of one class. Not a transition:
        the rows are removed for good.
        """
        order_class = OrderClass(order_class)
        if parse_role(actor.role) != SELLER_ROLE[order_class]:
            raise Forbidden(f"Only a {SELLER_ROLE[order_class].value} can clear {order_class.value} orders")

        clearable = [status.value for status in CLEARABLE_STATUSES[order_class]]
        async with self.unit_of_work():
            completed = await self.orders.query(
                Order.order_class == order_class.value,
                Order.seller_id == actor.id,
                Order.status.in_(clearable),
            )
            count = await self.orders.delete(order.id for order in completed)

        logger.info(f"Cleared {count} completed {order_class.value} order(s) for {actor.id}")
        return count

    # --- stock orders ---

    async def request_stock(self, retailer: UserProfile, product_id, quantity: int) -> Order:
        if parse_role(retailer.role) != Role.RETAILER:
            raise Forbidden("Only retailers can request stock")
        if quantity is None or quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")

        async with self.unit_of_work():
            product = await self.products.get(product_id)
            if product is None:
                raise NotFound("Product not found")
            wholesaler = await self._profile(product.seller_id)
            if wholesaler is None or wholesaler.role != Role.WHOLESALER.value:
                raise ValidationError("Stock can only be requested from wholesalers")

            order = await self.orders.create(
                order_class=OrderClass.STOCK.value,
                buyer_id=retailer.id,
                seller_id=wholesaler.id,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                total_price=product.price * quantity,
                is_paid=False,
                status=StockStatus.PENDING.value,
            )

        logger.info(f"Retailer {retailer.id} requested {quantity} x {product.name}")
        return order

    async def approve_stock(self, wholesaler: UserProfile, order_id) -> Order:
        """
        Approve a pending stock request, taking the quantity from the
        wholesaler's stock. When the stock is short the request is rejected
        instead and no stock changes.
        """
        async with self.unit_of_work():
            order = await self._order(order_id, OrderClass.STOCK)
            self._require_party(order, wholesaler, "seller")
            target = next_status(OrderClass.STOCK, order.status, Action.APPROVE, wholesaler.role)

            remaining = await self.products.try_decrement(order.product_id, order.quantity)
            if remaining is None:
                target = next_status(OrderClass.STOCK, order.status, Action.REJECT, wholesaler.role)
                logger.warning(f"Stock order {order.id} rejected: insufficient stock")
            else:
                await self._alert_if_depleted(order.product_id, remaining, order.product_name, order.seller_id)

            await self.orders.update(order, status=target.value)

        return order

    async def cancel_stock(self, actor: UserProfile, order_id) -> Order:
        return await self._advance_stock(actor, order_id, Action.CANCEL, "buyer", "seller")

    async def ship_stock(self, wholesaler: UserProfile, order_id) -> Order:
        return await self._advance_stock(wholesaler, order_id, Action.SHIP, "seller")

    async def deliver_stock(self, wholesaler: UserProfile, order_id) -> Order:
        return await self._advance_stock(wholesaler, order_id, Action.DELIVER, "seller")

    async def _advance_stock(self, actor: UserProfile, order_id, action: Action, *sides: str) -> Order:
        async with self.unit_of_work():
            order = await self._order(order_id, OrderClass.STOCK)
            self._require_party(order, actor, *sides)
            target = next_status(OrderClass.STOCK, order.status, action, actor.role)
            await self.orders.update(order, status=target.value)

        logger.info(f"Stock order {order.id} is now {target.value}")
        return order

    async def confirm_stock(
        self,
        retailer: UserProfile,
        order_id,
        payment_method: str,
        payment_id: Optional[str] = None,
    ) -> Order:
        """
        Confirm an approved stock order with the chosen payment method.
        Online confirmations need the id of a verified gateway payment.
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method '{payment_method}'")
        if method == PaymentMethod.PAY_AT_STORE:
            raise ValidationError("Stock orders are paid online or on delivery")
        if method == PaymentMethod.ONLINE and not payment_id:
            raise ValidationError("Online payment must be completed before confirming the order")

        async with self.unit_of_work():
            order = await self._order(order_id, OrderClass.STOCK)
            self._require_party(order, retailer, "buyer")
            target = next_status(OrderClass.STOCK, order.status, Action.CONFIRM, retailer.role)
            if method != PaymentMethod.ONLINE and await self._payment_in_progress(order.id):
                raise PreconditionFailed("An online payment for this order is in progress")
            await self.orders.update(
                order,
                status=target.value,
                payment_method=method.value,
                is_paid=method == PaymentMethod.ONLINE,
                payment_id=payment_id,
            )

        logger.info(f"Stock order {order.id} confirmed with {method.value}")
        return order

    async def receive_stock(self, retailer: UserProfile, order_id) -> Order:
        """
        Book a delivered stock order into the retailer's own inventory: top up
        the listing with the same name, or list it at the marked-up unit price.
        """
        async with self.unit_of_work():
            order = await self._order(order_id, OrderClass.STOCK)
            self._require_party(order, retailer, "buyer")
            target = next_status(OrderClass.STOCK, order.status, Action.RECEIVE, retailer.role)

            product = await self.products.find_by_seller_and_name(retailer.id, order.product_name)
            if product is not None:
                stock = await self.products.increment(product.id, order.quantity)
                logger.info(f"Added {order.quantity} units to {product.name}, new stock {stock}")
            else:
                await self.products.create(
                    seller_id=retailer.id,
                    name=order.product_name.strip(),
                    price=order.unit_price * RETAIL_MARKUP,
                    stock=order.quantity,
                    category=RECEIVED_STOCK_CATEGORY,
                    is_bulk=False,
                )
                logger.info(f"Listed {order.product_name} from stock order {order.id}")

            await self.orders.update(order, status=target.value)

        return order

    async def stock_order_for_payment(self, retailer: UserProfile, order_id) -> Order:
        """An approved stock order of this retailer, ready to be paid online"""
        order = await self._order(order_id, OrderClass.STOCK)
        self._require_party(order, retailer, "buyer")
        # Raises unless confirmation is currently possible
        next_status(OrderClass.STOCK, order.status, Action.CONFIRM, retailer.role)
        return order

    async def retail_order_for_payment(self, customer: UserProfile, order_id) -> Order:
        order = await self._order(order_id, OrderClass.RETAIL)
        self._require_party(order, customer, "buyer")
        if order.payment_method != PaymentMethod.ONLINE.value:
            raise PreconditionFailed("This order is not paid online")
        if order.is_paid:
            raise PreconditionFailed("This order is already paid")
        if order.status == RetailStatus.CANCELLED.value:
            raise PreconditionFailed("Cannot pay for a cancelled order")
        return order

    # --- views ---

    async def orders_for(self, actor: UserProfile, order_class, side: str) -> List[Order]:
        order_class = OrderClass(order_class)
        column = Order.buyer_id if side == "buyer" else Order.seller_id
        return await self.orders.query(Order.order_class == order_class.value, column == actor.id)

    async def get_for(self, actor: UserProfile, order_id) -> Order:
        order = await self.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found")
        if actor.role != Role.ADMIN.value:
            self._require_party(order, actor, "buyer", "seller")
        return order

