"""
Online payments for orders

A payment is a suspend point in the order lifecycle: initiate() opens a
gateway order and the order waits. verify() resumes it on success (stock
orders move to order_confirmed, retail orders are marked paid); cancel() and
a bad signature resume it on failure and leave the order untouched. A valid
payment for an order that moved on meanwhile is kept as refund_due.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models import Order, Payment, UserProfile
from config import CURRENCY
from services.lifecycle import OrderClass, PaymentMethod, PaymentStatus
from services.orders import OrderService
from services.stores import as_uuid
from utils.errors import NotFound, PaymentDeclined, PreconditionFailed
from utils.payment_gateway import RazorpayGateway
from typing import List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

_gateway: Optional[RazorpayGateway] = None


def get_payment_gateway() -> RazorpayGateway:
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway()
    return _gateway


class PaymentService:
    def __init__(self, db: AsyncSession, gateway: RazorpayGateway):
        self.db = db
        self.gateway = gateway
        self.orders = OrderService(db)

    async def _payable_order(self, actor: UserProfile, order_id) -> Order:
        order = await self.orders.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.order_class == OrderClass.STOCK.value:
            return await self.orders.stock_order_for_payment(actor, order.id)
        return await self.orders.retail_order_for_payment(actor, order.id)

    async def _pending_payment(self, actor: UserProfile, razorpay_order_id: str) -> Payment:
        result = await self.db.execute(
            select(Payment).where(
                Payment.razorpay_order_id == razorpay_order_id,
                Payment.user_id == actor.id
            )
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFound("Payment record not found")
        if payment.status != PaymentStatus.PENDING.value:
            raise PreconditionFailed("Payment already processed")
        return payment

    async def initiate(self, actor: UserProfile, order_id) -> Tuple[Payment, dict]:
        async with self.orders.unit_of_work():
            order = await self._payable_order(actor, order_id)
            description = f"Payment for {order.product_name}"
            gateway_order = self.gateway.initiate(order.total_price, str(order.id), description)

            payment = Payment(
                user_id=actor.id,
                order_id=order.id,
                amount=order.total_price,
                currency=CURRENCY,
                razorpay_order_id=gateway_order["id"],
                status=PaymentStatus.PENDING.value,
                description=description[:255]
            )
            self.db.add(payment)
            await self.db.flush()

        logger.info(f"Payment {payment.razorpay_order_id} initiated for order {order.id}")
        return payment, gateway_order

    async def verify(
        self,
        actor: UserProfile,
        razorpay_order_id: str,
        razorpay_payment_id: str,
        razorpay_signature: str,
    ) -> Tuple[Payment, Order]:
        """
        Resume the order after the gateway reported success. When the order
        can no longer take the payment (cancelled, confirmed another way or
        cleared) the captured payment is recorded as refund_due.
        """
        async with self.orders.unit_of_work():
            payment = await self._pending_payment(actor, razorpay_order_id)
            valid = self.gateway.verify_signature(razorpay_order_id, razorpay_payment_id, razorpay_signature)
            if not valid:
                payment.status = PaymentStatus.FAILED.value
                await self.db.flush()

        if not valid:
            logger.warning(f"Invalid signature for payment {razorpay_order_id}")
            raise PaymentDeclined("Invalid payment signature")

        settling = False
        try:
            async with self.orders.unit_of_work():
                payment = await self._pending_payment(actor, razorpay_order_id)
                settling = True
                self._capture(payment, razorpay_payment_id, razorpay_signature, PaymentStatus.COMPLETED)

                order = await self.orders.orders.get(payment.order_id) if payment.order_id else None
                if order is None:
                    raise PreconditionFailed("The order for this payment no longer exists")
                if order.order_class == OrderClass.STOCK.value:
                    order = await self.orders.confirm_stock(
                        actor, order.id, PaymentMethod.ONLINE.value, payment_id=razorpay_payment_id
                    )
                else:
                    order = await self.orders.mark_retail_paid(actor, order.id, razorpay_payment_id)
        except PreconditionFailed as e:
            if not settling:
                raise
            await self._flag_refund(actor, razorpay_order_id, razorpay_payment_id, razorpay_signature)
            raise PreconditionFailed(f"{e.message}. Your payment was recorded and will be refunded")

        logger.info(f"Payment {razorpay_payment_id} verified for order {order.id}")
        return payment, order

    @staticmethod
    def _capture(payment: Payment, razorpay_payment_id: str, razorpay_signature: str, status: PaymentStatus):
        payment.razorpay_payment_id = razorpay_payment_id
        payment.razorpay_signature = razorpay_signature
        payment.status = status.value

    async def _flag_refund(
        self,
        actor: UserProfile,
        razorpay_order_id: str,
        razorpay_payment_id: str,
        razorpay_signature: str,
    ):
        async with self.orders.unit_of_work():
            payment = await self._pending_payment(actor, razorpay_order_id)
            self._capture(payment, razorpay_payment_id, razorpay_signature, PaymentStatus.REFUND_DUE)
            await self.db.flush()

        logger.error(f"Payment {razorpay_payment_id} captured for an order that cannot take it; refund due")

    async def cancel(self, actor: UserProfile, razorpay_order_id: str, reason: Optional[str] = None):
        """The buyer abandoned or the gateway declined; the order keeps its state"""
        async with self.orders.unit_of_work():
            payment = await self._pending_payment(actor, razorpay_order_id)
            payment.status = PaymentStatus.FAILED.value
            await self.db.flush()

        logger.warning(f"Payment {razorpay_order_id} cancelled: {reason or 'no reason given'}")
        raise PaymentDeclined(reason or "Payment was cancelled. You can retry from your orders.")

    async def history(self, actor: UserProfile) -> List[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.user_id == as_uuid(actor.id))
            .order_by(Payment.created_at.desc())
        )
        return list(result.scalars().all())
