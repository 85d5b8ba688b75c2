import hashlib
import hmac

import pytest
from sqlalchemy import select

from models import Payment
from services.lifecycle import Action
from services.orders import OrderService
from services.payments import PaymentService
from services.stores import OrderStore
from utils.errors import PaymentDeclined, PreconditionFailed
from utils.payment_gateway import RazorpayGateway, to_subunits

SECRET = "test_secret"


class StubGateway(RazorpayGateway):
    """Signs like Razorpay but never leaves the process"""

    def __init__(self):
        super().__init__("rzp_test_key", SECRET)
        self.created = []

    def initiate(self, amount, receipt, description, currency="INR"):
        gateway_order = {
            "id": f"order_{len(self.created) + 1}",
            "amount": to_subunits(amount),
            "currency": currency,
            "receipt": receipt,
        }
        self.created.append(gateway_order)
        return gateway_order


def sign(razorpay_order_id, razorpay_payment_id):
    return hmac.new(
        SECRET.encode(), f"{razorpay_order_id}|{razorpay_payment_id}".encode(), hashlib.sha256
    ).hexdigest()


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
async def approved_order(db, retailer, wholesaler, make_product):
    product = await make_product(wholesaler, name="Wheat", price=33.33, stock=50)
    service = OrderService(db)
    order = await service.request_stock(retailer, product.id, 3)
    return await service.approve_stock(wholesaler, order.id)


def test_amounts_cross_the_gateway_in_paise():
    assert to_subunits(99.99) == 9999
    assert to_subunits(0.1 + 0.2) == 30
    assert to_subunits(100) == 10000


def test_signature_check():
    gateway = StubGateway()
    assert gateway.verify_signature("order_1", "pay_1", sign("order_1", "pay_1"))
    assert not gateway.verify_signature("order_1", "pay_1", sign("order_1", "pay_2"))
    assert not gateway.verify_signature("order_1", "pay_1", None)


async def test_initiate_opens_pending_payment(db, retailer, approved_order, gateway):
    payment, gateway_order = await PaymentService(db, gateway).initiate(retailer, approved_order.id)

    assert payment.status == "pending"
    assert payment.amount == pytest.approx(99.99)
    assert gateway_order["amount"] == 9999
    assert payment.razorpay_order_id == gateway_order["id"]
    assert gateway_order["receipt"] == str(approved_order.id)


async def test_only_approved_orders_can_be_paid(db, retailer, wholesaler, make_product, gateway):
    product = await make_product(wholesaler, stock=50)
    order = await OrderService(db).request_stock(retailer, product.id, 3)

    with pytest.raises(PreconditionFailed):
        await PaymentService(db, gateway).initiate(retailer, order.id)
    assert gateway.created == []


async def test_verified_payment_confirms_stock_order(db, retailer, approved_order, gateway):
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(retailer, approved_order.id)

    payment, order = await service.verify(
        retailer, payment.razorpay_order_id, "pay_42", sign(payment.razorpay_order_id, "pay_42")
    )

    assert payment.status == "completed"
    assert order.status == "order_confirmed"
    assert order.payment_method == "online"
    assert order.is_paid is True
    assert order.payment_id == "pay_42"


async def test_bad_signature_leaves_order_approved(db, retailer, approved_order, gateway):
    order_id = approved_order.id
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(retailer, order_id)
    razorpay_order_id = payment.razorpay_order_id

    with pytest.raises(PaymentDeclined):
        await service.verify(retailer, razorpay_order_id, "pay_42", "forged")

    order = await OrderStore(db).get(order_id)
    assert order.status == "approved"
    assert order.is_paid is False
    result = await db.execute(select(Payment.status).where(Payment.razorpay_order_id == razorpay_order_id))
    assert result.scalar_one() == "failed"


async def test_cancelled_payment_can_be_retried(db, retailer, approved_order, gateway):
    order_id = approved_order.id
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(retailer, order_id)

    with pytest.raises(PaymentDeclined):
        await service.cancel(retailer, payment.razorpay_order_id, "User closed the checkout")

    order = await OrderStore(db).get(order_id)
    assert order.status == "approved"

    retry, gateway_order = await service.initiate(retailer, order_id)
    assert retry.status == "pending"
    assert gateway_order["id"] == "order_2"


async def test_payment_cannot_be_verified_twice(db, retailer, approved_order, gateway):
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(retailer, approved_order.id)
    razorpay_order_id = payment.razorpay_order_id
    signature = sign(razorpay_order_id, "pay_42")
    await service.verify(retailer, razorpay_order_id, "pay_42", signature)

    with pytest.raises(PreconditionFailed):
        await service.verify(retailer, razorpay_order_id, "pay_42", signature)


async def test_online_retail_order_is_marked_paid(db, customer, retailer, make_product, gateway):
    apples = await make_product(retailer, price=120.0, stock=5)
    orders = await OrderService(db).checkout(
        customer, [(apples.id, 2)], "delivery",
        payment_method="online", delivery_address="12 Market Road",
    )
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(customer, orders[0].id)
    assert payment.amount == 240.0

    _, order = await service.verify(
        customer, payment.razorpay_order_id, "pay_7", sign(payment.razorpay_order_id, "pay_7")
    )

    assert order.is_paid is True
    assert order.status == "placed"

    history = await service.history(customer)
    assert [p.status for p in history] == ["completed"]


async def test_cash_retail_order_has_nothing_to_pay(db, customer, retailer, make_product, gateway):
    apples = await make_product(retailer, stock=5)
    orders = await OrderService(db).checkout(customer, [(apples.id, 1)], "pickup")

    with pytest.raises(PreconditionFailed):
        await PaymentService(db, gateway).initiate(customer, orders[0].id)


async def test_cash_confirmation_waits_for_open_payment(db, retailer, approved_order, gateway):
    order_id = approved_order.id
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(retailer, order_id)
    razorpay_order_id = payment.razorpay_order_id

    with pytest.raises(PreconditionFailed):
        await OrderService(db).confirm_stock(retailer, order_id, "cash_on_delivery")

    _, order = await service.verify(
        retailer, razorpay_order_id, "pay_42", sign(razorpay_order_id, "pay_42")
    )
    assert order.status == "order_confirmed"
    assert order.payment_method == "online"
    assert order.is_paid is True


async def test_payment_for_cancelled_order_is_flagged_for_refund(db, customer, retailer, make_product, gateway):
    apples = await make_product(retailer, price=120.0, stock=5)
    orders = await OrderService(db).checkout(
        customer, [(apples.id, 1)], "delivery",
        payment_method="online", delivery_address="12 Market Road",
    )
    order_id = orders[0].id
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(customer, order_id)
    razorpay_order_id = payment.razorpay_order_id
    await OrderService(db).advance_retail(retailer, order_id, Action.CANCEL)

    with pytest.raises(PreconditionFailed, match="will be refunded"):
        await service.verify(customer, razorpay_order_id, "pay_9", sign(razorpay_order_id, "pay_9"))

    order = await OrderStore(db).get(order_id)
    assert order.status == "cancelled"
    assert order.is_paid is False
    result = await db.execute(
        select(Payment.status, Payment.razorpay_payment_id).where(Payment.razorpay_order_id == razorpay_order_id)
    )
    assert result.one() == ("refund_due", "pay_9")


async def test_cleared_orders_keep_their_payments(db, retailer, wholesaler, approved_order, gateway):
    order_id = approved_order.id
    service = PaymentService(db, gateway)
    payment, _ = await service.initiate(retailer, order_id)
    await service.verify(
        retailer, payment.razorpay_order_id, "pay_42", sign(payment.razorpay_order_id, "pay_42")
    )
    orders = OrderService(db)
    await orders.ship_stock(wholesaler, order_id)
    await orders.deliver_stock(wholesaler, order_id)

    assert await orders.clear_completed(wholesaler, "stock") == 1

    history = await service.history(retailer)
    assert [(p.status, p.razorpay_payment_id, p.order_id) for p in history] == [("completed", "pay_42", None)]
