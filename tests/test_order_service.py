from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from models import Notification, Order, Product
from services.orders import RECEIVED_STOCK_CATEGORY, SELF_PICKUP_ADDRESS, OrderService
from services.stores import OrderStore
from utils.errors import Forbidden, NotFound, PreconditionFailed, ValidationError


async def stock_of(db, product_id):
    result = await db.execute(
        select(Product.stock).where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def notifications_for(db, profile_id):
    result = await db.execute(
        select(Notification).where(Notification.user_id == profile_id).order_by(Notification.created_at)
    )
    return list(result.scalars().all())


async def stock_order(db, retailer, wholesaler, product, quantity, status="pending"):
    return await OrderStore(db).create(
        order_class="stock",
        buyer_id=retailer.id,
        seller_id=wholesaler.id,
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        total_price=product.price * quantity,
        status=status,
    )


class TestApproveStock:
    async def test_short_stock_rejects_and_keeps_stock(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Rice", price=40.0, stock=3)
        order = await OrderService(db).request_stock(retailer, product.id, 5)

        order = await OrderService(db).approve_stock(wholesaler, order.id)

        assert order.status == "rejected"
        assert await stock_of(db, product.id) == 3

    async def test_enough_stock_approves_and_decrements(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Rice", price=40.0, stock=10)
        order = await OrderService(db).request_stock(retailer, product.id, 5)

        order = await OrderService(db).approve_stock(wholesaler, order.id)

        assert order.status == "approved"
        assert await stock_of(db, product.id) == 5

    async def test_taking_the_last_units_alerts_the_wholesaler(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Rice", price=40.0, stock=5)
        order = await OrderService(db).request_stock(retailer, product.id, 5)

        service = OrderService(db)
        await service.approve_stock(wholesaler, order.id)

        alerts = [n for n in await notifications_for(db, wholesaler.id) if n.type == "stock_alert"]
        assert len(alerts) == 1
        assert "Rice" in alerts[0].message
        assert len(service.outbox) == 1

    async def test_only_the_selling_wholesaler_may_approve(self, db, retailer, wholesaler, make_profile, make_product):
        other = await make_profile("wholesaler")
        product = await make_product(wholesaler, stock=10)
        product_id = product.id
        order = await OrderService(db).request_stock(retailer, product.id, 2)

        with pytest.raises(Forbidden):
            await OrderService(db).approve_stock(other, order.id)
        assert await stock_of(db, product_id) == 10

    async def test_approving_twice_is_refused(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, stock=10)
        product_id = product.id
        order = await OrderService(db).request_stock(retailer, product.id, 2)
        await OrderService(db).approve_stock(wholesaler, order.id)

        with pytest.raises(PreconditionFailed):
            await OrderService(db).approve_stock(wholesaler, order.id)
        assert await stock_of(db, product_id) == 8


class TestStockRequests:
    async def test_request_prices_the_order(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Flour", price=25.0, stock=100)

        order = await OrderService(db).request_stock(retailer, product.id, 4)

        assert order.status == "pending"
        assert order.total_price == 100.0
        assert order.payment_method is None
        assert order.seller_id == wholesaler.id

    async def test_only_retailers_request_stock(self, db, customer, wholesaler, make_product):
        product = await make_product(wholesaler)
        with pytest.raises(Forbidden):
            await OrderService(db).request_stock(customer, product.id, 1)

    async def test_quantity_must_be_positive(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler)
        with pytest.raises(ValidationError):
            await OrderService(db).request_stock(retailer, product.id, 0)

    async def test_cannot_request_from_a_retailer(self, db, retailer, make_profile, make_product):
        other_retailer = await make_profile("retailer")
        product = await make_product(other_retailer)
        with pytest.raises(ValidationError):
            await OrderService(db).request_stock(retailer, product.id, 1)


class TestStockFulfilment:
    async def delivered_order(self, db, retailer, wholesaler, product, quantity):
        service = OrderService(db)
        order = await service.request_stock(retailer, product.id, quantity)
        await service.approve_stock(wholesaler, order.id)
        await service.confirm_stock(retailer, order.id, "cash_on_delivery")
        await service.ship_stock(wholesaler, order.id)
        return await service.deliver_stock(wholesaler, order.id)

    async def test_cash_on_delivery_confirmation(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, stock=10)
        service = OrderService(db)
        order = await service.request_stock(retailer, product.id, 2)
        await service.approve_stock(wholesaler, order.id)

        order = await service.confirm_stock(retailer, order.id, "cash_on_delivery")

        assert order.status == "order_confirmed"
        assert order.payment_method == "cash_on_delivery"
        assert order.is_paid is False

    async def test_online_confirmation_needs_payment_id(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, stock=10)
        service = OrderService(db)
        order = await service.request_stock(retailer, product.id, 2)
        await service.approve_stock(wholesaler, order.id)

        with pytest.raises(ValidationError):
            await service.confirm_stock(retailer, order.id, "online")

        order = await service.confirm_stock(retailer, order.id, "online", payment_id="pay_123")
        assert order.is_paid is True
        assert order.payment_id == "pay_123"

    async def test_delivering_twice_is_refused(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, stock=10)
        order = await self.delivered_order(db, retailer, wholesaler, product, 3)
        order_id = order.id

        with pytest.raises(PreconditionFailed):
            await OrderService(db).deliver_stock(wholesaler, order_id)

        reloaded = await OrderStore(db).get(order_id)
        assert reloaded.status == "delivered"

    async def test_receive_creates_marked_up_listing(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Basmati Rice", price=50.0, stock=20)
        order = await self.delivered_order(db, retailer, wholesaler, product, 4)

        order = await OrderService(db).receive_stock(retailer, order.id)

        assert order.status == "received_in_inventory"
        result = await db.execute(select(Product).where(Product.seller_id == retailer.id))
        listing = result.scalar_one()
        assert listing.name == "Basmati Rice"
        assert listing.stock == 4
        assert listing.price == pytest.approx(65.0)
        assert listing.category == RECEIVED_STOCK_CATEGORY
        assert listing.is_bulk is False

    async def test_receive_tops_up_existing_listing(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Basmati Rice", price=50.0, stock=20)
        own = await make_product(retailer, name="basmati rice ", price=80.0, stock=2)
        order = await self.delivered_order(db, retailer, wholesaler, product, 4)

        await OrderService(db).receive_stock(retailer, order.id)

        assert await stock_of(db, own.id) == 6
        result = await db.execute(select(Product).where(Product.seller_id == retailer.id))
        listings = result.scalars().all()
        assert len(listings) == 1
        assert listings[0].price == 80.0

    async def test_receiving_twice_never_double_credits(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, name="Sugar", price=30.0, stock=20)
        order = await self.delivered_order(db, retailer, wholesaler, product, 4)
        await OrderService(db).receive_stock(retailer, order.id)
        retailer_id = retailer.id

        with pytest.raises(PreconditionFailed):
            await OrderService(db).receive_stock(retailer, order.id)

        result = await db.execute(select(Product.stock).where(Product.seller_id == retailer_id))
        assert result.scalar_one() == 4

    async def test_either_party_may_cancel_pending(self, db, retailer, wholesaler, make_product):
        product = await make_product(wholesaler, stock=10)
        order = await OrderService(db).request_stock(retailer, product.id, 2)

        order = await OrderService(db).cancel_stock(retailer, order.id)

        assert order.status == "cancelled"
        assert await stock_of(db, product.id) == 10


async def test_clear_completed_leaves_active_orders(db, retailer, wholesaler, make_product):
    product = await make_product(wholesaler, stock=100)
    for status in ("delivered", "shipped", "cancelled", "pending"):
        await stock_order(db, retailer, wholesaler, product, 1, status=status)
    await db.commit()

    deleted = await OrderService(db).clear_completed(wholesaler, "stock")

    assert deleted == 2
    remaining = await OrderStore(db).query(Order.seller_id == wholesaler.id)
    assert sorted(order.status for order in remaining) == ["pending", "shipped"]


async def test_clear_completed_is_for_sellers(db, retailer):
    with pytest.raises(Forbidden):
        await OrderService(db).clear_completed(retailer, "stock")


class TestCheckout:
    async def test_one_order_per_seller(self, db, customer, retailer, make_profile, make_product):
        second = await make_profile("retailer", business_name="Fresh Mart")
        apples = await make_product(retailer, name="Apples", price=100.0, stock=10)
        pears = await make_product(retailer, name="Pears", price=60.0, stock=10)
        milk = await make_product(second, name="Milk", price=30.0, stock=10)

        service = OrderService(db)
        orders = await service.checkout(
            customer,
            [(apples.id, 2), (pears.id, 1), (milk.id, 3), (apples.id, 1)],
            "delivery",
            payment_method="cash_on_delivery",
            delivery_address="12 Market Road",
        )

        assert len(orders) == 2
        by_seller = {order.seller_id: order for order in orders}
        first = by_seller[retailer.id]
        assert first.product_name == "Apples, Pears"
        assert first.quantity == 4
        assert first.total_price == 360.0
        assert len(first.items) == 2
        assert by_seller[second.id].total_price == 90.0
        assert all(order.status == "placed" for order in orders)

        assert await stock_of(db, apples.id) == 7
        assert await stock_of(db, milk.id) == 7

        placed = await notifications_for(db, customer.id)
        assert len(placed) == 2
        assert all(n.type == "order_status" for n in placed)
        assert len(service.outbox) == 2

    async def test_pickup_forces_pay_at_store(self, db, customer, retailer, make_product):
        apples = await make_product(retailer, stock=10)

        orders = await OrderService(db).checkout(
            customer, [(apples.id, 1)], "pickup", payment_method="online", delivery_lat=1.0, delivery_lng=1.0
        )

        order = orders[0]
        assert order.payment_method == "pay_at_store"
        assert order.delivery_address == SELF_PICKUP_ADDRESS
        assert order.delivery_lat is None

    async def test_insufficient_stock_writes_nothing(self, db, customer, retailer, make_product):
        apples = await make_product(retailer, name="Apples", stock=10)
        pears = await make_product(retailer, name="Pears", stock=1)
        apples_id = apples.id

        with pytest.raises(ValidationError) as exc:
            await OrderService(db).checkout(
                customer, [(apples.id, 2), (pears.id, 5)], "delivery",
                payment_method="online", delivery_address="12 Market Road",
            )

        assert "Insufficient stock for Pears" in exc.value.message
        assert await stock_of(db, apples_id) == 10
        assert (await db.execute(select(Order))).scalars().all() == []

    async def test_delivery_needs_address(self, db, customer, retailer, make_product):
        apples = await make_product(retailer, stock=10)
        with pytest.raises(ValidationError):
            await OrderService(db).checkout(customer, [(apples.id, 1)], "delivery", payment_method="online")

    async def test_delivery_cannot_pay_at_store(self, db, customer, retailer, make_product):
        apples = await make_product(retailer, stock=10)
        with pytest.raises(ValidationError):
            await OrderService(db).checkout(
                customer, [(apples.id, 1)], "delivery",
                payment_method="pay_at_store", delivery_address="12 Market Road",
            )

    async def test_schedule_in_the_past_is_rejected(self, db, customer, retailer, make_product):
        apples = await make_product(retailer, stock=10)
        with pytest.raises(ValidationError):
            await OrderService(db).checkout(
                customer, [(apples.id, 1)], "pickup",
                scheduled_delivery=datetime.now(timezone.utc) - timedelta(hours=1),
            )

    async def test_wholesale_listings_are_not_sold_retail(self, db, customer, wholesaler, make_product):
        bulk = await make_product(wholesaler, stock=100)
        with pytest.raises(ValidationError):
            await OrderService(db).checkout(customer, [(bulk.id, 1)], "pickup")

    async def test_unknown_product(self, db, customer):
        with pytest.raises(NotFound):
            await OrderService(db).checkout(
                customer, [("00000000-0000-0000-0000-000000000001", 1)], "pickup"
            )

    async def test_selling_out_alerts_the_retailer(self, db, customer, retailer, make_product):
        apples = await make_product(retailer, name="Apples", stock=2)

        await OrderService(db).checkout(customer, [(apples.id, 2)], "pickup")

        alerts = await notifications_for(db, retailer.id)
        assert [n.type for n in alerts] == ["stock_alert"]


class TestRetailStatus:
    async def placed_order(self, db, customer, retailer, make_product, **kwargs):
        apples = await make_product(retailer, stock=10)
        kwargs.setdefault("order_type", "pickup")
        orders = await OrderService(db).checkout(customer, [(apples.id, 1)], **kwargs)
        return orders[0]

    async def test_full_progression_notifies_customer(self, db, customer, retailer, make_product):
        order = await self.placed_order(db, customer, retailer, make_product)
        service = OrderService(db)

        for action in ("process", "dispatch", "deliver"):
            order = await service.advance_retail(retailer, order.id, action)

        assert order.status == "delivered"
        messages = [n.message for n in await notifications_for(db, customer.id)]
        assert messages[-1] == "Your order has been delivered. Enjoy!"
        assert len(messages) == 4

    async def test_customer_cannot_advance(self, db, customer, retailer, make_product):
        order = await self.placed_order(db, customer, retailer, make_product)
        with pytest.raises(Forbidden):
            await OrderService(db).advance_retail(customer, order.id, "process")

    async def test_cancelled_order_is_final(self, db, customer, retailer, make_product):
        order = await self.placed_order(db, customer, retailer, make_product)
        service = OrderService(db)
        await service.advance_retail(retailer, order.id, "cancel")

        with pytest.raises(PreconditionFailed):
            await service.advance_retail(retailer, order.id, "dispatch")

    async def test_delivery_schedule_lists_active_slots_in_order(self, db, customer, retailer, make_product):
        now = datetime.now(timezone.utc)
        later = await self.placed_order(
            db, customer, retailer, make_product, scheduled_delivery=now + timedelta(days=2)
        )
        sooner = await self.placed_order(
            db, customer, retailer, make_product, scheduled_delivery=now + timedelta(days=1)
        )
        await self.placed_order(db, customer, retailer, make_product)
        done = await self.placed_order(
            db, customer, retailer, make_product, scheduled_delivery=now + timedelta(hours=3)
        )
        await OrderService(db).advance_retail(retailer, done.id, "cancel")

        schedule = await OrderService(db).delivery_schedule(retailer)

        assert [order.id for order in schedule] == [sooner.id, later.id]

    async def test_clear_completed_retail(self, db, customer, retailer, make_product):
        delivered = await self.placed_order(db, customer, retailer, make_product)
        service = OrderService(db)
        for action in ("dispatch", "deliver"):
            await service.advance_retail(retailer, delivered.id, action)
        await self.placed_order(db, customer, retailer, make_product)

        assert await service.clear_completed(retailer, "retail") == 1
        remaining = await service.orders_for(retailer, "retail", "seller")
        assert [order.status for order in remaining] == ["placed"]
