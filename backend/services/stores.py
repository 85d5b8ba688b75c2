"""
SQLAlchemy-backed stores for orders, products and notifications.

Stores only flush; the calling service owns the transaction and commits once
per user action.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.orm import selectinload
from models import Order, OrderItem, Payment, Product, Notification, UserProfile, utcnow
from services.catalog import Listing, group_key
from typing import Iterable, List, Optional, Tuple
import logging
import uuid

logger = logging.getLogger(__name__)


def as_uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class OrderStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, items: Iterable[dict] = (), **fields) -> Order:
        order = Order(**fields)
        order.items = [OrderItem(**item) for item in items]
        self.db.add(order)
        await self.db.flush()
        return order

    async def get(self, order_id) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == as_uuid(order_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update(self, order: Order, **fields) -> Order:
        for key, value in fields.items():
            setattr(order, key, value)
        await self.db.flush()
        return order

    async def delete(self, ids: Iterable) -> int:
        ids = [as_uuid(order_id) for order_id in ids]
        if not ids:
            return 0
        # order_items go with their order (ON DELETE CASCADE)
        await self.db.execute(delete(OrderItem).where(OrderItem.order_id.in_(ids)))
        # payments outlive their order (ON DELETE SET NULL)
        await self.db.execute(
            update(Payment)
            .where(Payment.order_id.in_(ids))
            .values(order_id=None)
        )
        result = await self.db.execute(
            delete(Order).where(Order.id.in_(ids)).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def query(self, *criteria, order_by=None) -> List[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(*criteria)
            .order_by(order_by if order_by is not None else Order.created_at.desc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())


class ProductStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, **fields) -> Product:
        product = Product(**fields)
        self.db.add(product)
        await self.db.flush()
        return product

    async def get(self, product_id) -> Optional[Product]:
        result = await self.db.execute(
            select(Product)
            .where(Product.id == as_uuid(product_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, product_ids: Iterable) -> List[Product]:
        ids = [as_uuid(product_id) for product_id in product_ids]
        result = await self.db.execute(select(Product).where(Product.id.in_(ids)))
        return list(result.scalars().all())

    async def update(self, product: Product, **fields) -> Product:
        if "stock" in fields and fields["stock"] is not None:
            fields["stock"] = max(0, fields["stock"])
        for key, value in fields.items():
            setattr(product, key, value)
        await self.db.flush()
        return product

    async def delete(self, product: Product):
        await self.db.delete(product)
        await self.db.flush()

    async def query(self, *criteria) -> List[Product]:
        result = await self.db.execute(
            select(Product).where(*criteria).order_by(Product.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_by_seller_and_name(self, seller_id, name: str) -> Optional[Product]:
        result = await self.db.execute(
            select(Product)
            .where(
                Product.seller_id == as_uuid(seller_id),
                func.lower(func.trim(Product.name)) == group_key(name),
            )
            .order_by(Product.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def try_decrement(self, product_id, quantity: int) -> Optional[int]:
        """
        Conditionally take `quantity` units in a single UPDATE.
        Returns the remaining stock, or None when the product is missing or
        holds fewer than `quantity` units (nothing is changed in that case).
        """
        if product_id is None:
            return None
        result = await self.db.execute(
            update(Product)
            .where(Product.id == as_uuid(product_id), Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        product = await self.get(product_id)
        return product.stock

    async def increment(self, product_id, quantity: int) -> int:
        await self.db.execute(
            update(Product)
            .where(Product.id == as_uuid(product_id))
            .values(stock=Product.stock + quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        product = await self.get(product_id)
        return product.stock

    async def with_sellers(self, *criteria) -> List[Tuple[Product, UserProfile]]:
        result = await self.db.execute(
            select(Product, UserProfile)
            .join(UserProfile, Product.seller_id == UserProfile.id)
            .where(*criteria)
            .order_by(Product.created_at.desc())
        )
        return list(result.all())

    async def catalog_listings(self) -> List[Listing]:
        """In-stock retail listings joined with their seller's name and location"""
        rows = await self.with_sellers(Product.stock > 0, Product.is_bulk.is_(False))
        return [listing_from_rows(product, seller) for product, seller in rows]


def listing_from_rows(product: Product, seller: Optional[UserProfile]) -> Listing:
    return Listing(
        id=str(product.id),
        name=product.name,
        price=product.price,
        stock=product.stock,
        seller_id=str(product.seller_id),
        seller_name=seller.display_name if seller else "Unknown Seller",
        category=product.category,
        description=product.description,
        image_url=product.image_url,
        is_local_specialty=product.is_local_specialty,
        seller_lat=seller.location_lat if seller else None,
        seller_lng=seller.location_lng if seller else None,
    )


class NotificationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, user_id, type: str, title: str, message: str, order_id=None) -> Notification:
        notification = Notification(
            user_id=as_uuid(user_id),
            type=type,
            title=title,
            message=message,
            order_id=as_uuid(order_id) if order_id else None,
        )
        self.db.add(notification)
        await self.db.flush()
        logger.info(f"Notification '{title}' queued for user {user_id}")
        return notification

    async def query(self, user_id, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == as_uuid(user_id))
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def unread_count(self, user_id) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == as_uuid(user_id),
                Notification.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    async def get(self, notification_id) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification).where(Notification.id == as_uuid(notification_id))
        )
        return result.scalar_one_or_none()

    async def mark_read(self, notification: Notification) -> Notification:
        notification.is_read = True
        await self.db.flush()
        return notification

    async def mark_all_read(self, user_id) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == as_uuid(user_id), Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
