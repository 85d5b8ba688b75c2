from sqlalchemy import (
    Boolean,
    String,
    Text,
    DateTime,
    CheckConstraint,
    UniqueConstraint,
    Index,
    text,
    ForeignKey,
    Float,
    Integer,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm import declarative_base
from typing import Optional, List
from datetime import datetime, timezone
import uuid

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(Base):
    """
    Marketplace profile for a Supabase auth user
    The role decides which dashboard and which order flows the user takes part in
    """
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Supabase auth.users id (sub claim of the access token)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)

    full_name: Mapped[Optional[str]] = mapped_column(String(150))
    business_name: Mapped[Optional[str]] = mapped_column(String(200))

    # "customer", "retailer", "wholesaler" or "admin"
    role: Mapped[str] = mapped_column(String(50), default="customer", nullable=False)

    phone: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(255))

    location_address: Mapped[Optional[str]] = mapped_column(String(500))
    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lng: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    products: Mapped[List["Product"]] = relationship(
        "Product",
        back_populates="seller",
        cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return self.business_name or self.full_name or "Unknown Seller"


class Product(Base):
    """
    One listing of a product by one seller
    Identical names listed by different sellers are grouped in the catalog view
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price > 0", name="product_price_positive_check"),
        CheckConstraint("stock >= 0", name="product_stock_non_negative_check"),
        Index("products_seller_name_idx", "seller_id", "name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    image_url: Mapped[Optional[str]] = mapped_column(String(500))

    price: Mapped[float] = mapped_column(Float, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_local_specialty: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Wholesale listings are only offered to retailers through stock orders
    is_bulk: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    seller: Mapped["UserProfile"] = relationship("UserProfile", back_populates="products")


class Order(Base):
    """
    Retail orders (customer -> retailer) and stock orders (retailer -> wholesaler)
    Both classes share this table; status vocabularies are disjoint per order_class
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_quantity_positive_check"),
        CheckConstraint("total_price >= 0", name="order_total_price_non_negative_check"),
        Index("orders_buyer_idx", "buyer_id"),
        Index("orders_seller_idx", "seller_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # "retail" or "stock"
    order_class: Mapped[str] = mapped_column(String(20), nullable=False)

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    # Wholesale listing a stock order draws from (retail orders use order_items)
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="SET NULL")
    )
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)

    # "online", "cash_on_delivery" or "pay_at_store"
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_id: Mapped[Optional[str]] = mapped_column(String(100))

    delivery_address: Mapped[Optional[str]] = mapped_column(Text)
    delivery_lat: Mapped[Optional[float]] = mapped_column(Float)
    delivery_lng: Mapped[Optional[float]] = mapped_column(Float)
    scheduled_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(True))

    status: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    buyer: Mapped["UserProfile"] = relationship("UserProfile", foreign_keys=[buyer_id])
    seller: Mapped["UserProfile"] = relationship("UserProfile", foreign_keys=[seller_id])
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    @property
    def unit_price(self) -> float:
        return self.total_price / self.quantity


class OrderItem(Base):
    """
    Line items of a retail order, one per cart line
    """
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_item_quantity_positive_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="SET NULL")
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")


class Notification(Base):
    """
    In-app notifications, newest first per recipient
    """
    __tablename__ = "notifications"
    __table_args__ = (
        Index("notifications_user_created_idx", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    # "order_status", "stock_alert" or "general"
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="SET NULL")
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class Review(Base):
    """
    Product reviews left by customers on delivered retail orders
    """
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "order_id", "product_id", name="unique_review_per_order_product"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="rating_range_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="SET NULL")
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-5 stars
    comment: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    user: Mapped["UserProfile"] = relationship("UserProfile")


class Payment(Base):
    """
    Payment gateway transactions for online order payments via Razorpay
    """
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    # Kept when a completed order is cleared
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True
    )

    # Decimal rupees; converted to paise only at the gateway boundary
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="INR", nullable=False)

    razorpay_order_id: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    razorpay_payment_id: Mapped[Optional[str]] = mapped_column(String(100))
    razorpay_signature: Mapped[Optional[str]] = mapped_column(String(200))

    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)  # "pending", "completed", "failed", "refund_due"
    description: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
