"""SQLAlchemy database models for order placement and payment settlement."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from order_settlement.domain.statuses import OrderStatus, PaymentStatus

# BIGINT in PostgreSQL, INTEGER on SQLite so rowid autoincrement still applies
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def _status_enum(enum_cls: type, name: str) -> Enum:
    """Store enum values (not names) in a VARCHAR column with a CHECK constraint."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Product(Base):
    """
    Catalog product with its finite stock.

    quantity is only mutated by the inventory ledger; the CHECK constraint
    is the last line of defence against overselling.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CZK")
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    price_tiers: Mapped[List["PriceTier"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PriceTier.min_quantity",
    )

    __table_args__ = (
        CheckConstraint("price_cents > 0", name="positive_price"),
        CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        CheckConstraint("low_stock_threshold > 0", name="low_stock_threshold_positive"),
        CheckConstraint("currency IN ('CZK', 'EUR')", name="product_valid_currency"),
        Index("idx_products_quantity_available", "quantity", "available"),
    )

    @property
    def price(self) -> float:
        """Base price in major units, for display only."""
        return self.price_cents / 100.0

    def in_stock(self) -> bool:
        return self.quantity > 0

    def out_of_stock(self) -> bool:
        return self.quantity == 0

    def low_stock(self) -> bool:
        return 0 < self.quantity <= self.low_stock_threshold

    def sufficient_stock(self, required_quantity: int) -> bool:
        return self.quantity >= required_quantity

    def can_fulfill(self, requested_quantity: int) -> bool:
        return self.available and self.sufficient_stock(requested_quantity)

    def __repr__(self) -> str:
        """String representation of Product."""
        return (
            f"<Product(id={self.id}, name={self.name!r}, "
            f"price={self.price_cents}, quantity={self.quantity})>"
        )


class PriceTier(Base):
    """
    Quantity-bracket unit price overriding the product's base price.

    max_quantity NULL means the bracket is open-ended.
    """

    __tablename__ = "product_price_tiers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tier_name: Mapped[str] = mapped_column(String(50), nullable=False)
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    max_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CZK")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )

    product: Mapped[Product] = relationship(back_populates="price_tiers")

    __table_args__ = (
        CheckConstraint("min_quantity > 0", name="min_quantity_positive"),
        CheckConstraint(
            "max_quantity IS NULL OR max_quantity >= min_quantity",
            name="max_quantity_valid",
        ),
        CheckConstraint("price_cents > 0", name="tier_positive_price"),
        CheckConstraint("priority >= 0", name="tier_priority_non_negative"),
        UniqueConstraint("product_id", "tier_name", name="uq_product_tier_name"),
        Index("idx_price_tiers_product_active_priority", "product_id", "active", "priority"),
        Index("idx_price_tiers_product_min_qty", "product_id", "min_quantity"),
    )

    def __repr__(self) -> str:
        """String representation of PriceTier."""
        return (
            f"<PriceTier(id={self.id}, product_id={self.product_id}, "
            f"tier={self.tier_name}, range={self.min_quantity}-{self.max_quantity}, "
            f"price={self.price_cents})>"
        )


class Order(Base):
    """
    Customer order.

    total_cents and the line items are written once, inside the transaction
    that creates the order. Later changes only touch status, payment_status,
    payment_id and payment_url.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CZK")
    status: Mapped[OrderStatus] = mapped_column(
        _status_enum(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _status_enum(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.NO_PAYMENT,
        index=True,
    )
    payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    payment_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    items: Mapped[List["OrderLineItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderLineItem.id",
    )

    __table_args__ = (
        CheckConstraint("total_cents > 0", name="order_positive_total"),
        CheckConstraint("currency IN ('CZK', 'EUR')", name="order_valid_currency"),
        Index("idx_orders_user_created", "user_id", "created_at"),
    )

    @property
    def total_decimal(self) -> float:
        """Order total in major units, for display only."""
        return self.total_cents / 100.0

    def __repr__(self) -> str:
        """String representation of Order."""
        return (
            f"<Order(id={self.id}, user_id={self.user_id}, total={self.total_cents}, "
            f"status={self.status.value}, payment_status={self.payment_status.value})>"
        )


class OrderLineItem(Base):
    """
    Line item of an order.

    unit_price_cents is the price captured when the order was placed and is
    independent of later catalog price changes.
    """

    __tablename__ = "order_line_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="line_quantity_positive"),
        CheckConstraint("unit_price_cents > 0", name="line_positive_unit_price"),
        UniqueConstraint("order_id", "product_id", name="uq_order_line_product"),
    )

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def total_decimal(self) -> float:
        return self.total_cents / 100.0

    def __repr__(self) -> str:
        """String representation of OrderLineItem."""
        return (
            f"<OrderLineItem(id={self.id}, order_id={self.order_id}, "
            f"product_id={self.product_id}, quantity={self.quantity})>"
        )
