"""SQLAlchemy database models for the ambassador order workflow."""
from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Two decimal places; amounts are dollars, not cents.
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class User(Base):
    """Platform user; ambassadors own referral links."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_ambassador: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def name(self) -> str:
        """Display name, also used as the leaderboard member."""
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Link(Base):
    """
    Referral links table.

    A code maps to exactly one ambassador. Read-only to the order workflow.
    """

    __tablename__ = "links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    user: Mapped[User] = relationship(lazy="raise")

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, code={self.code}, user_id={self.user_id})>"


class Product(Base):
    """Catalog products. Read-only to the order workflow."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    __table_args__ = (CheckConstraint("price >= 0", name="non_negative_price"),)

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, title={self.title}, price={self.price})>"


class Order(Base):
    """
    Orders table.

    One row per checkout attempt that reached the payment gateway.
    ``transaction_id`` holds the Stripe Checkout Session id and is the
    correlation key for payment confirmations. ``complete`` flips to true
    exactly once, guarded by a conditional update.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    ambassador_email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    zip: Mapped[str | None] = mapped_column(String(32), nullable=True)
    complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.id",
        lazy="raise",
    )

    __table_args__ = (
        Index("idx_orders_code", "code"),
        Index("idx_orders_complete", "complete"),
    )

    @property
    def name(self) -> str:
        """Customer full name."""
        return f"{self.first_name} {self.last_name}"

    @property
    def total(self) -> Decimal:
        """Sum of line totals; requires ``items`` to be loaded."""
        return sum((item.price * item.quantity for item in self.items), Decimal("0"))

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, code={self.code}, "
            f"transaction_id={self.transaction_id}, complete={self.complete})>"
        )


class OrderItem(Base):
    """
    Order line items table.

    ``product_title`` and ``price`` are snapshots taken at purchase time so
    later catalog edits never rewrite history.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    admin_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)
    ambassador_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items", lazy="raise")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
        CheckConstraint("price >= 0", name="non_negative_item_price"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderItem(id={self.id}, order_id={self.order_id}, "
            f"title={self.product_title}, quantity={self.quantity})>"
        )
