# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Order and payment models."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripfluence.database import Base
from tripfluence.utils.timeutils import utc_now

ORDER_PENDING = "PENDING"
ORDER_PAID = "PAID"
ORDER_CANCELLED = "CANCELLED"
ORDER_REFUNDED = "REFUNDED"
ORDER_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_PAID,
    ORDER_CANCELLED,
    ORDER_REFUNDED,
    ORDER_PARTIALLY_REFUNDED,
)

PAYMENT_PROVIDERS = ("STRIPE", "RAZORPAY", "MANUAL")
PAYMENT_CHARGE = "CHARGE"
PAYMENT_REFUND = "REFUND"
PAYMENT_SUCCEEDED = "SUCCEEDED"


class Order(Base):
    """A customer's purchase of a listing."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    listing_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False
    )
    order_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ORDER_PENDING
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Payment.id",
    )

    __table_args__ = (
        Index("idx_order_business_status", "business_id", "status"),
        Index("idx_order_created", "business_id", "created_at"),
    )

    @property
    def refundable_amount(self) -> int:
        """Amount still available to refund."""
        return self.total_amount - self.refunded_amount

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<Order(number={self.order_number}, status={self.status})>"


class Payment(Base):
    """A charge or refund recorded against an order."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    payment_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PAYMENT_SUCCEEDED
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    order: Mapped["Order"] = relationship("Order", back_populates="payments")

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<Payment(number={self.payment_number}, kind={self.kind}, "
            f"amount={self.amount})>"
        )
