from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Numeric, DateTime, CheckConstraint, func

from .user import Base


class Payment(Base):
    __tablename__ = 'payments'
    METHOD_CASH = 'cash'
    METHOD_CARD = 'card'
    METHOD_UPI = 'upi'
    METHOD_BANK_TRANSFER = 'bank_transfer'
    ALL_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_UPI, METHOD_BANK_TRANSFER)
    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'
    ALL_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED, STATUS_REFUNDED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # No foreign key: payments outlive the repair order they were taken for
    repair_order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_COMPLETED)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(128))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (CheckConstraint('amount > 0', name='ck_payment_amount_positive'),)

# Append-only ledger: rows are never updated or deleted after creation.
