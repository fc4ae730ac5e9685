from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Numeric, DateTime, ForeignKey, CheckConstraint, func

from .user import Base


class RepairOrder(Base):
    __tablename__ = 'repair_orders'
    # Status constants
    STATUS_PENDING = 'pending'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_AWAITING_PARTS = 'awaiting_parts'
    STATUS_COMPLETED = 'completed'
    STATUS_DELIVERED = 'delivered'
    STATUS_CANCELLED = 'cancelled'
    ALL_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_AWAITING_PARTS, STATUS_COMPLETED, STATUS_DELIVERED, STATUS_CANCELLED)
    # Priority constants
    PRIORITY_LOW = 'low'
    PRIORITY_MEDIUM = 'medium'
    PRIORITY_HIGH = 'high'
    PRIORITY_URGENT = 'urgent'
    ALL_PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH, PRIORITY_URGENT)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey('customers.id'), nullable=False, index=True)
    technician_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    device_type: Mapped[str] = mapped_column(String(80), nullable=False)
    brand: Mapped[str] = mapped_column(String(80), nullable=False)
    model: Mapped[str] = mapped_column(String(80), nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(String(80))
    issue_description: Mapped[str] = mapped_column(Text, nullable=False)
    diagnosis: Mapped[Optional[str]] = mapped_column(Text)
    repair_notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_PENDING, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIORITY_MEDIUM)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    actual_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    estimated_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    warranty_period: Mapped[Optional[int]] = mapped_column(Integer, default=30)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    parts = relationship('RepairPart', back_populates='repair_order', passive_deletes=True)
    attachments = relationship('RepairAttachment', back_populates='repair_order', order_by='RepairAttachment.id', passive_deletes=True)

    @property
    def product_name(self) -> str:
        return f"{self.device_type or ''} {self.brand or ''} {self.model or ''}".strip()

# Status flow: pending -> in_progress -> awaiting_parts -> completed -> delivered
# cancelled is reachable from pending only, and only the dedicated cancel action checks it.


class RepairPart(Base):
    __tablename__ = 'repair_parts'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    # SET NULL: a hard-deleted inventory item leaves the part row behind
    inventory_id: Mapped[Optional[int]] = mapped_column(ForeignKey('inventory.id', ondelete='SET NULL'), nullable=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # Price snapshot taken when the part was attached
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    repair_order = relationship('RepairOrder', back_populates='parts')
    inventory = relationship('Inventory')

    __table_args__ = (CheckConstraint('quantity > 0', name='ck_repair_part_quantity_positive'),)


class RepairAttachment(Base):
    __tablename__ = 'repair_attachments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(128), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_by_user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    repair_order = relationship('RepairOrder', back_populates='attachments')
