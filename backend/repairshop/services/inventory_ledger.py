"""Inventory ledger: the only code that writes ``Inventory.quantity``.

Attaching a part moves stock from an inventory row into a RepairPart row and
detaching moves it back; both run their read-check-write sequence inside one
transaction. The decrement is a guarded UPDATE (``quantity >= n``) so two
concurrent attaches can never both pass the stock check on a stale read.

Functions here flush but never commit; the caller owns the transaction.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Optional
from flask import abort
from sqlalchemy import select, update

from repairshop.models.inventory import Inventory
from repairshop.models.repair_order import RepairOrder, RepairPart


def _locked_inventory(session, inventory_id: int) -> Optional[Inventory]:
    # populate_existing: the identity map may hold a copy read before the lock
    stmt = select(Inventory).where(Inventory.id == inventory_id).with_for_update().execution_options(populate_existing=True)
    return session.execute(stmt).scalar_one_or_none()


def attach_part(session, repair_order_id: int, inventory_id: int, quantity: int, unit_price: Optional[Decimal] = None) -> RepairPart:
    if quantity <= 0:
        abort(400, description='quantity must be > 0')
    repair = session.execute(select(RepairOrder).where(RepairOrder.id == repair_order_id)).scalar_one_or_none()
    if not repair:
        abort(404, description='Repair order not found')
    inv = _locked_inventory(session, inventory_id)
    if not inv:
        abort(404, description='Inventory item not found')
    if inv.quantity < quantity:
        abort(400, description='Insufficient stock')
    result = session.execute(
        update(Inventory)
        .where(Inventory.id == inventory_id, Inventory.quantity >= quantity)
        .values(quantity=Inventory.quantity - quantity)
        .execution_options(synchronize_session='fetch')
    )
    if result.rowcount != 1:
        abort(400, description='Insufficient stock')
    part = RepairPart(
        repair_order_id=repair_order_id,
        inventory_id=inventory_id,
        quantity=quantity,
        unit_price=unit_price if unit_price is not None else inv.selling_price,
    )
    session.add(part)
    session.flush()
    return part


def detach_part(session, part: RepairPart) -> Optional[Inventory]:
    """Delete part and put its quantity back on the shelf.

    The inventory row may be gone (hard delete); the restore is skipped then.
    """
    inv = _locked_inventory(session, part.inventory_id) if part.inventory_id is not None else None
    if inv is not None:
        session.execute(
            update(Inventory)
            .where(Inventory.id == inv.id)
            .values(quantity=Inventory.quantity + int(part.quantity or 0))
            .execution_options(synchronize_session='fetch')
        )
    session.delete(part)
    session.flush()
    return inv


def remove_part(session, repair_order_id: int, repair_part_id: int) -> RepairPart:
    part = session.execute(
        select(RepairPart).where(RepairPart.id == repair_part_id, RepairPart.repair_order_id == repair_order_id)
    ).scalar_one_or_none()
    if not part:
        abort(404, description='Repair part not found')
    detach_part(session, part)
    return part


def set_stock(session, inventory_id: int, quantity: int) -> Inventory:
    """Administrative stock count (restock / stocktake correction)."""
    if quantity < 0:
        abort(400, description='quantity must be >= 0')
    inv = _locked_inventory(session, inventory_id)
    if not inv:
        abort(404, description='Item not found')
    inv.quantity = quantity
    session.flush()
    return inv


__all__ = ['attach_part', 'detach_part', 'remove_part', 'set_stock']
