"""Invoice totals and rendering.

Totals are derived from current ledger state every time and never stored:

    partsTotal   = sum(unit price x quantity) over the order's parts
    repairCost   = actualCost, else estimatedCost, else 0
    grandTotal   = repairCost + partsTotal
    paymentsTotal= sum(amount) over the order's payments
    balanceDue   = grandTotal - paymentsTotal   (negative on overpayment)

A part with no price snapshot falls back to its inventory item's current price.
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Iterable, List, Optional
from flask import render_template
from sqlalchemy import select

from repairshop.models.user import Customer
from repairshop.models.repair_order import RepairOrder, RepairPart
from repairshop.models.payment import Payment

ZERO = Decimal('0')


@dataclass
class InvoiceTotals:
    parts_total: Decimal
    repair_cost: Decimal
    grand_total: Decimal
    payments_total: Decimal
    balance_due: Decimal

    def as_json(self):
        return {
            'partsTotal': float(self.parts_total),
            'repairCost': float(self.repair_cost),
            'grandTotal': float(self.grand_total),
            'paymentsTotal': float(self.payments_total),
            'balanceDue': float(self.balance_due),
        }


def part_unit_price(part: RepairPart) -> Decimal:
    if part.unit_price is not None:
        return Decimal(part.unit_price)
    if part.inventory is not None and part.inventory.selling_price is not None:
        return Decimal(part.inventory.selling_price)
    return ZERO


def compute_totals(repair: RepairOrder, parts: Iterable[RepairPart], payments: Iterable[Payment]) -> InvoiceTotals:
    parts_total = sum((part_unit_price(p) * int(p.quantity or 0) for p in parts), ZERO)
    if repair.actual_cost is not None:
        repair_cost = Decimal(repair.actual_cost)
    elif repair.estimated_cost is not None:
        repair_cost = Decimal(repair.estimated_cost)
    else:
        repair_cost = ZERO
    grand_total = repair_cost + parts_total
    payments_total = sum((Decimal(p.amount or 0) for p in payments), ZERO)
    return InvoiceTotals(
        parts_total=parts_total,
        repair_cost=repair_cost,
        grand_total=grand_total,
        payments_total=payments_total,
        balance_due=grand_total - payments_total,
    )


def load_invoice_data(session, repair: RepairOrder):
    parts: List[RepairPart] = session.execute(
        select(RepairPart).where(RepairPart.repair_order_id == repair.id).order_by(RepairPart.id.asc())
    ).scalars().all()
    payments: List[Payment] = session.execute(
        select(Payment).where(Payment.repair_order_id == repair.id).order_by(Payment.id.asc())
    ).scalars().all()
    customer: Optional[Customer] = session.get(Customer, repair.customer_id)
    return customer, parts, payments


def render_invoice(session, repair: RepairOrder) -> str:
    customer, parts, payments = load_invoice_data(session, repair)
    totals = compute_totals(repair, parts, payments)
    lines = [
        {
            'name': p.inventory.part_name if p.inventory is not None else 'Part',
            'unit_price': part_unit_price(p),
            'quantity': int(p.quantity or 0),
            'total': part_unit_price(p) * int(p.quantity or 0),
        }
        for p in parts
    ]
    return render_template(
        'invoice.html',
        repair=repair,
        customer=customer,
        lines=lines,
        payments=payments,
        totals=asdict(totals),
    )


__all__ = ['InvoiceTotals', 'compute_totals', 'part_unit_price', 'load_invoice_data', 'render_invoice']
