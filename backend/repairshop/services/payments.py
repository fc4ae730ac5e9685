"""Payment recording.

Amounts are caller-asserted: there is no gateway, so every payment is stored as
completed the moment it is recorded. Input is validated before anything is read
or written, so a bad amount or method never leaves a trace.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict
from flask import abort
from sqlalchemy import select

from repairshop.models.payment import Payment
from repairshop.models.repair_order import RepairOrder
from repairshop.services.policy import Identity, ensure_customer
from repairshop.utils.transactions import atomic
from repairshop.utils.validation import validate_status, parse_money, parse_datetime, parse_positive_int


def record_payment(session, identity: Identity, data: Dict[str, Any]) -> Payment:
    if data.get('repairOrderId') in (None, '') or data.get('amount') in (None, '') or not data.get('method'):
        abort(400, description='repairOrderId, amount, method are required')
    repair_order_id = parse_positive_int(data.get('repairOrderId'), 'repairOrderId')
    amount = parse_money(data.get('amount'), 'amount', positive=True)
    method = validate_status(data.get('method'), Payment.ALL_METHODS, field_name='method')
    paid_at = parse_datetime(data.get('paidAt'), 'paidAt') or datetime.now(timezone.utc)

    with atomic(session):
        order = session.execute(select(RepairOrder).where(RepairOrder.id == repair_order_id)).scalar_one_or_none()
        if not order:
            abort(404, description='Repair order not found')
        if identity.is_customer:
            customer = ensure_customer(session, identity.user_id)
            if order.customer_id != customer.id:
                abort(403, description='Forbidden')
        payment = Payment(
            repair_order_id=repair_order_id,
            amount=amount,
            method=method,
            status=Payment.STATUS_COMPLETED,
            transaction_id=data.get('transactionId') or None,
            paid_at=paid_at,
            notes=data.get('notes') or None,
        )
        session.add(payment)
        session.flush()
    return payment


__all__ = ['record_payment']
