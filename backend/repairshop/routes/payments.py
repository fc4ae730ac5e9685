from __future__ import annotations
from flask import Blueprint, request, g
from sqlalchemy import select

from repairshop import get_db
from repairshop.constants.roles import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_TECHNICIAN, EVERYONE
from repairshop.decorators.auth import require_roles
from repairshop.decorators.audit import audit_log
from repairshop.models.payment import Payment
from repairshop.models.repair_order import RepairOrder
from repairshop.routes.repairs import repair_resource
from repairshop.services.payments import record_payment
from repairshop.services.policy import customer_for
from repairshop.utils.filters import apply_filters
from repairshop.utils.listing import list_response
from repairshop.utils.serialize import iso, money
from repairshop.utils.sorting import apply_multi_sort

pay_bp = Blueprint('payments', __name__)

SORTABLE = {
    'paidAt': Payment.paid_at,
    'amount': Payment.amount,
    'createdAt': Payment.created_at,
    'id': Payment.id,
}


@pay_bp.get('')
@require_roles(ROLE_ADMIN)
def list_payments():
    session = get_db()
    q = session.query(Payment)
    filter_specs = {
        'method': {'choices': Payment.ALL_METHODS, 'op': lambda qu, v: qu.filter(Payment.method == v)},
        'repairOrderId': {'coerce': int, 'op': lambda qu, v: qu.filter(Payment.repair_order_id == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, Payment.id)
    return list_response(q, _payment_json)


@pay_bp.get('/mine')
@require_roles(ROLE_CUSTOMER)
def list_my_payments():
    session = get_db()
    customer = customer_for(g.identity)
    own_orders = select(RepairOrder.id).where(RepairOrder.customer_id == customer.id)
    q = session.query(Payment).filter(Payment.repair_order_id.in_(own_orders))
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, Payment.id)
    return list_response(q, _payment_json)


@pay_bp.get('/technician')
@require_roles(ROLE_TECHNICIAN)
def list_technician_payments():
    session = get_db()
    assigned = select(RepairOrder.id).where(RepairOrder.technician_id == g.identity.user_id)
    q = session.query(Payment).filter(Payment.repair_order_id.in_(assigned))
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, Payment.id)
    return list_response(q, _payment_json)


@pay_bp.get('/repair/<int:repair_id>')
@require_roles(*EVERYONE, resource=repair_resource)
def list_repair_payments(repair_id: int):
    session = get_db()
    q = session.query(Payment).filter(Payment.repair_order_id == repair_id)
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, Payment.id)
    return list_response(q, _payment_json)


@pay_bp.post('')
@require_roles(*EVERYONE)
@audit_log('PAYMENT.CREATE', entity='Payment', entity_id_key='id', meta_keys=['repairOrderId', 'amount', 'method'])
def create_payment():
    session = get_db()
    payment = record_payment(session, g.identity, request.json or {})
    return _payment_json(payment), 201


def _payment_json(p: Payment):
    return {
        'id': p.id,
        'repairOrderId': p.repair_order_id,
        'amount': money(p.amount),
        'method': p.method,
        'status': p.status,
        'transactionId': p.transaction_id,
        'paidAt': iso(p.paid_at),
        'notes': p.notes,
        'createdAt': iso(p.created_at),
        'updatedAt': iso(p.updated_at),
    }
