from __future__ import annotations
from flask import Blueprint, request, abort, g, make_response, current_app
from sqlalchemy import select, func

from repairshop import get_db
from repairshop.constants.roles import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_TECHNICIAN, STAFF, EVERYONE
from repairshop.decorators.auth import require_roles
from repairshop.decorators.audit import audit_log
from repairshop.models.inventory import Inventory
from repairshop.models.payment import Payment
from repairshop.models.repair_order import RepairOrder, RepairPart
from repairshop.models.user import User, Customer
from repairshop.services.attachments import validate_images, store_images, discard_files, attachment_json
from repairshop.services.billing import render_invoice, compute_totals, load_invoice_data, part_unit_price
from repairshop.services.inventory_ledger import attach_part, remove_part
from repairshop.services.lifecycle import (
    get_repair_or_404, create_repair as create_repair_row, update_repair as apply_update,
    cancel_repair as cancel_repair_row, assign_technician as assign_technician_row, delete_repair as delete_repair_rows,
)
from repairshop.services.notifications import get_dispatcher
from repairshop.services.policy import Resource, customer_for, enforce
from repairshop.utils.filters import apply_filters
from repairshop.utils.listing import list_response
from repairshop.utils.serialize import iso, money, customer_json
from repairshop.utils.sorting import apply_multi_sort
from repairshop.utils.transactions import atomic
from repairshop.utils.validation import parse_positive_int, parse_money, parse_datetime

rpr_bp = Blueprint('repairs', __name__)


def repair_resource(repair_id: int, **_):
    """Resource loader for require_roles: 404 for a missing order, else its owner."""
    repair = get_repair_or_404(get_db(), repair_id)
    return Resource('repair', customer_id=repair.customer_id)


@rpr_bp.get('')
@require_roles(*STAFF)
def list_repairs():
    session = get_db()
    q = session.query(RepairOrder)
    filter_specs = {
        'status': {'choices': RepairOrder.ALL_STATUSES, 'op': lambda qu, v: qu.filter(RepairOrder.status == v)},
        'priority': {'choices': RepairOrder.ALL_PRIORITIES, 'op': lambda qu, v: qu.filter(RepairOrder.priority == v)},
        'technicianId': {'coerce': int, 'op': lambda qu, v: qu.filter(RepairOrder.technician_id == v)},
        'customerId': {'coerce': int, 'op': lambda qu, v: qu.filter(RepairOrder.customer_id == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'createdAt': RepairOrder.created_at,
        'updatedAt': RepairOrder.updated_at,
        'status': RepairOrder.status,
        'priority': RepairOrder.priority,
        'id': RepairOrder.id,
    }
    # newest first unless the caller asks otherwise
    q = apply_multi_sort(q, request.args.get('sort'), allowed, RepairOrder.id, default='-createdAt')
    return list_response(q, _repair_json)


@rpr_bp.get('/overview')
@require_roles(ROLE_ADMIN)
def overview():
    session = get_db()
    by_status = session.execute(
        select(RepairOrder.status, func.count(RepairOrder.id)).group_by(RepairOrder.status)
    ).all()
    payments_total = session.execute(select(func.coalesce(func.sum(Payment.amount), 0))).scalar_one()
    return {
        'repairsCount': session.execute(select(func.count(RepairOrder.id))).scalar_one(),
        'customersCount': session.execute(select(func.count(Customer.id))).scalar_one(),
        'techniciansCount': session.execute(select(func.count(User.id)).where(User.role == ROLE_TECHNICIAN)).scalar_one(),
        'inventoryCount': session.execute(select(func.count(Inventory.id))).scalar_one(),
        'paymentsTotal': float(payments_total or 0),
        'byStatus': [{'status': s, 'count': int(c)} for s, c in by_status],
    }


@rpr_bp.get('/mine')
@require_roles(ROLE_CUSTOMER)
def list_my_repairs():
    session = get_db()
    customer = customer_for(g.identity)
    q = session.query(RepairOrder).filter(RepairOrder.customer_id == customer.id)
    q = q.order_by(RepairOrder.created_at.desc(), RepairOrder.id.desc())
    return list_response(q, _repair_json)


@rpr_bp.get('/<int:repair_id>')
@require_roles(*EVERYONE, resource=repair_resource)
def get_repair(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    body = _repair_json(repair)
    body['attachments'] = [attachment_json(a) for a in repair.attachments]
    if not g.identity.is_customer:
        customer = session.get(Customer, repair.customer_id)
        body['customer'] = customer_json(customer) if customer else None
    return body


@rpr_bp.post('')
@require_roles(*EVERYONE)
@audit_log('REPAIR.CREATE', entity='RepairOrder', entity_id_key='id', meta_keys=['customerId', 'status'])
def create_repair():
    session = get_db()
    # multipart (with images) or plain JSON
    data = request.form.to_dict() if request.form else (request.get_json(silent=True) or {})
    fields = {
        'device_type': data.get('deviceType') or '',
        'brand': data.get('deviceBrand') or data.get('brand') or '',
        'model': data.get('deviceModel') or data.get('model') or '',
        'issue_description': data.get('issueDescription') or '',
        'serial_number': data.get('serialNumber') or None,
        'estimated_completion_date': parse_datetime(data.get('pickupDate') or data.get('estimatedCompletionDate'), 'pickupDate'),
    }
    if not all(fields[k] for k in ('device_type', 'brand', 'model', 'issue_description')):
        abort(400, description='deviceType, brand, model, and issueDescription are required')
    images = validate_images(request.files.getlist('images'), 0, current_app.config['MAX_CREATE_IMAGES'])

    if data.get('customerId') not in (None, ''):
        customer_id = parse_positive_int(data.get('customerId'), 'customerId')
        # a customer may only file on their own behalf
        enforce(g.identity, EVERYONE, Resource('repair', customer_id=customer_id))
    else:
        customer_id = customer_for(g.identity).id

    written = []
    try:
        with atomic(session):
            repair = create_repair_row(session, customer_id, fields)
            written = store_images(session, repair.id, images, g.identity.user_id) if images else []
    except Exception:
        if written:
            discard_files(written[0].repair_order_id, [a.filename for a in written])
        raise
    current_app.logger.info('repair %s created for customer %s with %d image(s)', repair.id, customer_id, len(written))
    body = _repair_json(repair)
    body['attachments'] = [attachment_json(a) for a in written]
    return body, 201


@rpr_bp.put('/<int:repair_id>')
@require_roles(*STAFF, resource=repair_resource)
@audit_log(
    'REPAIR.UPDATE',
    entity='RepairOrder',
    entity_id_key='id',
    diff_keys=['status', 'priority', 'estimatedCost', 'actualCost', 'technicianId'],
    pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
)
def update_repair(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    apply_update(session, repair, request.json or {}, get_dispatcher())
    return _repair_json(repair)


@rpr_bp.delete('/<int:repair_id>')
@require_roles(ROLE_ADMIN)
@audit_log('REPAIR.DELETE', entity='RepairOrder', entity_id_arg='repair_id')
def delete_repair(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    filenames = delete_repair_rows(session, repair)
    discard_files(repair_id, filenames)
    return '', 204


@rpr_bp.put('/<int:repair_id>/cancel')
@require_roles(*EVERYONE, resource=repair_resource)
@audit_log('REPAIR.CANCEL', entity='RepairOrder', entity_id_key='id', meta_keys=['status'])
def cancel_repair(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    cancel_repair_row(session, repair, get_dispatcher())
    return _repair_json(repair)


@rpr_bp.put('/<int:repair_id>/assign')
@require_roles(ROLE_ADMIN, resource=repair_resource)
@audit_log(
    'REPAIR.ASSIGN',
    entity='RepairOrder',
    entity_id_key='id',
    diff_keys=['technicianId'],
    pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
)
def assign_technician(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    assign_technician_row(session, repair, (request.json or {}).get('technicianId'))
    return _repair_json(repair)


@rpr_bp.get('/<int:repair_id>/parts')
@require_roles(*EVERYONE, resource=repair_resource)
def list_parts(repair_id: int):
    session = get_db()
    parts = session.execute(
        select(RepairPart).where(RepairPart.repair_order_id == repair_id).order_by(RepairPart.id.asc())
    ).scalars().all()
    return {'data': [_part_json(p) for p in parts]}


@rpr_bp.post('/<int:repair_id>/parts')
@require_roles(*STAFF, resource=repair_resource)
@audit_log('REPAIR.PART.ADD', entity='RepairPart', entity_id_key='id', meta_keys=['repairOrderId', 'inventoryId', 'quantity'])
def add_part(repair_id: int):
    session = get_db()
    data = request.json or {}
    if data.get('inventoryId') in (None, ''):
        abort(400, description='inventoryId is required')
    inventory_id = parse_positive_int(data.get('inventoryId'), 'inventoryId')
    quantity = parse_positive_int(data.get('quantity'), 'quantity')
    unit_price = parse_money(data.get('unitPrice'), 'unitPrice', positive=True, allow_none=True)
    with atomic(session):
        part = attach_part(session, repair_id, inventory_id, quantity, unit_price)
    return _part_json(part), 201


@rpr_bp.delete('/<int:repair_id>/parts/<int:part_id>')
@require_roles(*STAFF, resource=repair_resource)
@audit_log('REPAIR.PART.REMOVE', entity='RepairPart', entity_id_arg='part_id')
def delete_part(repair_id: int, part_id: int):
    session = get_db()
    with atomic(session):
        remove_part(session, repair_id, part_id)
    return '', 204


@rpr_bp.get('/<int:repair_id>/invoice')
@require_roles(*EVERYONE, resource=repair_resource)
def invoice(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    resp = make_response(render_invoice(session, repair))
    resp.headers['Content-Type'] = 'text/html; charset=utf-8'
    return resp


@rpr_bp.get('/<int:repair_id>/totals')
@require_roles(*EVERYONE, resource=repair_resource)
def totals(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    _, parts, payments = load_invoice_data(session, repair)
    return compute_totals(repair, parts, payments).as_json()


def _repair_json(r: RepairOrder):
    return {
        'id': r.id,
        'customerId': r.customer_id,
        'technicianId': r.technician_id,
        'deviceType': r.device_type,
        'brand': r.brand,
        'model': r.model,
        'serialNumber': r.serial_number,
        'issueDescription': r.issue_description,
        'diagnosis': r.diagnosis,
        'repairNotes': r.repair_notes,
        'status': r.status,
        'priority': r.priority,
        'estimatedCost': money(r.estimated_cost),
        'actualCost': money(r.actual_cost),
        'estimatedCompletionDate': iso(r.estimated_completion_date),
        'actualCompletionDate': iso(r.actual_completion_date),
        'warrantyPeriod': r.warranty_period,
        'createdAt': iso(r.created_at),
        'updatedAt': iso(r.updated_at),
    }


def _part_json(p: RepairPart):
    inv = p.inventory
    return {
        'id': p.id,
        'repairOrderId': p.repair_order_id,
        'inventoryId': p.inventory_id,
        'quantity': p.quantity,
        'unitPrice': money(part_unit_price(p)),
        'partName': inv.part_name if inv is not None else None,
        'partNumber': inv.part_number if inv is not None else None,
        'createdAt': iso(p.created_at),
    }


def _prefetch_repair(repair_id: int):
    session = get_db()
    r = session.execute(select(RepairOrder).where(RepairOrder.id == repair_id)).scalar_one_or_none()
    if not r:
        return {}
    return _repair_json(r)
