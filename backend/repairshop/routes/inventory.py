from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select

from repairshop import get_db
from repairshop.constants.roles import STAFF, EVERYONE
from repairshop.decorators.auth import require_roles
from repairshop.decorators.audit import audit_log
from repairshop.models.inventory import Inventory
from repairshop.models.repair_order import RepairPart
from repairshop.services.inventory_ledger import set_stock
from repairshop.utils.filters import apply_filters
from repairshop.utils.listing import list_response
from repairshop.utils.serialize import iso, money
from repairshop.utils.sorting import apply_multi_sort
from repairshop.utils.validation import parse_money

inv_bp = Blueprint('inventory', __name__)

# JSON field -> column for plain text attributes
TEXT_FIELDS = {
    'partName': 'part_name',
    'partNumber': 'part_number',
    'description': 'description',
    'category': 'category',
    'brand': 'brand',
    'supplier': 'supplier',
    'location': 'location',
}


def _bool_arg(v: str) -> bool:
    if v.lower() in ('1', 'true', 'yes'):
        return True
    if v.lower() in ('0', 'false', 'no'):
        return False
    raise ValueError(v)


@inv_bp.get('')
@require_roles(*EVERYONE)
def list_inventory():
    session = get_db()
    q = session.query(Inventory)
    filter_specs = {
        'category': {'op': lambda qu, v: qu.filter(Inventory.category == v)},
        'brand': {'op': lambda qu, v: qu.filter(Inventory.brand == v)},
        'partNumber': {'op': lambda qu, v: qu.filter(Inventory.part_number == v)},
        'q': {'op': lambda qu, v: qu.filter(Inventory.part_name.ilike(f'%{v}%'))},
        'isActive': {'coerce': _bool_arg, 'op': lambda qu, v: qu.filter(Inventory.is_active == v)},
        'lowStock': {'coerce': _bool_arg, 'op': lambda qu, v: qu.filter(Inventory.quantity <= Inventory.min_stock_level) if v else qu},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'partName': Inventory.part_name,
        'category': Inventory.category,
        'quantity': Inventory.quantity,
        'sellingPrice': Inventory.selling_price,
        'updatedAt': Inventory.updated_at,
        'id': Inventory.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Inventory.id)
    return list_response(q, _item_json)


@inv_bp.get('/<int:item_id>')
@require_roles(*EVERYONE)
def get_item(item_id: int):
    return _item_json(_get_or_404(item_id))


@inv_bp.post('')
@require_roles(*STAFF)
@audit_log('INVENTORY.CREATE', entity='Inventory', entity_id_key='id', meta_keys=['partNumber', 'quantity'])
def create_item():
    session = get_db()
    data = request.json or {}
    required = ('partName', 'partNumber', 'category', 'unitCost', 'sellingPrice')
    if any(data.get(k) in (None, '') for k in required):
        abort(400, description=f"{', '.join(required)} are required")
    if session.execute(select(Inventory).where(Inventory.part_number == data['partNumber'])).scalar_one_or_none():
        abort(400, description='partNumber already exists')
    item = Inventory(
        quantity=_non_negative_int(data.get('quantity', 0), 'quantity'),
        min_stock_level=_non_negative_int(data.get('minStockLevel', 5), 'minStockLevel'),
        unit_cost=parse_money(data.get('unitCost'), 'unitCost'),
        selling_price=parse_money(data.get('sellingPrice'), 'sellingPrice'),
        is_active=bool(data.get('isActive', True)),
    )
    for key, column in TEXT_FIELDS.items():
        if key in data:
            setattr(item, column, data[key])
    session.add(item)
    session.commit()
    return _item_json(item), 201


@inv_bp.put('/<int:item_id>')
@require_roles(*STAFF)
@audit_log(
    'INVENTORY.UPDATE',
    entity='Inventory',
    entity_id_key='id',
    diff_keys=['quantity', 'sellingPrice', 'unitCost', 'isActive'],
    pre_fetch=lambda a, kw: _prefetch_item(kw.get('item_id')),
)
def update_item(item_id: int):
    session = get_db()
    item = _get_or_404(item_id)
    data = request.json or {}
    if 'partNumber' in data and data['partNumber'] != item.part_number:
        clash = session.execute(select(Inventory).where(Inventory.part_number == data['partNumber'])).scalar_one_or_none()
        if clash:
            abort(400, description='partNumber already exists')
    for key, column in TEXT_FIELDS.items():
        if key in data:
            if column in ('part_name', 'part_number', 'category') and not data[key]:
                abort(400, description=f'{key} cannot be empty')
            setattr(item, column, data[key])
    if 'unitCost' in data:
        item.unit_cost = parse_money(data['unitCost'], 'unitCost')
    if 'sellingPrice' in data:
        item.selling_price = parse_money(data['sellingPrice'], 'sellingPrice')
    if 'minStockLevel' in data:
        item.min_stock_level = _non_negative_int(data['minStockLevel'], 'minStockLevel')
    if 'isActive' in data:
        item.is_active = bool(data['isActive'])
    if 'quantity' in data:
        quantity = _non_negative_int(data['quantity'], 'quantity')
        # the ledger re-reads the row under lock, so pending edits must hit the database first
        session.flush()
        set_stock(session, item.id, quantity)
    session.commit()
    return _item_json(item)


@inv_bp.delete('/<int:item_id>')
@require_roles(*STAFF)
@audit_log('INVENTORY.DELETE', entity='Inventory', entity_id_arg='item_id')
def delete_item(item_id: int):
    session = get_db()
    item = _get_or_404(item_id)
    # parts keep their row and price snapshot but lose the link, so a later
    # item reusing this id never receives their stock back
    for part in session.execute(select(RepairPart).where(RepairPart.inventory_id == item.id)).scalars().all():
        part.inventory = None
    session.delete(item)
    session.commit()
    return '', 204


def _get_or_404(item_id: int) -> Inventory:
    session = get_db()
    item = session.execute(select(Inventory).where(Inventory.id == item_id)).scalar_one_or_none()
    if not item:
        abort(404, description='Item not found')
    return item


def _non_negative_int(raw, field: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        abort(400, description=f'{field} must be an integer')
    if value < 0:
        abort(400, description=f'{field} must be >= 0')
    return value


def _item_json(i: Inventory):
    return {
        'id': i.id,
        'partName': i.part_name,
        'partNumber': i.part_number,
        'description': i.description,
        'category': i.category,
        'brand': i.brand,
        'supplier': i.supplier,
        'quantity': i.quantity,
        'minStockLevel': i.min_stock_level,
        'unitCost': money(i.unit_cost),
        'sellingPrice': money(i.selling_price),
        'location': i.location,
        'isActive': i.is_active,
        'createdAt': iso(i.created_at),
        'updatedAt': iso(i.updated_at),
    }


def _prefetch_item(item_id: int):
    session = get_db()
    i = session.execute(select(Inventory).where(Inventory.id == item_id)).scalar_one_or_none()
    if not i:
        return {}
    return {'quantity': i.quantity, 'sellingPrice': money(i.selling_price), 'unitCost': money(i.unit_cost), 'isActive': i.is_active}
