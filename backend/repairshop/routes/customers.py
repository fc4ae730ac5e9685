from __future__ import annotations
from flask import Blueprint, request, abort, g
from sqlalchemy import select

from repairshop import get_db
from repairshop.constants.roles import ROLE_ADMIN, ROLE_CUSTOMER
from repairshop.decorators.auth import require_roles
from repairshop.decorators.audit import audit_log
from repairshop.models.user import User, Customer
from repairshop.services.policy import customer_for
from repairshop.utils.listing import list_response
from repairshop.utils.serialize import customer_json

cust_bp = Blueprint('customers', __name__)

# JSON field -> Customer column
PROFILE_KEYS = {
    'address': 'address',
    'city': 'city',
    'state': 'state',
    'zipCode': 'zip_code',
    'devicePreferences': 'device_preferences',
    'notes': 'notes',
}
USER_KEYS = {
    'firstName': 'first_name',
    'lastName': 'last_name',
    'phone': 'phone',
    'address': 'address',
}


def _apply_profile(customer: Customer, profile: dict):
    for key, column in PROFILE_KEYS.items():
        if profile.get(key) is not None:
            setattr(customer, column, profile[key])


@cust_bp.get('')
@require_roles(ROLE_ADMIN)
def list_customers():
    session = get_db()
    q = session.query(Customer).order_by(Customer.id.asc())
    if request.args.get('q'):
        term = f"%{request.args['q']}%"
        q = q.join(User, User.id == Customer.user_id).filter(
            User.email.ilike(term) | User.first_name.ilike(term) | User.last_name.ilike(term))
    return list_response(q, customer_json)


@cust_bp.post('')
@require_roles(ROLE_ADMIN)
@audit_log('CUSTOMER.CREATE', entity='Customer', entity_id_key='id', meta_keys=['userId'])
def create_customer():
    session = get_db()
    data = request.json or {}
    email = (data.get('email') or '').strip().lower()
    if not email or not data.get('firstName') or not data.get('lastName'):
        abort(400, description='email, firstName, lastName are required')
    if session.execute(select(User).where(User.email == email)).scalar_one_or_none():
        abort(400, description='Email already registered')
    user = User(
        email=email,
        first_name=data['firstName'],
        last_name=data['lastName'],
        phone=data.get('phone') or None,
        address=data.get('address') or None,
        role=ROLE_CUSTOMER,
        is_active=True,
        # created by staff in person, so no OTP round trip
        is_verified=True,
    )
    session.add(user)
    session.flush()
    customer = Customer(user_id=user.id)
    _apply_profile(customer, data.get('profile') or {})
    session.add(customer)
    session.commit()
    return customer_json(customer), 201


@cust_bp.get('/me')
@require_roles(ROLE_CUSTOMER)
def get_my_profile():
    return customer_json(customer_for(g.identity))


@cust_bp.put('/me')
@require_roles(ROLE_CUSTOMER)
@audit_log('CUSTOMER.PROFILE.UPDATE', entity='Customer', entity_id_key='id')
def update_my_profile():
    session = get_db()
    customer = customer_for(g.identity)
    _apply_profile(customer, request.json or {})
    session.commit()
    return customer_json(customer)


@cust_bp.get('/<int:customer_id>')
@require_roles(ROLE_ADMIN)
def get_customer(customer_id: int):
    return customer_json(_get_or_404(customer_id))


@cust_bp.put('/<int:customer_id>')
@require_roles(ROLE_ADMIN)
@audit_log(
    'CUSTOMER.UPDATE',
    entity='Customer',
    entity_id_key='id',
    diff_keys=['isActive'],
    pre_fetch=lambda a, kw: _prefetch_customer(kw.get('customer_id')),
    meta_keys=['isActive'],
)
def update_customer(customer_id: int):
    session = get_db()
    customer = _get_or_404(customer_id)
    data = request.json or {}
    user = customer.user
    if user is not None:
        for key, column in USER_KEYS.items():
            if data.get(key) is not None:
                setattr(user, column, data[key])
        if data.get('isActive') is not None:
            user.is_active = bool(data['isActive'])
    _apply_profile(customer, data.get('profile') or {})
    session.commit()
    body = customer_json(customer)
    body['isActive'] = user.is_active if user is not None else None
    return body


@cust_bp.delete('/<int:customer_id>')
@require_roles(ROLE_ADMIN)
@audit_log('CUSTOMER.DEACTIVATE', entity='Customer', entity_id_arg='customer_id')
def delete_customer(customer_id: int):
    session = get_db()
    customer = _get_or_404(customer_id)
    # the row stays for history; only the login is switched off
    if customer.user is not None:
        customer.user.is_active = False
    session.commit()
    return '', 204


def _get_or_404(customer_id: int) -> Customer:
    session = get_db()
    customer = session.execute(select(Customer).where(Customer.id == customer_id)).scalar_one_or_none()
    if not customer:
        abort(404, description='Customer not found')
    return customer


def _prefetch_customer(customer_id: int):
    customer = get_db().get(Customer, customer_id)
    if not customer or customer.user is None:
        return {}
    return {'isActive': customer.user.is_active}
