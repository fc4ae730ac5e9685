"""Test seeding utilities to reduce duplication.

Every helper is idempotent on its natural key (email, part number) so tests sharing
the session-wide in-memory database can call them freely.
"""
from decimal import Decimal
from itertools import count
from typing import Optional
from flask_jwt_extended import create_access_token

from repairshop import get_db
from repairshop.models.user import User, Customer
from repairshop.models.inventory import Inventory
from repairshop.models.repair_order import RepairOrder
from repairshop.services.policy import ensure_customer

_seq = count(1)


def unique_email(prefix: str) -> str:
    return f'{prefix}{next(_seq)}@example.com'


def ensure_user(email: str, role: str = 'customer', is_active: bool = True) -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(email=email, first_name=email.split('@')[0], last_name='Test', role=role,
                 is_active=is_active, is_verified=True)
        session.add(u); session.commit(); session.refresh(u)
    return u


def auth_headers(user: User) -> dict:
    """Bearer header for user; must be called inside an app context."""
    token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
    return {'Authorization': f'Bearer {token}'}


def ensure_customer_row(user: User) -> Customer:
    session = get_db()
    customer = ensure_customer(session, user.id)
    session.commit()
    return customer


def ensure_part(part_number: str, quantity: int = 10, selling_price: str = '100.00', unit_cost: str = '50.00') -> Inventory:
    session = get_db()
    inv = session.query(Inventory).filter_by(part_number=part_number).one_or_none()
    if not inv:
        inv = Inventory(part_number=part_number, part_name=f'Part {part_number}', category='screens',
                        quantity=quantity, unit_cost=Decimal(unit_cost), selling_price=Decimal(selling_price))
        session.add(inv); session.commit(); session.refresh(inv)
    return inv


def create_repair(owner: User, status: str = 'pending', estimated_cost: Optional[str] = None,
                  actual_cost: Optional[str] = None) -> RepairOrder:
    """Insert a repair order owned by owner directly (non-idempotent)."""
    session = get_db()
    customer = ensure_customer_row(owner)
    repair = RepairOrder(
        customer_id=customer.id, device_type='Phone', brand='Acme', model='X1',
        issue_description='Cracked screen', status=status,
        estimated_cost=Decimal(estimated_cost) if estimated_cost else None,
        actual_cost=Decimal(actual_cost) if actual_cost else None,
    )
    session.add(repair); session.commit(); session.refresh(repair)
    return repair


def reload(obj):
    """Re-read obj from the database, dropping any stale in-session state."""
    session = get_db()
    session.refresh(obj)
    return obj


__all__ = [
    'unique_email', 'ensure_user', 'auth_headers', 'ensure_customer_row', 'ensure_part', 'create_repair', 'reload'
]
