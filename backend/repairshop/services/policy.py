"""Authorization policy shared by every route.

A request is allowed when two independent checks pass:

- role membership: the caller's role is in the route's allowed set;
- ownership: for customers, the target resource belongs to the caller's
  Customer row (or, for attachments, the caller uploaded it).

Resolving ownership may create the caller's Customer row. This find-or-create
is intentional: a customer who has never acted before owns nothing yet, so the
check simply fails closed for foreign resources and passes for new ones.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from repairshop.constants.roles import ROLE_CUSTOMER
from repairshop.models.user import Customer
from repairshop import get_db


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER


@dataclass(frozen=True)
class Resource:
    """What a route is about to act on, reduced to the fields the policy reads."""
    kind: str
    customer_id: Optional[int] = None
    uploaded_by_user_id: Optional[int] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ''


ALLOW = Decision(True)


def current_identity() -> Identity:
    claims = get_jwt()
    # identity is stored as a string (flask-jwt-extended v4 requirement)
    return Identity(user_id=int(get_jwt_identity()), role=claims.get('role', ''))


def ensure_customer(session, user_id: int) -> Customer:
    """Return the Customer row for user_id, inserting it if missing.

    Relies on the unique constraint on customers.user_id so two concurrent first
    calls cannot both insert.
    """
    dialect = session.get_bind().dialect.name
    stmt = None
    if dialect == 'postgresql':
        stmt = pg_insert(Customer).values(user_id=user_id).on_conflict_do_nothing(index_elements=['user_id'])
    elif dialect == 'sqlite':
        stmt = sqlite_insert(Customer).values(user_id=user_id).on_conflict_do_nothing(index_elements=['user_id'])
    if stmt is not None:
        session.execute(stmt)
    else:
        existing = session.execute(select(Customer).where(Customer.user_id == user_id)).scalar_one_or_none()
        if existing:
            return existing
        try:
            with session.begin_nested():
                session.add(Customer(user_id=user_id))
        except IntegrityError:
            pass  # lost the race; the winner's row is read below
    return session.execute(select(Customer).where(Customer.user_id == user_id)).scalar_one()


def customer_for(identity: Identity) -> Customer:
    """Find-or-create the caller's Customer row and make it durable."""
    session = get_db()
    customer = ensure_customer(session, identity.user_id)
    session.commit()
    return customer


def authorize(identity: Identity, allowed_roles: Iterable[str], resource: Optional[Resource] = None) -> Decision:
    if identity.role not in set(allowed_roles):
        return Decision(False, 'Forbidden')
    if resource is None or not identity.is_customer:
        return ALLOW
    if resource.uploaded_by_user_id is not None:
        if resource.uploaded_by_user_id != identity.user_id:
            return Decision(False, 'Forbidden')
        return ALLOW
    if resource.customer_id is not None:
        if customer_for(identity).id != resource.customer_id:
            return Decision(False, 'Forbidden')
    return ALLOW


def enforce(identity: Identity, allowed_roles: Iterable[str], resource: Optional[Resource] = None) -> Identity:
    decision = authorize(identity, allowed_roles, resource)
    if not decision.allowed:
        abort(403, description=decision.reason)
    return identity


__all__ = ['Identity', 'Resource', 'Decision', 'current_identity', 'ensure_customer', 'customer_for', 'authorize', 'enforce']
