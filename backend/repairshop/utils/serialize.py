from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional

from repairshop.models.user import User, Customer


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def money(v: Optional[Decimal]) -> Optional[float]:
    return float(v) if v is not None else None


def user_json(u: User):
    # otp fields never leave the server
    return {
        'id': u.id,
        'email': u.email,
        'firstName': u.first_name,
        'lastName': u.last_name,
        'phone': u.phone,
        'address': u.address,
        'role': u.role,
        'isActive': u.is_active,
        'isVerified': u.is_verified,
        'createdAt': iso(u.created_at),
        'updatedAt': iso(u.updated_at),
    }


def customer_json(c: Customer, with_user: bool = True):
    body = {
        'id': c.id,
        'userId': c.user_id,
        'address': c.address,
        'city': c.city,
        'state': c.state,
        'zipCode': c.zip_code,
        'devicePreferences': c.device_preferences,
        'notes': c.notes,
        'createdAt': iso(c.created_at),
        'updatedAt': iso(c.updated_at),
    }
    if with_user and c.user is not None:
        body['user'] = user_json(c.user)
    return body


__all__ = ['iso', 'money', 'user_json', 'customer_json']
