from __future__ import annotations
"""Reusable validation helpers for request payloads.

Everything here aborts with 400 on bad input so handlers can use the helpers
inline and keep consistent error semantics.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from flask import abort


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or aborts with 400.
    """
    if new_status not in allowed:
        abort(400, description=f"{field_name} must be one of: {', '.join(allowed)}")
    return new_status


def require_fields(data: dict, *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        abort(400, description=f"{', '.join(names)} are required")


def parse_positive_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool):
        abort(400, description=f'{field_name} must be an integer')
    try:
        value = int(raw)
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} must be an integer')
    if isinstance(raw, float) and raw != value:
        abort(400, description=f'{field_name} must be an integer')
    if value <= 0:
        abort(400, description=f'{field_name} must be > 0')
    return value


def parse_money(raw: Any, field_name: str, positive: bool = False, allow_none: bool = False) -> Optional[Decimal]:
    if raw is None or raw == '':
        if allow_none:
            return None
        abort(400, description=f'{field_name} is required')
    if isinstance(raw, bool):
        abort(400, description=f'{field_name} must be a number')
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        abort(400, description=f'{field_name} must be a number')
    if not value.is_finite():
        abort(400, description=f'{field_name} must be a number')
    if positive and value <= 0:
        abort(400, description=f'{field_name} must be > 0')
    if not positive and value < 0:
        abort(400, description=f'{field_name} must be >= 0')
    return value.quantize(Decimal('0.01'))


def parse_datetime(raw: Any, field_name: str) -> Optional[datetime]:
    """Accept ISO 8601 timestamps or plain YYYY-MM-DD dates."""
    if raw is None or raw == '':
        return None
    try:
        dt = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
    except ValueError:
        abort(400, description=f'{field_name} must be an ISO 8601 date')
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

__all__ = ['validate_status', 'require_fields', 'parse_positive_int', 'parse_money', 'parse_datetime']
