from __future__ import annotations
from typing import List, Optional, Tuple
from flask import abort


def parse_sort(sort_expr: Optional[str]) -> List[Tuple[str, bool]]:
    """'-paidAt,amount' -> [('paidAt', True), ('amount', False)]; the flag means descending."""
    keys = []
    for token in (sort_expr or '').split(','):
        token = token.strip()
        if not token:
            continue
        keys.append((token[1:], True) if token.startswith('-') else (token, False))
    return keys


def apply_multi_sort(query, sort_expr: Optional[str], allowed: dict, tie_breaker, default: Optional[str] = None):
    """Order query by a comma-separated sort expression.

    allowed maps public field names to columns; unknown names are a 400.
    default is used when the caller sends no sort. tie_breaker always goes last
    so pages are stable.
    """
    clauses = []
    for key, descending in parse_sort(sort_expr or default):
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if descending else col.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)


__all__ = ['parse_sort', 'apply_multi_sort']
