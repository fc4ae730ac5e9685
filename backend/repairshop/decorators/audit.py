from __future__ import annotations
"""Audit trail decorator for mutating routes.

    @audit_log('REPAIR.CREATE', entity='RepairOrder', entity_id_key='id', meta_keys=['status'])
    def create_repair(): ... return body, 201

    @audit_log('REPAIR.DELETE', entity='RepairOrder', entity_id_arg='repair_id')
    def delete_repair(repair_id): ... return '', 204

entity_id comes from ``entity_id_key`` in the returned JSON, falling back to the
``entity_id_arg`` path parameter (the only source for bodiless 204s).
``meta_keys`` are copied from the returned JSON into meta. With ``diff_keys`` and
``pre_fetch`` (a callable receiving the view's args and kwargs and returning a
JSON snapshot taken before the view runs) changed keys land in
``meta['changes']`` as ``{'before': ..., 'after': ...}``.

Only successful returns are audited: a request that aborts never reaches the
decorator's write.
"""
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from flask import current_app
from repairshop import get_db
from repairshop.services.audit import add_audit


def _split(rv: Any) -> Tuple[Any, int]:
    if isinstance(rv, tuple) and rv:
        return rv[0], rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
    return rv, 200


def _changes(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    return {
        k: {'before': before[k], 'after': after[k]}
        for k in keys
        if k in before and k in after and before[k] != after[k]
    }


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = None
            if diff_keys and pre_fetch:
                try:
                    before = pre_fetch(args, kwargs)
                except Exception:
                    current_app.logger.warning('audit pre_fetch failed for %s', action, exc_info=True)
            rv = fn(*args, **kwargs)
            data, status = _split(rv)
            if status >= 400:
                return rv
            body = data if isinstance(data, dict) else {}
            entity_id = body.get(entity_id_key) if entity_id_key and entity_id_key in body else kwargs.get(entity_id_arg or '')
            meta = {k: body[k] for k in (meta_keys or ()) if k in body}
            if isinstance(before, dict):
                changes = _changes(before, body, diff_keys)
                if changes:
                    meta['changes'] = changes
            try:
                add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except Exception:
                # the audited change is committed already; the response still goes out
                current_app.logger.exception('audit write failed for %s', action)
                get_db().rollback()
            return rv
        return wrapper
    return outer


__all__ = ['audit_log']
