from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
from flask import g
from repairshop import get_db
from repairshop.models.audit import AuditLog


def _actor() -> Tuple[int, Optional[str]]:
    # g.identity is set by require_roles; public routes (signup) have no actor
    identity = g.get('identity')
    if identity is None:
        return 0, None
    return identity.user_id, identity.role


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Stage an audit row in the current session; the caller commits.

    action is a dotted code such as REPAIR.CREATE or PAYMENT.CREATE, entity the
    model name and meta any JSON-safe dict (shallow copied).
    """
    user_id, role = _actor()
    log = AuditLog(
        actor_user_id=user_id,
        actor_role=role,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    get_db().add(log)
    return log


__all__ = ['add_audit']
