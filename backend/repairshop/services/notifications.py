"""Live notification dispatch over Socket.IO.

One ``NotificationDispatcher`` is built by ``create_app`` and stored in
``app.extensions['notifications']``; routes receive it through
``get_dispatcher()`` and hand it to the services that emit. ``run.py`` closes it
on shutdown, after which every emit is a no-op.

Delivery is best effort: no queue, no retry, no acknowledgement. A user with no
connected session simply misses the event.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from flask import current_app

EVENT_NOTIFICATION = 'notification:new'
EVENT_READY = 'socket:ready'
KIND_REPAIR_STATUS = 'repair_status'


def user_room(user_id: int) -> str:
    return f'user:{user_id}'


class NotificationDispatcher:
    def __init__(self, socketio=None, logger: Optional[logging.Logger] = None):
        self.socketio = socketio
        self.logger = logger or logging.getLogger(__name__)

    @property
    def is_open(self) -> bool:
        return self.socketio is not None

    def emit_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> bool:
        """Emit event to every live session of user_id. Never raises."""
        if self.socketio is None:
            return False
        try:
            self.logger.debug('socket emit to %s event=%s keys=%s', user_room(user_id), event, ','.join(payload))
            self.socketio.emit(event, payload, to=user_room(user_id))
            return True
        except Exception:
            self.logger.exception('Failed to emit %s to user %s', event, user_id)
            return False

    def repair_status_changed(self, repair, customer_user_id: Optional[int], previous_status: str,
                              title_fallback: str = 'Repair update', message: Optional[str] = None) -> bool:
        if not customer_user_id:
            return False
        payload = {
            'kind': KIND_REPAIR_STATUS,
            'repairId': repair.id,
            'previousStatus': previous_status,
            'status': repair.status,
            'title': repair.product_name or title_fallback,
            'message': message or f'Status updated to {repair.status}.',
            'createdAt': datetime.now(timezone.utc).isoformat(),
        }
        return self.emit_to_user(customer_user_id, EVENT_NOTIFICATION, payload)

    def close(self):
        self.socketio = None


def get_dispatcher() -> NotificationDispatcher:
    return current_app.extensions['notifications']


__all__ = ['NotificationDispatcher', 'get_dispatcher', 'user_room', 'EVENT_NOTIFICATION', 'EVENT_READY']
