"""Repair-order lifecycle.

Statuses run pending -> in_progress -> awaiting_parts -> completed -> delivered,
with cancelled reachable from pending. Only ``cancel_repair`` checks a
precondition; ``update_repair`` accepts any valid status so staff can correct a
ticket freely. Every status change that commits notifies the owning customer.

Notifications are sent after commit and never raise.
"""
from __future__ import annotations
from typing import Any, Dict, Optional
from flask import abort, current_app
from sqlalchemy import select

from repairshop.constants.roles import ROLE_TECHNICIAN
from repairshop.models.user import User, Customer
from repairshop.models.repair_order import RepairOrder, RepairPart, RepairAttachment
from repairshop.services.inventory_ledger import detach_part
from repairshop.services.notifications import NotificationDispatcher
from repairshop.utils.fsm import TransitionValidator
from repairshop.utils.transactions import atomic
from repairshop.utils.validation import validate_status, parse_money, parse_datetime

CANCEL_FSM = TransitionValidator({
    RepairOrder.STATUS_PENDING: {RepairOrder.STATUS_CANCELLED},
}, message='Only pending repairs can be cancelled')

# JSON field -> column. customer_id is absent: it never changes after creation.
UPDATABLE_FIELDS = {
    'deviceType': 'device_type',
    'brand': 'brand',
    'model': 'model',
    'serialNumber': 'serial_number',
    'issueDescription': 'issue_description',
    'diagnosis': 'diagnosis',
    'repairNotes': 'repair_notes',
    'status': 'status',
    'priority': 'priority',
    'estimatedCost': 'estimated_cost',
    'actualCost': 'actual_cost',
    'estimatedCompletionDate': 'estimated_completion_date',
    'actualCompletionDate': 'actual_completion_date',
    'warrantyPeriod': 'warranty_period',
}
REQUIRED_TEXT = ('device_type', 'brand', 'model', 'issue_description')


def get_repair_or_404(session, repair_id: int) -> RepairOrder:
    repair = session.execute(select(RepairOrder).where(RepairOrder.id == repair_id)).scalar_one_or_none()
    if not repair:
        abort(404, description='Repair order not found')
    return repair


def owner_user_id(session, repair: RepairOrder) -> Optional[int]:
    customer = session.get(Customer, repair.customer_id)
    return customer.user_id if customer else None


def _coerce(column: str, value: Any) -> Any:
    if column == 'status':
        return validate_status(value, RepairOrder.ALL_STATUSES)
    if column == 'priority':
        return validate_status(value, RepairOrder.ALL_PRIORITIES, field_name='priority')
    if column in ('estimated_cost', 'actual_cost'):
        return parse_money(value, column, allow_none=True)
    if column in ('estimated_completion_date', 'actual_completion_date'):
        return parse_datetime(value, column)
    if column == 'warranty_period':
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            abort(400, description='warrantyPeriod must be an integer')
    if column in REQUIRED_TEXT and not value:
        abort(400, description=f'{column} cannot be empty')
    return value


def create_repair(session, customer_id: int, fields: Dict[str, Any]) -> RepairOrder:
    if not session.get(Customer, customer_id):
        abort(404, description='Customer not found')
    repair = RepairOrder(
        customer_id=customer_id,
        device_type=fields['device_type'],
        brand=fields['brand'],
        model=fields['model'],
        serial_number=fields.get('serial_number'),
        issue_description=fields['issue_description'],
        status=RepairOrder.STATUS_PENDING,
        priority=RepairOrder.PRIORITY_MEDIUM,
        estimated_completion_date=fields.get('estimated_completion_date'),
    )
    session.add(repair)
    session.flush()
    return repair


def update_repair(session, repair: RepairOrder, payload: Dict[str, Any], dispatcher: NotificationDispatcher) -> RepairOrder:
    previous_status = repair.status
    changes = {}
    for key, column in UPDATABLE_FIELDS.items():
        if key in payload:
            changes[column] = _coerce(column, payload[key])
    with atomic(session):
        for column, value in changes.items():
            setattr(repair, column, value)
    if repair.status != previous_status:
        notify_status_change(session, repair, previous_status, dispatcher)
    return repair


def cancel_repair(session, repair: RepairOrder, dispatcher: NotificationDispatcher) -> RepairOrder:
    previous_status = repair.status
    CANCEL_FSM.assert_can_transition(repair.status, RepairOrder.STATUS_CANCELLED)
    with atomic(session):
        repair.status = RepairOrder.STATUS_CANCELLED
    notify_status_change(session, repair, previous_status, dispatcher,
                         title_fallback='Repair cancelled', message='Status updated to CANCELLED.')
    return repair


def assign_technician(session, repair: RepairOrder, technician_id: Any) -> RepairOrder:
    if not technician_id:
        abort(400, description='technicianId is required')
    try:
        technician_id = int(technician_id)
    except (TypeError, ValueError):
        abort(400, description='Invalid technicianId')
    tech = session.get(User, technician_id)
    if not tech or tech.role != ROLE_TECHNICIAN:
        abort(400, description='Invalid technicianId')
    with atomic(session):
        repair.technician_id = technician_id
    return repair


def delete_repair(session, repair: RepairOrder) -> list:
    """Remove the order with its parts and attachment rows; payments stay.

    Returns the attachment filenames so the caller can remove the files once the
    rows are gone.
    """
    with atomic(session):
        parts = session.execute(select(RepairPart).where(RepairPart.repair_order_id == repair.id)).scalars().all()
        for part in parts:
            # Parts go back on the shelf so stock stays conserved
            detach_part(session, part)
        attachments = session.execute(
            select(RepairAttachment).where(RepairAttachment.repair_order_id == repair.id)).scalars().all()
        filenames = [a.filename for a in attachments]
        for att in attachments:
            session.delete(att)
        session.flush()
        session.delete(repair)
    return filenames


def notify_status_change(session, repair: RepairOrder, previous_status: str, dispatcher: NotificationDispatcher,
                         title_fallback: str = 'Repair update', message: Optional[str] = None) -> bool:
    """Tell the owning customer; failures are logged and swallowed."""
    try:
        user_id = owner_user_id(session, repair)
        return dispatcher.repair_status_changed(repair, user_id, previous_status,
                                                title_fallback=title_fallback, message=message)
    except Exception:
        current_app.logger.exception('Failed to emit status change notification for repair %s', repair.id)
        return False


__all__ = [
    'CANCEL_FSM', 'UPDATABLE_FIELDS', 'get_repair_or_404', 'owner_user_id', 'create_repair', 'update_repair',
    'cancel_repair', 'assign_technician', 'delete_repair', 'notify_status_change'
]
