from __future__ import annotations
from flask import Blueprint, request, abort, g, current_app
from sqlalchemy import select

from repairshop import get_db
from repairshop.constants.roles import EVERYONE
from repairshop.decorators.auth import require_roles
from repairshop.decorators.audit import audit_log
from repairshop.models.repair_order import RepairAttachment
from repairshop.routes.repairs import repair_resource
from repairshop.services.attachments import validate_images, store_images, discard_files, attachment_json
from repairshop.services.lifecycle import get_repair_or_404
from repairshop.services.policy import Resource
from repairshop.utils.transactions import atomic

att_bp = Blueprint('attachments', __name__)


def attachment_resource(repair_id: int, attachment_id: int, **_):
    """Deletion is allowed to staff or to whoever uploaded the file."""
    att = _get_attachment_or_404(repair_id, attachment_id)
    return Resource('attachment', uploaded_by_user_id=att.uploaded_by_user_id)


@att_bp.get('/<int:repair_id>/attachments')
@require_roles(*EVERYONE, resource=repair_resource)
def list_attachments(repair_id: int):
    session = get_db()
    items = session.execute(
        select(RepairAttachment).where(RepairAttachment.repair_order_id == repair_id)
        .order_by(RepairAttachment.created_at.asc(), RepairAttachment.id.asc())
    ).scalars().all()
    base = request.host_url.rstrip('/')
    return {'data': [attachment_json(a, base) for a in items]}


@att_bp.post('/<int:repair_id>/attachments')
@require_roles(*EVERYONE, resource=repair_resource)
@audit_log('REPAIR.ATTACHMENT.ADD', entity='RepairOrder', entity_id_arg='repair_id', meta_keys=['count'])
def upload_attachments(repair_id: int):
    session = get_db()
    repair = get_repair_or_404(session, repair_id)
    files = validate_images(request.files.getlist('files'), 1, current_app.config['MAX_UPLOAD_IMAGES'])
    written = []
    try:
        with atomic(session):
            written = store_images(session, repair.id, files, g.identity.user_id)
    except Exception:
        if written:
            discard_files(repair.id, [a.filename for a in written])
        raise
    base = request.host_url.rstrip('/')
    return {'count': len(written), 'data': [attachment_json(a, base) for a in written]}, 201


@att_bp.delete('/<int:repair_id>/attachments/<int:attachment_id>')
@require_roles(*EVERYONE, resource=attachment_resource)
@audit_log('REPAIR.ATTACHMENT.DELETE', entity='RepairAttachment', entity_id_arg='attachment_id')
def delete_attachment(repair_id: int, attachment_id: int):
    session = get_db()
    att = _get_attachment_or_404(repair_id, attachment_id)
    filename = att.filename
    with atomic(session):
        session.delete(att)
    discard_files(repair_id, [filename])
    return '', 204


def _get_attachment_or_404(repair_id: int, attachment_id: int) -> RepairAttachment:
    session = get_db()
    att = session.execute(
        select(RepairAttachment).where(RepairAttachment.id == attachment_id, RepairAttachment.repair_order_id == repair_id)
    ).scalar_one_or_none()
    if not att:
        abort(404, description='Attachment not found')
    return att
