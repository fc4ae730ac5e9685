"""Repair-order image storage.

Files live at ``<UPLOAD_FOLDER>/repairs/<repairOrderId>/<generated name>``; the
generated name is ``<epoch ms>-<random>`` plus an extension taken from the
original filename, or from the MIME type when the original has none.
"""
from __future__ import annotations
import os
import secrets
import time
from typing import List, Optional
from flask import abort, current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from repairshop.constants.roles import ALLOWED_IMAGE_TYPES
from repairshop.models.repair_order import RepairAttachment


def repair_dir(repair_order_id: int) -> str:
    return os.path.join(current_app.config['UPLOAD_FOLDER'], 'repairs', str(repair_order_id))


def _file_size(f: FileStorage) -> int:
    stream = f.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def generated_filename(original_name: Optional[str], mime_type: str) -> str:
    ext = os.path.splitext(secure_filename(original_name or ''))[1].lower()
    if not ext:
        ext = ALLOWED_IMAGE_TYPES.get(mime_type, '')
    return f'{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}'


def validate_images(files: List[FileStorage], min_count: int, max_count: int) -> List[FileStorage]:
    """Reject the whole batch if any file is not an allowed image or is too large."""
    files = [f for f in files if f and f.filename]
    if len(files) < min_count:
        abort(400, description=f'At least {min_count} image is required')
    if len(files) > max_count:
        abort(400, description=f'Maximum {max_count} images allowed')
    limit = current_app.config['MAX_ATTACHMENT_BYTES']
    for f in files:
        if f.mimetype not in ALLOWED_IMAGE_TYPES:
            abort(400, description='Only JPG, PNG, WEBP images are allowed')
        if _file_size(f) > limit:
            abort(400, description=f'{f.filename} exceeds the {limit // (1024 * 1024)} MB limit')
    return files


def store_images(session, repair_order_id: int, files: List[FileStorage], uploaded_by_user_id: int) -> List[RepairAttachment]:
    """Write files to disk and add their rows.

    Files already written are removed again if a save or the flush fails. The
    caller commits and calls discard_files if that commit fails.
    """
    target = repair_dir(repair_order_id)
    os.makedirs(target, exist_ok=True)
    created = []
    for f in files:
        name = generated_filename(f.filename, f.mimetype)
        size = _file_size(f)
        try:
            f.save(os.path.join(target, name))
        except OSError:
            discard_files(repair_order_id, [a.filename for a in created])
            raise
        att = RepairAttachment(
            repair_order_id=repair_order_id,
            filename=name,
            original_name=f.filename,
            mime_type=f.mimetype,
            size=size,
            uploaded_by_user_id=uploaded_by_user_id,
        )
        session.add(att)
        created.append(att)
    try:
        session.flush()
    except Exception:
        discard_files(repair_order_id, [a.filename for a in created])
        raise
    return created


def discard_files(repair_order_id: int, filenames: List[str]):
    """Remove stored files; a file already gone is not an error."""
    target = repair_dir(repair_order_id)
    for name in filenames:
        try:
            os.remove(os.path.join(target, name))
        except FileNotFoundError:
            pass
        except OSError:
            current_app.logger.warning('could not remove %s/%s', target, name, exc_info=True)


def attachment_json(a: RepairAttachment, base_url: str = ''):
    return {
        'id': a.id,
        'repairOrderId': a.repair_order_id,
        'url': f'{base_url}/uploads/repairs/{a.repair_order_id}/{a.filename}',
        'filename': a.filename,
        'originalName': a.original_name,
        'mimeType': a.mime_type,
        'size': a.size,
        'uploadedByUserId': a.uploaded_by_user_id,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }


__all__ = ['repair_dir', 'generated_filename', 'validate_images', 'store_images', 'discard_files', 'attachment_json']
