from __future__ import annotations
import os
from flask import Blueprint, current_app, send_from_directory

uploads_bp = Blueprint('uploads', __name__)


@uploads_bp.get('/repairs/<int:repair_id>/<path:filename>')
def serve_repair_file(repair_id: int, filename: str):
    # public, like any static asset; send_from_directory refuses paths outside the folder
    folder = os.path.abspath(os.path.join(current_app.config['UPLOAD_FOLDER'], 'repairs', str(repair_id)))
    return send_from_directory(folder, filename)
