"""Environment-driven defaults for the application factory.

Every key can be overridden by the ``config`` dict handed to ``create_app``.
"""
from __future__ import annotations
from datetime import timedelta
from typing import Any, Dict
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def load_settings() -> Dict[str, Any]:
    return {
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'JWT_ACCESS_TOKEN_EXPIRES': timedelta(days=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_DAYS', '7'))),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
        'APP_NAME': os.getenv('APP_NAME', 'Electronics Repair'),
        'CORS_ORIGIN': os.getenv('CORS_ORIGIN', '*'),
        # OTP
        'OTP_TTL_MINUTES': int(os.getenv('OTP_TTL_MINUTES', '10')),
        # Uploads
        'UPLOAD_FOLDER': os.getenv('UPLOAD_FOLDER', 'uploads'),
        'MAX_ATTACHMENT_BYTES': int(os.getenv('MAX_ATTACHMENT_BYTES', str(5 * 1024 * 1024))),
        'MAX_CREATE_IMAGES': 6,
        'MAX_UPLOAD_IMAGES': 3,
        # Flask-Mail
        'MAIL_SERVER': os.getenv('MAIL_SERVER', 'smtp.gmail.com'),
        'MAIL_PORT': int(os.getenv('MAIL_PORT', '465')),
        'MAIL_USE_SSL': _env_bool('MAIL_USE_SSL', True),
        'MAIL_USE_TLS': _env_bool('MAIL_USE_TLS', False),
        'MAIL_USERNAME': os.getenv('MAIL_USERNAME'),
        'MAIL_PASSWORD': os.getenv('MAIL_PASSWORD'),
        'MAIL_DEFAULT_SENDER': os.getenv('MAIL_DEFAULT_SENDER', os.getenv('MAIL_USERNAME') or 'no-reply@example.com'),
        'MAIL_SUPPRESS_SEND': _env_bool('MAIL_SUPPRESS_SEND', False),
    }


__all__ = ['load_settings']
