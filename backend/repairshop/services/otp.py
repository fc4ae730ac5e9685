from __future__ import annotations
import secrets
from flask import current_app, render_template
from flask_mail import Message

from repairshop import mail
from repairshop.models.user import User

PURPOSE_SIGNUP = 'signup'
PURPOSE_LOGIN = 'login'


def generate_otp(length: int = 6) -> str:
    return ''.join(secrets.choice('0123456789') for _ in range(length))


def issue_otp(user: User) -> str:
    """Store a fresh hashed code on user and return the raw code. Caller commits."""
    code = generate_otp()
    user.set_otp(code, current_app.config['OTP_TTL_MINUTES'])
    return code


def send_otp_email(user: User, code: str, purpose: str = PURPOSE_LOGIN) -> bool:
    """Mail the code to the user. Delivery failures are logged, never raised."""
    app_name = current_app.config.get('APP_NAME', 'Electronics Repair')
    subject = f'{app_name} - Verify your email' if purpose == PURPOSE_SIGNUP else f'{app_name} - Your login code'
    try:
        msg = Message(subject, recipients=[user.email])
        msg.body = f'Your OTP code is {code}. It expires in {current_app.config["OTP_TTL_MINUTES"]} minutes.'
        msg.html = render_template(
            'email/otp.html',
            code=code,
            purpose=purpose,
            ttl_minutes=current_app.config['OTP_TTL_MINUTES'],
            app_name=app_name,
        )
        mail.send(msg)
        return True
    except Exception:
        current_app.logger.warning('OTP email to %s failed (non-fatal)', user.email, exc_info=True)
        return False


__all__ = ['generate_otp', 'issue_otp', 'send_otp_email', 'PURPOSE_SIGNUP', 'PURPOSE_LOGIN']
