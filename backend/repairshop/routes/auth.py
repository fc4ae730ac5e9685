from __future__ import annotations
from flask import Blueprint, request, abort, g
from flask_jwt_extended import create_access_token
from sqlalchemy import select

from repairshop import get_db
from repairshop.constants.roles import ALL_ROLES, ROLE_ADMIN, ROLE_CUSTOMER, ROLE_TECHNICIAN, EVERYONE
from repairshop.decorators.auth import require_roles
from repairshop.decorators.audit import audit_log
from repairshop.models.user import User, Customer
from repairshop.services.otp import issue_otp, send_otp_email, PURPOSE_SIGNUP, PURPOSE_LOGIN
from repairshop.utils.listing import list_response
from repairshop.utils.serialize import user_json

auth_bp = Blueprint('auth', __name__)


def _normalize_email(raw) -> str:
    return (raw or '').strip().lower()


def _user_by_email(session, email: str):
    return session.execute(select(User).where(User.email == email)).scalar_one_or_none()


def issue_token(user: User) -> str:
    # identity must be a string for flask-jwt-extended v4
    return create_access_token(identity=str(user.id), additional_claims={'role': user.role})


@auth_bp.post('/signup')
@audit_log('AUTH.SIGNUP', entity='User', entity_id_key='userId')
def signup():
    data = request.json or {}
    email = _normalize_email(data.get('email'))
    first_name = data.get('firstName'); last_name = data.get('lastName')
    if not email or not first_name or not last_name:
        abort(400, description='email, firstName, lastName are required')
    session = get_db()
    if _user_by_email(session, email):
        abort(400, description='Email already registered')
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        phone=data.get('phone') or None,
        address=data.get('address') or None,
        role=ROLE_CUSTOMER,
        is_active=True,
        is_verified=False,
    )
    session.add(user)
    session.flush()
    session.add(Customer(user_id=user.id, address=data.get('address') or None))
    code = issue_otp(user)
    session.commit()
    send_otp_email(user, code, PURPOSE_SIGNUP)
    return {'message': 'Signup successful. OTP sent to email.', 'userId': user.id}, 201


@auth_bp.post('/login/request-otp')
def request_otp():
    data = request.json or {}
    email = _normalize_email(data.get('email'))
    if not email:
        abort(400, description='email is required')
    session = get_db()
    user = _user_by_email(session, email)
    if not user:
        abort(404, description='User not found')
    if not user.is_active:
        abort(403, description='User is inactive')
    code = issue_otp(user)
    session.commit()
    send_otp_email(user, code, PURPOSE_LOGIN)
    return {'message': 'OTP sent to email'}


@auth_bp.post('/verify-otp')
def verify_otp():
    data = request.json or {}
    email = _normalize_email(data.get('email'))
    otp = str(data.get('otp') or '').strip()
    if not email or not otp:
        abort(400, description='email and otp are required')
    session = get_db()
    user = _user_by_email(session, email)
    if not user:
        abort(404, description='User not found')
    if not user.is_active:
        abort(403, description='User is inactive')
    if not user.otp_matches(otp):
        abort(400, description='Invalid OTP')
    if user.otp_expired():
        abort(400, description='OTP expired')
    user.clear_otp()
    user.is_verified = True
    session.commit()
    return {'user': user_json(user), 'token': issue_token(user)}


@auth_bp.get('/me')
@require_roles(*EVERYONE)
def me():
    session = get_db()
    user = session.get(User, g.identity.user_id)
    if not user:
        abort(404, description='User not found')
    return {'user': user_json(user)}


@auth_bp.post('/promote')
@require_roles(ROLE_ADMIN)
@audit_log('AUTH.PROMOTE', entity='User', entity_id_key='id', meta_keys=['role'])
def promote():
    data = request.json or {}
    role = data.get('role')
    if role not in ALL_ROLES:
        abort(400, description=f"role must be one of: {', '.join(ALL_ROLES)}")
    session = get_db()
    if data.get('userId'):
        try:
            user = session.get(User, int(data['userId']))
        except (TypeError, ValueError):
            abort(400, description='userId must be an integer')
    elif data.get('email'):
        user = _user_by_email(session, _normalize_email(data['email']))
    else:
        abort(400, description='userId or email is required')
    if not user:
        abort(404, description='User not found')
    user.role = role
    session.commit()
    return user_json(user)


@auth_bp.get('/technicians')
@require_roles(ROLE_ADMIN)
def list_technicians():
    session = get_db()
    q = session.query(User).filter(User.role == ROLE_TECHNICIAN).order_by(User.id.asc())
    return list_response(q, user_json)
