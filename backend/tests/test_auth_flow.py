from datetime import datetime, timedelta, timezone

import pytest
from flask import Flask

from repairshop import get_db, mail
from repairshop.models.user import User, Customer
from repairshop.services import otp as otp_service
from tests.test_utils_seed import ensure_user, auth_headers, unique_email


@pytest.fixture()
def fixed_otp(monkeypatch):
    monkeypatch.setattr(otp_service, 'generate_otp', lambda length=6: '123456')
    return '123456'


def test_signup_creates_unverified_customer_and_sends_otp(app_context: Flask, fixed_otp):
    client = app_context.test_client()
    email = unique_email('signup')
    with mail.record_messages() as outbox:
        resp = client.post('/api/auth/signup', json={'email': email, 'firstName': 'Ann', 'lastName': 'Lee', 'phone': '555'})
    assert resp.status_code == 201
    user_id = resp.get_json()['userId']
    session = get_db()
    user = session.get(User, user_id)
    assert user.role == 'customer'
    assert user.is_verified is False
    # stored hashed, never in clear
    assert user.otp_code and user.otp_code != fixed_otp
    assert session.query(Customer).filter_by(user_id=user_id).count() == 1
    assert len(outbox) == 1
    assert outbox[0].recipients == [email]
    assert fixed_otp in outbox[0].html


def test_signup_duplicate_and_missing_fields(client):
    email = unique_email('dup')
    ensure_user(email)
    assert client.post('/api/auth/signup', json={'email': email, 'firstName': 'A', 'lastName': 'B'}).status_code == 400
    resp = client.post('/api/auth/signup', json={'email': unique_email('nofields')})
    assert resp.status_code == 400
    assert resp.get_json()['error']['status'] == 400


def test_request_otp_unknown_and_inactive(client):
    assert client.post('/api/auth/login/request-otp', json={'email': 'nobody@example.com'}).status_code == 404
    inactive = ensure_user(unique_email('inactive'), is_active=False)
    assert client.post('/api/auth/login/request-otp', json={'email': inactive.email}).status_code == 403
    assert client.post('/api/auth/login/request-otp', json={}).status_code == 400


def test_login_round_trip(app_context: Flask, fixed_otp):
    client = app_context.test_client()
    user = ensure_user(unique_email('login'))
    assert client.post('/api/auth/login/request-otp', json={'email': user.email.upper()}).status_code == 200
    bad = client.post('/api/auth/verify-otp', json={'email': user.email, 'otp': '000000'})
    assert bad.status_code == 400
    assert bad.get_json()['error']['detail'] == 'Invalid OTP'
    ok = client.post('/api/auth/verify-otp', json={'email': user.email, 'otp': fixed_otp})
    assert ok.status_code == 200
    body = ok.get_json()
    assert body['user']['id'] == user.id
    assert 'otpCode' not in body['user']
    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.get_json()['user']['email'] == user.email
    # code is single use
    again = client.post('/api/auth/verify-otp', json={'email': user.email, 'otp': fixed_otp})
    assert again.status_code == 400


def test_verify_expired_otp(app_context: Flask, fixed_otp):
    client = app_context.test_client()
    user = ensure_user(unique_email('expired'))
    client.post('/api/auth/login/request-otp', json={'email': user.email})
    session = get_db()
    user.otp_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    session.commit()
    resp = client.post('/api/auth/verify-otp', json={'email': user.email, 'otp': fixed_otp})
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'OTP expired'


def test_me_requires_token(client):
    resp = client.get('/api/auth/me')
    assert resp.status_code == 401
    assert resp.get_json()['error']['status'] == 401
    bad = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert bad.status_code == 401


def test_promote_and_list_technicians(app_context: Flask):
    client = app_context.test_client()
    admin = ensure_user(unique_email('admin'), role='admin')
    target = ensure_user(unique_email('future_tech'))
    headers = auth_headers(admin)
    resp = client.post('/api/auth/promote', json={'email': target.email, 'role': 'technician'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['role'] == 'technician'
    assert client.post('/api/auth/promote', json={'userId': target.id, 'role': 'wizard'}, headers=headers).status_code == 400
    assert client.post('/api/auth/promote', json={'userId': 999999, 'role': 'admin'}, headers=headers).status_code == 404
    techs = client.get('/api/auth/technicians?limit=200', headers=headers).get_json()
    assert target.id in [t['id'] for t in techs['data']]
    # customers cannot promote
    customer = ensure_user(unique_email('cust'))
    denied = client.post('/api/auth/promote', json={'userId': customer.id, 'role': 'admin'}, headers=auth_headers(customer))
    assert denied.status_code == 403


def test_mail_failure_does_not_block_signup(app_context: Flask, monkeypatch):
    def refuse(message):
        raise ConnectionRefusedError('smtp down')

    monkeypatch.setattr(mail, 'send', refuse)
    client = app_context.test_client()
    resp = client.post('/api/auth/signup', json={'email': unique_email('nomail'), 'firstName': 'N', 'lastName': 'M'})
    assert resp.status_code == 201
    assert get_db().get(User, resp.get_json()['userId']).otp_code
