from flask import Flask

from repairshop import get_db
from repairshop.models.user import Customer
from repairshop.services.policy import Identity, Resource, authorize, ensure_customer
from tests.test_utils_seed import ensure_user, auth_headers, unique_email, create_repair


def _customer_rows(user_id: int) -> int:
    return get_db().query(Customer).filter_by(user_id=user_id).count()


def test_ensure_customer_is_idempotent(app_context: Flask):
    session = get_db()
    user = ensure_user(unique_email('upsert'))
    first = ensure_customer(session, user.id)
    second = ensure_customer(session, user.id)
    session.commit()
    assert first.id == second.id
    assert _customer_rows(user.id) == 1


def test_first_customer_call_creates_exactly_one_row(client):
    user = ensure_user(unique_email('lazy'))
    assert _customer_rows(user.id) == 0
    headers = auth_headers(user)
    assert client.get('/api/repairs/mine', headers=headers).status_code == 200
    assert _customer_rows(user.id) == 1
    assert client.get('/api/payments/mine', headers=headers).status_code == 200
    assert client.get('/api/customers/me', headers=headers).status_code == 200
    assert _customer_rows(user.id) == 1


def test_authorize_role_and_ownership(app_context: Flask):
    owner = ensure_user(unique_email('owner'))
    other = ensure_user(unique_email('other'))
    repair = create_repair(owner)
    resource = Resource('repair', customer_id=repair.customer_id)
    assert authorize(Identity(owner.id, 'customer'), ('customer',), resource).allowed
    denied = authorize(Identity(other.id, 'customer'), ('customer',), resource)
    assert not denied.allowed
    assert denied.reason == 'Forbidden'
    # staff skip ownership
    assert authorize(Identity(other.id, 'technician'), ('technician', 'admin'), resource).allowed
    # role check comes first
    assert not authorize(Identity(owner.id, 'customer'), ('admin',), resource).allowed


def test_authorize_uploader_rule(app_context: Flask):
    uploader = ensure_user(unique_email('uploader'))
    stranger = ensure_user(unique_email('stranger'))
    resource = Resource('attachment', uploaded_by_user_id=uploader.id)
    everyone = ('customer', 'technician', 'admin')
    assert authorize(Identity(uploader.id, 'customer'), everyone, resource).allowed
    assert not authorize(Identity(stranger.id, 'customer'), everyone, resource).allowed
    assert authorize(Identity(stranger.id, 'admin'), everyone, resource).allowed


def test_foreign_repair_is_forbidden_missing_is_not_found(client):
    owner = ensure_user(unique_email('own'))
    intruder = ensure_user(unique_email('intruder'))
    repair = create_repair(owner)
    assert client.get(f'/api/repairs/{repair.id}', headers=auth_headers(owner)).status_code == 200
    resp = client.get(f'/api/repairs/{repair.id}', headers=auth_headers(intruder))
    assert resp.status_code == 403
    assert resp.get_json()['error']['status'] == 403
    assert client.get('/api/repairs/987654', headers=auth_headers(intruder)).status_code == 404
    # customers never see the staff list
    assert client.get('/api/repairs', headers=auth_headers(owner)).status_code == 403
