from repairshop import get_db
from repairshop.models.user import User, Customer
from tests.test_utils_seed import ensure_user, auth_headers, unique_email, ensure_customer_row, reload


def _admin():
    return auth_headers(ensure_user(unique_email('cust_admin'), role='admin'))


def test_admin_creates_verified_customer_with_profile(client):
    headers = _admin()
    email = unique_email('walkin')
    resp = client.post('/api/customers', json={
        'email': email.upper(), 'firstName': 'Walk', 'lastName': 'In', 'phone': '555-0100',
        'profile': {'city': 'Springfield', 'zipCode': '12345'},
    }, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['city'] == 'Springfield'
    assert body['zipCode'] == '12345'
    assert body['user']['email'] == email
    assert body['user']['role'] == 'customer'
    assert body['user']['isVerified'] is True
    again = client.post('/api/customers', json={'email': email, 'firstName': 'W', 'lastName': 'I'}, headers=headers)
    assert again.status_code == 400
    assert client.post('/api/customers', json={'email': unique_email('nameless')}, headers=headers).status_code == 400


def test_customer_profile_self_service(client):
    user = ensure_user(unique_email('selfserve'))
    headers = auth_headers(user)
    me = client.get('/api/customers/me', headers=headers)
    assert me.status_code == 200
    assert me.get_json()['userId'] == user.id
    updated = client.put('/api/customers/me', json={'address': '1 Main St', 'devicePreferences': 'Android'}, headers=headers)
    assert updated.status_code == 200
    assert updated.get_json()['address'] == '1 Main St'
    row = get_db().query(Customer).filter_by(user_id=user.id).one()
    assert reload(row).device_preferences == 'Android'
    # staff have no customer profile
    tech = auth_headers(ensure_user(unique_email('selfserve_tech'), role='technician'))
    assert client.get('/api/customers/me', headers=tech).status_code == 403


def test_admin_reads_searches_and_updates(client):
    headers = _admin()
    user = ensure_user(unique_email('findable'))
    customer = ensure_customer_row(user)
    assert client.get(f'/api/customers/{customer.id}', headers=headers).get_json()['user']['email'] == user.email
    assert client.get('/api/customers/999999', headers=headers).status_code == 404
    found = client.get(f'/api/customers?q={user.email}', headers=headers).get_json()
    assert [c['id'] for c in found['data']] == [customer.id]

    resp = client.put(f'/api/customers/{customer.id}', json={'phone': '555-0199', 'profile': {'notes': 'VIP'}},
                      headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['notes'] == 'VIP'
    assert body['user']['phone'] == '555-0199'
    assert body['isActive'] is True
    assert client.get('/api/customers', headers=auth_headers(user)).status_code == 403


def test_deactivate_blocks_login(client):
    headers = _admin()
    user = ensure_user(unique_email('leaving'))
    customer = ensure_customer_row(user)
    assert client.delete(f'/api/customers/{customer.id}', headers=headers).status_code == 204
    assert reload(get_db().get(User, user.id)).is_active is False
    assert get_db().get(Customer, customer.id) is not None
    assert client.post('/api/auth/login/request-otp', json={'email': user.email}).status_code == 403
