from repairshop import get_db
from repairshop.models.audit import AuditLog
from tests.test_utils_seed import ensure_user, auth_headers, unique_email, ensure_part, reload

NEW_ITEM = {
    'partName': 'OLED Panel', 'partNumber': 'INV-NEW-1', 'category': 'screens', 'brand': 'Acme',
    'unitCost': 40, 'sellingPrice': 90, 'quantity': 7,
}


def _staff():
    return auth_headers(ensure_user(unique_email('inv_tech'), role='technician'))


def test_create_item(client):
    headers = _staff()
    resp = client.post('/api/inventory', json=NEW_ITEM, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['partNumber'] == 'INV-NEW-1'
    assert body['quantity'] == 7
    assert body['minStockLevel'] == 5
    assert body['sellingPrice'] == 90.0
    assert body['isActive'] is True
    dup = client.post('/api/inventory', json=NEW_ITEM, headers=headers)
    assert dup.status_code == 400
    assert dup.get_json()['error']['detail'] == 'partNumber already exists'


def test_create_validation(client):
    headers = _staff()
    assert client.post('/api/inventory', json={'partName': 'x'}, headers=headers).status_code == 400
    bad_qty = {**NEW_ITEM, 'partNumber': 'INV-BADQ', 'quantity': -1}
    assert client.post('/api/inventory', json=bad_qty, headers=headers).status_code == 400
    bad_price = {**NEW_ITEM, 'partNumber': 'INV-BADP', 'sellingPrice': 'cheap'}
    assert client.post('/api/inventory', json=bad_price, headers=headers).status_code == 400
    customer = auth_headers(ensure_user(unique_email('inv_cust')))
    assert client.post('/api/inventory', json={**NEW_ITEM, 'partNumber': 'INV-CUST'}, headers=customer).status_code == 403


def test_everyone_can_browse(client):
    ensure_part('BROWSE-1', quantity=1)
    customer = auth_headers(ensure_user(unique_email('inv_browser')))
    body = client.get('/api/inventory?partNumber=BROWSE-1', headers=customer).get_json()
    assert [i['partNumber'] for i in body['data']] == ['BROWSE-1']
    item_id = body['data'][0]['id']
    assert client.get(f'/api/inventory/{item_id}', headers=customer).get_json()['partName'] == 'Part BROWSE-1'
    assert client.get('/api/inventory/999999', headers=customer).status_code == 404
    assert client.get('/api/inventory').status_code == 401


def test_low_stock_and_search_filters(client):
    headers = _staff()
    ensure_part('LOW-1', quantity=1)
    ensure_part('PLENTY-1', quantity=50)
    low = client.get('/api/inventory?lowStock=true&limit=200', headers=headers).get_json()
    numbers = {i['partNumber'] for i in low['data']}
    assert 'LOW-1' in numbers
    assert 'PLENTY-1' not in numbers
    found = client.get('/api/inventory?q=plenty', headers=headers).get_json()
    assert [i['partNumber'] for i in found['data']] == ['PLENTY-1']
    assert client.get('/api/inventory?lowStock=maybe', headers=headers).status_code == 400


def test_update_sets_stock_and_fields_together(client):
    headers = _staff()
    inv = ensure_part('UPD-1', quantity=3)
    resp = client.put(f'/api/inventory/{inv.id}', json={'quantity': 12, 'location': 'Shelf B', 'sellingPrice': 110},
                      headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['quantity'] == 12
    assert body['location'] == 'Shelf B'
    assert body['sellingPrice'] == 110.0
    fresh = reload(inv)
    assert fresh.quantity == 12
    assert fresh.location == 'Shelf B'
    log = get_db().query(AuditLog).filter_by(action='INVENTORY.UPDATE', entity_id=str(inv.id)).one()
    assert log.meta['changes']['quantity'] == {'before': 3, 'after': 12}


def test_update_validation(client):
    headers = _staff()
    inv = ensure_part('UPDV-1', quantity=3)
    other = ensure_part('UPDV-2', quantity=3)
    url = f'/api/inventory/{inv.id}'
    assert client.put(url, json={'quantity': -2}, headers=headers).status_code == 400
    assert client.put(url, json={'partName': ''}, headers=headers).status_code == 400
    assert client.put(url, json={'partNumber': other.part_number}, headers=headers).status_code == 400
    assert client.put('/api/inventory/999999', json={'quantity': 1}, headers=headers).status_code == 404
    assert reload(inv).quantity == 3


def test_delete_item(client):
    headers = _staff()
    inv = ensure_part('DELINV-1', quantity=3)
    item_id = inv.id
    assert client.delete(f'/api/inventory/{item_id}', headers=headers).status_code == 204
    assert client.get(f'/api/inventory/{item_id}', headers=headers).status_code == 404
    assert client.delete(f'/api/inventory/{item_id}', headers=headers).status_code == 404
