import io
import os
from types import SimpleNamespace

import pytest
from flask import Flask
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage

from repairshop import get_db
from repairshop.models.repair_order import RepairAttachment
from repairshop.services.attachments import repair_dir, store_images
from tests.test_utils_seed import ensure_user, auth_headers, unique_email, create_repair

PNG = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64


def _image(name='photo.png', mime='image/png', payload=PNG):
    return (io.BytesIO(payload), name, mime)


def _stored_path(app: Flask, repair_id: int, filename: str) -> str:
    return os.path.join(app.config['UPLOAD_FOLDER'], 'repairs', str(repair_id), filename)


def _attachment_count(repair_id: int) -> int:
    return get_db().query(RepairAttachment).filter_by(repair_order_id=repair_id).count()


def test_upload_stores_files_and_rows(client, app_context: Flask):
    owner = ensure_user(unique_email('uploader'))
    repair = create_repair(owner)
    resp = client.post(f'/api/repairs/{repair.id}/attachments',
                       data={'files': [_image('a.png'), _image('b.JPG', 'image/jpeg')]},
                       headers=auth_headers(owner), content_type='multipart/form-data')
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['count'] == 2
    first, second = body['data']
    assert first['originalName'] == 'a.png'
    assert first['mimeType'] == 'image/png'
    assert first['size'] == len(PNG)
    assert first['uploadedByUserId'] == owner.id
    assert first['filename'].endswith('.png')
    assert second['filename'].endswith('.jpg')
    assert first['url'].endswith(f"/uploads/repairs/{repair.id}/{first['filename']}")
    assert os.path.getsize(_stored_path(app_context, repair.id, first['filename'])) == len(PNG)

    served = client.get(f"/uploads/repairs/{repair.id}/{first['filename']}")
    assert served.status_code == 200
    assert served.data == PNG

    listed = client.get(f'/api/repairs/{repair.id}/attachments', headers=auth_headers(owner)).get_json()
    assert [a['id'] for a in listed['data']] == [first['id'], second['id']]


def test_upload_rejects_bad_batches(client, app_context: Flask, monkeypatch):
    owner = ensure_user(unique_email('badupload'))
    repair = create_repair(owner)
    url = f'/api/repairs/{repair.id}/attachments'
    headers = auth_headers(owner)

    none = client.post(url, data={}, headers=headers, content_type='multipart/form-data')
    assert none.status_code == 400
    assert none.get_json()['error']['detail'] == 'At least 1 image is required'

    too_many = client.post(url, data={'files': [_image(f'{i}.png') for i in range(4)]},
                           headers=headers, content_type='multipart/form-data')
    assert too_many.status_code == 400
    assert too_many.get_json()['error']['detail'] == 'Maximum 3 images allowed'

    wrong_type = client.post(url, data={'files': [_image('a.png'), _image('notes.pdf', 'application/pdf', b'%PDF')]},
                             headers=headers, content_type='multipart/form-data')
    assert wrong_type.status_code == 400
    assert wrong_type.get_json()['error']['detail'] == 'Only JPG, PNG, WEBP images are allowed'

    monkeypatch.setitem(app_context.config, 'MAX_ATTACHMENT_BYTES', 16)
    too_big = client.post(url, data={'files': [_image('big.png')]}, headers=headers, content_type='multipart/form-data')
    assert too_big.status_code == 400

    assert _attachment_count(repair.id) == 0
    folder = os.path.join(app_context.config['UPLOAD_FOLDER'], 'repairs', str(repair.id))
    assert not os.path.isdir(folder) or os.listdir(folder) == []


def test_upload_to_foreign_repair_is_forbidden(client):
    repair = create_repair(ensure_user(unique_email('att_owner')))
    stranger = ensure_user(unique_email('att_stranger'))
    resp = client.post(f'/api/repairs/{repair.id}/attachments', data={'files': [_image()]},
                       headers=auth_headers(stranger), content_type='multipart/form-data')
    assert resp.status_code == 403
    assert _attachment_count(repair.id) == 0


def test_delete_by_uploader_or_staff_only(client, app_context: Flask):
    owner = ensure_user(unique_email('att_del'))
    tech = ensure_user(unique_email('att_del_tech'), role='technician')
    repair = create_repair(owner)
    url = f'/api/repairs/{repair.id}/attachments'
    # staff upload to the owner's repair; the owner did not upload it
    staff_upload = client.post(url, data={'files': [_image('staff.png')]}, headers=auth_headers(tech),
                               content_type='multipart/form-data').get_json()['data'][0]
    own_upload = client.post(url, data={'files': [_image('mine.png')]}, headers=auth_headers(owner),
                             content_type='multipart/form-data').get_json()['data'][0]

    assert client.delete(f"{url}/{staff_upload['id']}", headers=auth_headers(owner)).status_code == 403
    assert client.delete(f"{url}/{own_upload['id']}", headers=auth_headers(owner)).status_code == 204
    assert not os.path.exists(_stored_path(app_context, repair.id, own_upload['filename']))
    assert client.delete(f"{url}/{staff_upload['id']}", headers=auth_headers(tech)).status_code == 204
    assert _attachment_count(repair.id) == 0
    assert client.delete(f"{url}/{staff_upload['id']}", headers=auth_headers(tech)).status_code == 404


def test_delete_is_scoped_to_the_repair(client):
    owner = ensure_user(unique_email('att_scope'))
    r1 = create_repair(owner)
    r2 = create_repair(owner)
    att = client.post(f'/api/repairs/{r1.id}/attachments', data={'files': [_image()]}, headers=auth_headers(owner),
                      content_type='multipart/form-data').get_json()['data'][0]
    assert client.delete(f"/api/repairs/{r2.id}/attachments/{att['id']}", headers=auth_headers(owner)).status_code == 404
    assert _attachment_count(r1.id) == 1


def test_create_repair_with_images(client, app_context: Flask):
    owner = ensure_user(unique_email('att_create'))
    resp = client.post('/api/repairs', data={
        'deviceType': 'Tablet', 'brand': 'Slate', 'model': 'S9', 'issueDescription': 'Battery swelling',
        'images': [_image('front.png'), _image('back.webp', 'image/webp')],
    }, headers=auth_headers(owner), content_type='multipart/form-data')
    assert resp.status_code == 201
    body = resp.get_json()
    assert len(body['attachments']) == 2
    assert body['attachments'][1]['filename'].endswith('.webp')
    for att in body['attachments']:
        assert os.path.exists(_stored_path(app_context, body['id'], att['filename']))
    detail = client.get(f"/api/repairs/{body['id']}", headers=auth_headers(owner)).get_json()
    assert len(detail['attachments']) == 2


def test_create_repair_rejects_bad_image_without_writing(client):
    owner = ensure_user(unique_email('att_create_bad'))
    resp = client.post('/api/repairs', data={
        'deviceType': 'Tablet', 'brand': 'Slate', 'model': 'S9', 'issueDescription': 'Battery swelling',
        'images': [_image('virus.exe', 'application/octet-stream', b'MZ')],
    }, headers=auth_headers(owner), content_type='multipart/form-data')
    assert resp.status_code == 400
    assert client.get('/api/repairs/mine', headers=auth_headers(owner)).get_json()['pagination']['total'] == 0


def test_missing_upload_is_404(client):
    assert client.get('/uploads/repairs/424242/nothing.png').status_code == 404


def test_failed_flush_removes_written_files(app_context: Flask):
    def failing_flush():
        raise SQLAlchemyError('flush failed')

    session = SimpleNamespace(add=lambda obj: None, flush=failing_flush)
    files = [FileStorage(io.BytesIO(PNG), filename=name, content_type='image/png') for name in ('x.png', 'y.png')]
    with pytest.raises(SQLAlchemyError):
        store_images(session, 515151, files, uploaded_by_user_id=1)
    assert os.listdir(repair_dir(515151)) == []
