import json

import pytest
from conftest import auth_header

from niraiva import lab_reports
from niraiva.config import get_settings
from niraiva.db.models import HealthParameter, LabReport
from niraiva.main import _inline_disposition

PDF_BYTES = b'%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF'

DETAILS = {
    'reportDate': '2024-05-10',
    'labName': 'City Labs',
    'patientName': 'Asha Rao',
    'metadata': {'sample': {'Sample Type': 'Blood'}},
    'testResults': [
        {
            'category': 'Diabetes',
            'tests': [
                {'name': 'Fasting Glucose', 'value': 132, 'unit': 'mg/dL', 'referenceRange': '70-100', 'status': 'high'},
                {'name': 'HbA1c', 'value': '6.1', 'unit': '%', 'status': 'normal'},
            ],
        }
    ],
}


@pytest.fixture
def patient_user(onboard):
    return onboard()


def _upload(
    client, user, content=PDF_BYTES, content_type='application/pdf', details=DETAILS, filename='blood.pdf'
):
    data = {'details': json.dumps(details)} if details is not None else {}
    return client.post(
        '/api/lab-reports',
        files={'file': (filename, content, content_type)},
        data=data,
        headers=auth_header(user),
    )


def test_upload_stores_report_and_parameters(api_client, db_session, patient_user):
    resp = _upload(api_client, patient_user)

    assert resp.status_code == 201
    report_id = resp.json()['reportId']
    report = db_session.get(LabReport, report_id)
    assert report.file_name == 'blood.pdf'
    assert report.lab_name == 'City Labs'
    assert report.file_size == len(PDF_BYTES)
    assert report.extracted_data['results'][0]['tests'][0]['value'] == '132'
    parameters = db_session.query(HealthParameter).order_by(HealthParameter.parameter_name).all()
    assert [p.parameter_name for p in parameters] == ['Fasting Glucose', 'HbA1c']
    assert {p.test_date for p in parameters} == {'2024-05-10'}
    assert all(p.lab_report_id == report_id for p in parameters)


def test_upload_rejects_non_pdf(api_client, patient_user):
    resp = _upload(api_client, patient_user, content=b'hello', content_type='text/plain')

    assert resp.status_code == 400
    assert resp.json()['error'] == 'Only PDF files are supported'


def test_upload_rejects_empty_file(api_client, patient_user):
    resp = _upload(api_client, patient_user, content=b'')

    assert resp.status_code == 400
    assert resp.json()['error'] == 'No file provided'


def test_upload_rejects_malformed_details(api_client, patient_user):
    resp = api_client.post(
        '/api/lab-reports',
        files={'file': ('blood.pdf', PDF_BYTES, 'application/pdf')},
        data={'details': '{not json'},
        headers=auth_header(patient_user),
    )

    assert resp.status_code == 400
    assert resp.json()['error'] == 'Invalid report details'


def test_report_date_falls_back_to_upload_time(db_session, patient_user):
    result = lab_reports.upload_lab_report(
        db_session, patient_user.id, 'scan.pdf', 'application/pdf', PDF_BYTES, None
    )

    report = db_session.get(LabReport, result['reportId'])
    assert report.report_date.startswith(report.uploaded_at.date().isoformat())
    assert report.extracted_data == {'results': [], 'metadata': {}}


def test_upload_requires_patient_profile(db_session, make_user):
    user = make_user()

    result = lab_reports.upload_lab_report(
        db_session, user.id, 'scan.pdf', 'application/pdf', PDF_BYTES, None
    )

    assert result == {'success': False, 'error': 'Patient profile not found', 'code': 'not_found'}


def test_list_get_download_delete(api_client, db_session, patient_user):
    report_id = _upload(api_client, patient_user).json()['reportId']
    headers = auth_header(patient_user)

    resp = api_client.get('/api/lab-reports', headers=headers)
    reports = resp.json()['reports']
    assert [r['id'] for r in reports] == [report_id]
    assert 'fileData' not in reports[0]

    resp = api_client.get(f'/api/lab-reports/{report_id}', headers=headers)
    assert resp.json()['report']['labName'] == 'City Labs'

    resp = api_client.get(f'/api/lab-reports/{report_id}/pdf', headers=headers)
    assert resp.status_code == 200
    assert resp.headers['content-type'] == 'application/pdf'
    assert resp.content == PDF_BYTES

    resp = api_client.delete(f'/api/lab-reports/{report_id}', headers=headers)
    assert resp.json() == {'success': True, 'message': 'Report deleted successfully'}
    db_session.expire_all()
    assert db_session.query(LabReport).count() == 0
    assert db_session.query(HealthParameter).count() == 0


def test_reports_are_scoped_to_owner(api_client, onboard, patient_user):
    report_id = _upload(api_client, patient_user).json()['reportId']
    other = onboard()

    resp = api_client.get(f'/api/lab-reports/{report_id}', headers=auth_header(other))
    assert resp.status_code == 404

    resp = api_client.get(f'/api/lab-reports/{report_id}/pdf', headers=auth_header(other))
    assert resp.status_code == 404
    assert resp.json()['error'] == 'Original file not found in database.'

    resp = api_client.delete(f'/api/lab-reports/{report_id}', headers=auth_header(other))
    assert resp.status_code == 404


@pytest.fixture
def one_megabyte_limit(monkeypatch):
    monkeypatch.setenv('MAX_UPLOAD_MB', '1')
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_upload_rejects_oversized_file(api_client, db_session, patient_user, one_megabyte_limit):
    oversized = PDF_BYTES + b'0' * (1024 * 1024)

    resp = _upload(api_client, patient_user, content=oversized)

    assert resp.status_code == 400
    assert resp.json() == {
        'success': False,
        'error': 'File exceeds the maximum upload size',
        'code': 'validation',
    }
    assert db_session.query(LabReport).count() == 0


def test_download_keeps_non_latin_filename(api_client, patient_user):
    report_id = _upload(api_client, patient_user, filename='रक्त–report.pdf').json()['reportId']

    resp = api_client.get(f'/api/lab-reports/{report_id}/pdf', headers=auth_header(patient_user))

    assert resp.status_code == 200
    assert resp.content == PDF_BYTES
    disposition = resp.headers['content-disposition']
    assert disposition.startswith('inline; filename="report.pdf"')
    assert "filename*=UTF-8''%E0%A4%B0%E0%A4%95%E0%A5%8D%E0%A4%A4%E2%80%93report.pdf" in disposition


def test_inline_disposition_fallback_drops_quotes():
    header = _inline_disposition('my "cbc".pdf')

    assert header == "inline; filename=\"my cbc.pdf\"; filename*=UTF-8''my%20%22cbc%22.pdf"
    assert _inline_disposition(None).startswith('inline; filename="report.pdf";')
