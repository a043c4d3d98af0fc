from conftest import auth_header

from niraiva import lab_reports, profile
from niraiva.custom_ids import assign_custom_id
from niraiva.db.models import (
    DeletedAccount,
    Doctor,
    HealthParameter,
    LabReport,
    Medication,
    Patient,
    TimelineEvent,
    User,
)
from niraiva.schemas import LabReportDetails


def test_get_profile_returns_role_record(api_client, onboard):
    user = onboard()

    resp = api_client.get('/api/profile', headers=auth_header(user))

    assert resp.status_code == 200
    body = resp.json()
    assert body['user']['customId'] == '#Nrivaa001'
    assert body['patient']['bloodGroup'] == 'O+'
    assert body['doctor'] is None


def test_update_patient_profile(api_client, db_session, onboard):
    user = onboard()

    resp = api_client.patch(
        '/api/profile',
        json={'name': 'Asha R', 'age': '41', 'city': 'Madurai', 'bloodGroup': 'A+', 'unknown': 'x'},
        headers=auth_header(user),
    )

    assert resp.status_code == 200
    db_session.expire_all()
    patient = db_session.query(Patient).filter_by(user_id=user.id).one()
    assert patient.age == 41
    assert patient.city == 'Madurai'
    assert patient.blood_group == 'A+'
    assert db_session.get(User, user.id).name == 'Asha R'


def test_update_doctor_profile(db_session, onboard):
    user = onboard('doctor')

    result = profile.update_profile(
        db_session, user.id, {'experience': '15', 'hospitalTiming': '9-5', 'bio': 'Cardiologist'}
    )

    assert result == {'success': True}
    doctor = db_session.query(Doctor).filter_by(user_id=user.id).one()
    assert doctor.experience_years == 15
    assert doctor.hospital_timing == '9-5'
    assert doctor.bio == 'Cardiologist'


def test_update_requires_user_id(db_session):
    result = profile.update_profile(db_session, '', {'name': 'x'})

    assert result == {'success': False, 'error': 'User ID is required', 'code': 'validation'}


def test_delete_account_archives_and_cascades(api_client, db_session, onboard):
    user = onboard()
    patient = db_session.query(Patient).filter_by(user_id=user.id).one()
    db_session.add(Medication(patient_id=patient.id, name='Metformin', start_date='2024-01-01'))
    db_session.add(TimelineEvent(user_id=user.id, title='Visit', event_date='2024-02-01', event_type='visit'))
    db_session.commit()
    user_id = user.id

    resp = api_client.request('DELETE', '/api/profile', headers=auth_header(user))

    assert resp.status_code == 200
    db_session.expire_all()
    assert db_session.get(User, user_id) is None
    assert db_session.query(Patient).count() == 0
    assert db_session.query(Medication).count() == 0
    assert db_session.query(TimelineEvent).count() == 0
    archived = db_session.query(DeletedAccount).one()
    assert archived.original_user_id == user_id
    assert archived.custom_id == '#Nrivaa001'
    assert archived.reason == 'User requested deletion'
    assert archived.profile_snapshot['bloodGroup'] == 'O+'


def test_deleted_custom_id_is_not_reused(db_session, onboard):
    user = onboard()
    assert profile.delete_account(db_session, user.id, 'Moving away')['success'] is True

    assert db_session.query(DeletedAccount).one().reason == 'Moving away'
    assert assign_custom_id(db_session, 'patient') == '#Nrivaa002'


def test_delete_unknown_user(db_session):
    result = profile.delete_account(db_session, 'nope')

    assert result['code'] == 'not_found'


def test_delete_account_removes_reports_and_parameters(db_session, onboard):
    user = onboard()
    details = LabReportDetails.model_validate(
        {
            'reportDate': '2024-05-10',
            'testResults': [
                {'category': 'Lipids', 'tests': [{'name': 'LDL', 'value': 160, 'unit': 'mg/dL', 'status': 'high'}]}
            ],
        }
    )
    uploaded = lab_reports.upload_lab_report(
        db_session, user.id, 'lipids.pdf', 'application/pdf', b'%PDF-1.4\n%%EOF', details
    )
    assert uploaded['success'] is True
    patient = db_session.query(Patient).filter_by(user_id=user.id).one()
    db_session.add(
        HealthParameter(patient_id=patient.id, parameter_name='Weight', value='70', test_date='2024-05-11')
    )
    db_session.commit()
    assert db_session.query(HealthParameter).count() == 2

    assert profile.delete_account(db_session, user.id)['success'] is True

    db_session.expire_all()
    assert db_session.query(LabReport).count() == 0
    assert db_session.query(HealthParameter).count() == 0
    assert db_session.query(DeletedAccount).count() == 1
