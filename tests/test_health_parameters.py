import pytest
from conftest import auth_header

from niraiva.db.models import HealthParameter, Patient
from niraiva.health_parameters import (
    MONITORING_REMINDER,
    ParameterReading,
    analyze_health_parameters,
    summarise_parameters,
)
from niraiva.schemas import HealthParameterInput


@pytest.fixture
def patient(db_session, onboard):
    user = onboard()
    return user, db_session.query(Patient).filter_by(user_id=user.id).one()


def _store(session, patient_id, name, value, status, test_date, unit='mg/dL'):
    session.add(
        HealthParameter(
            patient_id=patient_id,
            parameter_name=name,
            value=value,
            unit=unit,
            status=status,
            test_date=test_date,
        )
    )


def test_high_glucose_gets_specific_tips():
    summary = summarise_parameters([ParameterReading('Fasting Glucose', '132', 'mg/dL', status='High')])

    assert summary['statusOverview'] == f'Fasting Glucose is High (132 mg/dL). {MONITORING_REMINDER}'
    assert summary['dietaryPlan'] == ['Reduce refined sugars and carbohydrates.']
    assert summary['lifestyleGuide'] == ['Walk for 15 mins after every meal.']


def test_low_and_normal_readings():
    summary = summarise_parameters(
        [
            ParameterReading('Hemoglobin', '10.2', 'g/dL', status='low'),
            ParameterReading('Platelets', '250000', None, status=None),
        ]
    )

    assert summary['statusOverview'] == (
        'Hemoglobin is Low (10.2 g/dL). Platelets is Normal (250000). Keep monitoring regularly.'
    )
    assert summary['dietaryPlan'] == ['Ensure balanced intake to boost Hemoglobin.']
    assert summary['lifestyleGuide'] == [
        'Continue your regular exercise routine and maintain good sleep hygiene.'
    ]


def test_tips_are_deduplicated_in_order():
    summary = summarise_parameters(
        [
            ParameterReading('Total Cholesterol', '240', 'mg/dL', status='high'),
            ParameterReading('LDL Cholesterol', '160', 'mg/dL', status='high'),
            ParameterReading('Blood Pressure', '150/95', 'mmHg', status='high'),
        ]
    )

    assert summary['dietaryPlan'] == [
        'Increase soluble fiber (oats, fruits).',
        'Reduce sodium intake and avoid processed foods.',
    ]
    assert len(summary['lifestyleGuide']) == 2


def test_empty_readings_use_defaults():
    summary = summarise_parameters([])

    assert summary['statusOverview'] == (
        'All tracked parameters are within normal range. Keep monitoring regularly.'
    )
    assert summary['dietaryPlan'] == [
        'Maintain a balanced diet rich in whole foods, vegetables, and lean proteins.'
    ]


def test_analysis_uses_stored_rows_and_previous(db_session, patient):
    _, record = patient
    _store(db_session, record.id, 'Glucose', '140', 'high', '2024-06-01')
    for day in range(1, 13):
        _store(db_session, record.id, 'Glucose', str(90 + day), 'normal', f'2024-01-{day:02d}')
    _store(db_session, record.id, 'Glucose', '99', 'normal', '2024-07-01')
    db_session.commit()

    result = analyze_health_parameters(db_session, record.id, None, '2024-06-01')

    assert result['success'] is True
    analysis = result['analysis']
    assert analysis['statusOverview'].startswith('Glucose is High (140 mg/dL).')
    assert len(analysis['previous']) == 4
    assert all(item['date'] < '2024-06-01' for item in analysis['previous'])


def test_analysis_prefers_supplied_parameters(db_session, patient):
    _, record = patient
    _store(db_session, record.id, 'Glucose', '140', 'high', '2024-06-01')
    db_session.commit()

    supplied = [HealthParameterInput(parameterName='Vitamin D', value=12, unit='ng/mL', status='low')]
    result = analyze_health_parameters(db_session, record.id, supplied, '2024-06-01')

    assert result['analysis']['statusOverview'].startswith('Vitamin D is Low (12 ng/mL).')


def test_analysis_requires_test_date(db_session, patient):
    _, record = patient

    result = analyze_health_parameters(db_session, record.id, None, '')

    assert result == {'success': False, 'error': 'Test date is required', 'code': 'validation'}


def test_health_parameter_endpoints(api_client, db_session, patient):
    user, record = patient
    _store(db_session, record.id, 'Glucose', '140', 'high', '2024-06-01')
    _store(db_session, record.id, 'HbA1c', '5.6', 'normal', '2024-05-01', unit='%')
    db_session.commit()
    headers = auth_header(user)

    resp = api_client.get('/api/health-parameters', headers=headers)
    assert [p['parameterName'] for p in resp.json()['parameters']] == ['Glucose', 'HbA1c']

    resp = api_client.get('/api/health-parameters', params={'testDate': '2024-05-01'}, headers=headers)
    assert [p['parameterName'] for p in resp.json()['parameters']] == ['HbA1c']

    resp = api_client.post(
        '/api/health-parameters/analysis', json={'testDate': '2024-06-01'}, headers=headers
    )
    assert resp.status_code == 200
    analysis = resp.json()['analysis']
    assert analysis['previous'] == [{'name': 'HbA1c', 'value': '5.6', 'date': '2024-05-01'}]
    assert 'Reduce refined sugars and carbohydrates.' in analysis['dietaryPlan']


def test_analysis_endpoint_validates_body(api_client, patient):
    user, _ = patient

    resp = api_client.post('/api/health-parameters/analysis', json={}, headers=auth_header(user))

    assert resp.status_code == 400
    assert resp.json()['code'] == 'validation'
