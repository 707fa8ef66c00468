"""
Integration tests for Patient API endpoints.

Tests registration (with and without a first appointment), validation,
search, updates and role access.
"""
from datetime import time

import pytest
from rest_framework import status

from apps.clinical.models import Appointment, Patient


def _registration(**extra):
    data = {
        'full_name': 'Lucia Fernandez',
        'age': 41,
        'gender': 'female',
        'marital_status': 'married',
        'profession': 'Architect',
        'phone': '+34600111222',
        'email': 'lucia@test.com',
        'address': 'Gran Via 10, Madrid',
        'emergency_contact': 'Pablo +34600333444',
        'medical_history': 'Asthma',
        'allergies': 'Penicillin',
    }
    data.update(extra)
    return data


@pytest.mark.django_db
class TestPatientRegistration:
    """Test POST /api/v1/patients/."""

    endpoint = '/api/v1/patients/'

    def test_register_patient_only(self, reception_client):
        response = reception_client.post(self.endpoint, _registration(), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['full_name'] == 'Lucia Fernandez'
        assert response.data['appointment'] is None
        assert Patient.objects.filter(email='lucia@test.com').exists()

    def test_register_with_first_appointment(self, reception_client, today):
        payload = _registration(
            appointment_date=today.isoformat(),
            appointment_time='11:00',
            appointment_type='remote',
            duration_minutes=45,
            appointment_note='Referred by GP',
        )

        response = reception_client.post(self.endpoint, payload, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['appointment']['time'] == '11:00'
        assert response.data['appointment']['duration_minutes'] == 45
        appointment = Appointment.objects.get(patient_id=response.data['id'])
        assert appointment.note == 'Referred by GP'

    def test_partial_appointment_block_is_422(self, reception_client, today):
        payload = _registration(appointment_date=today.isoformat())

        response = reception_client.post(self.endpoint, payload, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert 'appointment_time' in response.data['errors']
        assert not Patient.objects.exists()

    def test_registration_duration_limit(self, reception_client, today):
        payload = _registration(
            appointment_date=today.isoformat(),
            appointment_time='11:00',
            appointment_type='in_person',
            duration_minutes=241,
        )

        response = reception_client.post(self.endpoint, payload, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert 'duration_minutes' in response.data['errors']

    def test_conflicting_first_appointment_rolls_back_patient(
        self, reception_client, appointment_factory, today
    ):
        appointment_factory(time=time(11, 0), duration_minutes=60)
        payload = _registration(
            appointment_date=today.isoformat(),
            appointment_time='11:30',
            appointment_type='in_person',
            duration_minutes=30,
        )

        response = reception_client.post(self.endpoint, payload, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert not Patient.objects.filter(email='lucia@test.com').exists()

    def test_duplicate_email_is_422(self, reception_client, patient):
        response = reception_client.post(
            self.endpoint, _registration(email=patient.email), format='json'
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert 'email' in response.data['errors']

    @pytest.mark.parametrize('field,value', [
        ('age', 121),
        ('gender', 'unknown'),
        ('phone', '+34 600 111 222 333 444'),
        ('email', 'not-an-email'),
    ])
    def test_field_validation(self, reception_client, field, value):
        response = reception_client.post(self.endpoint, _registration(**{field: value}), format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert field in response.data['errors']

    def test_accounting_cannot_register(self, accounting_client):
        response = accounting_client.post(self.endpoint, _registration(), format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_user_without_role_is_403(self, no_role_client):
        response = no_role_client.get(self.endpoint)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['status'] == 'error'


@pytest.mark.django_db
class TestPatientReadUpdate:
    """Test GET/PATCH /api/v1/patients/ and search."""

    def test_list(self, accounting_client, patient_factory):
        patient_factory()
        patient_factory()

        response = accounting_client.get('/api/v1/patients/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2

    def test_retrieve(self, reception_client, patient):
        response = reception_client.get(f'/api/v1/patients/{patient.id}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == 'maria@test.com'

    def test_patch(self, reception_client, patient):
        response = reception_client.patch(
            f'/api/v1/patients/{patient.id}/', {'phone': '+34699999999'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        patient.refresh_from_db()
        assert patient.phone == '+34699999999'

    def test_delete_not_allowed(self, admin_client, patient):
        response = admin_client.delete(f'/api/v1/patients/{patient.id}/')

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
        assert Patient.objects.filter(pk=patient.pk).exists()

    def test_search(self, reception_client, patient_factory):
        patient_factory(full_name='Carlos Ruiz')
        patient_factory(full_name='Carla Ortega')
        patient_factory(full_name='Elena Diaz')

        response = reception_client.get('/api/v1/patients/search/?query=carl')

        assert response.status_code == status.HTTP_200_OK
        assert [p['full_name'] for p in response.data] == ['Carla Ortega', 'Carlos Ruiz']

    def test_search_limit(self, reception_client, patient_factory):
        for _ in range(5):
            patient_factory()

        response = reception_client.get('/api/v1/patients/search/?query=test&limit=3')

        assert len(response.data) == 3

    @pytest.mark.parametrize('query_string', ['query=a', 'query=ab&limit=0', 'query=ab&limit=51', ''])
    def test_search_validation(self, reception_client, query_string):
        response = reception_client.get(f'/api/v1/patients/search/?{query_string}')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
