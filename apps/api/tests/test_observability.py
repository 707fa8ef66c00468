"""
Tests for observability layer.

Validates request correlation, PHI/PII redaction, domain events, health
endpoints and the error envelope.
"""
import json
import logging
from unittest.mock import MagicMock, patch

import pytest
from django.test import override_settings
from rest_framework import exceptions as drf_exceptions

from apps.core.exceptions import ConflictError, ValidationError, clinic_exception_handler
from apps.core.observability.correlation import clear_request_context, get_request_id
from apps.core.observability.events import log_domain_event, log_session_transition
from apps.core.observability.logging import SanitizedJSONFormatter, sanitize_dict
from apps.core.observability.metrics import metrics


@pytest.mark.django_db
class TestRequestCorrelation:
    """Test request correlation middleware."""

    def test_generates_request_id_if_missing(self, client):
        response = client.get('/healthz')

        assert response['X-Request-ID']

    def test_propagates_existing_request_id(self, client):
        response = client.get('/healthz', HTTP_X_REQUEST_ID='test-request-123')

        assert response['X-Request-ID'] == 'test-request-123'

    def test_context_cleared_after_response(self, client):
        client.get('/healthz', HTTP_X_REQUEST_ID='test-request-123')

        assert get_request_id() is None

    def test_request_counted(self, client):
        before = metrics.http_requests_total.labels(path='healthz', method='GET', status='200')._value.get()

        client.get('/healthz')

        after = metrics.http_requests_total.labels(path='healthz', method='GET', status='200')._value.get()
        assert after == before + 1

    def test_request_id_on_api_errors(self, api_client):
        response = api_client.get('/api/v1/patients/', HTTP_X_REQUEST_ID='abc-401')

        assert response.status_code == 401
        assert response['X-Request-ID'] == 'abc-401'
        assert response.data['status'] == 'error'

    def teardown_method(self):
        clear_request_context()


class TestSanitization:
    """Test PHI/PII sanitization."""

    def test_sanitize_dict_redacts_sensitive_fields(self):
        data = {
            'id': '123',
            'full_name': 'Maria Lopez',
            'email': 'maria@example.com',
            'phone': '+34600111222',
            'general_notes': 'Low mood this week',
            'voice_recording_base64': 'SUQzAwAA',
            'status': 'completed',
        }

        sanitized = sanitize_dict(data)

        assert sanitized['id'] == '123'
        assert sanitized['status'] == 'completed'
        for field in ('full_name', 'email', 'phone', 'general_notes', 'voice_recording_base64'):
            assert sanitized[field] == '[REDACTED]'

    def test_sanitize_dict_handles_nested_objects(self):
        data = {
            'session': {
                'id': '456',
                'patient': {'full_name': 'Jane', 'id': 'patient-123'},
            },
            'items': [{'medicine_notes': 'Sertraline'}, 'plain'],
        }

        sanitized = sanitize_dict(data)

        assert sanitized['session']['id'] == '456'
        assert sanitized['session']['patient']['id'] == 'patient-123'
        assert sanitized['session']['patient']['full_name'] == '[REDACTED]'
        assert sanitized['items'] == [{'medicine_notes': '[REDACTED]'}, 'plain']

    def test_allowed_fields_not_redacted(self):
        data = {
            'session_id': 'session-123',
            'appointment_id': 'appointment-456',
            'duration_minutes': 30,
            'status': 'scheduled',
        }

        assert sanitize_dict(data) == data

    def test_json_formatter_redacts_extra_fields(self):
        record = logging.LogRecord('apps.test', logging.INFO, __file__, 1, 'Patient registered', None, None)
        record.event = 'patient_registered'
        record.email = 'maria@example.com'
        record.payload = {'phone': '+34600111222', 'age': 41}

        data = json.loads(SanitizedJSONFormatter().format(record))

        assert data['message'] == 'Patient registered'
        assert data['event'] == 'patient_registered'
        assert data['email'] == '[REDACTED]'
        assert data['payload'] == {'phone': '[REDACTED]', 'age': 41}


class TestDomainEvents:
    """Test domain event logging."""

    @patch('apps.core.observability.events.logger')
    def test_log_domain_event_structure(self, mock_logger):
        log_domain_event(
            'appointment_booked',
            entity_type='Appointment',
            entity_id='appointment-123',
            entity_ids={'patient_id': 'patient-456'},
            duration_minutes=30,
            note='Referred by GP',
        )

        mock_logger.info.assert_called_once()
        extra = mock_logger.info.call_args[1]['extra']
        assert extra['event'] == 'appointment_booked'
        assert extra['entity_type'] == 'Appointment'
        assert extra['entity_id'] == 'appointment-123'
        assert extra['patient_id'] == 'patient-456'
        assert extra['result'] == 'success'
        assert extra['duration_minutes'] == 30
        assert extra['note'] == '[REDACTED]'

    @pytest.mark.parametrize('result,level', [
        ('failure', 'error'),
        ('conflict', 'warning'),
        ('skipped', 'warning'),
    ])
    @patch('apps.core.observability.events.logger')
    def test_result_selects_level(self, mock_logger, result, level):
        log_domain_event('some_event', result=result)

        getattr(mock_logger, level).assert_called_once()

    @patch('apps.core.observability.events.logger')
    def test_session_transition_has_no_phi(self, mock_logger):
        session = MagicMock(id='session-1', patient_id='patient-2')

        log_session_transition(session, 'in_progress', 'completed')

        extra = mock_logger.info.call_args[1]['extra']
        assert extra['event'] == 'session_transition'
        assert extra['from_status'] == 'in_progress'
        assert extra['to_status'] == 'completed'
        assert extra['session_id'] == 'session-1'
        assert 'full_name' not in extra


@pytest.mark.django_db
class TestHealthChecks:
    """Test health check endpoints."""

    def test_healthz_returns_200(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ok'
        assert 'version' in data

    def test_readyz_ready(self, client):
        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json() == {'status': 'ready', 'checks': {'database': True, 'storage': True}}

    @patch('apps.core.observability.health.connection')
    def test_readyz_fails_on_db_error(self, mock_connection, client):
        mock_connection.cursor.side_effect = Exception('DB connection failed')

        response = client.get('/readyz')

        assert response.status_code == 503
        data = response.json()
        assert data['status'] == 'not_ready'
        assert data['checks']['database'] is False

    @patch('apps.core.observability.health.check_storage', return_value=False)
    def test_readyz_fails_on_storage_error(self, mock_check, client):
        response = client.get('/readyz')

        assert response.status_code == 503
        assert response.json()['checks']['storage'] is False

    def test_metrics_endpoint(self, client):
        client.get('/healthz')

        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'http_requests_total' in response.content


class TestErrorEnvelope:
    """Test clinic_exception_handler."""

    context = {'view': None}

    def test_clinic_error_keeps_status_and_errors(self):
        response = clinic_exception_handler(
            ValidationError.for_field('time', 'Invalid time format'), self.context
        )

        assert response.status_code == 422
        assert response.data == {
            'status': 'error',
            'message': 'Invalid time format',
            'errors': {'time': ['Invalid time format']},
        }

    def test_conflict(self):
        response = clinic_exception_handler(ConflictError('Time slot already booked'), self.context)

        assert response.status_code == 409
        assert response.data == {'status': 'error', 'message': 'Time slot already booked'}

    def test_drf_validation_error_is_422(self):
        exc = drf_exceptions.ValidationError({'email': ['Enter a valid email address.']})

        response = clinic_exception_handler(exc, self.context)

        assert response.status_code == 422
        assert response.data['errors'] == {'email': ['Enter a valid email address.']}

    def test_not_found_message(self):
        response = clinic_exception_handler(drf_exceptions.NotFound(), self.context)

        assert response.status_code == 404
        assert response.data['status'] == 'error'

    @override_settings(DEBUG=False)
    def test_unhandled_error_hides_details(self):
        response = clinic_exception_handler(RuntimeError('db password is hunter2'), self.context)

        assert response.status_code == 500
        assert response.data == {'status': 'error', 'message': 'Internal server error'}

    @override_settings(DEBUG=True)
    def test_unhandled_error_details_in_debug(self):
        response = clinic_exception_handler(RuntimeError('boom'), self.context)

        assert response.data['error'] == 'boom'
        assert 'RuntimeError' in response.data['trace']
