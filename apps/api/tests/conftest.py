"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Authenticated API clients by role
- Model factories (Patient, Appointment, PatientSession)
- A pinned clinic clock
- Generated image and audio uploads
"""
import io
from datetime import datetime, time

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from PIL import Image
from rest_framework.test import APIClient

from apps.authz.models import Role, RoleChoices, User, UserRole
from apps.clinical.models import (
    Appointment,
    AppointmentStatusChoices,
    Patient,
    PatientSession,
    SessionStatusChoices,
    VisitTypeChoices,
)

# Wednesday morning, far enough ahead that real "today" never interferes.
FIXED_NOW = timezone.make_aware(datetime(2030, 6, 12, 9, 0))


# ============================================================================
# API Clients
# ============================================================================

def _user_with_role(email, role_name, **extra):
    user = User.objects.create_user(email=email, password='testpass123', is_active=True, **extra)
    role, _ = Role.objects.get_or_create(name=role_name)
    UserRole.objects.create(user=user, role=role)
    return user


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def admin_client(db):
    """Admin has full access to all resources."""
    return _client_for(_user_with_role('admin@test.com', RoleChoices.ADMIN, is_staff=True))


@pytest.fixture
def practitioner_client(db):
    """Practitioner runs sessions and sees clinical data."""
    return _client_for(_user_with_role('practitioner@test.com', RoleChoices.PRACTITIONER))


@pytest.fixture
def reception_client(db):
    """Reception registers patients, books appointments, records payments."""
    return _client_for(_user_with_role('reception@test.com', RoleChoices.RECEPTION))


@pytest.fixture
def accounting_client(db):
    """Accounting manages the payment ledger; read-only elsewhere."""
    return _client_for(_user_with_role('accounting@test.com', RoleChoices.ACCOUNTING))


@pytest.fixture
def no_role_client(db):
    """Authenticated user without any clinic role."""
    user = User.objects.create_user(email='norole@test.com', password='testpass123')
    return _client_for(user)


# ============================================================================
# Clock
# ============================================================================

@pytest.fixture
def fixed_now(monkeypatch):
    """Pin ``apps.core.clock.now`` to FIXED_NOW and return it."""
    monkeypatch.setattr('apps.core.clock.now', lambda: FIXED_NOW)
    return FIXED_NOW


@pytest.fixture
def today(fixed_now):
    return fixed_now.date()


# ============================================================================
# Model factories
# ============================================================================

@pytest.fixture
def patient_factory(db):
    """Create patients with unique emails."""
    counter = {'n': 0}

    def create(**kwargs):
        counter['n'] += 1
        defaults = {
            'full_name': f'Test Patient {counter["n"]}',
            'age': 34,
            'gender': 'female',
            'phone': f'+3460000{counter["n"]:04d}',
            'email': f'patient{counter["n"]}@test.com',
            'address': 'Calle Mayor 1, Madrid',
            'emergency_contact': 'Ana (sister) +34600000000',
        }
        defaults.update(kwargs)
        return Patient.objects.create(**defaults)

    return create


@pytest.fixture
def patient(patient_factory):
    return patient_factory(full_name='Maria Lopez', email='maria@test.com')


@pytest.fixture
def appointment_factory(db, patient, today):
    """Create appointments directly (no overlap check) on the pinned day."""

    def create(**kwargs):
        defaults = {
            'patient': patient,
            'date': today,
            'time': time(10, 0),
            'appointment_type': VisitTypeChoices.IN_PERSON,
            'duration_minutes': 30,
            'status': AppointmentStatusChoices.SCHEDULED,
        }
        defaults.update(kwargs)
        return Appointment.objects.create(**defaults)

    return create


@pytest.fixture
def session_factory(db, patient, fixed_now):

    def create(**kwargs):
        defaults = {
            'patient': patient,
            'session_type': VisitTypeChoices.IN_PERSON,
            'expected_duration': 45,
            'status': SessionStatusChoices.IN_PROGRESS,
            'started_at': fixed_now,
        }
        defaults.update(kwargs)
        return PatientSession.objects.create(**defaults)

    return create


@pytest.fixture
def in_progress_session(session_factory):
    return session_factory()


# ============================================================================
# Uploads
# ============================================================================

def make_jpeg_bytes(size=(8, 8), color=(200, 30, 30)):
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='JPEG')
    return buffer.getvalue()


@pytest.fixture
def jpeg_upload():
    """Factory for valid JPEG uploads."""

    def create(name='box.jpg'):
        return SimpleUploadedFile(name, make_jpeg_bytes(), content_type='image/jpeg')

    return create


AUDIO_BYTES = b'ID3\x03\x00\x00\x00\x00\x00\x0ffake-mp3-frames' * 4


@pytest.fixture
def audio_bytes():
    return AUDIO_BYTES


@pytest.fixture
def audio_upload():

    def create(name='dictation.mp3', content=AUDIO_BYTES):
        return SimpleUploadedFile(name, content, content_type='audio/mpeg')

    return create
