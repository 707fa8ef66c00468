"""
Unit tests for the patient session lifecycle service.

Tests status preconditions, the transactional completion (notes, medicine,
images, derived payment), blob compensation and deletion cleanup.
"""
import uuid
from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal

import pytest
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import override_settings

from apps.clinical import sessions
from apps.clinical.models import (
    MedicineImage,
    PatientSession,
    SessionMedicine,
    SessionNote,
    SessionStatusChoices,
)
from apps.clinical.voice import VoiceClip
from apps.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from apps.payments.models import Payment


def _payload(**kwargs):
    return sessions.CompletionPayload(**kwargs)


# ============================================================================
# Price coercion
# ============================================================================

class TestCoerceMedicinePrice:

    @pytest.mark.parametrize('raw,expected', [
        ('75.50', Decimal('75.50')),
        ('20', Decimal('20.00')),
        (' 12.345 ', Decimal('12.35')),
        (15, Decimal('15.00')),
        (None, Decimal('0.00')),
        ('', Decimal('0.00')),
        ('abc', Decimal('0.00')),
        ('-5', Decimal('0.00')),
        ('NaN', Decimal('0.00')),
        ('Infinity', Decimal('0.00')),
        (True, Decimal('0.00')),
        (['5'], Decimal('0.00')),
        ({'a': 1}, Decimal('0.00')),
    ])
    def test_coercion(self, raw, expected):
        assert sessions.coerce_medicine_price(raw) == expected

    def test_too_large_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            sessions.coerce_medicine_price('100000000')
        assert 'medicine_price' in exc_info.value.errors


# ============================================================================
# create / start
# ============================================================================

@pytest.mark.django_db
class TestCreateAndStart:

    def test_create_starts_immediately(self, patient, fixed_now):
        session = sessions.create_session(patient.id, 'in_person', 45, purpose='Anxiety follow-up', now=fixed_now)

        assert session.status == SessionStatusChoices.IN_PROGRESS
        assert session.started_at == fixed_now
        assert session.ended_at is None

    def test_create_unknown_patient(self, db, fixed_now):
        with pytest.raises(NotFoundError):
            sessions.create_session(uuid.uuid4(), 'in_person', 45, now=fixed_now)

    def test_start_from_scheduled(self, session_factory, fixed_now):
        session = session_factory(status=SessionStatusChoices.SCHEDULED, started_at=None)

        started = sessions.start_session(session.id, now=fixed_now)

        assert started.status == SessionStatusChoices.IN_PROGRESS
        assert started.started_at == fixed_now

    @pytest.mark.parametrize('current', [
        SessionStatusChoices.IN_PROGRESS,
        SessionStatusChoices.COMPLETED,
        SessionStatusChoices.CANCELLED,
    ])
    def test_start_requires_scheduled(self, session_factory, fixed_now, current):
        session = session_factory(status=current)

        with pytest.raises(InvalidTransitionError):
            sessions.start_session(session.id, now=fixed_now)

        session.refresh_from_db()
        assert session.status == current

    def test_start_unknown_session(self, db, fixed_now):
        with pytest.raises(NotFoundError):
            sessions.start_session(uuid.uuid4(), now=fixed_now)


# ============================================================================
# complete
# ============================================================================

@pytest.mark.django_db
class TestCompleteSession:

    def test_completion_writes_all_records(self, in_progress_session, fixed_now, jpeg_upload):
        result = sessions.complete_session(
            in_progress_session.id,
            _payload(
                general_notes='Calmer than last week',
                mood_rating=7,
                medicine_notes='Sertraline 50mg',
                medicine_price='75.50',
                images=[jpeg_upload('front.jpg'), jpeg_upload('back.jpg')],
            ),
            now=fixed_now,
        )

        session = PatientSession.objects.get(pk=in_progress_session.pk)
        assert session.status == SessionStatusChoices.COMPLETED
        assert session.ended_at == fixed_now
        assert result.note.general_notes == 'Calmer than last week'
        assert result.note.medicine_price == Decimal('75.50')
        assert result.medicine.medicine_notes == 'Sertraline 50mg'
        assert len(result.images) == 2
        for image in result.images:
            assert image.image_path.startswith('medicine_images/')
            assert default_storage.exists(image.image_path)

    def test_price_creates_exactly_one_medicine_payment(self, in_progress_session, fixed_now):
        result = sessions.complete_session(
            in_progress_session.id, _payload(medicine_price='75.50'), now=fixed_now
        )

        payments = Payment.objects.all()
        assert payments.count() == 1
        payment = payments.get()
        assert payment == result.payment
        assert payment.amount == Decimal('75.50')
        assert payment.type == 'income'
        assert payment.category == 'medicine'
        assert payment.payment_method == 'cash'
        assert payment.status == 'completed'
        assert payment.date == fixed_now.date()
        assert payment.patient_id == in_progress_session.patient_id
        assert payment.description == f'Medicine charges for session #{in_progress_session.id}'

    @pytest.mark.parametrize('price', [None, '0', '', 'free', '-3'])
    def test_no_payment_without_positive_price(self, in_progress_session, fixed_now, price):
        result = sessions.complete_session(
            in_progress_session.id, _payload(medicine_price=price), now=fixed_now
        )

        assert result.payment is None
        assert result.note.medicine_price == Decimal('0.00')
        assert not Payment.objects.exists()

    @pytest.mark.parametrize('current', [
        SessionStatusChoices.SCHEDULED,
        SessionStatusChoices.COMPLETED,
        SessionStatusChoices.CANCELLED,
    ])
    def test_complete_requires_in_progress(self, session_factory, fixed_now, current):
        session = session_factory(status=current)

        with pytest.raises(InvalidTransitionError):
            sessions.complete_session(session.id, _payload(medicine_price='10'), now=fixed_now)

        assert not SessionNote.objects.exists()
        assert not Payment.objects.exists()

    def test_invalid_images_are_skipped(self, in_progress_session, fixed_now, jpeg_upload):
        bogus = SimpleUploadedFile('scan.jpg', b'not really a jpeg', content_type='image/jpeg')
        wrong_type = SimpleUploadedFile('notes.pdf', b'%PDF-1.4', content_type='application/pdf')

        result = sessions.complete_session(
            in_progress_session.id,
            _payload(images=[bogus, jpeg_upload(), wrong_type]),
            now=fixed_now,
        )

        assert len(result.images) == 1
        assert MedicineImage.objects.count() == 1

    def test_voice_clip_is_stored_by_date(self, in_progress_session, fixed_now, audio_bytes):
        clip = VoiceClip(content=audio_bytes, extension='mp3', source='upload')

        result = sessions.complete_session(in_progress_session.id, _payload(voice=clip), now=fixed_now)

        key = result.note.voice_notes_path
        assert key.startswith('voice_recordings/2030/06/12/voice_')
        assert key.endswith('.mp3')
        with default_storage.open(key, 'rb') as stored:
            assert stored.read() == audio_bytes

    @override_settings(TIME_ZONE='America/New_York')
    def test_late_evening_completion_uses_local_date(self, in_progress_session, audio_bytes):
        """02:00 UTC on the 12th is still the 11th in New York."""
        now = datetime(2030, 6, 12, 2, 0, tzinfo=dt_timezone.utc)
        clip = VoiceClip(content=audio_bytes, extension='mp3', source='upload')

        result = sessions.complete_session(
            in_progress_session.id, _payload(voice=clip, medicine_price='10'), now=now
        )

        assert result.note.voice_notes_path.startswith('voice_recordings/2030/06/11/')
        assert result.payment.date == date(2030, 6, 11)

    def test_voice_storage_failure_keeps_completion(self, in_progress_session, fixed_now, audio_bytes, monkeypatch):
        def failing_save(key, content):
            raise StorageError('bucket unavailable')

        monkeypatch.setattr('apps.clinical.sessions.save_blob', failing_save)
        clip = VoiceClip(content=audio_bytes, extension='mp3', source='base64')

        result = sessions.complete_session(in_progress_session.id, _payload(voice=clip), now=fixed_now)

        assert result.session.status == SessionStatusChoices.COMPLETED
        assert result.note.voice_notes_path is None

    def test_payment_failure_rolls_back_everything(
        self, in_progress_session, fixed_now, audio_bytes, jpeg_upload, monkeypatch
    ):
        def failing_charge(session, amount, now=None):
            raise RuntimeError('ledger unavailable')

        monkeypatch.setattr('apps.clinical.sessions.record_medicine_charge', failing_charge)
        stored = []
        original_save_blob = sessions.save_blob

        def recording_save_blob(key, content):
            stored.append(original_save_blob(key, content))
            return stored[-1]

        monkeypatch.setattr('apps.clinical.sessions.save_blob', recording_save_blob)

        with pytest.raises(RuntimeError):
            sessions.complete_session(
                in_progress_session.id,
                _payload(
                    medicine_price='30',
                    voice=VoiceClip(content=audio_bytes, extension='mp3', source='upload'),
                ),
                now=fixed_now,
            )

        session = PatientSession.objects.get(pk=in_progress_session.pk)
        assert session.status == SessionStatusChoices.IN_PROGRESS
        assert session.ended_at is None
        assert not SessionNote.objects.exists()
        assert not SessionMedicine.objects.exists()
        assert not Payment.objects.exists()
        assert stored
        assert not any(default_storage.exists(key) for key in stored)

    def test_unknown_session(self, db, fixed_now):
        with pytest.raises(NotFoundError):
            sessions.complete_session(uuid.uuid4(), _payload(), now=fixed_now)


# ============================================================================
# update / delete
# ============================================================================

@pytest.mark.django_db
class TestUpdateAndDelete:

    def test_update_to_completed_stamps_ended_at(self, in_progress_session, fixed_now):
        session = sessions.update_session(
            in_progress_session.id, {'status': SessionStatusChoices.COMPLETED}, now=fixed_now
        )

        assert session.ended_at == fixed_now

    def test_update_to_in_progress_stamps_started_at(self, session_factory, fixed_now):
        scheduled = session_factory(status=SessionStatusChoices.SCHEDULED, started_at=None)

        session = sessions.update_session(
            scheduled.id, {'status': SessionStatusChoices.IN_PROGRESS, 'expected_duration': 60}, now=fixed_now
        )

        assert session.started_at == fixed_now
        assert session.expected_duration == 60

    def test_delete_in_progress_is_conflict(self, in_progress_session):
        with pytest.raises(ConflictError):
            sessions.delete_session(in_progress_session.id)

        assert PatientSession.objects.filter(pk=in_progress_session.pk).exists()

    def test_delete_removes_rows_and_blobs_after_commit(
        self, in_progress_session, fixed_now, jpeg_upload, audio_bytes,
        django_capture_on_commit_callbacks
    ):
        result = sessions.complete_session(
            in_progress_session.id,
            _payload(
                images=[jpeg_upload()],
                voice=VoiceClip(content=audio_bytes, extension='mp3', source='upload'),
            ),
            now=fixed_now,
        )
        keys = [result.images[0].image_path, result.note.voice_notes_path]

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            sessions.delete_session(in_progress_session.id)

        assert len(callbacks) == 1
        assert not PatientSession.objects.filter(pk=in_progress_session.pk).exists()
        assert not SessionNote.objects.exists()
        assert not MedicineImage.objects.exists()
        assert not any(default_storage.exists(key) for key in keys)

    def test_delete_unknown(self, db):
        with pytest.raises(NotFoundError):
            sessions.delete_session(uuid.uuid4())

    def test_delete_malformed_id_is_not_found(self, db):
        with pytest.raises(NotFoundError):
            sessions.delete_session('not-a-uuid')


# ============================================================================
# history / completed listing
# ============================================================================

@pytest.mark.django_db
class TestPatientHistory:

    def test_totals_and_order(self, patient, session_factory, fixed_now):
        older = session_factory(
            status=SessionStatusChoices.COMPLETED,
            expected_duration=30,
            started_at=fixed_now - timedelta(days=7),
        )
        newer = session_factory(status=SessionStatusChoices.COMPLETED, expected_duration=45)
        current = session_factory(expected_duration=60, started_at=fixed_now + timedelta(hours=1))
        SessionNote.objects.create(session=older, mood_rating=6)
        SessionNote.objects.create(session=newer, mood_rating=7)

        history = sessions.patient_history(patient.id)

        assert history.patient == patient
        assert history.total_sessions == 3
        assert history.total_duration == 135
        assert history.average_mood == 6.5
        assert [s.id for s in history.sessions] == [current.id, newer.id, older.id]

    def test_average_mood_is_rounded(self, patient, session_factory):
        for rating in (7, 8, 8):
            SessionNote.objects.create(session=session_factory(), mood_rating=rating)

        assert sessions.patient_history(patient.id).average_mood == 7.7

    def test_patient_without_sessions(self, patient):
        history = sessions.patient_history(patient.id)

        assert history.sessions == []
        assert history.total_sessions == 0
        assert history.total_duration == 0
        assert history.average_mood is None

    @pytest.mark.parametrize('patient_id', [uuid.uuid4(), 'not-a-uuid'])
    def test_unknown_patient(self, db, patient_id):
        with pytest.raises(NotFoundError):
            sessions.patient_history(patient_id)


@pytest.mark.django_db
class TestCompletedSessions:
    """2030-06-12 (the pinned day) is a Wednesday."""

    @pytest.fixture
    def completed(self, session_factory, fixed_now):
        def at(days_ago, **kwargs):
            return session_factory(
                status=SessionStatusChoices.COMPLETED,
                started_at=fixed_now - timedelta(days=days_ago),
                **kwargs
            )

        return {
            'today': at(0),
            'monday': at(2, session_type='remote'),
            'last_week': at(9),
            'last_month': at(12),
        }

    @pytest.mark.parametrize('period,expected', [
        (None, ['today', 'monday', 'last_week', 'last_month']),
        ('today', ['today']),
        ('this_week', ['today', 'monday']),
        ('this_month', ['today', 'monday', 'last_week']),
    ])
    def test_period(self, completed, session_factory, fixed_now, period, expected):
        session_factory()

        result = sessions.completed_sessions(period=period, now=fixed_now)

        assert [s.id for s in result] == [completed[name].id for name in expected]

    def test_type_filter(self, completed):
        result = sessions.completed_sessions(session_type='remote')

        assert [s.id for s in result] == [completed['monday'].id]

    def test_search_matches_patient_name(self, completed, patient_factory, session_factory):
        other = patient_factory(full_name='John Smith')
        session_factory(patient=other, status=SessionStatusChoices.COMPLETED)

        assert sessions.completed_sessions(search='smith').count() == 1
        assert sessions.completed_sessions(search='LOPEZ').count() == 4

    def test_unknown_period(self, db, fixed_now):
        with pytest.raises(ValidationError):
            sessions.completed_sessions(period='this_year', now=fixed_now)
