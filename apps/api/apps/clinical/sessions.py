"""
Patient session lifecycle service.

States: scheduled, in_progress, completed, cancelled.

- create_session: new sessions start directly in ``in_progress`` with
  ``started_at = now`` (intake happens with the patient present).
- start_session: scheduled -> in_progress only.
- complete_session: in_progress -> completed only; writes notes, medicine,
  medicine images and the derived medicine payment in one transaction.
- update_session: permissive partial update; stamps started_at/ended_at
  when entering in_progress/completed.
- delete_session: refused while in_progress.
- patient_history / completed_sessions: read-only projections.

Blob writes (voice recording, medicine images) happen before the completion
transaction opens. If the transaction fails, the blobs written for it are
removed again; a voice recording that cannot be stored is dropped and the
note keeps a null reference.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count, F, Sum

from apps.clinical.image_utils import is_valid_image
from apps.clinical.models import (
    MedicineImage,
    Patient,
    PatientSession,
    SessionMedicine,
    SessionNote,
    SessionStatusChoices,
)
from apps.clinical.voice import VoiceClip, voice_object_key
from apps.core import clock
from apps.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
    get_object_or_not_found,
)
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics
from apps.core.observability.events import log_consistency_checkpoint, log_session_transition
from apps.core.storage import delete_blobs_quietly, save_blob, save_upload
from apps.payments.services import record_medicine_charge

logger = get_sanitized_logger(__name__)

CENT = Decimal('0.01')
MAX_MEDICINE_PRICE = Decimal('99999999.99')

UPDATABLE_FIELDS = ('session_type', 'expected_duration', 'purpose', 'status')


@dataclass
class CompletionPayload:
    """Everything the completion form carries, already resolved at the boundary."""
    general_notes: Optional[str] = None
    clinical_notes: Optional[str] = None
    physical_health_notes: Optional[str] = None
    mental_health_notes: Optional[str] = None
    mood_rating: Optional[int] = None
    medicine_notes: Optional[str] = None
    medicine_price: object = None
    voice: Optional[VoiceClip] = None
    images: list = field(default_factory=list)


@dataclass
class SessionCompletion:
    session: PatientSession
    note: SessionNote
    medicine: SessionMedicine
    images: List[MedicineImage]
    payment: object = None


def coerce_medicine_price(raw) -> Decimal:
    """
    Normalize the submitted medicine price.

    Missing, non-numeric, non-finite or negative input becomes 0.00;
    anything else is rounded to cents.

    Raises:
        ValidationError: If the price does not fit the ledger column
    """
    if raw is None or isinstance(raw, bool):
        return Decimal('0.00')
    try:
        price = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return Decimal('0.00')
    if not price.is_finite() or price < 0:
        return Decimal('0.00')
    price = price.quantize(CENT, rounding=ROUND_HALF_UP)
    if price > MAX_MEDICINE_PRICE:
        raise ValidationError.for_field('medicine_price', 'Medicine price is too large.')
    return price


def _get_session(session_id, for_update=False) -> PatientSession:
    queryset = PatientSession.objects.select_related('patient')
    if for_update:
        queryset = queryset.select_for_update()
    return get_object_or_not_found(queryset, 'Session not found', pk=session_id)


def _require_status(session, expected, action):
    if session.status != expected:
        metrics.sessions_transition_total.labels(
            to_status=action, result='rejected'
        ).inc()
        log_session_transition(session, session.status, action, result='blocked')
        raise InvalidTransitionError(
            f'Session can only be {action} from "{expected}" status '
            f'(current status: "{session.status}").'
        )


# ============================================================================
# Lifecycle
# ============================================================================

def create_session(patient_id, session_type, expected_duration, purpose=None, now=None) -> PatientSession:
    """
    Open a session for a patient. The session starts immediately.

    Raises:
        NotFoundError: Patient does not exist
    """
    now = clock.localize(now) if now else clock.now()
    if not Patient.objects.filter(pk=patient_id).exists():
        raise NotFoundError('Patient not found')

    session = PatientSession.objects.create(
        patient_id=patient_id,
        session_type=session_type,
        expected_duration=expected_duration,
        purpose=purpose,
        status=SessionStatusChoices.IN_PROGRESS,
        started_at=now,
    )

    metrics.sessions_transition_total.labels(
        to_status=SessionStatusChoices.IN_PROGRESS, result='success'
    ).inc()
    log_domain_event(
        'session_created',
        entity_type='PatientSession',
        entity_id=str(session.id),
        entity_ids={'patient_id': str(patient_id)},
        session_type=session_type,
    )
    return session


def start_session(session_id, now=None) -> PatientSession:
    """
    scheduled -> in_progress.

    Raises:
        NotFoundError: Session does not exist
        InvalidTransitionError: Session is not scheduled
    """
    now = clock.localize(now) if now else clock.now()
    with transaction.atomic():
        session = _get_session(session_id, for_update=True)
        _require_status(session, SessionStatusChoices.SCHEDULED, 'started')

        session.status = SessionStatusChoices.IN_PROGRESS
        if session.started_at is None:
            session.started_at = now
        session.save(update_fields=['status', 'started_at', 'updated_at'])

    metrics.sessions_transition_total.labels(
        to_status=SessionStatusChoices.IN_PROGRESS, result='success'
    ).inc()
    log_session_transition(session, SessionStatusChoices.SCHEDULED, SessionStatusChoices.IN_PROGRESS)
    return session


def _store_voice(clip: Optional[VoiceClip], now) -> Optional[str]:
    if clip is None:
        return None
    try:
        key = save_blob(voice_object_key(clip, now), clip.content)
    except StorageError as e:
        metrics.voice_recordings_stored_total.labels(source=clip.source, result='skipped').inc()
        log_domain_event(
            'voice_recording_skipped',
            entity_type='VoiceRecording',
            result='skipped',
            source=clip.source,
            reason=str(e),
        )
        return None
    metrics.voice_recordings_stored_total.labels(source=clip.source, result='stored').inc()
    return key


def _store_images(files) -> List[str]:
    keys = []
    for uploaded in files:
        ok, reason = is_valid_image(uploaded)
        if ok:
            try:
                keys.append(save_upload(settings.CLINIC_MEDICINE_IMAGE_DIR, uploaded))
                metrics.medicine_images_total.labels(result='stored').inc()
                continue
            except StorageError as e:
                reason = str(e)
        metrics.medicine_images_total.labels(result='skipped').inc()
        logger.info(
            'Medicine image skipped',
            extra={'event': 'medicine_image_skipped', 'reason': reason}
        )
    return keys


@metrics.track_duration(metrics.session_completion_duration_seconds)
def complete_session(session_id, payload: CompletionPayload, now=None) -> SessionCompletion:
    """
    in_progress -> completed, with all dependent records.

    Raises:
        NotFoundError: Session does not exist
        InvalidTransitionError: Session is not in progress
        ValidationError: Medicine price does not fit the ledger
    """
    now = clock.localize(now) if now else clock.now()

    session = _get_session(session_id)
    _require_status(session, SessionStatusChoices.IN_PROGRESS, 'completed')
    price = coerce_medicine_price(payload.medicine_price)

    voice_key = _store_voice(payload.voice, now)
    image_keys = _store_images(payload.images)
    stored_keys = image_keys + ([voice_key] if voice_key else [])

    try:
        with transaction.atomic():
            session = _get_session(session_id, for_update=True)
            _require_status(session, SessionStatusChoices.IN_PROGRESS, 'completed')

            session.status = SessionStatusChoices.COMPLETED
            session.ended_at = now
            session.save(update_fields=['status', 'ended_at', 'updated_at'])

            note = SessionNote.objects.create(
                session=session,
                general_notes=payload.general_notes,
                clinical_notes=payload.clinical_notes,
                physical_health_notes=payload.physical_health_notes,
                mental_health_notes=payload.mental_health_notes,
                mood_rating=payload.mood_rating,
                voice_notes_path=voice_key,
                medicine_price=price,
            )
            medicine = SessionMedicine.objects.create(
                session=session,
                medicine_notes=payload.medicine_notes or '',
            )
            images = [
                MedicineImage.objects.create(session_medicine=medicine, image_path=key)
                for key in image_keys
            ]

            payment = None
            if price > 0:
                payment = record_medicine_charge(session, price, now)
    except Exception:
        delete_blobs_quietly(stored_keys)
        raise

    metrics.sessions_transition_total.labels(
        to_status=SessionStatusChoices.COMPLETED, result='success'
    ).inc()
    log_session_transition(
        session,
        SessionStatusChoices.IN_PROGRESS,
        SessionStatusChoices.COMPLETED,
        images_stored=len(images),
        images_skipped=len(payload.images) - len(images),
        voice_stored=voice_key is not None,
    )
    log_consistency_checkpoint(
        'session_completion_consistency',
        entity_ids={'session_id': str(session.id)},
        checks_passed={
            'ended_at_set': session.ended_at is not None,
            'images_linked': len(images) == len(image_keys),
            'payment_matches_price': (payment is not None) == (price > 0),
        },
    )
    return SessionCompletion(
        session=session,
        note=note,
        medicine=medicine,
        images=images,
        payment=payment,
    )


def update_session(session_id, changes: dict, now=None) -> PatientSession:
    """
    Partial update of session_type, expected_duration, purpose and status.

    Status changes are not restricted here; entering in_progress or
    completed stamps started_at / ended_at when they are still empty.
    """
    now = clock.localize(now) if now else clock.now()
    with transaction.atomic():
        session = _get_session(session_id, for_update=True)
        from_status = session.status

        for name in UPDATABLE_FIELDS:
            if name in changes:
                setattr(session, name, changes[name])

        if session.status == SessionStatusChoices.IN_PROGRESS and session.started_at is None:
            session.started_at = now
        if session.status == SessionStatusChoices.COMPLETED and session.ended_at is None:
            session.ended_at = now

        session.save()

    if session.status != from_status:
        metrics.sessions_transition_total.labels(to_status=session.status, result='success').inc()
        log_session_transition(session, from_status, session.status, via='update')
    return session


def delete_session(session_id) -> None:
    """
    Delete a session with its notes, medicines and images.

    Stored blobs (voice recordings, medicine images) are removed after the
    transaction commits.

    Raises:
        NotFoundError: Session does not exist
        ConflictError: Session is in progress
    """
    with transaction.atomic():
        session = _get_session(session_id, for_update=True)
        if session.status == SessionStatusChoices.IN_PROGRESS:
            raise ConflictError('Cannot delete a session that is in progress.')

        medicines = SessionMedicine.objects.filter(session=session)
        images = MedicineImage.objects.filter(session_medicine__in=medicines)
        notes = SessionNote.objects.filter(session=session)

        blob_keys = list(images.values_list('image_path', flat=True))
        blob_keys += [k for k in notes.values_list('voice_notes_path', flat=True) if k]

        images.delete()
        medicines.delete()
        notes.delete()
        session.delete()

        transaction.on_commit(lambda: delete_blobs_quietly(blob_keys))

    log_domain_event(
        'session_deleted',
        entity_type='PatientSession',
        entity_id=str(session_id),
        blobs_scheduled_for_removal=len(blob_keys),
    )


# ============================================================================
# Reads
# ============================================================================

COMPLETED_PERIODS = ('today', 'this_week', 'this_month')


@dataclass
class PatientHistory:
    patient: Patient
    sessions: list
    total_sessions: int
    total_duration: int
    average_mood: Optional[float]


def _latest_started_first(queryset):
    return queryset.order_by(F('started_at').desc(nulls_last=True), '-created_at')


def patient_history(patient_id) -> PatientHistory:
    """
    All sessions of one patient, newest first, with totals.

    ``average_mood`` is the mean mood rating over the patient's notes,
    rounded to one decimal, or None when no note carries a rating.

    Raises:
        NotFoundError: Patient does not exist
    """
    patient = get_object_or_not_found(Patient.objects.all(), 'Patient not found', pk=patient_id)

    queryset = PatientSession.objects.filter(patient=patient)
    totals = queryset.aggregate(
        total_sessions=Count('id'),
        total_duration=Sum('expected_duration'),
    )
    average_mood = SessionNote.objects.filter(session__patient=patient).aggregate(
        average=Avg('mood_rating')
    )['average']

    return PatientHistory(
        patient=patient,
        sessions=list(_latest_started_first(queryset.prefetch_related('notes', 'medicines__images'))),
        total_sessions=totals['total_sessions'],
        total_duration=totals['total_duration'] or 0,
        average_mood=round(average_mood, 1) if average_mood is not None else None,
    )


def completed_sessions(search=None, session_type=None, period=None, now=None):
    """
    Completed sessions, newest first.

    ``search`` matches the patient name, ``session_type`` is in_person or
    remote and ``period`` is one of COMPLETED_PERIODS, evaluated against the
    local calendar (weeks run Monday to Sunday).
    """
    queryset = (
        PatientSession.objects.select_related('patient')
        .prefetch_related('notes')
        .filter(status=SessionStatusChoices.COMPLETED)
    )

    if search:
        queryset = queryset.filter(patient__full_name__icontains=search)

    if session_type:
        queryset = queryset.filter(session_type=session_type)

    if period:
        today = (clock.localize(now) if now else clock.now()).date()
        if period == 'today':
            queryset = queryset.filter(started_at__date=today)
        elif period == 'this_week':
            monday = today - timedelta(days=today.weekday())
            queryset = queryset.filter(started_at__date__range=(monday, monday + timedelta(days=6)))
        elif period == 'this_month':
            queryset = queryset.filter(started_at__year=today.year, started_at__month=today.month)
        else:
            raise ValidationError.for_field('date', f'Unknown period: {period}')

    return _latest_started_first(queryset)
