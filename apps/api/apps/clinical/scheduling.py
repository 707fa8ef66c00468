"""
Appointment scheduling service.

Books, reschedules, cancels and deletes appointments while keeping the
per-date invariant: no two non-cancelled appointments on the same date have
intersecting ``[time, time + duration)`` intervals. Touching intervals
(09:00-09:30 and 09:30-10:00) do not conflict.

Every write takes the AppointmentDay row lock for the target date before
checking for overlaps, so two requests racing for the same slot serialize
and the second one sees the first one's row.

All time-relative reads take an explicit ``now`` (defaulting to
``apps.core.clock.now()``) so "today" and "now's time" come from one value.
"""
import re
from datetime import date as date_type, time as time_type
from typing import Iterable, List, Optional

from django.db import transaction
from django.db.models import Q

from apps.clinical.models import (
    Appointment,
    AppointmentDay,
    AppointmentStatusChoices,
    Patient,
    VisitTypeChoices,
)
from apps.core import clock
from apps.core.exceptions import ConflictError, NotFoundError, ValidationError, get_object_or_not_found
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics
from apps.core.observability.events import log_appointment_conflict

logger = get_sanitized_logger(__name__)

MIN_DURATION_MINUTES = 1
MAX_DURATION_MINUTES = 480
MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')

SLOT_FIELDS = ('date', 'time', 'duration_minutes')


# ============================================================================
# Helpers
# ============================================================================

def parse_hhmm(value) -> time_type:
    """
    Parse a strict 24-hour ``HH:MM`` string.

    ``time`` instances pass through (seconds dropped).

    Raises:
        ValidationError: On anything else ("9:00", "09:00:00", "24:00", ...)
    """
    if isinstance(value, time_type):
        return value.replace(second=0, microsecond=0)
    match = _HHMM_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise ValidationError.for_field('time', 'Time must use the 24-hour HH:MM format.')
    return time_type(int(match.group(1)), int(match.group(2)))


def minutes_since_midnight(value: time_type) -> int:
    return value.hour * 60 + value.minute


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval intersection: [a, a_end) and [b, b_end)."""
    return start_a < end_b and start_b < end_a


def _validate_slot(day, start, duration_minutes, now, check_date=True):
    errors = {}
    if check_date and day < now.date():
        errors['date'] = ['The appointment date must be today or later.']
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        errors['duration_minutes'] = [
            f'Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.'
        ]
    elif minutes_since_midnight(start) + duration_minutes > MINUTES_PER_DAY:
        errors['duration_minutes'] = ['The appointment must end by midnight.']
    if errors:
        raise ValidationError(errors=errors)


def _validate_type(appointment_type):
    if appointment_type not in VisitTypeChoices.values:
        raise ValidationError.for_field(
            'appointment_type',
            f'Appointment type must be one of: {", ".join(VisitTypeChoices.values)}.'
        )


def _ensure_patient(patient_id):
    if not Patient.objects.filter(pk=patient_id).exists():
        raise NotFoundError('Patient not found')


def _lock_day(day: date_type) -> AppointmentDay:
    """Take the per-date booking lock (creating the row on first use)."""
    AppointmentDay.objects.get_or_create(date=day)
    return AppointmentDay.objects.select_for_update().get(date=day)


def find_conflicts(
    day: date_type,
    start: time_type,
    duration_minutes: int,
    exclude_id=None,
) -> List[Appointment]:
    """
    Non-cancelled appointments on ``day`` whose interval intersects the candidate.

    Interval arithmetic is done in minutes-since-midnight rather than SQL so
    it behaves the same on PostgreSQL and SQLite.
    """
    start_minute = minutes_since_midnight(start)
    end_minute = start_minute + duration_minutes

    qs = Appointment.objects.filter(date=day).exclude(
        status=AppointmentStatusChoices.CANCELLED
    )
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)

    return [
        appt for appt in qs.order_by('time')
        if intervals_overlap(start_minute, end_minute, appt.start_minute, appt.end_minute)
    ]


def _raise_conflict(operation, day, start, duration_minutes, conflicts):
    metrics.appointment_conflicts_total.labels(operation=operation).inc()
    log_appointment_conflict(operation, day, start, duration_minutes, [a.id for a in conflicts])
    first = conflicts[0]
    raise ConflictError(
        'The selected time slot conflicts with an existing appointment '
        f'({first.time:%H:%M}, {first.duration_minutes} min).',
        errors={'time': ['Time slot already booked.']}
    )


def _get_for_update(appointment_id) -> Appointment:
    return get_object_or_not_found(
        Appointment.objects.select_for_update(), 'Appointment not found', pk=appointment_id
    )


# ============================================================================
# Commands
# ============================================================================

def create_appointment(
    patient_id,
    date: date_type,
    time,
    appointment_type: str,
    duration_minutes: int,
    note: Optional[str] = None,
    now=None,
) -> Appointment:
    """
    Book an appointment.

    Raises:
        NotFoundError: Patient does not exist
        ValidationError: Past date, bad time format, duration out of range
        ConflictError: Slot overlaps a non-cancelled appointment on that date
    """
    now = clock.localize(now) if now else clock.now()
    start = parse_hhmm(time)

    _ensure_patient(patient_id)
    _validate_type(appointment_type)
    _validate_slot(date, start, duration_minutes, now)

    with transaction.atomic():
        _lock_day(date)
        conflicts = find_conflicts(date, start, duration_minutes)
        if conflicts:
            metrics.appointments_booked_total.labels(result='conflict').inc()
            _raise_conflict('create', date, start, duration_minutes, conflicts)

        appointment = Appointment.objects.create(
            patient_id=patient_id,
            date=date,
            time=start,
            appointment_type=appointment_type,
            duration_minutes=duration_minutes,
            note=note,
            status=AppointmentStatusChoices.SCHEDULED,
        )

    metrics.appointments_booked_total.labels(result='success').inc()
    log_domain_event(
        'appointment_booked',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'patient_id': str(patient_id)},
        date=str(date),
        time=f'{start:%H:%M}',
        duration_minutes=duration_minutes,
    )
    return appointment


def reschedule_appointment(appointment_id, changes: dict, now=None) -> Appointment:
    """
    Apply a partial update to an appointment.

    Only supplied fields are validated. Whenever date, time or duration is
    supplied (or a cancelled appointment is re-activated) the overlap check
    re-runs against the merged slot, excluding the appointment itself.

    Raises:
        NotFoundError: Appointment or new patient does not exist
        ValidationError: Invalid supplied field
        ConflictError: Resulting slot overlaps another appointment
    """
    now = clock.localize(now) if now else clock.now()

    with transaction.atomic():
        appointment = _get_for_update(appointment_id)

        if 'patient_id' in changes:
            _ensure_patient(changes['patient_id'])
        if 'appointment_type' in changes:
            _validate_type(changes['appointment_type'])
        if 'status' in changes and changes['status'] not in AppointmentStatusChoices.values:
            raise ValidationError.for_field('status', 'Invalid appointment status.')

        new_date = changes.get('date', appointment.date)
        new_time = parse_hhmm(changes['time']) if 'time' in changes else appointment.time
        new_duration = changes.get('duration_minutes', appointment.duration_minutes)
        new_status = changes.get('status', appointment.status)

        slot_changed = any(field in changes for field in SLOT_FIELDS)
        reactivated = (
            appointment.status == AppointmentStatusChoices.CANCELLED
            and new_status != AppointmentStatusChoices.CANCELLED
        )

        if slot_changed:
            _validate_slot(new_date, new_time, new_duration, now, check_date='date' in changes)

        if (slot_changed or reactivated) and new_status != AppointmentStatusChoices.CANCELLED:
            _lock_day(new_date)
            conflicts = find_conflicts(new_date, new_time, new_duration, exclude_id=appointment.pk)
            if conflicts:
                _raise_conflict('reschedule', new_date, new_time, new_duration, conflicts)

        if 'patient_id' in changes:
            appointment.patient_id = changes['patient_id']
        if 'appointment_type' in changes:
            appointment.appointment_type = changes['appointment_type']
        if 'note' in changes:
            appointment.note = changes['note']
        appointment.date = new_date
        appointment.time = new_time
        appointment.duration_minutes = new_duration
        appointment.status = new_status
        appointment.save()

    log_domain_event(
        'appointment_rescheduled',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        changed_fields=sorted(changes.keys()),
        slot_changed=slot_changed,
    )
    return appointment


def cancel_appointment(appointment_id) -> Appointment:
    """Mark an appointment cancelled; its slot becomes free immediately."""
    with transaction.atomic():
        appointment = _get_for_update(appointment_id)
        if appointment.status != AppointmentStatusChoices.CANCELLED:
            appointment.status = AppointmentStatusChoices.CANCELLED
            appointment.save(update_fields=['status', 'updated_at'])

    log_domain_event(
        'appointment_cancelled',
        entity_type='Appointment',
        entity_id=str(appointment.id),
    )
    return appointment


def delete_appointment(appointment_id) -> None:
    """
    Hard-delete an appointment.

    Raises:
        NotFoundError: Appointment does not exist
    """
    with transaction.atomic():
        _get_for_update(appointment_id).delete()

    log_domain_event(
        'appointment_deleted',
        entity_type='Appointment',
        entity_id=str(appointment_id),
    )


# ============================================================================
# Queries
# ============================================================================

def list_upcoming(now=None):
    """
    Non-cancelled appointments whose (date, time) is at or after ``now``,
    ordered by date then time.
    """
    now = clock.localize(now) if now else clock.now()
    today, current_time = now.date(), now.time()

    return (
        Appointment.objects.select_related('patient')
        .exclude(status=AppointmentStatusChoices.CANCELLED)
        .filter(Q(date__gt=today) | Q(date=today, time__gte=current_time))
        .order_by('date', 'time')
    )


def get_current_appointment(patient_id, now=None) -> Optional[Appointment]:
    """
    Today's most recently started appointment for the patient.

    Returns the non-cancelled appointment with the latest ``time <= now``,
    or ``None`` when there is none.
    """
    now = clock.localize(now) if now else clock.now()

    return (
        Appointment.objects.select_related('patient')
        .filter(patient_id=patient_id, date=now.date(), time__lte=now.time())
        .exclude(status=AppointmentStatusChoices.CANCELLED)
        .order_by('-time')
        .first()
    )


def list_for_day(day: date_type):
    """All appointments on ``day`` in time order."""
    return Appointment.objects.select_related('patient').filter(date=day).order_by('time')


def list_for_patient(patient_id):
    """A patient's appointments, newest first."""
    return (
        Appointment.objects.select_related('patient')
        .filter(patient_id=patient_id)
        .order_by('-date', '-time')
    )


def overlapping_pairs(appointments: Iterable[Appointment]):
    """
    Pairs of same-date, non-cancelled appointments that overlap.

    Used by the ``check_schedule`` management command to audit existing data.
    """
    active = sorted(
        (a for a in appointments if a.status != AppointmentStatusChoices.CANCELLED),
        key=lambda a: (a.date, a.start_minute)
    )
    pairs = []
    for i, first in enumerate(active):
        for second in active[i + 1:]:
            if second.date != first.date or second.start_minute >= first.end_minute:
                break
            pairs.append((first, second))
    return pairs
