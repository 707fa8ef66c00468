"""
Clinical models: patient, appointment, patient_session, session_note,
session_medicine, medicine_image, voice_recording.
"""
import uuid
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


# ============================================================================
# Enums
# ============================================================================

class GenderChoices(models.TextChoices):
    MALE = 'male', 'Male'
    FEMALE = 'female', 'Female'
    OTHER = 'other', 'Other'


class MaritalStatusChoices(models.TextChoices):
    SINGLE = 'single', 'Single'
    MARRIED = 'married', 'Married'
    DIVORCED = 'divorced', 'Divorced'
    WIDOWED = 'widowed', 'Widowed'
    SEPARATED = 'separated', 'Separated'


class VisitTypeChoices(models.TextChoices):
    """How an appointment or session takes place: in_person|remote"""
    IN_PERSON = 'in_person', 'In person'
    REMOTE = 'remote', 'Remote'


class AppointmentStatusChoices(models.TextChoices):
    """
    Appointment status.

    Only CANCELLED changes scheduling: cancelled appointments never block a slot.
    """
    SCHEDULED = 'scheduled', 'Scheduled'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class SessionStatusChoices(models.TextChoices):
    """
    Patient session lifecycle.

    scheduled -> in_progress  (start)
    in_progress -> completed  (complete)
    any -> cancelled          (update)
    """
    SCHEDULED = 'scheduled', 'Scheduled'
    IN_PROGRESS = 'in_progress', 'In progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


# ============================================================================
# Patients
# ============================================================================

class Patient(models.Model):
    """
    Patient record: identity, contact and medical background.

    Root aggregate for appointments and sessions. Patients are never deleted
    through the API; the PROTECT foreign keys below enforce it at the DB level.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    full_name = models.CharField(max_length=255)
    age = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(0), MaxValueValidator(120)]
    )
    gender = models.CharField(max_length=10, choices=GenderChoices.choices)
    marital_status = models.CharField(
        max_length=20,
        choices=MaritalStatusChoices.choices,
        blank=True,
        null=True
    )
    profession = models.CharField(max_length=100, blank=True, null=True)

    # Contact
    phone = models.CharField(max_length=20)
    email = models.EmailField(max_length=255, unique=True)
    address = models.TextField()
    emergency_contact = models.CharField(max_length=255)

    # Medical background
    medical_history = models.TextField(blank=True, null=True)
    current_medication = models.TextField(blank=True, null=True)
    allergies = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient'
        verbose_name = 'Patient'
        verbose_name_plural = 'Patients'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['full_name'], name='idx_patient_full_name'),
            models.Index(fields=['phone'], name='idx_patient_phone'),
            models.Index(fields=['created_at'], name='idx_patient_created'),
        ]

    def __str__(self):
        return self.full_name


# ============================================================================
# Scheduling
# ============================================================================

class Appointment(models.Model):
    """
    A booked slot ``[time, time + duration_minutes)`` on ``date``.

    Two non-cancelled appointments on the same date never overlap; the
    check lives in ``apps.clinical.scheduling`` and runs under the date's
    AppointmentDay row lock.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    patient = models.ForeignKey(
        'Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    date = models.DateField()
    time = models.TimeField()
    appointment_type = models.CharField(
        max_length=100,
        choices=VisitTypeChoices.choices
    )
    duration_minutes = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(480)]
    )
    note = models.TextField(max_length=1000, blank=True, null=True)
    status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.SCHEDULED
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment'
        verbose_name = 'Appointment'
        verbose_name_plural = 'Appointments'
        ordering = ['date', 'time']
        indexes = [
            models.Index(fields=['date', 'time'], name='idx_appointment_slot'),
            models.Index(fields=['patient'], name='idx_appointment_patient'),
            models.Index(fields=['status'], name='idx_appointment_status'),
        ]

    def __str__(self):
        return f"Appointment {self.date} {self.time:%H:%M} - {self.patient}"

    @property
    def start_minute(self):
        """Minutes since midnight at which the slot starts."""
        return self.time.hour * 60 + self.time.minute

    @property
    def end_minute(self):
        """Minutes since midnight at which the slot ends (exclusive)."""
        return self.start_minute + self.duration_minutes


class AppointmentDay(models.Model):
    """
    One row per calendar date that has been booked.

    Booking and rescheduling take ``select_for_update`` on this row before
    running the overlap check, so concurrent bookings for the same date
    are serialized.
    """
    date = models.DateField(primary_key=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'appointment_day'
        verbose_name = 'Appointment Day'
        verbose_name_plural = 'Appointment Days'

    def __str__(self):
        return str(self.date)


# ============================================================================
# Sessions
# ============================================================================

class PatientSession(models.Model):
    """
    A clinical encounter with a patient (not an HTTP session).

    Owns its notes, medicines and medicine images.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    patient = models.ForeignKey(
        'Patient',
        on_delete=models.PROTECT,
        related_name='sessions'
    )
    session_type = models.CharField(
        max_length=20,
        choices=VisitTypeChoices.choices
    )
    expected_duration = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text='Expected duration in minutes'
    )
    purpose = models.TextField(max_length=1000, blank=True, null=True)
    status = models.CharField(
        max_length=20,
        choices=SessionStatusChoices.choices,
        default=SessionStatusChoices.SCHEDULED
    )
    started_at = models.DateTimeField(blank=True, null=True)
    ended_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient_session'
        verbose_name = 'Patient Session'
        verbose_name_plural = 'Patient Sessions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient'], name='idx_session_patient'),
            models.Index(fields=['status'], name='idx_session_status'),
            models.Index(fields=['started_at'], name='idx_session_started'),
        ]

    def __str__(self):
        return f"Session {self.id} ({self.status}) - {self.patient}"


class SessionNote(models.Model):
    """Clinical notes written when a session is completed."""
    session = models.ForeignKey(
        'PatientSession',
        on_delete=models.CASCADE,
        related_name='notes'
    )
    general_notes = models.TextField(blank=True, null=True)
    clinical_notes = models.TextField(blank=True, null=True)
    physical_health_notes = models.TextField(blank=True, null=True)
    mental_health_notes = models.TextField(blank=True, null=True)
    mood_rating = models.PositiveSmallIntegerField(
        blank=True,
        null=True,
        validators=[MinValueValidator(1), MaxValueValidator(10)]
    )
    voice_notes_path = models.CharField(
        max_length=500,
        blank=True,
        null=True,
        help_text='Storage key of the voice recording, if one was kept'
    )
    medicine_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'session_note'
        verbose_name = 'Session Note'
        verbose_name_plural = 'Session Notes'
        indexes = [
            models.Index(fields=['session'], name='idx_session_note_session'),
        ]

    def __str__(self):
        return f"Notes for session {self.session_id}"


class SessionMedicine(models.Model):
    """Medicines prescribed or handed out during a session."""
    session = models.ForeignKey(
        'PatientSession',
        on_delete=models.CASCADE,
        related_name='medicines'
    )
    medicine_notes = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'session_medicine'
        verbose_name = 'Session Medicine'
        verbose_name_plural = 'Session Medicines'

    def __str__(self):
        return f"Medicine for session {self.session_id}"


class MedicineImage(models.Model):
    """Photo of a medicine box/prescription attached to a SessionMedicine."""
    session_medicine = models.ForeignKey(
        'SessionMedicine',
        on_delete=models.CASCADE,
        related_name='images'
    )
    image_path = models.CharField(max_length=500, help_text='Storage key of the image')

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'medicine_image'
        verbose_name = 'Medicine Image'
        verbose_name_plural = 'Medicine Images'

    def __str__(self):
        return self.image_path


# ============================================================================
# Voice recordings
# ============================================================================

class VoiceRecording(models.Model):
    """Standalone uploaded voice memo (not tied to a session)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    recording_path = models.CharField(max_length=500)
    original_name = models.CharField(max_length=255, blank=True, null=True)
    file_size = models.PositiveBigIntegerField(default=0)
    mime_type = models.CharField(max_length=100, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'voice_recording'
        verbose_name = 'Voice Recording'
        verbose_name_plural = 'Voice Recordings'
        ordering = ['-created_at']

    def __str__(self):
        return self.original_name or self.recording_path
