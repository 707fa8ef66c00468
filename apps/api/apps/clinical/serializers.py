"""
Clinical serializers: patients, appointments, sessions, voice recordings.

Write serializers only check shape and bounds; existence checks (404),
overlaps (409) and state rules (422) belong to the scheduling and session
services.
"""
from datetime import datetime, timedelta

from django.conf import settings
from rest_framework import serializers

from apps.clinical.image_utils import file_extension
from apps.clinical.models import (
    Appointment,
    AppointmentStatusChoices,
    MedicineImage,
    Patient,
    PatientSession,
    SessionMedicine,
    SessionNote,
    SessionStatusChoices,
    VisitTypeChoices,
    VoiceRecording,
)
from apps.clinical.scheduling import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES, parse_hhmm
from apps.clinical.sessions import COMPLETED_PERIODS
from apps.core.exceptions import ValidationError as ClinicValidationError
from apps.core.storage import blob_url
from apps.payments.serializers import PaymentSerializer


class HHMMTimeField(serializers.Field):
    """Time of day as strict 24-hour ``HH:MM``."""

    default_error_messages = {
        'invalid': 'Time must use the 24-hour HH:MM format.',
    }

    def to_internal_value(self, data):
        try:
            return parse_hhmm(data)
        except ClinicValidationError:
            self.fail('invalid')

    def to_representation(self, value):
        return value.strftime('%H:%M')


class RawValueField(serializers.Field):
    """Passes the submitted value through untouched (JSON scalars, lists, objects or form text)."""

    def to_internal_value(self, data):
        return data

    def to_representation(self, value):
        return value


# ============================================================================
# Patients
# ============================================================================

class PatientSummarySerializer(serializers.ModelSerializer):
    """Compact patient projection embedded in appointments and sessions."""

    class Meta:
        model = Patient
        fields = ['id', 'full_name', 'phone', 'email']
        read_only_fields = fields


class PatientSerializer(serializers.ModelSerializer):
    """Full patient record (read and update)."""

    class Meta:
        model = Patient
        fields = [
            'id',
            'full_name',
            'age',
            'gender',
            'marital_status',
            'profession',
            'phone',
            'email',
            'address',
            'emergency_contact',
            'medical_history',
            'current_medication',
            'allergies',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class PatientRegistrationSerializer(PatientSerializer):
    """
    Patient intake form.

    The first appointment may be booked in the same request; when any
    ``appointment_*``/``duration_minutes`` field is sent, date, time, type
    and duration become required.
    """
    APPOINTMENT_FIELDS = (
        'appointment_date',
        'appointment_time',
        'appointment_type',
        'duration_minutes',
    )

    appointment_date = serializers.DateField(required=False, write_only=True)
    appointment_time = HHMMTimeField(required=False, write_only=True)
    appointment_type = serializers.ChoiceField(
        choices=VisitTypeChoices.choices, required=False, write_only=True
    )
    duration_minutes = serializers.IntegerField(
        min_value=1, max_value=240, required=False, write_only=True
    )
    appointment_note = serializers.CharField(
        max_length=1000, required=False, allow_blank=True, allow_null=True, write_only=True
    )

    class Meta(PatientSerializer.Meta):
        fields = PatientSerializer.Meta.fields + [
            'appointment_date',
            'appointment_time',
            'appointment_type',
            'duration_minutes',
            'appointment_note',
        ]

    def validate(self, attrs):
        wants_appointment = any(name in attrs for name in self.APPOINTMENT_FIELDS)
        if wants_appointment:
            missing = {
                name: ['This field is required when booking the first appointment.']
                for name in self.APPOINTMENT_FIELDS
                if name not in attrs
            }
            if missing:
                raise serializers.ValidationError(missing)
        return attrs

    def split(self):
        """Return (patient_fields, appointment_fields_or_None) from validated data."""
        data = dict(self.validated_data)
        appointment = {name: data.pop(name) for name in self.APPOINTMENT_FIELDS if name in data}
        note = data.pop('appointment_note', None)
        if not appointment:
            return data, None
        return data, {
            'date': appointment['appointment_date'],
            'time': appointment['appointment_time'],
            'appointment_type': appointment['appointment_type'],
            'duration_minutes': appointment['duration_minutes'],
            'note': note,
        }


class PatientSearchSerializer(serializers.Serializer):
    """Query-string validation for GET /patients/search/."""
    query = serializers.CharField(min_length=2, max_length=100)
    limit = serializers.IntegerField(min_value=1, max_value=50, required=False, default=10)


# ============================================================================
# Appointments
# ============================================================================

class AppointmentSerializer(serializers.ModelSerializer):
    """Appointment with its patient summary and computed end time."""
    patient_id = serializers.UUIDField(read_only=True)
    patient = PatientSummarySerializer(read_only=True)
    time = HHMMTimeField(read_only=True)
    end_time = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = [
            'id',
            'patient_id',
            'patient',
            'date',
            'time',
            'end_time',
            'appointment_type',
            'duration_minutes',
            'note',
            'status',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_end_time(self, obj):
        end = datetime.combine(obj.date, obj.time) + timedelta(minutes=obj.duration_minutes)
        return end.strftime('%H:%M')


class AppointmentWriteSerializer(serializers.Serializer):
    """
    Appointment create/update input.

    Used with ``partial=True`` for updates: only the supplied fields are
    validated and passed on to the scheduler.
    """
    patient_id = serializers.UUIDField()
    date = serializers.DateField()
    time = HHMMTimeField()
    appointment_type = serializers.ChoiceField(choices=VisitTypeChoices.choices)
    duration_minutes = serializers.IntegerField(
        min_value=MIN_DURATION_MINUTES, max_value=MAX_DURATION_MINUTES
    )
    note = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=AppointmentStatusChoices.choices, required=False)

    def validate_status(self, value):
        if not self.partial and value != AppointmentStatusChoices.SCHEDULED:
            raise serializers.ValidationError('New appointments are always scheduled.')
        return value


# ============================================================================
# Sessions
# ============================================================================

class MedicineImageSerializer(serializers.ModelSerializer):
    url = serializers.SerializerMethodField()

    class Meta:
        model = MedicineImage
        fields = ['id', 'image_path', 'url', 'created_at']
        read_only_fields = fields

    def get_url(self, obj):
        return blob_url(obj.image_path)


class SessionMedicineSerializer(serializers.ModelSerializer):
    images = MedicineImageSerializer(many=True, read_only=True)

    class Meta:
        model = SessionMedicine
        fields = ['id', 'session_id', 'medicine_notes', 'images', 'created_at']
        read_only_fields = fields


class SessionNoteSerializer(serializers.ModelSerializer):
    voice_notes_url = serializers.SerializerMethodField()

    class Meta:
        model = SessionNote
        fields = [
            'id',
            'session_id',
            'general_notes',
            'clinical_notes',
            'physical_health_notes',
            'mental_health_notes',
            'mood_rating',
            'voice_notes_path',
            'voice_notes_url',
            'medicine_price',
            'created_at',
        ]
        read_only_fields = fields

    def get_voice_notes_url(self, obj):
        return blob_url(obj.voice_notes_path)


class SessionStateSerializer(serializers.ModelSerializer):
    """Minimal session projection returned by lifecycle actions."""

    class Meta:
        model = PatientSession
        fields = ['id', 'patient_id', 'status', 'started_at', 'ended_at']
        read_only_fields = fields


class SessionSerializer(serializers.ModelSerializer):
    patient_id = serializers.UUIDField(read_only=True)
    patient = PatientSummarySerializer(read_only=True)

    class Meta:
        model = PatientSession
        fields = [
            'id',
            'patient_id',
            'patient',
            'session_type',
            'expected_duration',
            'purpose',
            'status',
            'started_at',
            'ended_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class SessionDetailSerializer(SessionSerializer):
    notes = SessionNoteSerializer(many=True, read_only=True)
    medicines = SessionMedicineSerializer(many=True, read_only=True)

    class Meta(SessionSerializer.Meta):
        fields = SessionSerializer.Meta.fields + ['notes', 'medicines']
        read_only_fields = fields


class SessionCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    session_type = serializers.ChoiceField(choices=VisitTypeChoices.choices)
    expected_duration = serializers.IntegerField(min_value=1)
    purpose = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)


class SessionUpdateSerializer(serializers.Serializer):
    session_type = serializers.ChoiceField(choices=VisitTypeChoices.choices, required=False)
    expected_duration = serializers.IntegerField(min_value=1, required=False)
    purpose = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=SessionStatusChoices.choices, required=False)


class SessionCompleteSerializer(serializers.Serializer):
    """
    Text part of the completion form.

    ``medicine_price`` is accepted in any shape and normalized by the
    session service (anything non-numeric -> 0). Voice payloads and images are read
    from the raw request by the view.
    """
    general_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    clinical_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    physical_health_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    mental_health_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    mood_rating = serializers.IntegerField(min_value=1, max_value=10, required=False, allow_null=True)
    medicine_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    medicine_price = RawValueField(required=False, allow_null=True)


class PatientProfileSerializer(PatientSummarySerializer):

    class Meta(PatientSummarySerializer.Meta):
        fields = PatientSummarySerializer.Meta.fields + ['age', 'gender']
        read_only_fields = fields


class SessionHistorySerializer(serializers.ModelSerializer):
    """
    One row of a patient's history, flattened with the session's note.

    Expects ``notes`` and ``medicines__images`` to be prefetched.
    """
    general_notes = serializers.SerializerMethodField()
    clinical_notes = serializers.SerializerMethodField()
    mood_rating = serializers.SerializerMethodField()
    has_medicines = serializers.SerializerMethodField()
    has_voice_notes = serializers.SerializerMethodField()

    class Meta:
        model = PatientSession
        fields = [
            'id',
            'session_type',
            'status',
            'expected_duration',
            'started_at',
            'ended_at',
            'general_notes',
            'clinical_notes',
            'mood_rating',
            'has_medicines',
            'has_voice_notes',
        ]
        read_only_fields = fields

    def _note(self, obj):
        notes = obj.notes.all()
        return notes[0] if notes else None

    def get_general_notes(self, obj):
        note = self._note(obj)
        return note.general_notes if note else None

    def get_clinical_notes(self, obj):
        note = self._note(obj)
        return note.clinical_notes if note else None

    def get_mood_rating(self, obj):
        note = self._note(obj)
        return note.mood_rating if note else None

    def get_has_medicines(self, obj):
        return any(m.medicine_notes or m.images.all() for m in obj.medicines.all())

    def get_has_voice_notes(self, obj):
        note = self._note(obj)
        return bool(note and note.voice_notes_path)


class PatientHistorySerializer(serializers.Serializer):
    """Response of GET /sessions/patient/{id}/history/."""
    patient = PatientProfileSerializer()
    statistics = serializers.SerializerMethodField()
    sessions = SessionHistorySerializer(many=True)

    def get_statistics(self, obj):
        return {
            'total_sessions': obj.total_sessions,
            'total_duration': obj.total_duration,
            'average_mood': obj.average_mood,
        }


class CompletedSessionSerializer(SessionSerializer):
    """Completed-session row with the note text inlined."""
    general_notes = serializers.SerializerMethodField()
    clinical_notes = serializers.SerializerMethodField()

    class Meta(SessionSerializer.Meta):
        fields = SessionSerializer.Meta.fields + ['general_notes', 'clinical_notes']
        read_only_fields = fields

    def get_general_notes(self, obj):
        notes = obj.notes.all()
        return notes[0].general_notes if notes else None

    def get_clinical_notes(self, obj):
        notes = obj.notes.all()
        return notes[0].clinical_notes if notes else None


class CompletedSessionQuerySerializer(serializers.Serializer):
    """Query-string validation for GET /sessions/completed/."""
    search = serializers.CharField(max_length=100, required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=VisitTypeChoices.choices, required=False)
    date = serializers.ChoiceField(choices=COMPLETED_PERIODS, required=False)


class SessionCompletionSerializer(serializers.Serializer):
    """Composite response of POST /sessions/{id}/complete/."""
    session = SessionStateSerializer()
    notes = SessionNoteSerializer(source='note')
    medicine = serializers.SerializerMethodField()
    payment = PaymentSerializer(allow_null=True)

    def get_medicine(self, obj):
        data = SessionMedicineSerializer(obj.medicine).data
        data['images'] = MedicineImageSerializer(obj.images, many=True).data
        return data


# ============================================================================
# Voice recordings
# ============================================================================

class VoiceRecordingSerializer(serializers.ModelSerializer):
    url = serializers.SerializerMethodField()

    class Meta:
        model = VoiceRecording
        fields = [
            'id',
            'recording_path',
            'url',
            'original_name',
            'file_size',
            'mime_type',
            'created_at',
        ]
        read_only_fields = fields

    def get_url(self, obj):
        return blob_url(obj.recording_path)


class VoiceRecordingUploadSerializer(serializers.Serializer):
    recording = serializers.FileField()

    def validate_recording(self, value):
        extension = file_extension(value.name)
        if extension not in settings.CLINIC_VOICE_EXTENSIONS:
            raise serializers.ValidationError(
                f'Invalid file type. Allowed: {", ".join(settings.CLINIC_VOICE_EXTENSIONS)}'
            )
        if value.size > settings.CLINIC_MAX_UPLOAD_BYTES:
            raise serializers.ValidationError(
                f'File size exceeds maximum of {settings.CLINIC_MAX_UPLOAD_BYTES // (1024 * 1024)}MB'
            )
        return value
