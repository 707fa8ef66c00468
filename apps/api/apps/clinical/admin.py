from django.contrib import admin
from .models import (
    Patient, Appointment, AppointmentDay, PatientSession,
    SessionNote, SessionMedicine, MedicineImage, VoiceRecording
)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'age', 'gender', 'email', 'phone', 'created_at']
    list_filter = ['gender', 'marital_status']
    search_fields = ['full_name', 'email', 'phone']
    readonly_fields = ['id', 'created_at', 'updated_at']

    fieldsets = (
        ('Basic Info', {
            'fields': ('id', 'full_name', 'age', 'gender', 'marital_status', 'profession')
        }),
        ('Contact', {
            'fields': ('email', 'phone', 'address', 'emergency_contact')
        }),
        ('Medical', {
            'fields': ('medical_history', 'current_medication', 'allergies')
        }),
        ('Audit', {
            'fields': ('created_at', 'updated_at')
        }),
    )


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['patient', 'date', 'time', 'duration_minutes', 'appointment_type', 'status']
    list_filter = ['status', 'appointment_type', 'date']
    search_fields = ['patient__full_name', 'patient__email']
    readonly_fields = ['id', 'created_at', 'updated_at']
    autocomplete_fields = ['patient']
    date_hierarchy = 'date'


@admin.register(AppointmentDay)
class AppointmentDayAdmin(admin.ModelAdmin):
    list_display = ['date', 'created_at']


class SessionNoteInline(admin.StackedInline):
    model = SessionNote
    extra = 0
    readonly_fields = ['id', 'created_at']


class SessionMedicineInline(admin.TabularInline):
    model = SessionMedicine
    extra = 0
    readonly_fields = ['id', 'created_at']


@admin.register(PatientSession)
class PatientSessionAdmin(admin.ModelAdmin):
    list_display = ['patient', 'session_type', 'status', 'started_at', 'ended_at']
    list_filter = ['status', 'session_type']
    search_fields = ['patient__full_name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    autocomplete_fields = ['patient']
    inlines = [SessionNoteInline, SessionMedicineInline]


@admin.register(MedicineImage)
class MedicineImageAdmin(admin.ModelAdmin):
    list_display = ['session_medicine', 'image_path', 'created_at']
    readonly_fields = ['id', 'created_at']


@admin.register(VoiceRecording)
class VoiceRecordingAdmin(admin.ModelAdmin):
    list_display = ['original_name', 'file_size', 'mime_type', 'created_at']
    search_fields = ['original_name', 'recording_path']
    readonly_fields = ['id', 'created_at', 'updated_at']
