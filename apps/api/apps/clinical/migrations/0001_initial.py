# Generated migration for clinical app

import uuid
import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


VISIT_TYPES = [('in_person', 'In person'), ('remote', 'Remote')]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('full_name', models.CharField(max_length=255)),
                ('age', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(120)])),
                ('gender', models.CharField(choices=[('male', 'Male'), ('female', 'Female'), ('other', 'Other')], max_length=10)),
                ('marital_status', models.CharField(blank=True, choices=[('single', 'Single'), ('married', 'Married'), ('divorced', 'Divorced'), ('widowed', 'Widowed'), ('separated', 'Separated')], max_length=20, null=True)),
                ('profession', models.CharField(blank=True, max_length=100, null=True)),
                ('phone', models.CharField(max_length=20)),
                ('email', models.EmailField(max_length=255, unique=True)),
                ('address', models.TextField()),
                ('emergency_contact', models.CharField(max_length=255)),
                ('medical_history', models.TextField(blank=True, null=True)),
                ('current_medication', models.TextField(blank=True, null=True)),
                ('allergies', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patient',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['full_name'], name='idx_patient_full_name'),
                    models.Index(fields=['phone'], name='idx_patient_phone'),
                    models.Index(fields=['created_at'], name='idx_patient_created'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AppointmentDay',
            fields=[
                ('date', models.DateField(primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Appointment Day',
                'verbose_name_plural': 'Appointment Days',
                'db_table': 'appointment_day',
            },
        ),
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('date', models.DateField()),
                ('time', models.TimeField()),
                ('appointment_type', models.CharField(choices=VISIT_TYPES, max_length=100)),
                ('duration_minutes', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(480)])),
                ('note', models.TextField(blank=True, max_length=1000, null=True)),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='scheduled', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='clinical.patient')),
            ],
            options={
                'verbose_name': 'Appointment',
                'verbose_name_plural': 'Appointments',
                'db_table': 'appointment',
                'ordering': ['date', 'time'],
                'indexes': [
                    models.Index(fields=['date', 'time'], name='idx_appointment_slot'),
                    models.Index(fields=['patient'], name='idx_appointment_patient'),
                    models.Index(fields=['status'], name='idx_appointment_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PatientSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_type', models.CharField(choices=VISIT_TYPES, max_length=20)),
                ('expected_duration', models.PositiveIntegerField(help_text='Expected duration in minutes', validators=[django.core.validators.MinValueValidator(1)])),
                ('purpose', models.TextField(blank=True, max_length=1000, null=True)),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('in_progress', 'In progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='scheduled', max_length=20)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('ended_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sessions', to='clinical.patient')),
            ],
            options={
                'verbose_name': 'Patient Session',
                'verbose_name_plural': 'Patient Sessions',
                'db_table': 'patient_session',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['patient'], name='idx_session_patient'),
                    models.Index(fields=['status'], name='idx_session_status'),
                    models.Index(fields=['started_at'], name='idx_session_started'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SessionNote',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('general_notes', models.TextField(blank=True, null=True)),
                ('clinical_notes', models.TextField(blank=True, null=True)),
                ('physical_health_notes', models.TextField(blank=True, null=True)),
                ('mental_health_notes', models.TextField(blank=True, null=True)),
                ('mood_rating', models.PositiveSmallIntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(10)])),
                ('voice_notes_path', models.CharField(blank=True, help_text='Storage key of the voice recording, if one was kept', max_length=500, null=True)),
                ('medicine_price', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notes', to='clinical.patientsession')),
            ],
            options={
                'verbose_name': 'Session Note',
                'verbose_name_plural': 'Session Notes',
                'db_table': 'session_note',
                'indexes': [
                    models.Index(fields=['session'], name='idx_session_note_session'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SessionMedicine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('medicine_notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='medicines', to='clinical.patientsession')),
            ],
            options={
                'verbose_name': 'Session Medicine',
                'verbose_name_plural': 'Session Medicines',
                'db_table': 'session_medicine',
            },
        ),
        migrations.CreateModel(
            name='MedicineImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image_path', models.CharField(help_text='Storage key of the image', max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('session_medicine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='clinical.sessionmedicine')),
            ],
            options={
                'verbose_name': 'Medicine Image',
                'verbose_name_plural': 'Medicine Images',
                'db_table': 'medicine_image',
            },
        ),
        migrations.CreateModel(
            name='VoiceRecording',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('recording_path', models.CharField(max_length=500)),
                ('original_name', models.CharField(blank=True, max_length=255, null=True)),
                ('file_size', models.PositiveBigIntegerField(default=0)),
                ('mime_type', models.CharField(blank=True, max_length=100, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Voice Recording',
                'verbose_name_plural': 'Voice Recordings',
                'db_table': 'voice_recording',
                'ordering': ['-created_at'],
            },
        ),
    ]
