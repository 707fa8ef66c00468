"""
Clinical viewsets for patients, appointments and sessions.

Business rules live in ``scheduling`` and ``sessions``; views parse input,
call one service function and serialize the result.
"""
from django.db import transaction
from django.db.models import Q
from django.utils.dateparse import parse_date
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from apps.clinical import scheduling, sessions
from apps.clinical.models import Appointment, Patient, PatientSession
from apps.clinical.permissions import (
    AppointmentPermission,
    PatientPermission,
    SessionPermission,
)
from apps.clinical.serializers import (
    AppointmentSerializer,
    AppointmentWriteSerializer,
    CompletedSessionQuerySerializer,
    CompletedSessionSerializer,
    PatientHistorySerializer,
    PatientRegistrationSerializer,
    PatientSearchSerializer,
    PatientSerializer,
    SessionCompleteSerializer,
    SessionCompletionSerializer,
    SessionCreateSerializer,
    SessionDetailSerializer,
    SessionSerializer,
    SessionStateSerializer,
    SessionUpdateSerializer,
)
from apps.clinical.voice import resolve_voice_payload
from apps.core import clock
from apps.core.observability import get_sanitized_logger

logger = get_sanitized_logger(__name__)

MEDICINE_IMAGE_FIELDS = ('medicine_images', 'medicine_images[]')


class PatientViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Patient endpoints.

    Endpoints:
    - GET /api/v1/patients/
    - POST /api/v1/patients/ (optionally books the first appointment)
    - GET /api/v1/patients/{id}/
    - PATCH /api/v1/patients/{id}/
    - GET /api/v1/patients/search/?query=&limit=
    """
    permission_classes = [PatientPermission]
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_queryset(self):
        return Patient.objects.all().order_by('-created_at')

    def get_serializer_class(self):
        if self.action == 'create':
            return PatientRegistrationSerializer
        return PatientSerializer

    def create(self, request, *args, **kwargs):
        """
        Register a patient (POST /api/v1/patients/).

        The patient row and the optional first appointment are written in
        one transaction: a conflicting slot leaves no patient behind.
        """
        serializer = PatientRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        patient_fields, appointment_fields = serializer.split()

        with transaction.atomic():
            patient = Patient.objects.create(**patient_fields)
            appointment = None
            if appointment_fields:
                appointment = scheduling.create_appointment(
                    patient_id=patient.id,
                    **appointment_fields
                )

        logger.info(
            'Patient registered',
            extra={
                'event': 'patient_registered',
                'patient_id': str(patient.id),
                'appointment_booked': appointment is not None,
            }
        )

        data = PatientSerializer(patient).data
        data['appointment'] = AppointmentSerializer(appointment).data if appointment else None
        return Response(data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='search')
    def search(self, request):
        """
        GET /api/v1/patients/search/?query=&limit=

        Case-insensitive match on name, phone or email.
        """
        params = PatientSearchSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        query = params.validated_data['query']
        limit = params.validated_data['limit']

        queryset = Patient.objects.filter(
            Q(full_name__icontains=query) |
            Q(phone__icontains=query) |
            Q(email__icontains=query)
        ).order_by('full_name')[:limit]

        return Response(PatientSerializer(queryset, many=True).data)


class AppointmentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Appointment endpoints.

    Endpoints:
    - GET /api/v1/appointments/?patient_id=&date=&status=
    - POST /api/v1/appointments/
    - GET /api/v1/appointments/{id}/
    - PUT/PATCH /api/v1/appointments/{id}/
    - DELETE /api/v1/appointments/{id}/
    - POST /api/v1/appointments/{id}/cancel/
    - GET /api/v1/appointments/upcoming/
    - GET /api/v1/appointments/today/
    - GET /api/v1/appointments/by-date/?date=YYYY-MM-DD
    - GET /api/v1/appointments/current/?patient_id=
    - GET /api/v1/appointments/patient/{patient_id}/
    """
    permission_classes = [AppointmentPermission]
    serializer_class = AppointmentSerializer

    def get_queryset(self):
        queryset = Appointment.objects.select_related('patient')

        patient_id = self.request.query_params.get('patient_id')
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)

        date = self.request.query_params.get('date')
        if date:
            queryset = queryset.filter(date=date)

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('date', 'time')

    def create(self, request, *args, **kwargs):
        """Book an appointment (POST /api/v1/appointments/)."""
        serializer = AppointmentWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        appointment = scheduling.create_appointment(
            patient_id=data['patient_id'],
            date=data['date'],
            time=data['time'],
            appointment_type=data['appointment_type'],
            duration_minutes=data['duration_minutes'],
            note=data.get('note'),
        )
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """PUT/PATCH /api/v1/appointments/{id}/ - only supplied fields change."""
        serializer = AppointmentWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        appointment = scheduling.reschedule_appointment(kwargs['pk'], dict(serializer.validated_data))
        return Response(AppointmentSerializer(appointment).data)

    def destroy(self, request, *args, **kwargs):
        scheduling.delete_appointment(kwargs['pk'])
        return Response(
            {'status': 'success', 'message': 'Appointment deleted successfully'},
            status=status.HTTP_200_OK
        )

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        """POST /api/v1/appointments/{id}/cancel/"""
        appointment = scheduling.cancel_appointment(pk)
        return Response(AppointmentSerializer(appointment).data)

    @action(detail=False, methods=['get'], url_path='upcoming')
    def upcoming(self, request):
        """GET /api/v1/appointments/upcoming/"""
        now = clock.now()
        appointments = scheduling.list_upcoming(now)
        return Response({
            'current_datetime': now.isoformat(),
            'results': AppointmentSerializer(appointments, many=True).data,
        })

    @action(detail=False, methods=['get'], url_path='today')
    def today(self, request):
        """GET /api/v1/appointments/today/"""
        appointments = scheduling.list_for_day(clock.now().date())
        return Response(AppointmentSerializer(appointments, many=True).data)

    @action(detail=False, methods=['get'], url_path='by-date')
    def by_date(self, request):
        """GET /api/v1/appointments/by-date/?date=YYYY-MM-DD"""
        day = self._parse_date(request.query_params.get('date'))
        appointments = scheduling.list_for_day(day)
        return Response(AppointmentSerializer(appointments, many=True).data)

    @action(detail=False, methods=['get'], url_path='current')
    def current(self, request):
        """
        GET /api/v1/appointments/current/?patient_id=

        Returns ``{"appointment": null}`` when the patient has nothing today.
        """
        patient_id = request.query_params.get('patient_id')
        if not patient_id:
            raise ValidationError({'patient_id': ['This query parameter is required.']})

        appointment = scheduling.get_current_appointment(patient_id)
        return Response({
            'appointment': AppointmentSerializer(appointment).data if appointment else None,
        })

    @action(detail=False, methods=['get'], url_path=r'patient/(?P<patient_id>[0-9a-f-]+)')
    def for_patient(self, request, patient_id=None):
        """GET /api/v1/appointments/patient/{patient_id}/"""
        appointments = scheduling.list_for_patient(patient_id)
        return Response(AppointmentSerializer(appointments, many=True).data)

    def _parse_date(self, value):
        try:
            day = parse_date(value) if value else None
        except ValueError:
            day = None
        if day is None:
            raise ValidationError({'date': ['Date must use the YYYY-MM-DD format.']})
        return day


class SessionViewSet(viewsets.ModelViewSet):
    """
    ViewSet for PatientSession endpoints.

    Endpoints:
    - GET /api/v1/sessions/?patient_id=&status=&start_date=&end_date=
    - POST /api/v1/sessions/
    - GET /api/v1/sessions/{id}/
    - PUT/PATCH /api/v1/sessions/{id}/
    - DELETE /api/v1/sessions/{id}/
    - POST /api/v1/sessions/{id}/start/
    - POST /api/v1/sessions/{id}/complete/ (multipart or JSON)
    - GET /api/v1/sessions/patient/{patient_id}/
    - GET /api/v1/sessions/patient/{patient_id}/history/
    - GET /api/v1/sessions/completed/?search=&type=in_person|remote&date=today|this_week|this_month
    """
    permission_classes = [SessionPermission]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get_queryset(self):
        queryset = PatientSession.objects.select_related('patient')

        if self.action == 'retrieve':
            queryset = queryset.prefetch_related('notes', 'medicines__images')

        params = self.request.query_params

        patient_id = params.get('patient_id')
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)

        status_filter = params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        start_date = params.get('start_date')
        if start_date:
            queryset = queryset.filter(started_at__date__gte=start_date)

        end_date = params.get('end_date')
        if end_date:
            queryset = queryset.filter(started_at__date__lte=end_date)

        return queryset.order_by('-created_at')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return SessionDetailSerializer
        return SessionSerializer

    def create(self, request, *args, **kwargs):
        """POST /api/v1/sessions/ - the new session starts immediately."""
        serializer = SessionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = sessions.create_session(**serializer.validated_data)
        return Response(
            {
                'status': 'success',
                'message': 'Session created successfully',
                'session_id': str(session.id),
            },
            status=status.HTTP_201_CREATED
        )

    def update(self, request, *args, **kwargs):
        serializer = SessionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        session = sessions.update_session(kwargs['pk'], dict(serializer.validated_data))
        return Response(SessionSerializer(session).data)

    def destroy(self, request, *args, **kwargs):
        sessions.delete_session(kwargs['pk'])
        return Response(
            {'status': 'success', 'message': 'Session deleted successfully'},
            status=status.HTTP_200_OK
        )

    @action(detail=True, methods=['post'], url_path='start')
    def start(self, request, pk=None):
        """POST /api/v1/sessions/{id}/start/"""
        session = sessions.start_session(pk)
        return Response(SessionStateSerializer(session).data)

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        """
        POST /api/v1/sessions/{id}/complete/

        Accepts multipart (voice file, medicine_images[]) or JSON (base64
        voice). The voice payload is resolved once here; a payload that
        cannot be decoded is dropped, not rejected.
        """
        serializer = SessionCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        images = []
        for field in MEDICINE_IMAGE_FIELDS:
            images.extend(request.FILES.getlist(field))

        payload = sessions.CompletionPayload(
            voice=resolve_voice_payload(request.FILES, request.data),
            images=images,
            **serializer.validated_data
        )
        completion = sessions.complete_session(pk, payload)
        return Response(SessionCompletionSerializer(completion).data)

    @action(detail=False, methods=['get'], url_path=r'patient/(?P<patient_id>[0-9a-f-]+)')
    def for_patient(self, request, patient_id=None):
        """GET /api/v1/sessions/patient/{patient_id}/"""
        queryset = (
            PatientSession.objects.select_related('patient')
            .filter(patient_id=patient_id)
            .order_by('-created_at')
        )
        return Response(SessionSerializer(queryset, many=True).data)

    @action(detail=False, methods=['get'], url_path=r'patient/(?P<patient_id>[0-9a-f-]+)/history')
    def history(self, request, patient_id=None):
        """GET /api/v1/sessions/patient/{patient_id}/history/"""
        history = sessions.patient_history(patient_id)
        return Response(PatientHistorySerializer(history).data)

    @action(detail=False, methods=['get'], url_path='completed')
    def completed(self, request):
        """GET /api/v1/sessions/completed/?search=&type=&date="""
        query = CompletedSessionQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        queryset = sessions.completed_sessions(
            search=params.get('search'),
            session_type=params.get('type'),
            period=params.get('date'),
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(CompletedSessionSerializer(page, many=True).data)
        return Response(CompletedSessionSerializer(queryset, many=True).data)
