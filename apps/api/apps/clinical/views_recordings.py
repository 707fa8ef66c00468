"""
Standalone voice recordings (dictations not tied to a session note).
"""
from django.conf import settings
from django.db import transaction
from rest_framework import mixins, status, viewsets
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from apps.clinical.models import VoiceRecording
from apps.clinical.permissions import VoiceRecordingPermission
from apps.clinical.serializers import VoiceRecordingSerializer, VoiceRecordingUploadSerializer
from apps.core.observability import log_domain_event, metrics
from apps.core.storage import delete_blobs_quietly, save_upload


class VoiceRecordingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet
):
    """
    Endpoints:
    - GET /api/v1/voice-recordings/
    - POST /api/v1/voice-recordings/ (multipart, field ``recording``)
    - GET /api/v1/voice-recordings/{id}/
    - DELETE /api/v1/voice-recordings/{id}/
    """
    queryset = VoiceRecording.objects.all().order_by('-created_at')
    serializer_class = VoiceRecordingSerializer
    permission_classes = [VoiceRecordingPermission]
    parser_classes = [MultiPartParser, FormParser]

    def create(self, request, *args, **kwargs):
        upload = VoiceRecordingUploadSerializer(data=request.data)
        upload.is_valid(raise_exception=True)
        uploaded = upload.validated_data['recording']

        key = save_upload(settings.CLINIC_RECORDINGS_DIR, uploaded)
        try:
            recording = VoiceRecording.objects.create(
                recording_path=key,
                original_name=uploaded.name,
                file_size=uploaded.size,
                mime_type=getattr(uploaded, 'content_type', None) or 'application/octet-stream',
            )
        except Exception:
            delete_blobs_quietly([key])
            raise

        metrics.voice_recordings_stored_total.labels(source='upload', result='stored').inc()
        log_domain_event(
            'voice_recording_uploaded',
            entity_type='VoiceRecording',
            entity_id=str(recording.id),
            file_size=recording.file_size,
        )
        return Response(VoiceRecordingSerializer(recording).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        recording = self.get_object()
        key = recording.recording_path

        with transaction.atomic():
            recording.delete()
            transaction.on_commit(lambda: delete_blobs_quietly([key]))

        log_domain_event(
            'voice_recording_deleted',
            entity_type='VoiceRecording',
            entity_id=str(kwargs['pk']),
        )
        return Response(
            {'status': 'success', 'message': 'Recording deleted successfully'},
            status=status.HTTP_200_OK
        )
