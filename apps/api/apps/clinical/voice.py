"""
Voice payload resolution for session completion.

Clients send the recording in one of three shapes:

- a multipart file in ``voice_recording`` (or ``voice_notes_path``)
- base64 text in ``voice_recording_base64`` (or ``voice_notes_path``)
- the same base64 text wrapped as JSON, ``{"data": "..."}``

and the base64 text may carry a data-URL header (``data:audio/mp3;base64,``).
``resolve_voice_payload`` folds all of them into one ``VoiceClip`` before any
business logic runs. A payload that cannot be decoded is logged and treated
as "no recording"; it never fails the request.
"""
import base64
import binascii
import json
import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.files.uploadedfile import UploadedFile

from apps.clinical.image_utils import file_extension
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics

logger = get_sanitized_logger(__name__)

FILE_FIELDS = ('voice_recording', 'voice_notes_path')
TEXT_FIELDS = ('voice_recording_base64', 'voice_notes_path')

DEFAULT_BASE64_EXTENSION = 'mp3'

MIME_EXTENSIONS = {
    'audio/mpeg': 'mp3',
    'audio/mp3': 'mp3',
    'audio/wav': 'wav',
    'audio/x-wav': 'wav',
    'audio/wave': 'wav',
    'audio/ogg': 'ogg',
    'audio/webm': 'webm',
    'audio/aac': 'aac',
    'audio/mp4': 'm4a',
    'audio/x-m4a': 'm4a',
    'audio/m4a': 'm4a',
}


@dataclass(frozen=True)
class VoiceClip:
    """Decoded recording ready to be stored."""
    content: bytes
    extension: str
    source: str  # upload | base64

    @property
    def size(self):
        return len(self.content)


class VoiceDecodeError(ValueError):
    pass


def _skip(source, reason, **extra):
    log_domain_event(
        'voice_recording_skipped',
        entity_type='VoiceRecording',
        result='skipped',
        source=source,
        reason=reason,
        **extra
    )
    metrics.voice_recordings_stored_total.labels(source=source, result='skipped').inc()
    return None


def clip_from_upload(uploaded: UploadedFile) -> VoiceClip:
    """Read an uploaded audio file, enforcing extension and size limits."""
    extension = file_extension(uploaded.name)
    if extension not in settings.CLINIC_VOICE_EXTENSIONS:
        raise VoiceDecodeError(f'unsupported extension "{extension}"')
    if uploaded.size > settings.CLINIC_MAX_UPLOAD_BYTES:
        raise VoiceDecodeError('file too large')
    uploaded.seek(0)
    content = uploaded.read()
    if not content:
        raise VoiceDecodeError('empty file')
    return VoiceClip(content=content, extension=extension, source='upload')


def clip_from_base64(text: str) -> VoiceClip:
    """
    Decode base64 audio, optionally JSON-wrapped and/or data-URL prefixed.

    Raises:
        VoiceDecodeError: If the text is not valid base64 after unwrapping
    """
    payload = text.strip()
    extension = DEFAULT_BASE64_EXTENSION

    if payload.startswith('{'):
        try:
            envelope = json.loads(payload)
        except ValueError as e:
            raise VoiceDecodeError('malformed JSON envelope') from e
        if not isinstance(envelope, dict) or not isinstance(envelope.get('data'), str):
            raise VoiceDecodeError('JSON envelope has no "data" string')
        payload = envelope['data'].strip()

    if payload.startswith('data:') and ',' in payload:
        header, payload = payload.split(',', 1)
        mime = header[len('data:'):].split(';', 1)[0].strip().lower()
        extension = MIME_EXTENSIONS.get(mime, extension)

    payload = ''.join(payload.split())
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise VoiceDecodeError('invalid base64 data') from e

    if not content:
        raise VoiceDecodeError('empty audio data')
    if len(content) > settings.CLINIC_MAX_UPLOAD_BYTES:
        raise VoiceDecodeError('audio data too large')

    return VoiceClip(content=content, extension=extension, source='base64')


def resolve_voice_payload(files, data) -> Optional[VoiceClip]:
    """
    Pick the voice recording out of a request's files/data.

    File uploads win over text. Returns ``None`` when nothing usable was sent.
    """
    for field in FILE_FIELDS:
        uploaded = files.get(field) if files is not None else None
        if uploaded:
            try:
                return clip_from_upload(uploaded)
            except VoiceDecodeError as e:
                return _skip('upload', str(e), field=field)

    for field in TEXT_FIELDS:
        text = data.get(field) if data is not None else None
        if isinstance(text, str) and text.strip():
            try:
                return clip_from_base64(text)
            except VoiceDecodeError as e:
                return _skip('base64', str(e), field=field)

    return None


def voice_object_key(clip: VoiceClip, now) -> str:
    """Date-partitioned key: voice_recordings/YYYY/MM/DD/voice_<uid>_<epoch>.<ext>"""
    directory = f"{settings.CLINIC_VOICE_DIR}/{now:%Y/%m/%d}"
    return f"{directory}/voice_{uuid.uuid4().hex[:13]}_{int(now.timestamp())}.{clip.extension}"
