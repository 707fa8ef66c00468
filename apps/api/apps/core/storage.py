"""
Blob storage helpers.

Files go through Django's ``default_storage`` (filesystem in development,
S3Boto3Storage against MinIO in production). Keys are plain relative paths
such as ``medicine_images/3f2a9c0b1d4e_box.jpg``; the database only stores
the key returned by ``save_blob``.
"""
import uuid
from datetime import timedelta

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from minio import Minio
from minio.error import S3Error

from apps.core.exceptions import StorageError
from apps.core.observability import get_sanitized_logger

logger = get_sanitized_logger(__name__)

HEALTHCHECK_KEY = '.healthcheck'


def generate_object_key(prefix: str, filename: str) -> str:
    """
    Generate unique object key for storage.

    Args:
        prefix: Folder prefix (e.g., 'medicine_images', 'recordings')
        filename: Original filename

    Returns:
        Unique object key string
    """
    unique_id = uuid.uuid4().hex[:12]
    safe_filename = "".join(c for c in filename if c.isalnum() or c in "._-")
    return f"{prefix}/{unique_id}_{safe_filename}"


def save_blob(key: str, content) -> str:
    """
    Write ``content`` (bytes or a Django File) under ``key``.

    Returns the key actually used; the backend may alter it to avoid
    overwriting an existing object.
    """
    if isinstance(content, (bytes, bytearray)):
        content = ContentFile(bytes(content))
    try:
        return default_storage.save(key, content)
    except Exception as e:
        logger.error(
            'Blob write failed',
            extra={'event': 'blob_write_failed', 'key': key, 'error': str(e)}
        )
        raise StorageError(f'Failed to store file: {e}') from e


def save_upload(prefix: str, uploaded_file) -> str:
    """Store an uploaded file under ``prefix`` with a generated key."""
    uploaded_file.seek(0)
    return save_blob(generate_object_key(prefix, uploaded_file.name or 'upload'), uploaded_file)


def delete_blob(key: str) -> None:
    """
    Delete a stored object (hard delete). Missing objects are ignored.

    Raises:
        StorageError: If the backend refuses the delete
    """
    if not key:
        return
    try:
        default_storage.delete(key)
    except Exception as e:
        raise StorageError(f'Failed to delete file: {e}') from e


def delete_blobs_quietly(keys) -> None:
    """Best-effort removal used for compensation and after-commit cleanup."""
    for key in keys:
        try:
            delete_blob(key)
        except StorageError as e:
            logger.warning(
                'Blob cleanup failed',
                extra={'event': 'blob_cleanup_failed', 'key': key, 'error': str(e)}
            )


def get_minio_client():
    """Get configured MinIO client instance."""
    return Minio(
        settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_USE_SSL
    )


def generate_presigned_get_url(object_key: str, expires: timedelta = None) -> str:
    """
    Generate presigned GET URL for a stored object.

    Raises:
        StorageError: If MinIO refuses to sign the request
    """
    expires = expires or timedelta(minutes=settings.BLOB_PRESIGNED_URL_TTL_MINUTES)
    client = get_minio_client()
    try:
        return client.presigned_get_object(
            bucket_name=settings.MINIO_CLINICAL_BUCKET,
            object_name=object_key,
            expires=expires
        )
    except S3Error as e:
        raise StorageError(f'Failed to generate presigned GET URL: {e}') from e


def blob_url(key: str):
    """Public or presigned URL for ``key``; ``None`` when there is no key."""
    if not key:
        return None
    if settings.STORAGE_BACKEND == 's3' and settings.BLOB_PRESIGNED_URLS:
        return generate_presigned_get_url(key)
    return default_storage.url(key)


def check_storage() -> bool:
    """Readiness check: the backend answers an existence query."""
    try:
        default_storage.exists(HEALTHCHECK_KEY)
        return True
    except Exception as e:
        logger.error(
            'Storage health check failed',
            extra={'event': 'health_check_failed', 'check': 'storage', 'error': str(e)}
        )
        return False
