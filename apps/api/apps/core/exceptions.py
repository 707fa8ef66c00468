"""
Domain errors and their HTTP translation.

Services raise the exceptions below; ``clinic_exception_handler`` (wired as
DRF's EXCEPTION_HANDLER) turns them, and DRF's own errors, into the common
error envelope::

    {"status": "error", "message": "...", "errors": {"field": ["..."]}}
"""
import traceback

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from apps.core.observability import get_sanitized_logger, metrics

logger = get_sanitized_logger(__name__)


class ClinicError(Exception):
    """Base class for errors raised by clinic services."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Internal server error'
    default_code = 'internal_error'

    def __init__(self, message=None, errors=None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(ClinicError):
    """Malformed or out-of-range input. ``errors`` maps field -> messages."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = 'Validation failed'
    default_code = 'validation_error'

    @classmethod
    def for_field(cls, field, message):
        return cls(message, errors={field: [message]})


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Resource not found'
    default_code = 'not_found'


class ConflictError(ClinicError):
    """Overlapping appointment, or an operation blocked by current state."""
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Conflict with current state'
    default_code = 'conflict'


class InvalidTransitionError(ClinicError):
    """Session start/complete attempted from a status that does not allow it."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = 'Invalid status transition'
    default_code = 'invalid_transition'


class StorageError(ClinicError):
    """Blob could not be decoded, written or removed."""
    default_message = 'File storage failed'
    default_code = 'storage_error'


def get_object_or_not_found(queryset, message=None, **filter_kwargs):
    """
    ``queryset.get(**filter_kwargs)`` for service code.

    A missing row and a malformed key (e.g. a non-UUID primary key) both
    raise NotFoundError, as DRF's ``get_object_or_404`` does for views.
    """
    try:
        return queryset.get(**filter_kwargs)
    except (queryset.model.DoesNotExist, TypeError, ValueError, DjangoValidationError):
        raise NotFoundError(message)


def _envelope(message, errors=None):
    body = {'status': 'error', 'message': message}
    if errors:
        body['errors'] = errors
    return body


def clinic_exception_handler(exc, context):
    """
    DRF exception handler producing the common error envelope.

    - ClinicError subclasses use their own status code.
    - DRF/Django validation errors become 422 with field errors.
    - Auth, permission, 404 and method errors keep DRF's status code.
    - Anything else is logged and returned as 500; the exception text and
      trace are included only when DEBUG is on.
    """
    view = context.get('view')
    location = view.__class__.__name__ if view is not None else 'unknown'

    if isinstance(exc, ClinicError):
        if exc.status_code >= 500:
            logger.error(
                f'Clinic error: {exc.message}',
                exc_info=exc,
                extra={'event': 'clinic_error', 'error_code': exc.default_code, 'location': location}
            )
            metrics.exceptions_total.labels(
                exception_type=exc.__class__.__name__, location=location
            ).inc()
        return Response(_envelope(exc.message, exc.errors), status=exc.status_code)

    if isinstance(exc, DjangoValidationError):
        errors = exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages}
        return Response(
            _envelope('Validation failed', errors),
            status=status.HTTP_422_UNPROCESSABLE_ENTITY
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        logger.error(
            f'Unhandled exception: {exc.__class__.__name__}',
            exc_info=exc,
            extra={'event': 'unhandled_exception', 'location': location}
        )
        metrics.exceptions_total.labels(
            exception_type=exc.__class__.__name__, location=location
        ).inc()
        body = _envelope('Internal server error')
        if settings.DEBUG:
            body['error'] = str(exc)
            body['trace'] = ''.join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, drf_exceptions.ValidationError):
        errors = response.data if isinstance(response.data, dict) else {'non_field_errors': response.data}
        return Response(
            _envelope('Validation failed', errors),
            status=status.HTTP_422_UNPROCESSABLE_ENTITY
        )

    if isinstance(response.data, dict):
        detail = response.data.get('detail') or response.data
    else:
        detail = response.data
    response.data = _envelope(str(detail))
    return response
