"""
Domain events logging helpers.

Provides structured event logging for business operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'appointment_booked', 'session_completed')
        entity_type: Type of entity (e.g., 'Appointment', 'PatientSession')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, etc.)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'session_completed',
            entity_type='PatientSession',
            entity_id=str(session.id),
            entity_ids={'patient_id': str(session.patient_id)},
            result='success',
            images_stored=2,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'conflict', 'skipped']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points.

    Example:
        log_consistency_checkpoint(
            'session_completion_consistency',
            entity_ids={'session_id': str(session.id)},
            checks_passed={'note_created': True, 'payment_matches_price': True},
        )
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_session_transition(session, from_status, to_status, result='success', **extra):
    """Log patient session status transition event."""
    log_domain_event(
        'session_transition',
        entity_type='PatientSession',
        entity_id=str(session.id),
        entity_ids={'session_id': str(session.id), 'patient_id': str(session.patient_id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_appointment_conflict(operation, date, time, duration_minutes, conflicting_ids):
    """Log a booking rejected because of an overlapping appointment."""
    log_domain_event(
        'appointment_conflict',
        entity_type='Appointment',
        result='conflict',
        operation=operation,
        date=str(date),
        time=str(time),
        duration_minutes=duration_minutes,
        conflicting_ids=[str(i) for i in conflicting_ids],
    )
