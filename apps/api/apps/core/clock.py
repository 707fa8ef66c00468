"""
Clock used by every time-relative operation.

Services take an optional ``now`` argument and fall back to ``clock.now()``;
tests either pass ``now`` explicitly or patch ``apps.core.clock.now``.
"""
from datetime import datetime

from django.utils import timezone


def now() -> datetime:
    """Current aware datetime in the clinic's time zone."""
    return timezone.localtime(timezone.now())


def localize(value: datetime) -> datetime:
    """Express ``value`` on the clinic's wall clock (naive values are taken as already local)."""
    if timezone.is_naive(value):
        return timezone.make_aware(value)
    return timezone.localtime(value)
