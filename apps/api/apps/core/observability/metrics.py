"""
Metrics instrumentation wrapper around prometheus_client.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for the clinic API.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        """Initialize metrics registry."""
        self._setup_metrics()

    def _create_counter(self, name, description, labels=None):
        """Create a counter metric."""
        return Counter(name, description, labels or [])

    def _create_histogram(self, name, description, labels=None, buckets=None):
        """Create a histogram metric."""
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets)
        return Histogram(name, description, labels or [])

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = self._create_counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = self._create_histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.exceptions_total = self._create_counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Scheduling Metrics
        # ===================================================================
        self.appointments_booked_total = self._create_counter(
            'appointments_booked_total',
            'Appointment booking attempts',
            ['result']  # success, conflict
        )

        self.appointment_conflicts_total = self._create_counter(
            'appointment_conflicts_total',
            'Overlapping appointment rejections',
            ['operation']  # create, reschedule
        )

        # ===================================================================
        # Session Metrics
        # ===================================================================
        self.sessions_transition_total = self._create_counter(
            'sessions_transition_total',
            'Session status transitions',
            ['to_status', 'result']
        )

        self.session_completion_duration_seconds = self._create_histogram(
            'session_completion_duration_seconds',
            'Duration of the session completion workflow',
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
        )

        self.voice_recordings_stored_total = self._create_counter(
            'voice_recordings_stored_total',
            'Voice recordings resolved during session completion or upload',
            ['source', 'result']  # source: upload|base64|standalone, result: stored|skipped
        )

        self.medicine_images_total = self._create_counter(
            'medicine_images_total',
            'Medicine images received on session completion',
            ['result']  # stored, skipped
        )

        # ===================================================================
        # Payment Metrics
        # ===================================================================
        self.medicine_charges_total = self._create_counter(
            'medicine_charges_total',
            'Derived medicine payments created on session completion'
        )

        self.payments_total = self._create_counter(
            'payments_total',
            'Payments recorded',
            ['type']  # income, expense
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.session_completion_duration_seconds)
            def complete_session(session_id, payload):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    duration = time.time() - start_time
                    histogram_metric.observe(duration)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
