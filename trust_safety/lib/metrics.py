"""
Prometheus metrics exporter
"""
import os
import logging
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from functools import wraps
import time

logger = logging.getLogger(__name__)

# Counters
events_processed = Counter('safety_events_processed_total', 'Events classified and enforced', ['action', 'scope'])
classifier_failures = Counter('safety_classifier_failures_total', 'Classifier calls that failed open', ['reason'])
strikes_issued = Counter('safety_strikes_issued_total', 'Strikes issued', ['level'])
escalations = Counter('safety_escalations_total', 'Review items created', ['entry'])
moderator_decisions = Counter('safety_moderator_decisions_total', 'Moderator decisions', ['decision'])
appeals = Counter('safety_appeals_total', 'Appeal lifecycle events', ['outcome'])
lockdowns = Counter('safety_mass_report_lockdowns_total', 'Mass-report lockdowns triggered')
notifications = Counter('safety_notifications_total', 'Notification dispatch outcomes', ['outcome'])
spam_trips = Counter('safety_spam_trips_total', 'Spam detector trips')
enforcement_write_failures = Counter('safety_enforcement_write_failures_total', 'Violation writes that failed')

# Histograms (for latency)
enforcement_latency = Histogram('safety_enforcement_duration_seconds', 'Classify and enforce duration', ['path'])

# Gauges (for current state)
queue_depth = Gauge('safety_review_queue_depth', 'Pending review items', ['status'])


class MetricsExporter:
    """Prometheus metrics exporter"""

    def __init__(self, port: int = 8000):
        self.port = port
        self.server_started = False

    def start(self):
        """Start Prometheus HTTP server"""
        if not self.server_started:
            start_http_server(self.port)
            self.server_started = True
            logger.info(f"Prometheus metrics server started on port {self.port}")

    @staticmethod
    def track_latency(path: str):
        """Decorator to time an async enforcement path"""
        def decorator(func):
            @wraps(func)
            async def wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                    enforcement_latency.labels(path=path).observe(time.perf_counter() - start_time)
                    return result
                except Exception:
                    enforcement_latency.labels(path=f"{path}_error").observe(time.perf_counter() - start_time)
                    raise
            return wrapper
        return decorator

    @staticmethod
    def record_event(action: str, scope: str):
        events_processed.labels(action=action, scope=scope).inc()

    @staticmethod
    def record_classifier_failure(reason: str):
        classifier_failures.labels(reason=reason).inc()

    @staticmethod
    def record_strike(level: int):
        strikes_issued.labels(level=str(level)).inc()

    @staticmethod
    def record_escalation(entry: str):
        escalations.labels(entry=entry).inc()

    @staticmethod
    def record_moderator_decision(decision: str):
        moderator_decisions.labels(decision=decision).inc()

    @staticmethod
    def record_appeal(outcome: str):
        appeals.labels(outcome=outcome).inc()

    @staticmethod
    def record_lockdown():
        lockdowns.inc()

    @staticmethod
    def record_notification(outcome: str):
        notifications.labels(outcome=outcome).inc()

    @staticmethod
    def record_spam_trip():
        spam_trips.inc()

    @staticmethod
    def record_enforcement_write_failure():
        enforcement_write_failures.inc()

    @staticmethod
    def update_queue_depth(status: str, depth: int):
        """Update queue depth gauge"""
        queue_depth.labels(status=status).set(depth)


# Singleton instance
metrics = MetricsExporter(port=int(os.getenv('METRICS_PORT', '8000')))
