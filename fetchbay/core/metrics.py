"""Prometheus metrics collection.

This module defines and manages Prometheus metrics for monitoring
request rates, job admissions, retrieval outcomes and login throttling.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("fetchbay", "fetchbay application information")

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Job metrics
jobs_admitted_total = Counter(
    "jobs_admitted_total",
    "Total jobs admitted by kind",
    ["kind"],
)

admissions_rejected_total = Counter(
    "admissions_rejected_total",
    "Total rejected admissions by error code",
    ["error_code"],
)

retrievals_total = Counter(
    "retrievals_total",
    "Total finished retrievals by engine and outcome",
    ["engine", "outcome"],
)

retrieval_duration_seconds = Histogram(
    "retrieval_duration_seconds",
    "Retrieval duration in seconds",
    ["engine"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0],
)

retrieved_bytes = Histogram(
    "retrieved_bytes",
    "Size of completed retrievals in bytes",
    ["engine"],
    buckets=[1e3, 1e6, 10e6, 100e6, 500e6, 1e9, 5e9, 20e9],
)

active_jobs = Gauge(
    "active_jobs",
    "Number of queued or downloading jobs",
)

# Auth metrics
login_throttled_total = Counter(
    "login_throttled_total",
    "Total login attempts rejected by the rate limiter",
)


class MetricsCollector:
    """Centralized metrics collection and update helper.

    Provides static methods for recording various metrics throughout
    the application in a consistent manner.
    """

    @staticmethod
    def record_request(
        method: str,
        endpoint: str,
        status: int,
        duration: float,
    ) -> None:
        """Record HTTP request metrics.

        Args:
            method: HTTP method (GET, POST, etc.).
            endpoint: Normalized endpoint path.
            status: HTTP response status code.
            duration: Request duration in seconds.
        """
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    @staticmethod
    def record_admission(kind: str) -> None:
        jobs_admitted_total.labels(kind=kind).inc()

    @staticmethod
    def record_rejection(error_code: str) -> None:
        admissions_rejected_total.labels(error_code=error_code).inc()

    @staticmethod
    def record_retrieval(
        engine: str,
        outcome: str,
        duration: float,
        size: int,
    ) -> None:
        """Record a finished retrieval.

        Args:
            engine: Engine name ('http' or 'torrent').
            outcome: Terminal status ('done', 'error', 'cancelled').
            duration: Time spent in the engine in seconds.
            size: Retrieved size in bytes (0 if unknown).
        """
        retrievals_total.labels(engine=engine, outcome=outcome).inc()
        retrieval_duration_seconds.labels(engine=engine).observe(duration)
        if size > 0:
            retrieved_bytes.labels(engine=engine).observe(size)

    @staticmethod
    def update_active_jobs(count: int) -> None:
        active_jobs.set(count)

    @staticmethod
    def record_login_throttled() -> None:
        login_throttled_total.inc()


def initialize_metrics(version: str) -> None:
    """Initialize application metrics with version information.

    Should be called during application startup.

    Args:
        version: Application version string.
    """
    app_info.info({"version": version})
