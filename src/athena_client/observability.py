"""OpenTelemetry instrumentation for the Athena client.

Provides:
- OpenTelemetry SDK initialization
- Tracer for creating spans around remote calls
- Metrics for query monitoring (duration, rows, bytes scanned, cache lookups)
- Structured JSON logging with trace correlation
"""

from __future__ import annotations

import contextlib
import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from athena_client.config import get_settings

_initialized = False

_tracer: trace.Tracer | None = None
_meter: metrics.Meter | None = None
_tracer_provider: TracerProvider | None = None
_meter_provider: MeterProvider | None = None

_query_duration_histogram: metrics.Histogram | None = None
_query_rows_counter: metrics.Counter | None = None
_bytes_scanned_counter: metrics.Counter | None = None
_cache_lookup_counter: metrics.Counter | None = None
_active_polls_gauge: metrics.UpDownCounter | None = None


def get_tracer() -> trace.Tracer:
    """Get the library tracer.

    Returns:
        The OpenTelemetry tracer for creating spans.
    """
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("athena_client")
    return _tracer


def get_meter() -> metrics.Meter:
    """Get the library meter.

    Returns:
        The OpenTelemetry meter for creating metrics.
    """
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("athena_client")
    return _meter


def record_query_duration(duration_seconds: float, status: str = "succeeded") -> None:
    """Record how long a query took to reach a terminal state.

    Args:
        duration_seconds: Wall-clock seconds spent polling.
        status: Terminal state (succeeded, failed, cancelled, interrupted).
    """
    if _query_duration_histogram is not None:
        _query_duration_histogram.record(duration_seconds, {"status": status})


def record_query_rows(row_count: int) -> None:
    """Record number of rows fetched from a result set."""
    if _query_rows_counter is not None:
        _query_rows_counter.add(row_count)


def record_bytes_scanned(byte_count: int) -> None:
    """Record bytes scanned (and billed) by a completed query."""
    if _bytes_scanned_counter is not None:
        _bytes_scanned_counter.add(byte_count)


def record_cache_lookup(hit: bool) -> None:
    """Record a query cache lookup outcome."""
    if _cache_lookup_counter is not None:
        _cache_lookup_counter.add(1, {"result": "hit" if hit else "miss"})


def increment_active_polls() -> None:
    """Increment the active polls counter."""
    if _active_polls_gauge is not None:
        _active_polls_gauge.add(1)


def decrement_active_polls() -> None:
    """Decrement the active polls counter."""
    if _active_polls_gauge is not None:
        _active_polls_gauge.add(-1)


def _add_trace_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Add OpenTelemetry trace context to log records.

    Args:
        logger: The logger instance (unused but required by structlog).
        method_name: The logging method name (unused but required by structlog).
        event_dict: The event dictionary to enhance.

    Returns:
        Event dictionary with trace context added.
    """
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging with trace context."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            _add_trace_context,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name. Defaults to "athena_client".

    Returns:
        A structured logger with trace context support.
    """
    return structlog.get_logger(name or "athena_client")


def setup_opentelemetry() -> None:
    """Initialize OpenTelemetry instrumentation.

    Sets up:
    - Tracer provider with OTLP exporter
    - Meter provider with OTLP exporter
    - Metrics for query monitoring

    Nothing is exported unless ``otel.enabled`` is set.
    """
    global _initialized, _tracer, _meter, _tracer_provider, _meter_provider
    global _query_duration_histogram, _query_rows_counter, _bytes_scanned_counter
    global _cache_lookup_counter, _active_polls_gauge

    if _initialized:
        return

    settings = get_settings()

    configure_logging()

    if not settings.otel.enabled:
        _initialized = True
        return

    resource = Resource.create({SERVICE_NAME: settings.otel.service_name})

    tracer_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(
        endpoint=settings.otel.endpoint, insecure=settings.otel.insecure
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(tracer_provider)
    _tracer_provider = tracer_provider

    metric_exporter = OTLPMetricExporter(
        endpoint=settings.otel.endpoint, insecure=settings.otel.insecure
    )
    metric_reader = PeriodicExportingMetricReader(metric_exporter, export_interval_millis=10000)
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    _meter_provider = meter_provider

    _tracer = trace.get_tracer("athena_client")
    _meter = metrics.get_meter("athena_client")
    create_instruments(_meter)

    _initialized = True


def create_instruments(meter: metrics.Meter) -> None:
    """Create the query metrics on ``meter``."""
    global _query_duration_histogram, _query_rows_counter, _bytes_scanned_counter
    global _cache_lookup_counter, _active_polls_gauge

    _query_duration_histogram = meter.create_histogram(
        name="athena_query_duration_seconds",
        description="Time from submission to terminal state",
        unit="s",
    )
    _query_rows_counter = meter.create_counter(
        name="athena_rows_fetched",
        description="Total number of rows fetched from result sets",
        unit="rows",
    )
    _bytes_scanned_counter = meter.create_counter(
        name="athena_bytes_scanned",
        description="Bytes scanned by completed queries",
        unit="By",
    )
    _cache_lookup_counter = meter.create_counter(
        name="athena_cache_lookups",
        description="Query cache lookups by outcome",
    )
    _active_polls_gauge = meter.create_up_down_counter(
        name="athena_active_polls",
        description="Number of result sets currently polling",
        unit="queries",
    )


def shutdown_opentelemetry() -> None:
    """Shutdown OpenTelemetry providers to flush pending telemetry."""
    global _tracer_provider, _meter_provider
    if _tracer_provider is not None:
        with contextlib.suppress(Exception):
            _tracer_provider.force_flush(timeout_millis=5000)
            _tracer_provider.shutdown()
        _tracer_provider = None
    if _meter_provider is not None:
        with contextlib.suppress(Exception):
            _meter_provider.force_flush(timeout_millis=5000)
            _meter_provider.shutdown()
        _meter_provider = None


def reset_observability() -> None:
    """Reset observability state (useful for testing)."""
    global _initialized, _tracer, _meter, _tracer_provider, _meter_provider
    global _query_duration_histogram, _query_rows_counter, _bytes_scanned_counter
    global _cache_lookup_counter, _active_polls_gauge

    _initialized = False
    _tracer = None
    _meter = None
    _tracer_provider = None
    _meter_provider = None
    _query_duration_histogram = None
    _query_rows_counter = None
    _bytes_scanned_counter = None
    _cache_lookup_counter = None
    _active_polls_gauge = None
