"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: feed_latency_seconds, feed_strategy_total,
    feed_short_circuit_total, similarity_errors_total, search_errors_total

Both are initialised once at startup and injected into FastAPI via middleware.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram

from feed_api.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
FEED_LATENCY = Histogram(
    "feed_latency_seconds",
    "End-to-end latency of one feed page",
    ["feed"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

FEED_STRATEGY_TOTAL = Counter(
    "feed_strategy_total",
    "Feed pages served, by execution strategy",
    ["feed", "strategy"],
)

FEED_SHORT_CIRCUIT_TOTAL = Counter(
    "feed_short_circuit_total",
    "Feed requests answered with an empty page before touching the store",
    ["reason"],  # 'similarity' | 'search' | 'anonymous'
)

SIMILARITY_ERRORS_TOTAL = Counter(
    "similarity_errors_total",
    "Number of times the nearest-neighbour lookup failed or timed out",
)

SEARCH_ERRORS_TOTAL = Counter(
    "search_errors_total",
    "Number of times the search service returned an error",
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    if not settings.tracing_enabled:
        logger.info("Tracing disabled (TRACING_ENABLED=false)")
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s; traces disabled", exc)

    trace.set_tracer_provider(provider)

    # Store and collaborator calls show up as child spans of the request
    HTTPXClientInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if not settings.tracing_enabled:
        return
    FastAPIInstrumentor.instrument_app(app)
