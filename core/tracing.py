import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

log = structlog.get_logger(__name__)

# Spans for outbound PayPal calls; a no-op tracer until init_tracer() runs
tracer = trace.get_tracer("payments.paypal")


def init_tracer(service_name: str = "paypal-express-checkout"):
    """Initialize OpenTelemetry tracer with OTLP exporter"""
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    # DISABLE_TRACING keeps the tracer working without a collector (tests, local runs)
    if os.getenv("DISABLE_TRACING", "").lower() in {"1", "true", "yes"}:
        exporter = ConsoleSpanExporter()
    else:
        try:
            exporter = OTLPSpanExporter()
        except Exception as exc:  # pragma: no cover - collector libs misconfigured
            log.warning("OTLP exporter unavailable, tracing to console", error=str(exc))
            exporter = ConsoleSpanExporter()

    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
