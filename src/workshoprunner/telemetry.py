"""
OpenTelemetry tracing for workshop runs.

The runner always creates spans through the global tracer; without
``configure_tracing`` those spans are no-ops. A run becomes a
``workshop.run`` span and each executed step a ``step:<name>`` child span.
"""

from __future__ import annotations

import logging

from opentelemetry import trace

from workshoprunner import __version__

logger = logging.getLogger(__name__)

__all__ = [
    "TRACER_NAME",
    "get_tracer",
    "configure_tracing",
    "shutdown_tracing",
    "STEP_NAME",
    "STEP_POSITION",
    "STEP_KIND",
    "STEP_OUTCOME",
    "RUN_SCENARIO",
    "RUN_STATUS",
]

TRACER_NAME = "workshoprunner"

# Span attribute names
STEP_NAME = "step.name"
STEP_POSITION = "step.position"
STEP_KIND = "step.kind"
STEP_OUTCOME = "step.outcome"
RUN_SCENARIO = "workshop.scenario"
RUN_STATUS = "workshop.run.status"

# Timeout for force_flush on shutdown
FLUSH_TIMEOUT_MS = 10000


def get_tracer() -> trace.Tracer:
    """Tracer used for run and step spans."""
    return trace.get_tracer(TRACER_NAME, __version__)


def configure_tracing(mode: str = "none", endpoint: str = "localhost:4317") -> bool:
    """
    Install a global TracerProvider.

    Args:
        mode: ``none`` (leave the no-op provider), ``console`` or ``otlp``
        endpoint: OTLP gRPC endpoint used when mode is ``otlp``

    Returns:
        True if a provider was installed, False otherwise
    """
    if mode == "none":
        return False

    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

    resource = Resource.create({
        "service.name": "workshop-runner",
        "service.version": __version__,
    })
    provider = TracerProvider(resource=resource)

    if mode == "console":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    elif mode == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning(
                "OTLP exporter not installed; install workshop-runner[otlp] to export traces"
            )
            return False
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
    else:
        raise ValueError(f"Unknown trace export mode: {mode}")

    trace.set_tracer_provider(provider)
    logger.debug("Tracing configured (mode=%s)", mode)
    return True


def shutdown_tracing() -> None:
    """Flush and shut down the global provider, if it supports it."""
    provider = trace.get_tracer_provider()
    if hasattr(provider, "force_flush"):
        provider.force_flush(timeout_millis=FLUSH_TIMEOUT_MS)
    if hasattr(provider, "shutdown"):
        provider.shutdown()
