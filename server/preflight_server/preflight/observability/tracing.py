"""Observability setup for the preflight plugin.

Provides in-process counters, structured logging with the session key,
and optional OpenTelemetry tracing.
"""

from __future__ import annotations

import logging
from typing import Any

from preflight import config as cfg

logger = logging.getLogger(__name__)

# ── Metrics counters (simple in-process; replace with OTel SDK) ──────

_metrics: dict[str, float] = {
    "preflight_turns": 0,
    "preflight_skipped": 0,
    "preflight_extractor_unavailable": 0,
    "preflight_stopword_fallback": 0,
    "preflight_keyword_hits": 0,
    "preflight_semantic_fallback": 0,
    "preflight_semantic_hits": 0,
    "preflight_augmented": 0,
    "preflight_errors": 0,
    "preflight_timeouts": 0,
    "preflight_extract_ms_total": 0,
    "preflight_search_ms_total": 0,
    "preflight_total_ms_total": 0,
}


def record_metric(name: str, value: float = 1.0) -> None:
    """Increment / accumulate a named metric."""
    _metrics[name] = _metrics.get(name, 0) + value


def get_metrics() -> dict[str, float]:
    """Return a snapshot of current metrics."""
    return dict(_metrics)


def reset_metrics() -> None:
    """Reset all metric counters (testing helper)."""
    for key in _metrics:
        _metrics[key] = 0


# ── Structured logging helper ────────────────────────────────────────

def log_with_context(
    level: int,
    message: str,
    *,
    session_key: str = "",
    **extra: Any,
) -> None:
    """Emit a structured log line tagged with the host session key."""
    fields = {"session_key": session_key, **extra}
    logger.log(level, "%s | %s", message, fields)


# ── Optional OpenTelemetry bootstrap ─────────────────────────────────

def init_otel() -> None:
    """Initialise OpenTelemetry tracing if ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set."""
    endpoint = cfg.OTEL_EXPORTER_OTLP_ENDPOINT
    if not endpoint:
        logger.info("OTEL endpoint not configured; tracing disabled.")
        return

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        resource = Resource.create({"service.name": "memory-preflight"})
        provider = TracerProvider(resource=resource)
        exporter = OTLPSpanExporter(endpoint=endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        logger.info("OpenTelemetry tracing initialised (endpoint=%s)", endpoint)
    except ImportError:
        logger.warning("OpenTelemetry SDK not installed; tracing disabled.")
    except Exception:
        logger.exception("OpenTelemetry initialisation failed")


def configure_logging() -> None:
    """Root logging setup for entry points (server, scripts)."""
    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
