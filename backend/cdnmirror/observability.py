"""OpenTelemetry tracing for the API and its outbound GitHub/jsDelivr/storefront calls.

Enabled only when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set and the ``otel``
extra is installed; spans are shipped over OTLP/HTTP.
"""
from __future__ import annotations

import logging

from cdnmirror.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def setup_opentelemetry(app=None, cfg: Settings | None = None) -> bool:
    """Install the OTLP tracer provider and instrument FastAPI and httpx.

    Returns True when tracing was switched on by this call.
    """
    cfg = cfg or default_settings
    endpoint = cfg.OTEL_EXPORTER_OTLP_ENDPOINT.strip()
    if not endpoint:
        logger.debug("OpenTelemetry disabled: no OTLP endpoint configured")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OTLP endpoint set but OpenTelemetry packages are missing: %s", exc)
        return False

    if trace.get_tracer_provider().__class__.__name__ != "ProxyTracerProvider":
        logger.debug("Tracer provider already installed; leaving it in place")
        return False

    provider = TracerProvider(
        resource=Resource.create({"service.name": cfg.OTEL_SERVICE_NAME, "deployment.environment": cfg.APP_ENV})
    )
    exporter = OTLPSpanExporter(endpoint=endpoint.rstrip("/") + "/v1/traces")
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if app is not None:
        try:
            from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

            FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")
        except ImportError as exc:
            logger.info("FastAPI OTel instrumentation unavailable: %s", exc)

    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()
    except ImportError as exc:
        logger.info("HTTPX OTel instrumentation unavailable: %s", exc)

    logger.info("OpenTelemetry tracing enabled", extra={"otlp_endpoint": endpoint})
    return True
