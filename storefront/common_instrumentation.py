"""
OpenTelemetry tracing setup for the storefront services
"""
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION, DEPLOYMENT_ENVIRONMENT
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Probes are polled constantly and would drown the order spans
EXCLUDED_URLS = "health,ready"


def setup_opentelemetry(
    service_name: str,
    otlp_endpoint: str = "http://localhost:4317",
    enabled: bool = True,
    service_version: str = "unknown",
    environment: str = "dev"
) -> Optional[TracerProvider]:
    """
    Install a global tracer provider exporting spans over OTLP/gRPC
    
    Args:
        service_name: Name reported for every span
        otlp_endpoint: OTLP collector endpoint
        enabled: Whether to enable tracing
        service_version: Version resource attribute
        environment: Deployment environment resource attribute
    
    Returns:
        The provider, so the caller can flush it at shutdown
    """
    if not enabled:
        logger.info("OpenTelemetry disabled")
        return None
    
    resource = Resource(attributes={
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        DEPLOYMENT_ENVIRONMENT: environment,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    
    logger.info(f"OpenTelemetry exporting traces for {service_name} to {otlp_endpoint}")
    return provider


def shutdown_opentelemetry(provider: Optional[TracerProvider]):
    """Flush pending spans before the process exits"""
    if provider is None:
        return
    provider.shutdown()
    logger.info("OpenTelemetry provider shut down")


def instrument_fastapi(app):
    """Trace every request except the probes"""
    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
    logger.info("FastAPI instrumented with OpenTelemetry")


def instrument_sqlalchemy(engine):
    """Trace every statement, including the locking reads of a checkout"""
    SQLAlchemyInstrumentor().instrument(engine=engine)
    logger.info("SQLAlchemy instrumented with OpenTelemetry")
