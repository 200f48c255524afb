"""OpenTelemetry metrics adapter for generation counters and latencies."""

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from notigen.application.ports.telemetry_port import TelemetryPort

logger = logging.getLogger(__name__)


@dataclass
class OtelConfig:
    """Configuration for OpenTelemetry."""

    service_name: str = "notigen-rag"
    otlp_endpoint: str | None = None  # e.g., "http://localhost:4317"
    environment: str = "production"
    enable_console: bool = False  # Debug: print metrics to console


class OpenTelemetryAdapter(TelemetryPort):
    """OpenTelemetry adapter for metrics.

    Metrics:
    - Counters: incr() for events (generations, cache hits, errors)
    - Histograms: observe() for distributions (latency, tokens)

    If opentelemetry-sdk is not installed the adapter reports itself
    unavailable and the orchestrator skips it.
    """

    def __init__(self, cfg: OtelConfig, meter: Any | None = None) -> None:
        self._cfg = cfg
        self._meter: Any | None = meter
        self._counters: dict[str, Any] = {}
        self._histograms: dict[str, Any] = {}
        if self._meter is None:
            self._init_otel()

    def _init_otel(self) -> None:
        """Set up a MeterProvider with OTLP and/or console readers (lazy imports)."""
        try:
            otel_sdk = import_module("opentelemetry.sdk.metrics")
            otel_export = import_module("opentelemetry.sdk.metrics.export")
            otel_metrics = import_module("opentelemetry.metrics")
            otel_resources = import_module("opentelemetry.sdk.resources")

            resource = otel_resources.Resource.create(
                {
                    "service.name": self._cfg.service_name,
                    "deployment.environment": self._cfg.environment,
                }
            )

            readers = []
            if self._cfg.otlp_endpoint:
                otel_otlp = import_module("opentelemetry.exporter.otlp.proto.grpc.metric_exporter")
                exporter = otel_otlp.OTLPMetricExporter(endpoint=self._cfg.otlp_endpoint)
                readers.append(otel_export.PeriodicExportingMetricReader(exporter))
            if self._cfg.enable_console:
                readers.append(
                    otel_export.PeriodicExportingMetricReader(otel_export.ConsoleMetricExporter())
                )

            provider = otel_sdk.MeterProvider(resource=resource, metric_readers=readers)
            otel_metrics.set_meter_provider(provider)
            self._meter = otel_metrics.get_meter(__name__)
        except Exception as ex:
            logger.warning("OpenTelemetry unavailable, metrics disabled: %s", ex)
            self._meter = None

    def is_available(self) -> bool:
        return self._meter is not None

    def incr(self, name: str, tags: dict[str, str]) -> None:
        """Increment a counter, e.g. incr("rag.generations.total", {"status": "success"})."""
        if self._meter is None:
            return
        try:
            if name not in self._counters:
                self._counters[name] = self._meter.create_counter(
                    name=name, description=f"Counter for {name}"
                )
            self._counters[name].add(1, attributes=tags)
        except Exception as ex:
            logger.debug("Metric %s dropped: %s", name, ex)

    def observe(self, name: str, value: float, tags: dict[str, str]) -> None:
        """Record a histogram value, e.g. observe("rag.generation.latency_ms", 812.0, {...})."""
        if self._meter is None:
            return
        try:
            if name not in self._histograms:
                self._histograms[name] = self._meter.create_histogram(
                    name=name, description=f"Histogram for {name}"
                )
            self._histograms[name].record(value, attributes=tags)
        except Exception as ex:
            logger.debug("Metric %s dropped: %s", name, ex)
