"""OpenTelemetry adapter tests with an injected fake meter."""

from notigen.application.ports.telemetry_port import TelemetryPort
from notigen.infrastructure.telemetry.otel_adapter import OpenTelemetryAdapter, OtelConfig


class FakeInstrument:
    def __init__(self) -> None:
        self.records: list[tuple[float, dict]] = []

    def add(self, value, attributes=None):
        self.records.append((value, attributes))

    def record(self, value, attributes=None):
        self.records.append((value, attributes))


class FakeMeter:
    def __init__(self) -> None:
        self.instruments: dict[str, FakeInstrument] = {}

    def create_counter(self, name, description=""):
        return self.instruments.setdefault(name, FakeInstrument())

    def create_histogram(self, name, description=""):
        return self.instruments.setdefault(name, FakeInstrument())


class ExplodingMeter(FakeMeter):
    def create_counter(self, name, description=""):
        raise RuntimeError("exporter misconfigured")


def test_counters_and_histograms_are_created_once():
    meter = FakeMeter()
    adapter = OpenTelemetryAdapter(OtelConfig(), meter=meter)
    assert isinstance(adapter, TelemetryPort)
    assert adapter.is_available()

    adapter.incr("rag.generations.total", {"status": "success"})
    adapter.incr("rag.generations.total", {"status": "error"})
    adapter.observe("rag.generation.latency_ms", 812.0, {"status": "success"})

    assert meter.instruments["rag.generations.total"].records == [
        (1, {"status": "success"}),
        (1, {"status": "error"}),
    ]
    assert meter.instruments["rag.generation.latency_ms"].records == [
        (812.0, {"status": "success"})
    ]


def test_metric_failures_are_swallowed():
    adapter = OpenTelemetryAdapter(OtelConfig(), meter=ExplodingMeter())
    adapter.incr("rag.generations.total", {})
