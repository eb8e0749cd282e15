from __future__ import annotations

import sys

import pytest

from cdnmirror.config import Settings
from cdnmirror.observability import setup_opentelemetry


def test_tracing_stays_off_without_endpoint() -> None:
    cfg = Settings(_env_file=None, OTEL_EXPORTER_OTLP_ENDPOINT="  ")
    assert setup_opentelemetry(None, cfg) is False


def test_tracing_stays_off_when_packages_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "opentelemetry", None)
    cfg = Settings(_env_file=None, OTEL_EXPORTER_OTLP_ENDPOINT="http://collector:4318")
    assert setup_opentelemetry(None, cfg) is False
