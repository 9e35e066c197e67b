"""Métricas Prometheus del pipeline."""

from __future__ import annotations

from prometheus_client import Counter

READINGS_TOTAL = Counter(
    "derivation_readings_total",
    "Raw readings processed by the coordinator",
    ["outcome"],
)

SINK_FAILURES_TOTAL = Counter(
    "derivation_sink_failures_total",
    "Derived readings that could not be delivered to a sink",
    ["sink"],
)

CLAMPED_VALUES_TOTAL = Counter(
    "derivation_clamped_values_total",
    "Physical values clamped to the calibrated range",
    ["field"],
)
