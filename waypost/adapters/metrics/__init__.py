"""Metrics adapters - Time-series database writers."""

from waypost.domain.metrics import MetricsSettings, MetricsSink

from .influx import InfluxMeasurementWriter


def create_metrics_sink(settings: MetricsSettings) -> MetricsSink:
    """Build the metrics sink, attaching the InfluxDB writer only when configured."""
    writer = InfluxMeasurementWriter(settings) if settings.is_configured else None
    return MetricsSink(settings, writer)


__all__ = ["InfluxMeasurementWriter", "create_metrics_sink"]
