"""
InfluxDB writer adapter - Implements MeasurementWriter protocol.

Writes points through the ``influxdb`` client with millisecond precision.
The client owns line protocol encoding and escaping.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from influxdb import InfluxDBClient

from waypost.domain.metrics import MetricsSettings

logger = logging.getLogger(__name__)


class InfluxMeasurementWriter:
    """
    Implements MeasurementWriter protocol with InfluxDBClient.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        settings: MetricsSettings,
        timeout: float = 5.0,
        client: InfluxDBClient | None = None,
    ) -> None:
        """
        Initialize the writer.

        Args:
            settings: Configured metrics settings
            timeout: Per-request timeout in seconds
            client: Prebuilt client, built from ``settings`` when omitted
        """
        use_ssl = settings.protocol == "https"
        self._client = client or InfluxDBClient(
            host=settings.host,
            port=settings.port,
            database=settings.database,
            ssl=use_ssl,
            verify_ssl=use_ssl,
            timeout=timeout,
        )

    def write_points(self, measurement: str, points: Sequence[Mapping[str, Any]]) -> None:
        """
        Write ``points`` to ``measurement``.

        Points without fields cannot be stored and are skipped.

        Raises:
            InfluxDBClientError: The server rejected the write
            requests.RequestException: Transport failure
        """
        body = [
            {
                "measurement": measurement,
                "tags": dict(point.get("tags", {})),
                "fields": dict(point["fields"]),
                "time": point["time"],
            }
            for point in points
            if point["fields"]
        ]

        skipped = len(points) - len(body)
        if skipped:
            logger.info("Skipped %d point(s) of %s without fields", skipped, measurement)
        if not body:
            return

        self._client.write_points(body, time_precision="ms")
        logger.debug("Wrote %d point(s) to %s", len(body), measurement)
