"""
Business event metrics - Fire-and-forget writes to the time-series database.

Input is validated synchronously so that programming errors surface to the
caller. Delivery happens on a background executor; delivery failures are
logged and never reach the code that produced the event. A sink without a
configured database silently drops events.
"""

import logging
import math
from collections.abc import Mapping
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from .exceptions import ValidationError
from .ports import MeasurementWriter

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


@dataclass(frozen=True)
class MetricsSettings:
    """Time-series database configuration. Built once at startup."""

    enabled: bool = False
    host: str | None = None
    port: int = 8086
    protocol: str = "http"
    database: str | None = None

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.host) and bool(self.database)


class MetricsSink:
    """Validates measurements and hands them to a ``MeasurementWriter`` in the background."""

    def __init__(
        self,
        settings: MetricsSettings,
        writer: MeasurementWriter | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._settings = settings
        self._writer = writer
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="metrics")

    @property
    def enabled(self) -> bool:
        return self._settings.is_configured and self._writer is not None

    def emit(
        self,
        measurement: str,
        fields: Mapping[str, Any],
        tags: Mapping[str, Any],
        time: datetime | None = None,
    ) -> None:
        """
        Record one point of ``measurement``.

        ``time`` may also be given as ``fields["time"]``; it defaults to now.

        Raises:
            ValidationError: Empty measurement name, non-mapping fields or
                tags, non-scalar or non-finite field value, or a time that is
                not a datetime
        """
        if not isinstance(measurement, str) or not measurement:
            raise ValidationError("no `measurementName` defined.")
        if not isinstance(fields, Mapping):
            raise ValidationError("no `fields` defined.")
        if not isinstance(tags, Mapping):
            raise ValidationError("no `tags` defined.")

        if time is None:
            time = fields.get("time")
        if time is not None and not isinstance(time, datetime):
            raise ValidationError("expected `time` to be a datetime.")

        point_fields = {key: value for key, value in fields.items() if key != "time"}
        for key, value in point_fields.items():
            if not isinstance(value, _SCALAR_TYPES):
                raise ValidationError(f"field `{key}` must be a string, number or boolean.")
            if isinstance(value, float) and not math.isfinite(value):
                raise ValidationError(f"field `{key}` must be a finite number.")

        point = {
            "fields": point_fields,
            "tags": {key: str(value) for key, value in tags.items()},
            "time": time or datetime.now(UTC),
        }

        if not self.enabled:
            logger.debug("Metrics not configured, dropping %s", measurement)
            return

        try:
            self._executor.submit(self._write, measurement, point)
        except RuntimeError:
            logger.warning("Metrics sink closed, dropping %s", measurement)

    def close(self) -> None:
        """Wait for queued writes and release the executor. Later events are dropped."""
        self._executor.shutdown(wait=True)

    def _write(self, measurement: str, point: dict[str, Any]) -> None:
        try:
            self._writer.write_points(measurement, [point])
        except Exception:
            logger.warning("Failed to write measurement %s", measurement, exc_info=True)


class MessagePosition(str, Enum):
    """Where a message sits in its conversation."""

    FIRST = "first"
    FIRST_REPLY = "firstReply"
    OTHER = "other"


@dataclass
class MessageStatsRecorder:
    """Emits ``messageSent`` events for delivered messages."""

    sink: MetricsSink
    long_message_minimum_length: int = 170

    def record_message_sent(
        self,
        content: str,
        position: MessagePosition,
        sent_at: datetime | None = None,
        reply_delay: timedelta | None = None,
    ) -> None:
        length = len(content)
        fields: dict[str, Any] = {"messageLength": length}
        if reply_delay is not None:
            fields["timeToFirstReply"] = int(reply_delay.total_seconds() * 1000)

        tags = {
            "messageLengthType": "long" if length >= self.long_message_minimum_length else "short",
            "position": position.value,
        }
        self.sink.emit("messageSent", fields, tags, time=sent_at)
