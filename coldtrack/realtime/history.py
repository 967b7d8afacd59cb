from collections import deque
from typing import Deque, Optional
from zoneinfo import ZoneInfo

from coldtrack.core.config import settings
from coldtrack.schemas import HistoryPoint, LiveReading


def format_display_time(reading: LiveReading, tz: ZoneInfo) -> str:
    """Render a reading's timestamp as HH:MM:SS in the display timezone."""
    return reading.observed_at.astimezone(tz).strftime("%H:%M:%S")


def format_last_update(reading: LiveReading, tz: ZoneInfo) -> str:
    """Render a reading's timestamp as a full local date-time (dd-mm-YYYY HH:MM:SS)."""
    return reading.observed_at.astimezone(tz).strftime("%d-%m-%Y %H:%M:%S")


class ReadingHistory:
    """
    Bounded, arrival-ordered temperature history for the active sensor.

    - Appends to the tail, evicts from the head once `max_points` is exceeded.
    - No deduplication and no reordering: every accepted emission is a point,
      even when `ts` repeats or goes backwards.
    """

    def __init__(self, max_points: Optional[int] = None, timezone: Optional[str] = None) -> None:
        self.max_points = max_points or settings.history_size
        self.tz = ZoneInfo(timezone or settings.display_timezone)
        self._points: Deque[HistoryPoint] = deque(maxlen=self.max_points)

    def append(self, point: HistoryPoint) -> None:
        self._points.append(point)

    def append_reading(self, reading: LiveReading) -> HistoryPoint:
        point = HistoryPoint(
            display_time=format_display_time(reading, self.tz),
            temperature=reading.temperature,
        )
        self.append(point)
        return point

    def clear(self) -> None:
        self._points.clear()

    @property
    def points(self) -> list[HistoryPoint]:
        return list(self._points)

    def temperatures(self) -> list[float]:
        return [point.temperature for point in self._points]

    def __len__(self) -> int:
        return len(self._points)
