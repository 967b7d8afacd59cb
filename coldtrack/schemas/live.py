import json
import math
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class LiveReading(BaseModel):
    """
    Snapshot published at a sensor's live feed path.

    Example:
        {"temp": -18.4, "state": "NORMAL", "ts": 1735689600}

    `ts` is seconds since the epoch. `state` is kept as an open string;
    the feed has been seen to publish values beyond the documented ones.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    temperature: float = Field(alias="temp")
    state: str = "unknown"
    timestamp_seconds: Union[int, float] = Field(alias="ts")

    @model_validator(mode="before")
    @classmethod
    def require_numeric_fields(cls, data: Any) -> Any:
        """
        Reject payloads whose temp or ts are missing or not real numbers.
        Strings that look like numbers are rejected too.
        """
        if not isinstance(data, dict):
            raise ValueError("live payload must be an object")

        for key, alias in (("temperature", "temp"), ("timestamp_seconds", "ts")):
            value = data.get(alias, data.get(key))
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{alias}' must be numeric, got {type(value).__name__}")
            if not math.isfinite(value):
                raise ValueError(f"'{alias}' must be finite")

        state = data.get("state")
        if state is None or state == "":
            data = {**data, "state": "unknown"}
        elif not isinstance(state, str):
            data = {**data, "state": str(state)}

        return data

    @property
    def observed_at(self) -> datetime:
        """Arrival timestamp in UTC, truncated to millisecond precision."""
        millis = int(round(self.timestamp_seconds * 1000))
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


class HistoryPoint(BaseModel):
    """One charted point of the realtime history."""
    display_time: str
    temperature: float


def parse_live_payload(payload: Union[bytes, str, dict, None]) -> Optional[LiveReading]:
    """
    Normalize a raw feed value into a LiveReading.

    Returns None for anything malformed: empty values, undecodable JSON,
    non-object JSON, or objects missing a numeric temp/ts.

    Examples:
        >>> parse_live_payload(b'{"temp": -18.5, "state": "NORMAL", "ts": 1735689600}').temperature
        -18.5

        >>> parse_live_payload(None) is None
        True
    """
    if payload is None:
        return None

    if isinstance(payload, (bytes, bytearray)):
        if not payload:
            return None
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return None

    try:
        return LiveReading.model_validate(payload)
    except ValidationError:
        return None
