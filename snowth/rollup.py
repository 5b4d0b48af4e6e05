"""
Rollup reads: numeric values aggregated over a fixed span
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Mapping, Optional, Sequence, Union
from urllib.parse import quote_plus

from .decoding import decode_json
from .errors import DecodeError

Timestamp = Union[datetime, int, float]


def to_epoch(value: Timestamp) -> int:
    """Epoch seconds for a datetime or numeric timestamp"""
    if isinstance(value, datetime):
        return int(value.timestamp())
    return int(value)


@dataclass(frozen=True)
class RollupValue:
    """One rollup data point"""
    timestamp: int
    value: Optional[float]

    @classmethod
    def from_list(cls, entry):
        if not isinstance(entry, list) or len(entry) < 2:
            given = len(entry) if isinstance(entry, list) else 0
            raise DecodeError(f"rollup value should contain two entries, {given} given in payload")
        timestamp, value = entry[0], entry[1]
        try:
            return cls(int(timestamp), None if value is None else float(value))
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Invalid rollup value {entry!r}: {e}") from e


def decode_rollup_values(body: bytes, headers: Optional[Mapping[str, str]] = None) -> List[RollupValue]:
    """Decode a rollup response: a JSON list of [timestamp, value] pairs"""
    data = decode_json(body, headers)
    if not isinstance(data, list):
        raise DecodeError(f"Expected a list of rollup values, got {type(data).__name__}")
    return [RollupValue.from_list(entry) for entry in data]


def rollup_metric_name(metric: str, tags: Optional[Sequence[str]] = None) -> str:
    """Metric name with stream tags appended in the store's ST[...] form"""
    if tags:
        return f"{metric}|ST[{','.join(tags)}]"
    return metric


def rollup_path(check_uuid: str, metric: str, rollup_span: int, start: Timestamp,
                end: Timestamp, tags: Optional[Sequence[str]] = None) -> str:
    """
    Build the rollup read path.

    The range is widened to whole spans: start is rounded down and end is
    rounded down then extended by one span.
    """
    if rollup_span <= 0:
        raise ValueError(f"rollup_span must be positive, got {rollup_span}")
    start_ts = to_epoch(start)
    end_ts = to_epoch(end)
    start_ts -= start_ts % rollup_span
    end_ts = end_ts - end_ts % rollup_span + rollup_span

    name = quote_plus(rollup_metric_name(metric, tags))
    return (f"/rollup/{check_uuid}/{name}"
            f"?start_ts={start_ts}&end_ts={end_ts}&rollup_span={rollup_span}s")
