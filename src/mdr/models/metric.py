"""Metric sample model and the batch container passed between pipeline stages."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator, model_validator

FieldValue = Union[bool, int, float, str]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

# document keys written next to the field bag; a measurement may not shadow them
RESERVED_NAMES = frozenset({"@timestamp", "measurement_name", "tag"})


def _micros_ns(ts: datetime) -> int:
    delta = ts - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


def datetime_from_ns(value: int) -> datetime:
    """UTC datetime for an epoch nanosecond count, truncated to microseconds."""
    seconds, ns = divmod(value, 1_000_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=ns // 1_000)


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a digest of ``data``."""
    h = _FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV64_PRIME) & _MASK64
    return h


class Metric(BaseModel):
    """A single time-series sample: measurement name, timestamp, tags and fields.

    Naive timestamps are interpreted as UTC. ``datetime`` stops at
    microseconds, so sources with nanosecond clocks pass the exact value in
    ``timestamp_ns`` (see :meth:`from_ns`); it must agree with ``timestamp``
    down to the microsecond.
    """

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    timestamp: datetime
    tags: dict[str, str] = Field(default_factory=dict)
    fields: dict[str, FieldValue] = Field(default_factory=dict)
    series_hash: int | None = Field(
        default=None,
        ge=0,
        le=_MASK64,
        description="Caller-supplied series identity; computed from name and tags if absent",
    )
    timestamp_ns: int | None = Field(
        default=None,
        description="Exact nanoseconds since the Unix epoch, when the source has them",
    )

    @field_validator("name")
    @classmethod
    def _not_reserved(cls, v: str) -> str:
        if v in RESERVED_NAMES:
            raise ValueError(f"measurement name {v!r} collides with a document key")
        return v

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def _ns_matches_timestamp(self) -> Metric:
        if self.timestamp_ns is not None:
            truncated = self.timestamp_ns - self.timestamp_ns % 1_000
            if truncated != _micros_ns(self.timestamp):
                raise ValueError("timestamp_ns does not match timestamp")
        return self

    @classmethod
    def from_ns(cls, name: str, time_ns: int, **kwargs: Any) -> Metric:
        """Build a metric from an integer epoch timestamp without losing precision."""
        return cls(name=name, timestamp=datetime_from_ns(time_ns), timestamp_ns=time_ns, **kwargs)

    @property
    def utc_timestamp(self) -> datetime:
        return self.timestamp.astimezone(timezone.utc)

    @property
    def time_ns(self) -> int:
        """Nanoseconds since the Unix epoch."""
        if self.timestamp_ns is not None:
            return self.timestamp_ns
        return _micros_ns(self.timestamp)

    def hash_id(self) -> int:
        """Series identity hash: the supplied ``series_hash`` or FNV-1a over name and sorted tags."""
        if self.series_hash is not None:
            return self.series_hash
        buf = bytearray(self.name.encode())
        buf += b"\n"
        for key in sorted(self.tags):
            buf += key.encode() + b"\n"
            buf += self.tags[key].encode() + b"\n"
        return fnv1a_64(bytes(buf))


@dataclass
class MetricBatch:
    """Ordered batch of metrics flowing through the pipeline."""

    metrics: list[Metric] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)

    def add(self, metric: Metric) -> None:
        self.metrics.append(metric)

    def names(self) -> list[str]:
        """Distinct measurement names in first-seen order."""
        return list(dict.fromkeys(m.name for m in self.metrics))

    def __iter__(self) -> Iterator[Metric]:
        return iter(self.metrics)

    def __len__(self) -> int:
        return len(self.metrics)

    def __repr__(self) -> str:
        return (
            f"MetricBatch("
            f"metrics={len(self.metrics)}, "
            f"names={len(self.names())}, "
            f"metadata_keys={list(self.metadata.keys())})"
        )
