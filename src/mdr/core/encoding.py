"""Metric → document encoding and non-finite float handling."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from mdr.models.metric import FieldValue, Metric

TIMESTAMP_KEY = "@timestamp"
MEASUREMENT_KEY = "measurement_name"
TAG_KEY = "tag"


class FloatPolicy(StrEnum):
    """What to do with NaN and ±Inf field values."""

    NONE = "none"
    DROP = "drop"
    REPLACE = "replace"


def sanitize_fields(
    fields: dict[str, FieldValue],
    policy: FloatPolicy = FloatPolicy.NONE,
    magnitude: float = 0.0,
) -> dict[str, FieldValue]:
    """Return a copy of ``fields`` with non-finite floats handled per ``policy``.

    Under ``NONE`` values are left untouched and the store will reject them.
    """
    out: dict[str, FieldValue] = {}
    for key, value in fields.items():
        if policy is FloatPolicy.NONE or not isinstance(value, float) or math.isfinite(value):
            out[key] = value
            continue
        if policy is FloatPolicy.DROP:
            continue
        # NaN and +Inf map to +magnitude, -Inf to -magnitude
        out[key] = -magnitude if value < 0 else magnitude
    return out


def encode_document(
    metric: Metric,
    float_policy: FloatPolicy = FloatPolicy.NONE,
    magnitude: float = 0.0,
) -> dict[str, Any]:
    """Build the document stored for one metric sample.

    The field bag sits under the measurement name, next to the fixed keys;
    :class:`~mdr.models.metric.Metric` rejects names equal to those keys.
    """
    return {
        TIMESTAMP_KEY: metric.utc_timestamp,
        MEASUREMENT_KEY: metric.name,
        TAG_KEY: dict(metric.tags),
        metric.name: sanitize_fields(metric.fields, FloatPolicy(float_policy), magnitude),
    }
