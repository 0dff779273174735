"""
Per-record sampling rate
========================
The sampling rate of one capture session is estimated from the sample count
and the elapsed time between the first and last timestamp:

    rate = n / (t_last - t_first)

Degenerate sessions (no samples, a single sample, or all samples sharing one
timestamp) and malformed ones (non-numeric, null, NaN or infinite timestamps) have no
defined rate. They come back as a missing estimate instead of an exception,
so one bad record never fails the whole grouped job.

Everything here is stateless. Spark may run a group twice on task retry or
speculative execution and must get the same answer both times.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from pyspark.sql.types import StructType, StructField, DoubleType

from sensor_pipeline.config import SamplingConfig
from sensor_pipeline.logger_setup import get_logger

logger = get_logger("SamplingRate")

EMPTY = "empty"
ZERO_DURATION = "zero_duration"
MALFORMED = "malformed"


@dataclass(frozen=True)
class RateEstimate:
    value: Optional[float] = None
    reason: Optional[str] = None

    @property
    def is_missing(self) -> bool:
        return self.value is None

    @classmethod
    def missing(cls, reason: str) -> "RateEstimate":
        return cls(value=None, reason=reason)


def _as_seconds(timestamps) -> np.ndarray:
    """
    Convert a sequence of timestamps to a 1-D float64 array of seconds.
    Datetime input (Spark TimestampType arrives as datetime64[ns]) is turned
    into epoch seconds. Raises ValueError/TypeError on anything else.
    """
    if timestamps is None:
        raise TypeError("timestamps is None")

    raw = np.asarray(timestamps)
    if np.issubdtype(raw.dtype, np.datetime64):
        if np.isnat(raw).any():
            raise ValueError("NaT in timestamps")
        return raw.astype("datetime64[ns]").astype("int64") / 1e9

    values = np.asarray(raw, dtype="float64")
    if values.ndim != 1:
        raise ValueError(f"expected a 1-D sequence, got {values.ndim} dimension(s)")
    return values


def estimate(timestamps, sort_by_time: bool = SamplingConfig.SORT_BY_TIME) -> RateEstimate:
    """
    Estimate samples-per-second for one record.

    With sort_by_time (the default) the window runs from the earliest to the
    latest timestamp. Without it the first and last elements are taken in the
    order they were delivered, which is only meaningful if the caller has
    already ordered the rows.
    """
    try:
        values = _as_seconds(timestamps)
    except (TypeError, ValueError, OverflowError) as exc:
        logger.debug(f"Malformed timestamps: {exc}")
        return RateEstimate.missing(MALFORMED)

    n = values.size
    if n == 0:
        return RateEstimate.missing(EMPTY)

    if not np.isfinite(values).all():
        logger.debug("Malformed timestamps: null, NaN or infinite values")
        return RateEstimate.missing(MALFORMED)

    if sort_by_time:
        values = np.sort(values)

    duration = values[-1] - values[0]
    if duration == 0:
        return RateEstimate.missing(ZERO_DURATION)

    return RateEstimate(value=float(n / duration))


def sampling_rate_for_group(key, pdf: pd.DataFrame, key_columns,
                            time_column: str = SamplingConfig.TIME_COLUMN,
                            sort_by_time: bool = SamplingConfig.SORT_BY_TIME,
                            order_column: Optional[str] = None) -> pd.DataFrame:
    """
    Group adapter for applyInPandas: forwards the group key unchanged and
    shapes the estimate into a single row [*key_columns, sampling_rate].

    Without sort_by_time the rows are first put in order_column order
    (when that column is present), so the result does not depend on the
    order the shuffle delivered them in.
    """
    key_columns = list(key_columns)
    key = tuple(key) if isinstance(key, (tuple, list)) else (key,)
    if len(key) != len(key_columns):
        raise ValueError(
            f"Group key {key!r} does not match key columns {key_columns}"
        )

    if time_column in pdf.columns:
        if not sort_by_time and order_column and order_column in pdf.columns:
            pdf = pdf.sort_values(order_column, kind="mergesort")
        result = estimate(pdf[time_column], sort_by_time=sort_by_time)
    else:
        result = RateEstimate.missing(MALFORMED)

    if result.is_missing:
        logger.debug(f"Record {key!r}: sampling rate missing ({result.reason}, {len(pdf)} rows)")

    row = {col: [value] for col, value in zip(key_columns, key)}
    row[SamplingConfig.RATE_COLUMN] = [np.nan if result.is_missing else result.value]
    return pd.DataFrame(row, columns=key_columns + [SamplingConfig.RATE_COLUMN])


def make_group_rate_fn(key_columns,
                       time_column: str = SamplingConfig.TIME_COLUMN,
                       sort_by_time: bool = SamplingConfig.SORT_BY_TIME,
                       order_column: Optional[str] = SamplingConfig.ORDER_COLUMN):
    """Bind the grouping parameters so Spark sees a plain (key, pdf) function."""
    key_columns = list(key_columns)

    def apply_sampling_rate(key, pdf: pd.DataFrame) -> pd.DataFrame:
        return sampling_rate_for_group(
            key, pdf, key_columns,
            time_column=time_column,
            sort_by_time=sort_by_time,
            order_column=order_column,
        )

    return apply_sampling_rate


def sampling_rate_schema(input_schema: StructType, key_columns) -> StructType:
    """
    Declared output schema: the key fields copied from the input schema
    (always nullable) followed by a nullable double sampling_rate.
    """
    names = input_schema.fieldNames()
    unknown = [col for col in key_columns if col not in names]
    if unknown:
        raise ValueError(f"Key column(s) {unknown} not found in input schema {names}")

    key_fields = [
        StructField(col, input_schema[col].dataType, nullable=True)
        for col in key_columns
    ]
    return StructType(key_fields + [
        StructField(SamplingConfig.RATE_COLUMN, DoubleType(), nullable=True)
    ])
