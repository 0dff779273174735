"""
Unit tests for the per-record sampling-rate estimator and its group adapter.
No SparkSession is needed: everything here is plain pandas/numpy.
"""

import logging
import math

import numpy as np
import pandas as pd
import pytest
from pyspark.sql.types import (
    StructType, StructField, StringType, DoubleType, IntegerType
)

from sensor_pipeline.sampling_rate import (
    RateEstimate, estimate, sampling_rate_for_group, make_group_rate_fn,
    sampling_rate_schema, EMPTY, ZERO_DURATION, MALFORMED
)


class TestEstimate:
    def test_regular_spacing(self):
        """Five samples over two seconds -> 2.5 samples per second."""
        result = estimate([0.0, 0.5, 1.0, 1.5, 2.0])
        assert result.value == 2.5
        assert not result.is_missing

    @pytest.mark.parametrize("timestamps", [
        [0.0, 1.0],
        [0.0, 0.1, 0.25, 0.3, 0.9],
        [100.0, 100.001, 100.5, 250.0],
        list(np.cumsum(np.full(50, 0.02))),
    ])
    def test_strictly_increasing_matches_formula(self, timestamps):
        result = estimate(timestamps)
        expected = len(timestamps) / (timestamps[-1] - timestamps[0])
        assert result.value == expected
        assert result.value > 0, "Rate over an increasing window must be positive"

    def test_irregular_spacing_uses_endpoints_only(self):
        """Inner gaps do not matter, only count and window length."""
        assert estimate([0.0, 0.01, 0.02, 4.0]).value == 1.0

    def test_empty_is_missing(self):
        result = estimate([])
        assert result.is_missing
        assert result.reason == EMPTY

    def test_single_sample_is_missing(self):
        result = estimate([5.0])
        assert result.is_missing
        assert result.reason == ZERO_DURATION

    def test_constant_timestamps_are_missing(self):
        result = estimate([3.0, 3.0, 3.0])
        assert result.is_missing
        assert result.reason == ZERO_DURATION

    def test_missing_is_not_zero(self):
        assert estimate([]).value is None
        assert RateEstimate.missing(EMPTY) != RateEstimate(value=0.0)


class TestOrdering:
    def test_unsorted_input_is_sorted_by_time(self):
        """Default window runs from earliest to latest sample: 3 / 2.0."""
        assert estimate([2.0, 0.0, 1.0]).value == 1.5

    def test_sorted_and_shuffled_agree(self):
        timestamps = [0.0, 0.4, 0.9, 1.3, 2.5]
        shuffled = [1.3, 0.0, 2.5, 0.9, 0.4]
        assert estimate(shuffled).value == estimate(timestamps).value

    def test_delivered_order_when_sorting_disabled(self):
        """Without sorting, first and last are physical: 3 / (1.0 - 2.0)."""
        assert estimate([2.0, 0.0, 1.0], sort_by_time=False).value == -3.0

    def test_delivered_order_zero_window(self):
        result = estimate([1.0, 5.0, 1.0], sort_by_time=False)
        assert result.is_missing
        assert result.reason == ZERO_DURATION


class TestMalformedInput:
    @pytest.mark.parametrize("timestamps", [
        None,
        ["a", "b", "c"],
        [0.0, None, 2.0],
        [0.0, float("nan"), 2.0],
        [0.0, float("inf")],
        [[0.0, 1.0], [2.0, 3.0]],
        5.0,
        [object(), object()],
    ])
    def test_malformed_becomes_missing(self, timestamps):
        result = estimate(timestamps)
        assert result.is_missing, f"{timestamps!r} should not produce a rate"
        assert result.reason == MALFORMED

    def test_pandas_series_with_nan(self):
        result = estimate(pd.Series([0.0, np.nan, 1.0]))
        assert result.is_missing

    def test_datetime_timestamps(self):
        ts = pd.Series(pd.to_datetime(["2024-01-01 00:00:00", "2024-01-01 00:00:01",
                                       "2024-01-01 00:00:02", "2024-01-01 00:00:04"]))
        assert estimate(ts).value == 1.0

    def test_datetime_with_nat_is_missing(self):
        ts = pd.Series(pd.to_datetime(["2024-01-01 00:00:00", None]))
        assert estimate(ts).reason == MALFORMED


class TestIdempotence:
    def test_repeated_calls_are_identical(self):
        timestamps = [0.0, 0.013, 0.031, 0.047, 0.061, 0.2]
        first = estimate(timestamps)
        second = estimate(timestamps)
        assert first == second
        assert math.copysign(1, first.value) == math.copysign(1, second.value)
        assert first.value.hex() == second.value.hex(), "Results must be bitwise identical"

    def test_input_is_not_mutated(self):
        timestamps = np.array([2.0, 0.0, 1.0])
        estimate(timestamps)
        assert list(timestamps) == [2.0, 0.0, 1.0], "Sorting must not touch the caller's array"


class TestGroupAdapter:
    def test_single_key_row(self):
        pdf = pd.DataFrame({"record_id": ["A"] * 3, "t": [0.0, 1.0, 2.0]})
        out = sampling_rate_for_group(("A",), pdf, ["record_id"])
        assert list(out.columns) == ["record_id", "sampling_rate"]
        assert len(out) == 1
        assert out.loc[0, "record_id"] == "A"
        assert out.loc[0, "sampling_rate"] == 1.5

    def test_scalar_key_is_accepted(self):
        pdf = pd.DataFrame({"t": [0.0, 2.0]})
        out = sampling_rate_for_group("A", pdf, ["record_id"])
        assert out.loc[0, "record_id"] == "A"
        assert out.loc[0, "sampling_rate"] == 1.0

    def test_degenerate_group_gives_nan(self):
        pdf = pd.DataFrame({"record_id": ["B"], "t": [10.0]})
        out = sampling_rate_for_group(("B",), pdf, ["record_id"])
        assert pd.isna(out.loc[0, "sampling_rate"])
        assert out["sampling_rate"].dtype == np.float64

    def test_absent_time_column_gives_nan(self):
        pdf = pd.DataFrame({"record_id": ["C", "C"], "x": [1.0, 2.0]})
        out = sampling_rate_for_group(("C",), pdf, ["record_id"])
        assert pd.isna(out.loc[0, "sampling_rate"])

    def test_multi_column_key_forwarded_unchanged(self):
        pdf = pd.DataFrame({"timestamp_s": [1.0, 1.5, 2.0, 3.0]})
        fn = make_group_rate_fn(["device_id", "record_id"], time_column="timestamp_s")
        out = fn(("DEV-7", 42), pdf)
        assert list(out.columns) == ["device_id", "record_id", "sampling_rate"]
        assert out.loc[0, "device_id"] == "DEV-7"
        assert out.loc[0, "record_id"] == 42
        assert out.loc[0, "sampling_rate"] == 2.0

    def test_key_arity_mismatch_raises(self):
        pdf = pd.DataFrame({"t": [0.0, 1.0]})
        with pytest.raises(ValueError):
            sampling_rate_for_group(("A", "extra"), pdf, ["record_id"])

    def test_delivered_order_passed_through(self):
        pdf = pd.DataFrame({"t": [2.0, 0.0, 1.0]})
        fn = make_group_rate_fn(["record_id"], sort_by_time=False)
        assert fn(("A",), pdf).loc[0, "sampling_rate"] == -3.0

    def test_order_column_restores_arrival_order(self):
        """Rows arrive shuffled; sample_index puts them back before first/last are taken."""
        pdf = pd.DataFrame({"sample_index": [1, 2, 0], "t": [0.0, 1.0, 2.0]})
        fn = make_group_rate_fn(["record_id"], sort_by_time=False, order_column="sample_index")
        assert fn(("A",), pdf).loc[0, "sampling_rate"] == -3.0

    def test_order_column_ignored_when_sorting_by_time(self):
        pdf = pd.DataFrame({"sample_index": [1, 2, 0], "t": [0.0, 1.0, 2.0]})
        out = sampling_rate_for_group(("A",), pdf, ["record_id"], order_column="sample_index")
        assert out.loc[0, "sampling_rate"] == 1.5

    def test_missing_reason_is_logged(self, caplog):
        pdf = pd.DataFrame({"t": [4.0, 4.0]})
        with caplog.at_level(logging.DEBUG, logger="SamplingRate"):
            sampling_rate_for_group(("SAME",), pdf, ["record_id"])
        assert "'SAME'" in caplog.text
        assert ZERO_DURATION in caplog.text


class TestOutputSchema:
    def test_schema_copies_key_types(self):
        input_schema = StructType([
            StructField("record_id", StringType(), nullable=False),
            StructField("device_no", IntegerType(), nullable=False),
            StructField("t", DoubleType(), nullable=True),
        ])
        schema = sampling_rate_schema(input_schema, ["record_id", "device_no"])
        assert schema.fieldNames() == ["record_id", "device_no", "sampling_rate"]
        assert schema["device_no"].dataType == IntegerType()
        assert schema["sampling_rate"].dataType == DoubleType()
        assert schema["sampling_rate"].nullable, "sampling_rate must be nullable"

    def test_unknown_key_raises(self):
        input_schema = StructType([StructField("t", DoubleType())])
        with pytest.raises(ValueError):
            sampling_rate_schema(input_schema, ["record_id"])
