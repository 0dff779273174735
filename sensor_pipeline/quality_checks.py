from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.types import StructType, StructField, StringType, DoubleType
from sensor_pipeline.config import SamplingConfig
from sensor_pipeline.logger_setup import get_logger

logger = get_logger("QualityChecks")


def check_one_row_per_record(rates: DataFrame, readings: DataFrame, key_columns):
    """
    Every distinct key in the flattened readings must produce exactly one
    output row: no record dropped by the grouped apply, none duplicated.
    """
    expected = readings.select(*key_columns).distinct().count()
    actual = rates.count()
    distinct_out = rates.select(*key_columns).distinct().count()

    status = "PASS" if actual == expected and distinct_out == actual else "FAIL"

    logger.info(f"Row Per Record Check | Expected: {expected:,} | Output: {actual:,} | Distinct: {distinct_out:,} | {status}")
    return {
        "check_name": "one_row_per_record",
        "metric_value": float(actual),
        "threshold": float(expected),
        "status": status,
        "detail": f"Records in={expected:,} | Rows out={actual:,} | Distinct keys out={distinct_out:,}"
    }


def check_missing_rate(rates: DataFrame):
    """
    Share of records whose sampling rate is missing (degenerate or malformed).
    Missing values are expected; a high share usually means bad upstream data.
    """
    total = rates.count()
    missing = rates.filter(F.col(SamplingConfig.RATE_COLUMN).isNull()).count()
    missing_pct = missing / total if total > 0 else 0
    status = "PASS" if missing_pct <= SamplingConfig.MAX_MISSING_RATE else "WARN"

    logger.info(f"Missing Rate Check | Missing: {missing:,} | Pct: {missing_pct:.1%} | {status}")
    return {
        "check_name": "missing_sampling_rate",
        "metric_value": float(round(missing_pct * 100, 2)),
        "threshold": SamplingConfig.MAX_MISSING_RATE * 100,
        "status": status,
        "detail": f"{missing:,} of {total:,} records without a sampling rate"
    }


def check_positive_rates(rates: DataFrame):
    """With time-sorted windows a defined rate is always > 0."""
    rate = F.col(SamplingConfig.RATE_COLUMN)
    non_positive = rates.filter(rate.isNotNull() & (rate <= 0)).count()
    status = "PASS" if non_positive == 0 else "FAIL"

    logger.info(f"Positive Rate Check | Invalid: {non_positive:,} | {status}")
    return {
        "check_name": "sampling_rate_positive",
        "metric_value": float(non_positive),
        "threshold": 0.0,
        "status": status,
        "detail": f"{non_positive:,} records with sampling_rate <= 0"
    }


def check_schema(rates: DataFrame, key_columns):
    expected_cols = list(key_columns) + [SamplingConfig.RATE_COLUMN]
    actual_cols = rates.columns

    missing = [c for c in expected_cols if c not in actual_cols]
    extra = [c for c in actual_cols if c not in expected_cols]
    rate_type = rates.schema[SamplingConfig.RATE_COLUMN].dataType if not missing else None

    status = "PASS" if not missing and not extra and isinstance(rate_type, DoubleType) else "FAIL"

    detail_parts = []
    if missing:
        detail_parts.append(f"Missing: {missing}")
    if extra:
        detail_parts.append(f"Extra: {extra}")
    if rate_type is not None and not isinstance(rate_type, DoubleType):
        detail_parts.append(f"{SamplingConfig.RATE_COLUMN} has type {rate_type.simpleString()}")
    if not detail_parts:
        detail_parts.append("Schema matches exactly")

    detail = " | ".join(detail_parts)
    logger.info(f"Schema Check | {status} | {detail}")

    return {
        "check_name": "schema_validation",
        "metric_value": float(len(actual_cols)),
        "threshold": float(len(expected_cols)),
        "status": status,
        "detail": detail
    }


def build_report(spark: SparkSession, all_results: list) -> DataFrame:
    report_schema = StructType([
        StructField("check_name",    StringType(), nullable=False),
        StructField("metric_value",  DoubleType(), nullable=True),
        StructField("threshold",     DoubleType(), nullable=True),
        StructField("status",        StringType(), nullable=False),
        StructField("detail",        StringType(), nullable=True),
    ])

    report_df = spark.createDataFrame(all_results, schema=report_schema)
    return report_df


def run_all_checks(spark: SparkSession, rates: DataFrame, readings: DataFrame, key_columns=None):
    """
    Run every output check and return (report DataFrame, overall status).
    WARN results do not fail the run.
    """
    key_columns = list(key_columns or SamplingConfig.KEY_COLUMNS)
    logger.info("Running sampling-rate quality checks...")
    rates.cache()

    results = [
        check_schema(rates, key_columns),
        check_one_row_per_record(rates, readings, key_columns),
        check_missing_rate(rates),
        check_positive_rates(rates),
    ]

    rates.unpersist()

    report_df = build_report(spark, results)

    fail_count = sum(1 for r in results if r["status"] == "FAIL")
    warn_count = sum(1 for r in results if r["status"] == "WARN")
    overall_status = "PASSED" if fail_count == 0 else "FAILED"

    logger.info(f"Quality Report: {len(results)} checks | FAIL: {fail_count} | WARN: {warn_count} | Overall: {overall_status}")

    return report_df, overall_status
