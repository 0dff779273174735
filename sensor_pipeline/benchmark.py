"""
Strategy benchmark
==================
Times every way of computing per-record sampling rates on the same
flattened readings. Each run forces full execution through the `noop`
data source, so the timing covers the shuffle and the Python workers but
no output I/O.

Usage:
  python -m sensor_pipeline.benchmark
  python -m sensor_pipeline.benchmark --strategy apply_in_pandas --strategy native --repeats 5
  python -m sensor_pipeline.benchmark --path s3a://bucket/sensor_readings --no-schema
"""

import argparse
import time

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.types import StructType, StructField, StringType, IntegerType, DoubleType, LongType

from sensor_pipeline.config import SamplingConfig
from sensor_pipeline.extract import read_sensor_data
from sensor_pipeline.logger_setup import get_logger, PipelineTracker
from sensor_pipeline.pipeline import build_spark_session
from sensor_pipeline.strategies import STRATEGIES, compute_sampling_rates
from sensor_pipeline.transform import run_all_transforms

logger = get_logger("Benchmark")

TIMING_SCHEMA = StructType([
    StructField("strategy", StringType(),  nullable=False),
    StructField("run",      IntegerType(), nullable=False),
    StructField("seconds",  DoubleType(),  nullable=False),
    StructField("rows",     LongType(),    nullable=True),
])


def time_strategy(df: DataFrame, strategy: str, key_columns=None, time_column=None,
                  sort_by_time=SamplingConfig.SORT_BY_TIME):
    """Run one strategy to completion and return elapsed wall-clock seconds."""
    start = time.perf_counter()
    rates = compute_sampling_rates(
        df, key_columns=key_columns, time_column=time_column,
        strategy=strategy, sort_by_time=sort_by_time,
    )
    rates.write.format("noop").mode("overwrite").save()
    return time.perf_counter() - start


def run_benchmark(spark: SparkSession, df: DataFrame, strategies=None,
                  repeats: int = SamplingConfig.BENCHMARK_REPEATS,
                  key_columns=None, tracker: PipelineTracker = None) -> DataFrame:
    """
    Time each strategy `repeats` times on the same input and return the
    timings as a DataFrame (strategy, run, seconds, rows).
    The input is cached first so the first strategy does not pay for the scan.
    """
    strategies = list(strategies or STRATEGIES)
    unknown = [s for s in strategies if s not in STRATEGIES]
    if unknown:
        raise ValueError(f"Unknown strategy {unknown}. Choose from {STRATEGIES}")
    if repeats < 1:
        raise ValueError("repeats must be at least 1")

    df = df.cache()
    row_count = df.count()
    logger.info(f"Benchmarking {strategies} on {row_count:,} rows, {repeats} run(s) each")

    timings = []
    for strategy in strategies:
        for run in range(1, repeats + 1):
            seconds = time_strategy(df, strategy, key_columns=key_columns)
            if tracker is not None:
                tracker.timings.setdefault(f"rates:{strategy}", []).append(seconds)
            logger.info(f"  {strategy:<16} run {run}: {seconds:.3f}s")
            timings.append((strategy, run, float(seconds), row_count))

    df.unpersist()
    return spark.createDataFrame(timings, schema=TIMING_SCHEMA)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Benchmark per-record sampling-rate strategies")
    parser.add_argument("--path", default=None, help="Sensor Parquet path (defaults to SENSOR_DATA_PATH)")
    parser.add_argument("--strategy", action="append", choices=STRATEGIES,
                        help="Strategy to time; repeat the flag for several (default: all)")
    parser.add_argument("--repeats", type=int, default=SamplingConfig.BENCHMARK_REPEATS)
    parser.add_argument("--no-schema", action="store_true",
                        help="Read Parquet without the explicit nested schema")
    parser.add_argument("--sensor", default=SamplingConfig.SENSOR_FILTER,
                        help="Keep only this sensor name")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    tracker = PipelineTracker(logger, name="SAMPLING-RATE BENCHMARK")
    tracker.start()

    spark = build_spark_session()
    status = "PASSED"
    try:
        with tracker.timed_stage("read"):
            raw_df, raw_count = read_sensor_data(spark, path=args.path, use_schema=not args.no_schema)
        tracker.log_metric("sensor_records", f"{raw_count:,}")

        readings = run_all_transforms(raw_df, sensor_name=args.sensor)
        timings = run_benchmark(
            spark, readings, strategies=args.strategy,
            repeats=args.repeats, tracker=tracker,
        )
        timings.groupBy("strategy").avg("seconds").orderBy("avg(seconds)").show(truncate=False)

    except Exception as e:
        status = "FAILED"
        logger.error(f"Benchmark failed: {str(e)}", exc_info=True)
        raise

    finally:
        tracker.finish(validation_status=status)
        spark.stop()


if __name__ == "__main__":
    main()
