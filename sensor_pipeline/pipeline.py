"""
Sensor Sampling-Rate Pipeline
Dataset : nested sensor captures (one row per record, readings as array<struct>)
Version : 1.0.0

Pipeline Flow:
  Parquet -> Extract -> Flatten -> [Join metadata] -> Per-record sampling rate
          -> Quality Checks -> Parquet

The metadata join runs when JOIN_RECORD_METADATA=true (SamplingConfig.JOIN_METADATA)
or when run(with_metadata=True) is called.
"""

import os
import sys

# Workers must run the same interpreter as the driver.
os.environ.setdefault("PYSPARK_PYTHON", sys.executable)
os.environ.setdefault("PYSPARK_DRIVER_PYTHON", sys.executable)

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F

from sensor_pipeline.config import SparkConfig, StorageConfig, SamplingConfig
from sensor_pipeline.logger_setup import get_logger, PipelineTracker
from sensor_pipeline.extract import read_sensor_data, read_record_metadata
from sensor_pipeline.transform import run_all_transforms, join_record_metadata, summarize_records
from sensor_pipeline.strategies import compute_sampling_rates
from sensor_pipeline.quality_checks import run_all_checks
from sensor_pipeline.load import write_flattened, write_sampling_rates, write_quality_report

logger = get_logger("Pipeline")


def build_spark_session() -> SparkSession:
    """
    Build the SparkSession. Arrow is switched on because every pandas-based
    strategy moves data through it; S3A settings are added only when an
    object-storage endpoint is configured.
    """
    builder = (
        SparkSession.builder
        .appName(SparkConfig.APP_NAME)
        .master(SparkConfig.MASTER)
        .config("spark.executor.memory",                           SparkConfig.EXECUTOR_MEMORY)
        .config("spark.driver.memory",                             SparkConfig.DRIVER_MEMORY)
        .config("spark.sql.shuffle.partitions",                    SparkConfig.SHUFFLE_PARTITIONS)
        .config("spark.sql.execution.arrow.pyspark.enabled",       SparkConfig.ARROW_ENABLED)
        .config("spark.sql.execution.arrow.maxRecordsPerBatch",    SparkConfig.ARROW_MAX_RECORDS_PER_BATCH)
        .config("spark.sql.session.timeZone",                      SparkConfig.SESSION_TIMEZONE)
    )
    for key, value in StorageConfig.spark_options().items():
        builder = builder.config(key, value)

    spark = builder.getOrCreate()
    spark.sparkContext.setLogLevel(SparkConfig.LOG_LEVEL)
    if StorageConfig.is_enabled():
        logger.info(f"Object storage endpoint: {StorageConfig.ENDPOINT}")
    return spark


def prepare_readings(spark: SparkSession, raw_df: DataFrame, with_metadata: bool = None,
                     metadata_path: str = None) -> DataFrame:
    """
    Flatten the raw captures and, when with_metadata is on (default:
    SamplingConfig.JOIN_METADATA), left-join the per-record metadata.
    """
    if with_metadata is None:
        with_metadata = SamplingConfig.JOIN_METADATA

    readings = run_all_transforms(raw_df, sensor_name=SamplingConfig.SENSOR_FILTER)
    if with_metadata:
        logger.info("Joining record metadata")
        readings = join_record_metadata(readings, read_record_metadata(spark, path=metadata_path))
    return readings


def run(strategy: str = None, use_schema: bool = True, with_metadata: bool = None):
    tracker = PipelineTracker(logger)
    tracker.start()

    spark = build_spark_session()
    validation_status = "PASSED"
    strategy = strategy or SamplingConfig.DEFAULT_STRATEGY

    try:
        # STAGE 1: EXTRACT
        logger.info("--- STAGE 1: EXTRACT ---")
        with tracker.timed_stage("extract"):
            raw_df, raw_count = read_sensor_data(spark, use_schema=use_schema)
        tracker.log_stage("Extract", record_count=raw_count)
        tracker.log_metric("sensor_records", f"{raw_count:,}")

        # STAGE 2: FLATTEN
        logger.info("--- STAGE 2: FLATTEN ---")
        readings = prepare_readings(spark, raw_df, with_metadata=with_metadata)
        readings.cache()
        reading_count = readings.count()
        tracker.log_stage("Flatten", record_count=reading_count)
        tracker.log_metric("flattened_readings", f"{reading_count:,}")

        # STAGE 3: WRITE INTERMEDIATE
        logger.info("--- STAGE 3: WRITE FLATTENED ---")
        with tracker.timed_stage("write_flattened"):
            write_flattened(readings)

        # STAGE 4: SAMPLING RATES
        logger.info(f"--- STAGE 4: SAMPLING RATES ({strategy}) ---")
        with tracker.timed_stage(f"rates:{strategy}"):
            rates = compute_sampling_rates(readings, strategy=strategy)
            rates = rates.cache()
            rate_count = rates.count()
        tracker.log_stage("Sampling Rates", record_count=rate_count)
        missing_count = rates.filter(F.col(SamplingConfig.RATE_COLUMN).isNull()).count()
        tracker.log_rate_coverage(rate_count, missing_count)
        summarize_records(readings).orderBy("record_id").show(5, truncate=False)

        # STAGE 5: QUALITY CHECKS
        logger.info("--- STAGE 5: DATA QUALITY ---")
        report_df, validation_status = run_all_checks(spark, rates, readings)
        report_df.show(truncate=False)
        tracker.log_metric("quality_check_status", validation_status)

        # STAGE 6: WRITE RESULTS
        logger.info("--- STAGE 6: WRITE RESULTS ---")
        write_sampling_rates(rates)
        write_quality_report(report_df)
        tracker.log_stage("Rates Write", record_count=rate_count)

        rates.unpersist()
        readings.unpersist()

    except Exception as e:
        validation_status = "FAILED"
        logger.error(f"Pipeline failed: {str(e)}", exc_info=True)
        raise

    finally:
        tracker.finish(validation_status=validation_status)
        spark.stop()
        logger.info("SparkSession stopped.")


if __name__ == "__main__":
    run()
