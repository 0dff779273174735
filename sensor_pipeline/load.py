import os
from pyspark.sql import DataFrame
from sensor_pipeline.config import PathConfig, SamplingConfig
from sensor_pipeline.logger_setup import get_logger

logger = get_logger("Load")


def write_parquet(df: DataFrame, output_path: str, partition_col: str = None,
                  mode: str = SamplingConfig.WRITE_MODE):
    """
    Write a DataFrame to Parquet, optionally partitioned by one column.
    When partitioning, rows are first repartitioned on the same column so
    each partition folder gets a few large files instead of many small ones.
    """
    logger.info(f"Writing Parquet to: {output_path}")
    logger.info(f"Partition column  : {partition_col or '(none)'}")
    logger.info(f"Write mode        : {mode}")

    writer_df = df.repartition(partition_col) if partition_col else df
    writer = writer_df.write.mode(mode)
    if partition_col:
        writer = writer.partitionBy(partition_col)
    writer.parquet(output_path)

    logger.info("Parquet write complete.")


def write_flattened(df: DataFrame, output_path: str = None):
    """Intermediate table: one row per sample, partitioned by sensor."""
    write_parquet(df, output_path or PathConfig.FLATTENED_OUTPUT, partition_col="sensor_name")


def write_sampling_rates(df: DataFrame, output_path: str = None):
    write_parquet(df.coalesce(1), output_path or PathConfig.RATES_OUTPUT)


def write_quality_report(report_df: DataFrame, output_dir: str = None):
    report_path = os.path.join(output_dir or PathConfig.LOG_DIR, "quality_report")
    logger.info(f"Saving quality report to: {report_path}")
    report_df.coalesce(1).write.mode("overwrite").json(report_path)
    logger.info("Quality report saved.")
