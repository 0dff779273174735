from pyspark.sql import SparkSession
from pyspark.sql.types import (
    StructType, StructField, ArrayType,
    StringType, DoubleType, TimestampType
)
from sensor_pipeline.config import PathConfig
from sensor_pipeline.logger_setup import get_logger

logger = get_logger("Extract")


def get_reading_schema():
    """One sample inside a record: relative time in seconds plus three axes."""
    return StructType([
        StructField("t", DoubleType(), nullable=True),
        StructField("x", DoubleType(), nullable=True),
        StructField("y", DoubleType(), nullable=True),
        StructField("z", DoubleType(), nullable=True),
    ])


def get_sensor_schema():
    """
    Explicit schema for the nested sensor dataset.

    Columns:
      record_id - Identifier of one continuous capture session.
      device_id - Device that produced the capture.
      sensor    - Struct with the sensor name (accelerometer, gyroscope, ...)
                  and its measurement unit.
      readings  - Array of samples, each {t, x, y, z}. Arrival order,
                  not necessarily sorted by t.
    """
    schema = StructType([
        StructField("record_id", StringType(), nullable=True),
        StructField("device_id", StringType(), nullable=True),
        StructField("sensor", StructType([
            StructField("name", StringType(), nullable=True),
            StructField("unit", StringType(), nullable=True),
        ]), nullable=True),
        StructField("readings", ArrayType(get_reading_schema(), containsNull=True), nullable=True),
    ])
    return schema


def get_record_schema():
    schema = StructType([
        StructField("record_id",  StringType(),    nullable=True),
        StructField("subject_id", StringType(),    nullable=True),
        StructField("activity",   StringType(),    nullable=True),
        StructField("started_at", TimestampType(), nullable=True),
    ])
    return schema


def read_sensor_data(spark: SparkSession, path: str = None, use_schema: bool = True):
    """
    Read the nested sensor Parquet files.

    use_schema=True  -> apply get_sensor_schema(); Spark skips footer-based
                        schema resolution and the column set is pinned.
    use_schema=False -> let Spark take the schema from the Parquet footers.
    """
    file_path = path or PathConfig.SENSOR_DATA

    logger.info(f"Reading sensor data from: {file_path}")
    logger.info(f"Explicit schema: {use_schema}")

    reader = spark.read
    if use_schema:
        reader = reader.schema(get_sensor_schema())
    df = reader.parquet(file_path)

    raw_count = df.count()
    logger.info(f"Sensor records loaded: {raw_count:,}")

    return df, raw_count


def read_record_metadata(spark: SparkSession, path: str = None):
    file_path = path or PathConfig.RECORD_METADATA
    logger.info(f"Reading record metadata from: {file_path}")
    return spark.read.schema(get_record_schema()).parquet(file_path)
