from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.types import StructType, DoubleType
from sensor_pipeline.config import SamplingConfig
from sensor_pipeline.logger_setup import get_logger

logger = get_logger("Transform")


def flatten_readings(df: DataFrame) -> DataFrame:
    """
    One output row per sample. posexplode keeps the arrival position as
    sample_index, so the delivered order can still be reconstructed after
    the shuffle. Records with a null or empty readings array produce no rows.
    """
    logger.info("Flattening nested readings...")
    exploded = df.select(
        "record_id",
        "device_id",
        F.col("sensor.name").alias("sensor_name"),
        F.col("sensor.unit").alias("sensor_unit"),
        F.posexplode("readings").alias("sample_index", "reading"),
    )
    flattened = exploded.select(
        "record_id",
        "device_id",
        "sensor_name",
        "sensor_unit",
        "sample_index",
        F.col("reading.t").alias("t"),
        F.col("reading.x").alias("x"),
        F.col("reading.y").alias("y"),
        F.col("reading.z").alias("z"),
    )
    return flattened


def _leaf_columns(schema: StructType, sep: str, path=()):
    columns = []
    for field in schema.fields:
        field_path = path + (field.name,)
        if isinstance(field.dataType, StructType):
            columns.extend(_leaf_columns(field.dataType, sep, field_path))
        else:
            quoted = ".".join(f"`{part}`" for part in field_path)
            columns.append(F.col(quoted).alias(sep.join(field_path)))
    return columns


def flatten_structs(df: DataFrame, sep: str = "_") -> DataFrame:
    """
    Lift every nested struct field to a top-level column named by joining
    the field path with sep (sensor.name -> sensor_name). Arrays are left
    as they are.
    """
    return df.select(_leaf_columns(df.schema, sep))


def drop_invalid_readings(df: DataFrame) -> DataFrame:
    """
    A sample without a record_id cannot be grouped. Null timestamps are kept:
    they make that record's rate missing rather than silently shortening it.
    """
    logger.info("Dropping readings without record_id...")
    before_count = df.count()

    cleaned = df.dropna(subset=["record_id"])

    after_count = cleaned.count()
    logger.info(f"Invalid readings: dropped {before_count - after_count:,} rows")
    return cleaned


def filter_sensor(df: DataFrame, sensor_name: str) -> DataFrame:
    logger.info(f"Keeping sensor '{sensor_name}' only")
    return df.filter(F.col("sensor_name") == sensor_name)


def join_record_metadata(readings: DataFrame, records: DataFrame) -> DataFrame:
    """
    Attach subject/activity metadata to each reading. The metadata table has
    one row per capture session, so it is small enough to broadcast.
    """
    logger.info("Joining record metadata (broadcast)...")
    records = records.dropDuplicates(["record_id"])
    return readings.join(F.broadcast(records), on="record_id", how="left")


def summarize_records(df: DataFrame, key_columns=None, time_column: str = None) -> DataFrame:
    """
    Per-record window summary with built-in aggregates:
      sample_count -> rows in the record
      t_first      -> earliest timestamp
      t_last       -> latest timestamp
      duration     -> t_last - t_first
    """
    key_columns = list(key_columns or SamplingConfig.KEY_COLUMNS)
    t = F.col(time_column or SamplingConfig.TIME_COLUMN).cast(DoubleType())

    return (
        df.groupBy(*key_columns)
        .agg(
            F.count(F.lit(1)).alias("sample_count"),
            F.min(t).alias("t_first"),
            F.max(t).alias("t_last"),
        )
        .withColumn("duration", F.col("t_last") - F.col("t_first"))
    )


def run_all_transforms(df: DataFrame, sensor_name: str = None) -> DataFrame:
    logger.info("Starting transformation pipeline...")

    df = flatten_readings(df)
    df = drop_invalid_readings(df)
    if sensor_name:
        df = filter_sensor(df, sensor_name)

    logger.info("All transformations complete.")
    return df
