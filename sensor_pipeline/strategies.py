import pandas as pd
from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.functions import pandas_udf
from pyspark.sql.types import DoubleType, TimestampType

from sensor_pipeline.config import SamplingConfig
from sensor_pipeline.logger_setup import get_logger
from sensor_pipeline.sampling_rate import (
    estimate, make_group_rate_fn, sampling_rate_schema
)

logger = get_logger("Strategies")

STRATEGIES = ["apply_in_pandas", "collect_list", "native", "driver_pandas"]


@pandas_udf(DoubleType())
def estimate_rate_udf(timestamps: pd.Series) -> pd.Series:
    """Scalar pandas UDF over array<double>: one estimate per collected array."""
    return timestamps.apply(lambda values: estimate(values, sort_by_time=True).value).astype("float64")


@pandas_udf(DoubleType())
def estimate_delivered_rate_udf(timestamps: pd.Series) -> pd.Series:
    """Same as estimate_rate_udf, but the arrays arrive already in delivered order."""
    return timestamps.apply(lambda values: estimate(values, sort_by_time=False).value).astype("float64")


def _prepare_time_column(df: DataFrame, time_column: str) -> DataFrame:
    """
    Absent time column: every record gets a null rate (malformed input).
    TimestampType: converted to epoch seconds inside Spark, so no strategy
    sees session-time-zone wall-clock values.
    """
    if time_column not in df.columns:
        logger.warning(f"Time column '{time_column}' not found; all sampling rates will be null")
        return df.withColumn(time_column, F.lit(None).cast(DoubleType()))
    if isinstance(df.schema[time_column].dataType, TimestampType):
        return df.withColumn(time_column, F.col(time_column).cast(DoubleType()))
    return df


def _grouped_columns(key_columns, time_column, sort_by_time, order_column):
    columns = list(key_columns) + [time_column]
    if not sort_by_time:
        columns.append(order_column)
    return columns


def rates_apply_in_pandas(df, key_columns, time_column, sort_by_time=True, order_column=None):
    """
    groupBy().applyInPandas(): Spark shuffles each record's rows into one
    pandas DataFrame and calls the group adapter once per record.
    """
    schema = sampling_rate_schema(df.schema, key_columns)
    group_fn = make_group_rate_fn(key_columns, time_column, sort_by_time, order_column)
    return (
        df.select(*_grouped_columns(key_columns, time_column, sort_by_time, order_column))
        .groupBy(*key_columns)
        .applyInPandas(group_fn, schema=schema)
    )


def rates_collect_list(df, key_columns, time_column, sort_by_time=True, order_column=None):
    """
    collect_list() the timestamps per record, then run the estimator through
    a scalar pandas UDF. Array order after the shuffle is arbitrary, so for
    delivered order the (order, t) pairs are sorted before t is extracted.
    """
    # collect_list drops nulls; NaN keeps a malformed sample visible to the estimator.
    t = F.coalesce(F.col(time_column).cast(DoubleType()), F.lit(float("nan")))

    if sort_by_time:
        collected = F.collect_list(t)
        udf = estimate_rate_udf
    else:
        pairs = F.sort_array(F.collect_list(F.struct(F.col(order_column).alias("o"), t.alias("t"))))
        collected = pairs.getField("t")
        udf = estimate_delivered_rate_udf

    return (
        df.groupBy(*key_columns)
        .agg(collected.alias("_timestamps"))
        .select(
            *key_columns,
            udf(F.col("_timestamps")).alias(SamplingConfig.RATE_COLUMN)
        )
    )


def rates_native(df, key_columns, time_column, sort_by_time=True, order_column=None):
    """
    Built-in aggregates only, no Python workers. The window is max - min of
    the timestamps, or for delivered order the timestamps at the lowest and
    highest order value (min_by / max_by).
    """
    t = F.col(time_column).cast(DoubleType())
    bad = F.when(t.isNull() | F.isnan(t) | (F.abs(t) == float("inf")), 1).otherwise(0)
    if sort_by_time:
        duration = F.max(t) - F.min(t)
    else:
        order = F.col(order_column)
        duration = F.max_by(t, order) - F.min_by(t, order)

    summary = df.groupBy(*key_columns).agg(
        F.count(F.lit(1)).alias("_n"),
        F.sum(bad).alias("_bad"),
        duration.alias("_duration"),
    )
    rate = (
        F.when((F.col("_bad") == 0) & (F.col("_duration") != 0),
               F.col("_n") / F.col("_duration"))
         .otherwise(F.lit(None).cast(DoubleType()))
    )
    return summary.select(*key_columns, rate.alias(SamplingConfig.RATE_COLUMN))


def rates_driver_pandas(df, key_columns, time_column, sort_by_time=True, order_column=None):
    """
    Pull everything to the driver with toPandas(), group with pandas, and
    hand the result back to Spark. Only viable while the data fits in
    driver memory; kept as the single-machine baseline.
    """
    spark = df.sparkSession
    schema = sampling_rate_schema(df.schema, key_columns)
    group_fn = make_group_rate_fn(key_columns, time_column, sort_by_time, order_column)

    pdf = df.select(*_grouped_columns(key_columns, time_column, sort_by_time, order_column)).toPandas()
    logger.info(f"driver_pandas collected {len(pdf):,} rows to the driver")
    if pdf.empty:
        return spark.createDataFrame([], schema=schema)

    frames = [
        group_fn(key, group)
        for key, group in pdf.groupby(key_columns, sort=False, dropna=False)
    ]
    result = pd.concat(frames, ignore_index=True)
    # NaN must reach Spark as null regardless of whether Arrow is enabled.
    result = result.astype(object).where(pd.notnull(result), None)
    return spark.createDataFrame(result, schema=schema)


_STRATEGY_FUNCTIONS = {
    "apply_in_pandas": rates_apply_in_pandas,
    "collect_list":    rates_collect_list,
    "native":          rates_native,
    "driver_pandas":   rates_driver_pandas,
}


def compute_sampling_rates(df: DataFrame, key_columns=None, time_column=None,
                           strategy=None, sort_by_time=SamplingConfig.SORT_BY_TIME,
                           order_column=None) -> DataFrame:
    """
    Compute one {key..., sampling_rate} row per distinct key using the named
    strategy. All strategies return the same declared schema and the same
    values.

    sort_by_time=False takes the first and last sample by order_column
    (default sample_index, the arrival position written by flatten_readings)
    instead of by time. The shuffle does not preserve row order, so that
    column is required.
    """
    key_columns = list(key_columns or SamplingConfig.KEY_COLUMNS)
    time_column = time_column or SamplingConfig.TIME_COLUMN
    strategy = strategy or SamplingConfig.DEFAULT_STRATEGY
    order_column = order_column or SamplingConfig.ORDER_COLUMN

    if strategy not in _STRATEGY_FUNCTIONS:
        raise ValueError(f"Unknown strategy '{strategy}'. Choose one of {STRATEGIES}")
    if not sort_by_time and order_column not in df.columns:
        raise ValueError(
            f"sort_by_time=False needs an order column; '{order_column}' not in {df.columns}"
        )

    # Fails fast on unknown key columns before any job is launched.
    schema = sampling_rate_schema(df.schema, key_columns)

    logger.info(
        f"Computing sampling rates | strategy={strategy} | keys={key_columns} | time={time_column}"
        f" | order={'time' if sort_by_time else order_column}"
    )
    df = _prepare_time_column(df, time_column)
    rates = _STRATEGY_FUNCTIONS[strategy](df, key_columns, time_column, sort_by_time, order_column)

    return rates.select(*[F.col(f.name).cast(f.dataType) for f in schema.fields])
