# Databricks notebook source
# MAGIC %md
# MAGIC # Sensor Sampling-Rate Pipeline
# MAGIC ### Notebook 01: Load, Flatten and Benchmark Per-Record Sampling Rates
# MAGIC
# MAGIC **What this notebook does:**
# MAGIC 1. Points Spark at the sensor Parquet files (object storage via S3A, see `.env.example`)
# MAGIC 2. Reads them with and without the explicit nested schema
# MAGIC 3. Flattens `readings` into one row per sample and joins record metadata
# MAGIC 4. Writes the flattened table as an intermediate result
# MAGIC 5. Times every sampling-rate strategy on the same input
# MAGIC
# MAGIC Run from a Databricks Repo checkout so `sensor_pipeline` is importable.

# COMMAND ----------

import time
from pyspark.sql import functions as F

from sensor_pipeline.config import PathConfig, SamplingConfig
from sensor_pipeline.extract import read_sensor_data, read_record_metadata
from sensor_pipeline.transform import run_all_transforms, join_record_metadata, summarize_records
from sensor_pipeline.load import write_flattened
from sensor_pipeline.strategies import STRATEGIES, compute_sampling_rates
from sensor_pipeline.benchmark import run_benchmark

print(f"Sensor data : {PathConfig.SENSOR_DATA}")
print(f"Strategies  : {STRATEGIES}")

# COMMAND ----------

# MAGIC %md
# MAGIC ### Explicit schema vs. inferred schema
# MAGIC
# MAGIC With an explicit schema Spark does not have to resolve the schema from the
# MAGIC Parquet footers, and the nested `sensor` / `readings` types are pinned.

# COMMAND ----------

for use_schema in (True, False):
    start = time.perf_counter()
    df_raw, raw_count = read_sensor_data(spark, use_schema=use_schema)
    print(f"use_schema={use_schema!s:<5} | {raw_count:,} records | {time.perf_counter() - start:.2f}s")

df_raw.printSchema()

# COMMAND ----------

# MAGIC %md
# MAGIC ### Flatten, join metadata, write the intermediate table

# COMMAND ----------

df_readings = run_all_transforms(df_raw, sensor_name=SamplingConfig.SENSOR_FILTER)
df_readings = join_record_metadata(df_readings, read_record_metadata(spark)).cache()
print(f"Flattened readings: {df_readings.count():,}")

write_flattened(df_readings)
summarize_records(df_readings).orderBy(F.desc("sample_count")).show(10, truncate=False)

# COMMAND ----------

# MAGIC %md
# MAGIC ### Sampling rate per record
# MAGIC
# MAGIC `rate = n / (t_last - t_first)` with timestamps sorted per record.
# MAGIC Records with fewer than two distinct timestamps, or with null/NaN times, get a null rate.

# COMMAND ----------

df_rates = compute_sampling_rates(df_readings, strategy="apply_in_pandas")
df_rates.orderBy("record_id").show(10)
print(f"Records without a rate: {df_rates.filter(F.col('sampling_rate').isNull()).count():,}")

# COMMAND ----------

# MAGIC %md
# MAGIC ### Strategy timings
# MAGIC
# MAGIC - `apply_in_pandas` - one pandas DataFrame per record on the executors
# MAGIC - `collect_list`    - arrays per record, scalar pandas UDF
# MAGIC - `native`          - count/min/max only, no Python workers
# MAGIC - `driver_pandas`   - everything collected to the driver (small data only)

# COMMAND ----------

df_timings = run_benchmark(spark, df_readings, repeats=SamplingConfig.BENCHMARK_REPEATS)
display(df_timings.groupBy("strategy").agg(F.avg("seconds").alias("avg_seconds")).orderBy("avg_seconds"))

# COMMAND ----------

df_readings.unpersist()
