import os
from dotenv import load_dotenv

load_dotenv()


class SparkConfig:
    APP_NAME = "sensor_sampling_rate_pipeline"
    MASTER = os.getenv("SPARK_MASTER", "local[*]")
    EXECUTOR_MEMORY = "2g"
    DRIVER_MEMORY = "2g"
    SHUFFLE_PARTITIONS = "8"
    LOG_LEVEL = "WARN"
    ARROW_ENABLED = "true"
    ARROW_MAX_RECORDS_PER_BATCH = "10000"
    SESSION_TIMEZONE = "UTC"


class PathConfig:
    BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    SENSOR_DATA = os.getenv(
        "SENSOR_DATA_PATH",
        os.path.join(BASE_DIR, "data", "raw", "sensor_readings")
    )
    RECORD_METADATA = os.getenv(
        "RECORD_METADATA_PATH",
        os.path.join(BASE_DIR, "data", "raw", "records")
    )
    FLATTENED_OUTPUT = os.path.join(BASE_DIR, "data", "processed", "flattened_readings")
    RATES_OUTPUT = os.path.join(BASE_DIR, "data", "processed", "sampling_rates")
    LOG_DIR = os.getenv("PIPELINE_LOG_DIR") or os.path.join(BASE_DIR, "logs")
    LOG_FILE = os.path.join(LOG_DIR, "pipeline.log")


class LogConfig:
    # DEBUG on the console shows why each record's sampling rate is missing.
    CONSOLE_LEVEL = os.getenv("PIPELINE_CONSOLE_LOG_LEVEL", "INFO").upper()
    FILE_LEVEL = "DEBUG"


class StorageConfig:
    # Remote object storage is reached through the S3A connector.
    # Leave S3_ENDPOINT empty to read local paths only.
    ENDPOINT = os.getenv("S3_ENDPOINT", "")
    ACCESS_KEY = os.getenv("S3_ACCESS_KEY", "")
    SECRET_KEY = os.getenv("S3_SECRET_KEY", "")
    PATH_STYLE_ACCESS = os.getenv("S3_PATH_STYLE_ACCESS", "true")
    SSL_ENABLED = os.getenv("S3_SSL_ENABLED", "false")

    @classmethod
    def is_enabled(cls):
        return bool(cls.ENDPOINT)

    @classmethod
    def spark_options(cls):
        if not cls.is_enabled():
            return {}
        return {
            "spark.hadoop.fs.s3a.impl":                   "org.apache.hadoop.fs.s3a.S3AFileSystem",
            "spark.hadoop.fs.s3a.endpoint":               cls.ENDPOINT,
            "spark.hadoop.fs.s3a.access.key":             cls.ACCESS_KEY,
            "spark.hadoop.fs.s3a.secret.key":             cls.SECRET_KEY,
            "spark.hadoop.fs.s3a.path.style.access":      cls.PATH_STYLE_ACCESS,
            "spark.hadoop.fs.s3a.connection.ssl.enabled": cls.SSL_ENABLED,
        }


class SamplingConfig:
    KEY_COLUMNS = ["record_id"]
    TIME_COLUMN = "t"
    RATE_COLUMN = "sampling_rate"
    DEFAULT_STRATEGY = os.getenv("SAMPLING_STRATEGY", "apply_in_pandas")
    SORT_BY_TIME = True
    # Arrival position written by flatten_readings; used when SORT_BY_TIME is off.
    ORDER_COLUMN = "sample_index"
    JOIN_METADATA = os.getenv("JOIN_RECORD_METADATA", "false").lower() == "true"
    SENSOR_FILTER = os.getenv("SENSOR_FILTER") or None
    MAX_MISSING_RATE = 0.10
    WRITE_MODE = "overwrite"
    BENCHMARK_REPEATS = 3
