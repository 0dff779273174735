import os
import sys
import tempfile

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Python workers are separate processes; they only see the project through PYTHONPATH.
os.environ["PYTHONPATH"] = os.pathsep.join(p for p in [ROOT, os.environ.get("PYTHONPATH")] if p)
os.environ["PYSPARK_PYTHON"] = sys.executable
os.environ["PYSPARK_DRIVER_PYTHON"] = sys.executable
os.environ.setdefault("PIPELINE_LOG_DIR", tempfile.mkdtemp(prefix="sensor_pipeline_logs_"))

from pyspark.sql import SparkSession


@pytest.fixture(scope="session")
def spark():
    """Create a local SparkSession for testing."""
    session = SparkSession.builder \
        .appName("SamplingRate_Unit_Tests") \
        .master("local[2]") \
        .config("spark.sql.shuffle.partitions", "4") \
        .config("spark.sql.execution.arrow.pyspark.enabled", "true") \
        .config("spark.sql.session.timeZone", "UTC") \
        .getOrCreate()
    yield session
    session.stop()


@pytest.fixture(scope="session")
def grouped_rows(spark):
    """Three evenly spaced samples for record A, one sample for record B."""
    data = [("A", 0.0), ("A", 1.0), ("A", 2.0), ("B", 10.0)]
    return spark.createDataFrame(data, "record_id string, t double")
