import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime
from sensor_pipeline.config import PathConfig, LogConfig


def get_logger(name="SensorPipeline", console_level=None):
    """
    Console plus file logger, configured once per name. The file always gets
    DEBUG, which includes the per-record reason whenever a sampling rate comes
    back missing; the console shows INFO unless PIPELINE_CONSOLE_LOG_LEVEL or
    console_level says otherwise.
    """
    os.makedirs(PathConfig.LOG_DIR, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.getLevelName(console_level or LogConfig.CONSOLE_LEVEL))
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(PathConfig.LOG_FILE, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.getLevelName(LogConfig.FILE_LEVEL))
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


class PipelineTracker:
    """
    Collects stage records, metrics and wall-clock timings for one run.
    Stage timings are what the strategy comparison reads back, so every
    timed block goes through `timed_stage`.
    """

    def __init__(self, logger, name="SENSOR SAMPLING-RATE PIPELINE"):
        self.logger = logger
        self.name = name
        self.job_start = None
        self.job_end = None
        self.metrics = {}
        self.timings = {}

    def start(self):
        self.job_start = datetime.now()
        self.logger.info("=" * 70)
        self.logger.info(f"{self.name} STARTED")
        self.logger.info(f"Job Start Time : {self.job_start.strftime('%Y-%m-%d %H:%M:%S')}")
        self.logger.info("=" * 70)

    def log_stage(self, stage_name, record_count=None, extra=None):
        msg = f"STAGE [{stage_name}]"
        if record_count is not None:
            msg += f" | Records: {record_count:,}"
        if extra:
            msg += f" | {extra}"
        self.logger.info(msg)

    def log_metric(self, key, value):
        self.metrics[key] = value
        self.logger.debug(f"Metric recorded -> {key}: {value}")

    def log_rate_coverage(self, total_records, missing_records):
        """Record how many records got no sampling rate."""
        pct = 100.0 * missing_records / total_records if total_records else 0.0
        self.log_metric("records_with_rate", f"{total_records - missing_records:,}")
        self.log_metric("records_missing_rate", f"{missing_records:,} ({pct:.1f}%)")
        if missing_records:
            self.logger.warning(
                f"{missing_records:,} of {total_records:,} record(s) have no sampling rate; "
                f"per-record reasons are logged at DEBUG in {PathConfig.LOG_FILE}"
            )

    @contextmanager
    def timed_stage(self, stage_name):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.timings.setdefault(stage_name, []).append(elapsed)
            self.logger.info(f"STAGE [{stage_name}] | Elapsed: {elapsed:.3f}s")

    def finish(self, validation_status="PASSED"):
        self.job_end = datetime.now()
        duration = (self.job_end - self.job_start).total_seconds()
        self.logger.info("=" * 70)
        self.logger.info(f"{self.name} FINISHED")
        self.logger.info(f"Job End Time       : {self.job_end.strftime('%Y-%m-%d %H:%M:%S')}")
        self.logger.info(f"Total Duration     : {duration:.2f} seconds")
        self.logger.info(f"Validation Status  : {validation_status}")
        for key, val in self.metrics.items():
            self.logger.info(f"  {key:<30}: {val}")
        for stage, runs in self.timings.items():
            self.logger.info(f"  {stage:<30}: {sum(runs):.3f}s over {len(runs)} run(s)")
        self.logger.info("=" * 70)
