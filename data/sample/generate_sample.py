"""
Generate a synthetic nested sensor dataset shaped like the production captures.
Each row is one capture session (record) with an array of {t, x, y, z}
readings. Sampling is irregular: every record has a nominal rate plus jitter,
and a small share of records are shuffled, degenerate or carry null times.

Run:
    python data/sample/generate_sample.py

Output:
    data/raw/sensor_readings/part-0.parquet
    data/raw/records/part-0.parquet
"""

import os
import random
from datetime import datetime, timedelta

import numpy as np
import pandas as pd

random.seed(42)
np.random.seed(42)

RAW_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "raw"
)
SENSOR_PATH = os.path.join(RAW_DIR, "sensor_readings", "part-0.parquet")
RECORDS_PATH = os.path.join(RAW_DIR, "records", "part-0.parquet")

N_RECORDS = 2000

SENSORS = [
    ("accelerometer", "m/s^2", [50.0, 100.0, 200.0]),
    ("gyroscope",     "rad/s", [50.0, 100.0]),
    ("magnetometer",  "uT",    [10.0, 25.0]),
]
ACTIVITIES = ["walking", "running", "cycling", "sitting", "stairs"]
DEVICE_IDS = [f"DEV-{i:03d}" for i in range(40)]
SUBJECT_IDS = [f"SUBJ-{i:03d}" for i in range(120)]

start_date = datetime(2023, 1, 1)


def random_readings(nominal_rate):
    """Irregular timestamps: nominal spacing with +/-20% jitter."""
    n = random.randint(20, 600)
    gaps = (1.0 / nominal_rate) * np.random.uniform(0.8, 1.2, size=n - 1)
    t = np.concatenate([[0.0], np.cumsum(gaps)])
    xyz = np.random.normal(0.0, 1.0, size=(n, 3))
    return [
        {"t": float(t[i]), "x": float(xyz[i, 0]), "y": float(xyz[i, 1]), "z": float(xyz[i, 2])}
        for i in range(n)
    ]


def damage(readings):
    """Inject the upstream defects the estimator has to tolerate."""
    roll = random.random()
    if roll < 0.02:
        return []
    if roll < 0.04:
        return readings[:1]
    if roll < 0.05:
        return [dict(r, t=0.0) for r in readings]
    if roll < 0.07:
        shuffled = list(readings)
        random.shuffle(shuffled)
        return shuffled
    if roll < 0.08:
        readings = list(readings)
        readings[len(readings) // 2] = dict(readings[len(readings) // 2], t=None)
    return readings


print(f"Generating {N_RECORDS:,} records...")

sensor_rows = []
record_rows = []
for i in range(N_RECORDS):
    record_id = f"REC-{i:06d}"
    name, unit, rates = random.choice(SENSORS)
    sensor_rows.append({
        "record_id": record_id,
        "device_id": random.choice(DEVICE_IDS),
        "sensor":    {"name": name, "unit": unit},
        "readings":  damage(random_readings(random.choice(rates))),
    })
    record_rows.append({
        "record_id":  record_id,
        "subject_id": random.choice(SUBJECT_IDS),
        "activity":   random.choice(ACTIVITIES),
        "started_at": start_date + timedelta(seconds=random.randint(0, 365 * 24 * 3600)),
    })

sensor_df = pd.DataFrame(sensor_rows, columns=["record_id", "device_id", "sensor", "readings"])
records_df = pd.DataFrame(record_rows, columns=["record_id", "subject_id", "activity", "started_at"])

os.makedirs(os.path.dirname(SENSOR_PATH), exist_ok=True)
os.makedirs(os.path.dirname(RECORDS_PATH), exist_ok=True)
sensor_df.to_parquet(SENSOR_PATH, engine="pyarrow", index=False)
# Spark cannot read nanosecond Parquet timestamps.
records_df.to_parquet(RECORDS_PATH, engine="pyarrow", index=False, coerce_timestamps="us")

total_readings = int(sensor_df["readings"].map(len).sum())
print(f"\nDone. Sensor records saved to : {SENSOR_PATH}")
print(f"Record metadata saved to      : {RECORDS_PATH}")
print(f"Total readings                : {total_readings:,}")
print(f"Empty records                 : {(sensor_df['readings'].map(len) == 0).sum():,}")
print(f"Single-sample records         : {(sensor_df['readings'].map(len) == 1).sum():,}")
