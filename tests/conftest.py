"""
Shared fixtures: synthetic NWIS sensor and NASA POWER frames on a
15-minute cadence, with a daytime light curve.
"""

import numpy as np
import pandas as pd
import pytest

from metabolism.data_processor import DataProcessor


def _daylight(times, peak=900.0):
    """Shortwave curve peaking at 12:00 UTC, zero outside 06:00-18:00."""
    hours = times.hour + times.minute / 60.0
    return np.clip(peak * np.sin(np.pi * (hours - 6.0) / 12.0), 0.0, None)


def make_sensor_frame(start="2022-07-01 00:00", end="2022-07-03 00:00", freq="15min"):
    times = pd.date_range(start, end, freq=freq)
    hours = times.hour + times.minute / 60.0
    return pd.DataFrame({
        "datetime": times,
        "temp_water": 26.0 + 2.0 * np.sin(np.pi * (hours - 9.0) / 12.0),
        "discharge_cfs": np.full(len(times), 120.0),
        "DO_obs": 7.5 + 1.5 * np.sin(np.pi * (hours - 8.0) / 12.0),
    })


def make_power_frame(start="2022-07-01 00:00", end="2022-07-03 00:00", freq="15min"):
    times = pd.date_range(start, end, freq=freq)
    return pd.DataFrame({
        "datetime": times,
        "sw_down": _daylight(times),
        "pressure_kpa": np.full(len(times), 91.5),
    })


@pytest.fixture
def processor():
    return DataProcessor()


@pytest.fixture
def sensor_frame():
    return make_sensor_frame()


@pytest.fixture
def power_frame():
    return make_power_frame()


@pytest.fixture
def hourly_power_frame():
    return make_power_frame(freq="1h")


@pytest.fixture
def site_info():
    return {
        "site_no": "08447410",
        "station_nm": "PECOS RV ABV PECOS RIVER",
        "latitude": 29.7,
        "longitude": 0.0,
        "elevation_m": 335.0,
        "drainage_area_km2": 91000.0,
    }
