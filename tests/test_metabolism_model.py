"""
Tests for the daily metabolism model on synthetic DO curves.
"""

import numpy as np
import pandas as pd
import pytest

from metabolism.conversions import do_saturation
from metabolism.metabolism_model import MetabolismModel

TRUE_PARAMS = (4.0, -6.0, 12.0)


def make_day(model, date="2022-07-01", params=TRUE_PARAMS, noise=0.01, seed=42, light_peak=1900.0):
    times = pd.date_range(date, periods=96, freq="15min")
    hours = times.hour + times.minute / 60.0
    light = np.clip(light_peak * np.sin(np.pi * (hours - 6.0) / 12.0), 0.0, None)
    temp = 26.0 + 2.0 * np.sin(np.pi * (hours - 9.0) / 12.0)
    depth = np.full(96, 0.6)
    do_sat = do_saturation(temp, np.full(96, 915.0))

    do_mod = model.simulate_do(params, 7.2, light, depth, do_sat, temp)
    rng = np.random.default_rng(seed)
    return pd.DataFrame({
        "solar.time": times,
        "solar.date": times.normalize(),
        "DO.obs": do_mod + rng.normal(0.0, noise, 96),
        "DO.sat": do_sat,
        "depth": depth,
        "temp.water": temp,
        "light": light,
    })


@pytest.fixture
def model():
    return MetabolismModel()


def test_simulation_is_deterministic_and_starts_at_initial(model):
    day = make_day(model, noise=0.0)
    args = (day["light"], day["depth"], day["DO.sat"], day["temp.water"])
    first = model.simulate_do(TRUE_PARAMS, 7.2, *args)
    second = model.simulate_do(TRUE_PARAMS, 7.2, *args)
    assert first[0] == 7.2
    np.testing.assert_array_equal(first, second)


def test_gpp_raises_daytime_oxygen(model):
    day = make_day(model, noise=0.0)
    args = (day["light"], day["depth"], day["DO.sat"], day["temp.water"])
    low = model.simulate_do((1.0, -6.0, 12.0), 7.2, *args)
    high = model.simulate_do((8.0, -6.0, 12.0), 7.2, *args)
    assert high.max() > low.max()


def test_recovers_known_parameters(model):
    day = make_day(model)
    result = model.fit_day(day)

    assert result["converged"]
    assert result["GPP"] == pytest.approx(4.0, abs=0.5)
    assert result["ER"] == pytest.approx(-6.0, abs=1.0)
    assert result["K600"] == pytest.approx(12.0, abs=3.0)
    for name in ("GPP", "ER", "K600"):
        assert result[f"{name}_lower"] < result[name] < result[f"{name}_upper"]
    assert result["date"] == pd.Timestamp("2022-07-01")


def test_missing_inputs_reported(model):
    day = make_day(model)
    day.loc[10, "DO.obs"] = np.nan
    result = model.fit_day(day)
    assert not result["converged"]
    assert result["message"] == "missing inputs"
    assert np.isnan(result["GPP"])


def test_dark_day_reported(model):
    day = make_day(model)
    day["light"] = 0.0
    result = model.fit_day(day)
    assert result["message"] == "insufficient light"
    assert np.isnan(result["K600"])


def test_fit_returns_one_row_per_day(model):
    days = pd.concat([
        make_day(model, "2022-07-02", seed=1),
        make_day(model, "2022-07-01", seed=2),
    ], ignore_index=True)
    daily = model.fit(days)

    assert daily["date"].tolist() == [pd.Timestamp("2022-07-01"), pd.Timestamp("2022-07-02")]
    assert {"GPP", "GPP_lower", "GPP_upper", "ER", "K600_upper", "converged", "message"} <= set(daily.columns)


def test_predict_do_tracks_observations(model):
    day = make_day(model)
    daily = model.fit(day)
    predicted = model.predict_do(day, daily)

    assert len(predicted) == 96
    rmse = np.sqrt(np.mean((predicted["DO.obs"] - predicted["DO.mod"]) ** 2))
    assert rmse < 0.05
