"""
Tests for grid construction, merge, bounded interpolation and the day filter.
"""

import numpy as np
import pandas as pd
import pytest

from metabolism.data_processor import DataProcessor
from metabolism.errors import EmptyResultError, SiteConfigurationError
from metabolism.validation import validate_aligned_table

from conftest import make_power_frame, make_sensor_frame


class TestTimeGrid:

    def test_one_day_inclusive(self, processor):
        grid = processor.build_time_grid("2022-07-01 00:00", "2022-07-02 00:00")
        assert len(grid) == 97
        assert grid[0] == pd.Timestamp("2022-07-01 00:00")
        assert grid[-1] == pd.Timestamp("2022-07-02 00:00")
        assert (grid[1:] - grid[:-1] == pd.Timedelta("15min")).all()

    def test_end_off_step_is_truncated(self, processor):
        grid = processor.build_time_grid("2022-07-01 00:00", "2022-07-01 01:10")
        assert list(grid.strftime("%H:%M")) == ["00:00", "00:15", "00:30", "00:45", "01:00"]

    def test_single_instant(self, processor):
        grid = processor.build_time_grid("2022-07-01 06:00", "2022-07-01 06:00")
        assert len(grid) == 1

    def test_reversed_bounds_raise(self, processor):
        with pytest.raises(SiteConfigurationError):
            processor.build_time_grid("2022-07-02", "2022-07-01")


class TestMergeOntoGrid:

    def test_preserves_grid_rows_and_order(self, processor):
        grid = processor.build_time_grid("2022-07-01 00:00", "2022-07-01 02:00")
        source = pd.DataFrame({
            "datetime": pd.to_datetime([
                "2022-07-01 01:00", "2022-07-01 00:00", "2022-07-01 00:07", "2022-07-05 00:00",
            ]),
            "temp_water": [21.0, 20.0, 99.0, 99.0],
        })
        merged = processor.merge_onto_grid(grid, source)

        assert len(merged) == len(grid)
        assert (merged["datetime"].values == grid.values).all()
        assert merged.loc[0, "temp_water"] == 20.0
        assert merged.loc[4, "temp_water"] == 21.0
        assert merged["temp_water"].isna().sum() == len(grid) - 2

    def test_duplicate_source_stamps_do_not_duplicate_rows(self, processor):
        grid = processor.build_time_grid("2022-07-01 00:00", "2022-07-01 00:30")
        source = pd.DataFrame({
            "datetime": pd.to_datetime(["2022-07-01 00:15", "2022-07-01 00:15"]),
            "DO_obs": [7.0, 8.0],
        })
        merged = processor.merge_onto_grid(grid, source)
        assert len(merged) == 3
        assert merged.loc[1, "DO_obs"] == pytest.approx(7.5)

    def test_multiple_sources_and_missing_source(self, processor):
        grid = processor.build_time_grid("2022-07-01 00:00", "2022-07-01 01:00")
        sensors = make_sensor_frame("2022-07-01 00:00", "2022-07-01 01:00")
        power = make_power_frame("2022-07-01 00:00", "2022-07-01 01:00", freq="1h")
        merged = processor.merge_onto_grid(grid, sensors, None, power)

        assert len(merged) == 5
        assert {"temp_water", "DO_obs", "sw_down", "pressure_kpa"} <= set(merged.columns)
        assert merged["sw_down"].notna().sum() == 2

    def test_overlapping_columns_raise(self, processor):
        grid = processor.build_time_grid("2022-07-01 00:00", "2022-07-01 01:00")
        source = pd.DataFrame({"datetime": grid, "light": 1.0})
        with pytest.raises(ValueError, match="share columns"):
            processor.merge_onto_grid(grid, source, source)


class TestBoundedInterpolation:

    @staticmethod
    def _series_with_gap(start, length, total=80):
        values = np.arange(total, dtype=float)
        values[start:start + length] = np.nan
        return pd.Series(values)

    def test_gap_at_limit_is_filled_on_the_line(self, processor):
        s = self._series_with_gap(10, 24)
        filled = processor.interpolate_bounded(s)
        assert filled.notna().all()
        np.testing.assert_allclose(filled.values, np.arange(80, dtype=float))

    def test_gap_over_limit_stays_entirely_missing(self, processor):
        s = self._series_with_gap(10, 25)
        filled = processor.interpolate_bounded(s)
        assert filled.iloc[10:35].isna().all()
        assert filled.drop(range(10, 35)).notna().all()

    def test_edges_are_never_filled(self, processor):
        s = pd.Series([np.nan, np.nan, 1.0, 2.0, np.nan, 4.0, np.nan])
        filled = processor.interpolate_bounded(s)
        assert filled.iloc[:2].isna().all()
        assert filled.iloc[4] == pytest.approx(3.0)
        assert np.isnan(filled.iloc[-1])

    def test_short_and_long_gaps_in_one_series(self, processor):
        s = pd.Series(np.arange(100, dtype=float))
        s.iloc[5:8] = np.nan
        s.iloc[40:70] = np.nan
        filled = processor.interpolate_bounded(s)
        assert filled.iloc[5:8].tolist() == [5.0, 6.0, 7.0]
        assert filled.iloc[40:70].isna().all()

    def test_custom_max_gap(self):
        processor = DataProcessor(max_gap=2)
        s = pd.Series([0.0, np.nan, np.nan, np.nan, 4.0])
        assert processor.interpolate_bounded(s).iloc[1:4].isna().all()

    def test_fill_gaps_columns_independent(self, processor):
        df = pd.DataFrame({
            "a": [1.0, np.nan, 3.0],
            "b": [np.nan, 2.0, 3.0],
            "c": [1.0, np.nan, 3.0],
        })
        filled = processor.fill_gaps(df, ["a", "b"])
        assert filled["a"].tolist() == [1.0, 2.0, 3.0]
        assert np.isnan(filled.loc[0, "b"])
        assert np.isnan(filled.loc[1, "c"])


class TestCompleteDayFilter:

    @staticmethod
    def _frame(days=2):
        times = pd.date_range("2022-07-01", periods=96 * days, freq="15min")
        return pd.DataFrame({"day": times.normalize(), "x": 1.0, "y": 2.0})

    def test_complete_days_kept(self, processor):
        df = self._frame()
        out = processor.filter_complete_days(df, "day", ["x", "y"])
        assert len(out) == 192

    def test_one_missing_value_drops_whole_day(self, processor):
        df = self._frame()
        df.loc[150, "y"] = np.nan
        out = processor.filter_complete_days(df, "day", ["x", "y"])
        assert len(out) == 96
        assert out["day"].unique().tolist() == [pd.Timestamp("2022-07-01")]

    def test_short_day_dropped(self, processor):
        df = self._frame().iloc[:-1]
        out = processor.filter_complete_days(df, "day", ["x"])
        assert out["day"].nunique() == 1

    @pytest.mark.parametrize("gap_start", [0, 40, 93])
    def test_three_slot_gap_drops_day_two(self, processor, gap_start):
        df = self._frame()
        df.loc[96 + gap_start:96 + gap_start + 2, "x"] = np.nan
        out = processor.filter_complete_days(df, "day", ["x", "y"])
        assert len(out) == 96
        assert (out["day"] == pd.Timestamp("2022-07-01")).all()

    def test_empty_input(self, processor):
        out = processor.filter_complete_days(self._frame().iloc[:0], "day", ["x"])
        assert out.empty

    def test_day_size_follows_grid_frequency(self):
        half_hourly = DataProcessor(frequency="30min")
        assert half_hourly.slots_per_day == 48

        times = pd.date_range("2022-07-01", periods=96, freq="30min")
        df = pd.DataFrame({"day": times.normalize(), "x": 1.0})
        assert len(half_hourly.filter_complete_days(df, "day", ["x"])) == 96

        df.loc[60, "x"] = np.nan
        out = half_hourly.filter_complete_days(df, "day", ["x"])
        assert out["day"].unique().tolist() == [pd.Timestamp("2022-07-01")]


class TestPrepareSiteFrame:

    def test_two_complete_days(self, processor, sensor_frame, power_frame):
        aligned = processor.prepare_site_frame(sensor_frame, power_frame, longitude=0.0, site_no="08447410")

        assert len(aligned) == 192
        assert aligned["solar.date"].nunique() == 2
        assert (aligned["site_no"] == "08447410").all()
        assert validate_aligned_table(aligned)

    def test_trailing_gap_drops_second_day(self, processor, power_frame):
        sensors = make_sensor_frame(end="2022-07-02 23:45")
        sensors.loc[sensors.index[-3:], "DO_obs"] = np.nan

        aligned = processor.prepare_site_frame(sensors, power_frame, longitude=0.0)

        assert len(aligned) == 96
        assert aligned["solar.date"].unique().tolist() == [pd.Timestamp("2022-07-01")]

    def test_short_interior_gap_is_filled(self, processor, sensor_frame, power_frame):
        sensor_frame.loc[120:122, "DO_obs"] = np.nan
        aligned = processor.prepare_site_frame(sensor_frame, power_frame, longitude=0.0)
        assert len(aligned) == 192

    def test_long_interior_gap_drops_day(self, processor, sensor_frame, power_frame):
        sensor_frame.loc[110:140, "temp_water"] = np.nan
        aligned = processor.prepare_site_frame(sensor_frame, power_frame, longitude=0.0)
        assert aligned["solar.date"].unique().tolist() == [pd.Timestamp("2022-07-01")]

    def test_hourly_reanalysis_is_filled_to_grid(self, processor, sensor_frame, hourly_power_frame):
        aligned = processor.prepare_site_frame(sensor_frame, hourly_power_frame, longitude=0.0)
        assert len(aligned) == 192
        noon = aligned[aligned["datetime"] == pd.Timestamp("2022-07-01 12:15")]
        # 12:00 and 13:00 bracket 12:15
        assert noon["light"].iloc[0] > 0

    def test_unit_conversions_applied(self, processor, sensor_frame, power_frame):
        aligned = processor.prepare_site_frame(sensor_frame, power_frame, longitude=0.0)
        assert aligned["discharge"].iloc[0] == pytest.approx(120.0 * 0.0283168469)
        assert aligned["pressure_mbar"].iloc[0] == pytest.approx(915.0)
        assert aligned["light"].max() == pytest.approx(900.0 * 2.114)
        assert (aligned["depth"] > 0).all()

    def test_western_longitude_shifts_solar_day(self, processor):
        sensors = make_sensor_frame("2022-07-01 00:00", "2022-07-04 00:00")
        power = make_power_frame("2022-07-01 00:00", "2022-07-04 00:00")
        aligned = processor.prepare_site_frame(sensors, power, longitude=-90.0)

        # Six-hour offset: the first solar day starts at 06:00 UTC
        first_day = aligned[aligned["solar.date"] == pd.Timestamp("2022-07-01")]
        assert len(first_day) == 96
        assert first_day["datetime"].min() == pd.Timestamp("2022-07-01 06:00")

    def test_no_reanalysis_means_no_complete_days(self, processor, sensor_frame):
        with pytest.raises(EmptyResultError):
            processor.prepare_site_frame(sensor_frame, None, longitude=0.0)

    def test_empty_sensor_feed_raises(self, processor, power_frame):
        with pytest.raises(EmptyResultError):
            processor.prepare_site_frame(make_sensor_frame().iloc[:0], power_frame, longitude=0.0)


def test_load_aligned_data_restores_types(tmp_path, processor, sensor_frame, power_frame):
    aligned = processor.prepare_site_frame(sensor_frame, power_frame, longitude=0.0, site_no="08447410")
    path = tmp_path / "aligned.csv"
    aligned.to_csv(path, index=False)

    loaded = processor.load_aligned_data(str(path))

    assert loaded["site_no"].iloc[0] == "08447410"
    assert pd.api.types.is_datetime64_any_dtype(loaded["solar.time"])
    assert len(loaded) == len(aligned)
