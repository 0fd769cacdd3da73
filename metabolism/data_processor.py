"""
Data Processing Module
=====================

Aligns heterogeneous gage and reanalysis readings onto one uniform
15-minute series for the metabolism model:

1. Build a canonical timestamp grid over the sensor observation window
2. Left-join every source onto the grid
3. Fill short gaps by bounded linear interpolation, derive depth,
   solar time and DO saturation, and drop every incomplete day

Missing readings are carried as NaN throughout; days that cannot be
completed are removed whole by the day filter.
"""

import numpy as np
import pandas as pd

import config
from .conversions import (
    cfs_to_cms,
    depth_from_discharge,
    do_saturation,
    kpa_to_mbar,
    solar_time,
    sw_to_par,
)
from .errors import EmptyResultError, SiteConfigurationError
from .logging_config import get_logger
from .validation import validate_aligned_table

logger = get_logger(__name__)


class DataProcessor:
    """
    Series alignment and gap-fill pipeline.

    Key Features:
    - Inclusive uniform grid, no clock-skew correction (inputs are UTC)
    - Grid-preserving left joins
    - Interior-only interpolation bounded by a maximum gap length
    - All-or-nothing day completeness filter
    """

    def __init__(self, frequency=None, max_gap=None, slots_per_day=None):
        self.frequency = frequency or config.GRID_FREQUENCY
        self.max_gap = config.MAX_GAP_SLOTS if max_gap is None else max_gap
        if slots_per_day is None:
            slots_per_day = pd.Timedelta("1D") // pd.Timedelta(self.frequency)
        self.slots_per_day = slots_per_day
        logger.debug(
            f"DataProcessor: frequency={self.frequency}, max_gap={self.max_gap}, "
            f"slots_per_day={self.slots_per_day}"
        )

    def build_time_grid(self, start, end):
        """
        Ordered instants stepped by the grid frequency from ``start`` to
        ``end`` inclusive. The last instant is the largest step not past ``end``.
        """
        start = pd.Timestamp(start)
        end = pd.Timestamp(end)
        if pd.isna(start) or pd.isna(end):
            raise SiteConfigurationError("Grid bounds must be valid timestamps")
        if start > end:
            raise SiteConfigurationError(f"Grid start {start} is after grid end {end}")

        grid = pd.date_range(start=start, end=end, freq=self.frequency, name="datetime")
        logger.debug(f"Built grid of {len(grid)} instants from {start} to {end}")
        return grid

    def merge_onto_grid(self, grid, *sources, on="datetime"):
        """
        Left-join each source onto the grid.

        The result has exactly one row per grid instant, in grid order.
        Source rows without a matching instant are dropped; repeated source
        timestamps are averaged first so they cannot duplicate grid rows.
        """
        merged = pd.DataFrame({on: pd.DatetimeIndex(grid)})

        for source in sources:
            if source is None or source.empty:
                logger.debug("Skipping empty source in grid merge")
                continue

            src = source.copy()
            src[on] = pd.to_datetime(src[on])
            value_cols = [c for c in src.columns if c != on]

            overlap = [c for c in value_cols if c in merged.columns]
            if overlap:
                raise ValueError(f"Sources share columns {overlap}; rename before merging")

            aggregations = {
                c: "mean" if pd.api.types.is_numeric_dtype(src[c]) else "first"
                for c in value_cols
            }
            if src[on].duplicated().any():
                src = src.groupby(on, as_index=False).agg(aggregations)

            matched = src[on].isin(merged[on]).sum()
            logger.debug(f"Merging {len(value_cols)} columns: {matched}/{len(src)} source rows on grid")
            merged = merged.merge(src[[on] + value_cols], on=on, how="left")

        return merged

    def interpolate_bounded(self, series, max_gap=None):
        """
        Fill interior NaN runs of at most ``max_gap`` slots by straight-line
        interpolation between the bounding valid readings.

        Longer runs are left entirely NaN; runs touching either end of the
        series are never filled.
        """
        max_gap = self.max_gap if max_gap is None else max_gap
        s = series.astype(float)
        missing = s.isna()
        if not missing.any() or missing.all():
            return s.copy()

        filled = s.interpolate(method="linear", limit_area="inside")

        run_key = (~missing).cumsum()
        run_length = missing.groupby(run_key).transform("sum")
        too_long = missing & (run_length > max_gap)
        filled[too_long] = np.nan
        return filled

    def fill_gaps(self, df, columns, max_gap=None):
        """Apply bounded interpolation independently to each column."""
        df = df.copy()
        for col in columns:
            if col not in df.columns:
                logger.warning(f"Gap fill skipped, column missing: {col}")
                continue
            before = int(df[col].isna().sum())
            df[col] = self.interpolate_bounded(df[col], max_gap)
            after = int(df[col].isna().sum())
            logger.debug(f"Gap fill {col}: {before - after} filled, {after} still missing")
        return df

    def filter_complete_days(self, df, day_column, required_columns):
        """
        Keep only days with exactly ``slots_per_day`` rows, all of which
        have every required column populated. A day missing even one slot
        is dropped entirely.
        """
        if df.empty:
            return df.copy()

        complete = df[required_columns].notna().all(axis=1)
        complete_counts = complete.groupby(df[day_column]).sum()
        day_sizes = df.groupby(day_column).size()

        keep = complete_counts[(complete_counts == self.slots_per_day) & (day_sizes == self.slots_per_day)].index
        dropped = len(day_sizes) - len(keep)
        if dropped:
            logger.info(f"Day filter dropped {dropped} of {len(day_sizes)} days")

        return df[df[day_column].isin(keep)].reset_index(drop=True)

    def prepare_site_frame(self, sensor_df, power_df, longitude, site_no=None, solar_kind=None):
        """
        Run the full alignment pipeline for one gage.

        Args:
            sensor_df: NWIS readings with ``datetime``, ``temp_water``,
                ``discharge_cfs`` and ``DO_obs``
            power_df: NASA POWER readings with ``datetime``, ``sw_down``
                and ``pressure_kpa``
            longitude: Gage longitude for the solar time transform
            site_no: Optional site number to tag rows with
            solar_kind: "mean" or "apparent" solar time

        Returns:
            DataFrame of complete days with ``datetime``, ``solar.date``,
            ``solar.time``, ``DO.obs``, ``DO.sat``, ``depth``,
            ``temp.water``, ``light``, ``discharge`` and ``pressure_mbar``
        """
        label = site_no or "site"
        if sensor_df is None or sensor_df.empty:
            raise EmptyResultError(f"No sensor readings for {label}")

        sensors = sensor_df.copy()
        sensors["datetime"] = pd.to_datetime(sensors["datetime"])
        sensors["discharge"] = cfs_to_cms(sensors["discharge_cfs"])
        sensors = sensors[["datetime", "temp_water", "discharge", "DO_obs"]]

        observed = sensors.dropna(subset=["temp_water", "discharge", "DO_obs"], how="all")
        if observed.empty:
            raise EmptyResultError(f"Sensor feed for {label} contains no readings")

        power = None
        if power_df is not None and not power_df.empty:
            power = power_df.copy()
            power["light"] = sw_to_par(power["sw_down"])
            power["pressure_mbar"] = kpa_to_mbar(power["pressure_kpa"])
            power = power[["datetime", "light", "pressure_mbar"]]
        else:
            logger.warning(f"No reanalysis data for {label}; light and pressure will be missing")

        grid = self.build_time_grid(observed["datetime"].min(), observed["datetime"].max())
        merged = self.merge_onto_grid(grid, sensors, power)
        for col in ("light", "pressure_mbar"):
            if col not in merged.columns:
                merged[col] = np.nan

        merged = self.fill_gaps(merged, config.INTERPOLATED_COLUMNS)

        merged["depth"] = depth_from_discharge(merged["discharge"])
        merged["DO.sat"] = do_saturation(merged["temp_water"], merged["pressure_mbar"])
        merged["solar.time"] = solar_time(merged["datetime"], longitude, kind=solar_kind)
        merged["solar.date"] = merged["solar.time"].dt.normalize()
        merged = merged.rename(columns={"temp_water": "temp.water", "DO_obs": "DO.obs"})

        n_days = merged["solar.date"].nunique()
        aligned = self.filter_complete_days(merged, "solar.date", config.MODEL_INPUT_COLUMNS)

        columns = [
            "datetime", "solar.date", "solar.time", "DO.obs", "DO.sat", "depth",
            "temp.water", "light", "discharge", "pressure_mbar",
        ]
        aligned = aligned[columns].copy()
        if site_no is not None:
            aligned.insert(0, "site_no", site_no)

        if aligned.empty:
            raise EmptyResultError(f"No complete days for {label} after gap filling ({n_days} days on grid)")

        logger.info(f"{label}: {aligned['solar.date'].nunique()} of {n_days} days complete, {len(aligned)} records")
        return aligned

    def load_aligned_data(self, file_path, validate=True):
        """Load an aligned CSV written by the pipeline and restore its types."""
        logger.info(f"Loading aligned data from {file_path}")
        data = pd.read_csv(file_path, dtype={"site_no": str})
        if data.empty:
            raise EmptyResultError(f"Aligned data file is empty: {file_path}")

        for col in ("datetime", "solar.time", "solar.date"):
            if col in data.columns:
                data[col] = pd.to_datetime(data[col])

        sort_cols = [c for c in ("site_no", "datetime") if c in data.columns]
        data = data.sort_values(sort_cols).reset_index(drop=True)
        logger.info(f"Aligned data loaded: {len(data)} records, {len(data.columns)} columns")

        if validate:
            groups = data.groupby("site_no") if "site_no" in data.columns else [(None, data)]
            for _, site_data in groups:
                validate_aligned_table(site_data)
        return data
