"""
Input and output validation for the metabolism pipeline.
"""

import math
import re

import pandas as pd

import config
from .errors import SiteConfigurationError
from .logging_config import get_logger

logger = get_logger(__name__)

_SITE_NUMBER_PATTERN = re.compile(r"^\d{8,15}$")


def validate_site_number(site_no):
    """Check that a USGS site number is an 8-15 digit string."""
    site_no = str(site_no).strip()
    if not _SITE_NUMBER_PATTERN.match(site_no):
        raise SiteConfigurationError(f"Invalid USGS site number: '{site_no}'")
    return site_no


def validate_coordinates(latitude, longitude):
    """Check that a latitude/longitude pair is finite and in range."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise SiteConfigurationError(f"Non-numeric coordinates: ({latitude}, {longitude})")

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise SiteConfigurationError(f"Missing coordinates: ({latitude}, {longitude})")
    if not -90.0 <= lat <= 90.0:
        raise SiteConfigurationError(f"Latitude out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise SiteConfigurationError(f"Longitude out of range: {lon}")
    return lat, lon


def validate_date_range(start_date, end_date):
    """Parse a date window and check that it is not reversed."""
    try:
        start = pd.Timestamp(start_date)
        end = pd.Timestamp(end_date)
    except (TypeError, ValueError) as e:
        raise SiteConfigurationError(f"Unparseable date range ({start_date}, {end_date}): {e}")

    if pd.isna(start) or pd.isna(end):
        raise SiteConfigurationError(f"Missing date in range ({start_date}, {end_date})")
    if start > end:
        raise SiteConfigurationError(f"Start date {start.date()} is after end date {end.date()}")
    return start, end


def validate_aligned_table(df, required_columns=None, day_column="solar.date"):
    """
    Validate the invariants of an aligned model-input table.

    Every day must hold exactly one day of grid slots, spaced exactly one grid
    step apart, with no missing values in any required column.

    Returns:
        True when the table passes; raises ValueError otherwise
    """
    if required_columns is None:
        required_columns = config.MODEL_INPUT_COLUMNS

    missing_cols = [col for col in required_columns if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Critical columns missing: {missing_cols}")

    null_counts = df[required_columns].isna().sum()
    if null_counts.any():
        raise ValueError(f"Missing values in aligned table: {null_counts[null_counts > 0].to_dict()}")

    if day_column not in df.columns:
        raise ValueError(f"Day column '{day_column}' missing")

    step = pd.Timedelta(config.GRID_FREQUENCY)
    slots_per_day = pd.Timedelta("1D") // step
    for day, group in df.groupby(day_column):
        if len(group) != slots_per_day:
            raise ValueError(f"Day {day} has {len(group)} rows, expected {slots_per_day}")
        diffs = pd.to_datetime(group["datetime"]).sort_values().diff().dropna()
        if not (diffs == step).all():
            raise ValueError(f"Day {day} is not uniformly spaced at {config.GRID_FREQUENCY}")

    logger.info(f"Aligned table validation passed: {len(df)} records, {df[day_column].nunique()} days")
    return True
