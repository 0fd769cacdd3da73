"""
Unit and derived-quantity conversions.

All functions are vectorised over scalars, numpy arrays, and pandas
Series. Missing input propagates as missing output.
"""

import numpy as np
import pandas as pd

import config


def cfs_to_cms(discharge_cfs):
    """Discharge, cubic feet per second -> cubic meters per second."""
    return discharge_cfs * config.CFS_TO_CMS


def cms_to_cfs(discharge_cms):
    return discharge_cms / config.CFS_TO_CMS


def sqmi_to_sqkm(area_sqmi):
    """Drainage area, square miles -> square kilometers."""
    return area_sqmi / config.SQKM_TO_SQMI


def sqkm_to_sqmi(area_sqkm):
    return area_sqkm * config.SQKM_TO_SQMI


def feet_to_meters(length_ft):
    return length_ft * config.FEET_TO_METERS


def meters_to_feet(length_m):
    return length_m / config.FEET_TO_METERS


def kpa_to_mbar(pressure_kpa):
    return pressure_kpa * config.KPA_TO_MBAR


def mbar_to_kpa(pressure_mbar):
    return pressure_mbar / config.KPA_TO_MBAR


def sw_to_par(sw_down):
    """Shortwave radiation (W m-2) -> photosynthetically active radiation (umol m-2 s-1)."""
    return sw_down * config.SW_TO_PAR


def par_to_sw(par):
    return par / config.SW_TO_PAR


def depth_from_discharge(discharge_cms):
    """
    Mean river depth (m) from discharge (m3/s) via the site power law
    ln(z) = 0.294 ln(Q) - 0.895. Non-positive discharge gives NaN.
    """
    q = np.asarray(discharge_cms, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        depth = np.where(q > 0, np.exp(config.DEPTH_SLOPE * np.log(q) + config.DEPTH_INTERCEPT), np.nan)
    if isinstance(discharge_cms, pd.Series):
        return pd.Series(depth, index=discharge_cms.index, name="depth")
    if np.ndim(depth) == 0:
        return float(depth)
    return depth


def equation_of_time(timestamps):
    """Equation of time in minutes (Spencer 1971) for each timestamp."""
    timestamps = pd.DatetimeIndex(pd.to_datetime(timestamps))
    b = 2 * np.pi * (timestamps.dayofyear.values - 1) / 365.0
    return 229.18 * (
        0.000075
        + 0.001868 * np.cos(b)
        - 0.032077 * np.sin(b)
        - 0.014615 * np.cos(2 * b)
        - 0.040849 * np.sin(2 * b)
    )


def solar_time(utc_times, longitude, kind=None):
    """
    Convert UTC timestamps to local solar time.

    Mean solar time shifts UTC by four minutes per degree of longitude.
    Apparent solar time additionally applies the equation of time.

    Args:
        utc_times: Series or array-like of tz-naive UTC timestamps
        longitude: Decimal degrees, negative west of Greenwich
        kind: "mean" or "apparent" (defaults to config.SOLAR_TIME_KIND)

    Returns:
        Series of tz-naive solar timestamps aligned to the input
    """
    kind = kind or config.SOLAR_TIME_KIND
    if kind not in ("mean", "apparent"):
        raise ValueError(f"Unknown solar time kind: '{kind}'")

    index = utc_times.index if isinstance(utc_times, pd.Series) else None
    times = pd.Series(pd.to_datetime(utc_times), index=index)
    if times.dt.tz is not None:
        times = times.dt.tz_convert("UTC").dt.tz_localize(None)

    offset = pd.to_timedelta(float(longitude) * 4.0, unit="min")
    solar = times + offset
    if kind == "apparent":
        solar = solar + pd.to_timedelta(equation_of_time(times), unit="min")
    return solar.rename("solar.time")


def do_saturation(temp_water, pressure_mbar, salinity=None):
    """
    Dissolved-oxygen saturation (mg/L) from water temperature (C) and
    barometric pressure (mbar), using the Garcia-Benson solubility fit
    with a water-vapour pressure correction.
    """
    salinity = config.SALINITY_PSU if salinity is None else salinity
    t = np.asarray(temp_water, dtype=float)
    p_mmhg = np.asarray(pressure_mbar, dtype=float) * 0.750061683

    ts = np.log((298.15 - t) / (273.15 + t))
    ln_c = (
        2.00907
        + 3.22014 * ts
        + 4.05010 * ts ** 2
        + 4.94457 * ts ** 3
        - 0.256847 * ts ** 4
        + 3.88767 * ts ** 5
        + salinity * (-6.24523e-3 - 7.37614e-3 * ts - 1.03410e-2 * ts ** 2 - 8.17083e-3 * ts ** 3)
        - 4.88682e-7 * salinity ** 2
    )
    o2_ml_per_l = np.exp(ln_c)

    vapour_mmhg = 10 ** (8.10765 - 1750.286 / (235.0 + t))
    pressure_correction = (p_mmhg - vapour_mmhg) / (760.0 - vapour_mmhg)
    do_sat = o2_ml_per_l * 1.42905 * pressure_correction

    if isinstance(temp_water, pd.Series):
        return pd.Series(do_sat, index=temp_water.index, name="DO.sat")
    if np.ndim(do_sat) == 0:
        return float(do_sat)
    return do_sat


def schmidt_number_o2(temp_water):
    """Schmidt number of O2 in freshwater (Wanninkhof 1992)."""
    t = np.asarray(temp_water, dtype=float)
    return 1800.6 - 120.1 * t + 3.7818 * t ** 2 - 0.047608 * t ** 3


def k600_to_ko2(k600, temp_water):
    """Convert gas-exchange velocity normalised to Sc=600 into the O2 rate at temperature."""
    return np.asarray(k600, dtype=float) * (schmidt_number_o2(temp_water) / 600.0) ** -0.5
