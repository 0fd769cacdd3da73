"""
Data Retrieval
==============

Thin clients for the three upstream services the pipeline depends on:

- USGS NWIS site metadata (RDB) and instantaneous values (JSON)
- NASA POWER hourly point reanalysis (JSON)
- USGS NLDI river-network navigation (GeoJSON)

Connection failures and timeouts are retried with exponential backoff.
Anything that still fails is raised as ``DataRetrievalError`` so a gage's
run stops with a clear cause instead of continuing on partial data.
"""

import os
import time
from io import StringIO

import numpy as np
import pandas as pd
import requests

import config
from .conversions import feet_to_meters, sqmi_to_sqkm
from .errors import DataRetrievalError, EmptyResultError, SiteConfigurationError
from .logging_config import get_logger
from .validation import validate_coordinates, validate_date_range, validate_site_number

logger = get_logger(__name__)


def _request_json_or_text(service, url, params=None, as_json=True, timeout=None, max_retries=None):
    """
    GET ``url`` with retry on connection errors and timeouts.

    Returns the decoded JSON payload (or response text), or None when the
    service answers 404 (NWIS uses 404 for "no data in this window").
    """
    timeout = timeout or config.REQUEST_TIMEOUT
    max_retries = config.REQUEST_MAX_RETRIES if max_retries is None else max_retries
    max_retries = max(1, max_retries)

    for attempt in range(max_retries):
        try:
            response = requests.get(url, params=params, timeout=timeout)
            break
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            if attempt < max_retries - 1:
                wait_time = 2 ** attempt  # 1, 2, 4 seconds
                logger.warning(f"[{service}] Connection error, retrying in {wait_time}s... ({attempt + 1}/{max_retries})")
                time.sleep(wait_time)
            else:
                logger.error(f"[{service}] Failed after {max_retries} attempts: {e}")
                raise DataRetrievalError(service, f"request failed after {max_retries} attempts: {e}") from e

    if response.status_code == 404:
        logger.warning(f"[{service}] No data (HTTP 404) for {response.url}")
        return None

    try:
        response.raise_for_status()
    except requests.HTTPError as e:
        logger.error(f"[{service}] HTTP {response.status_code} for {response.url}")
        raise DataRetrievalError(service, f"HTTP {response.status_code}: {response.text[:200]}") from e

    if not as_json:
        return response.text

    try:
        return response.json()
    except ValueError as e:
        logger.error(f"[{service}] Response is not valid JSON")
        raise DataRetrievalError(service, "response is not valid JSON") from e


def _parse_rdb(text):
    """
    Parse USGS RDB (tab-delimited) text into a string-typed DataFrame.

    Drops ``#`` comment lines and the column-format row (``5s``, ``15s``...).
    A ``#`` inside a data field (station names such as "NO. #2") is kept.
    """
    lines = [line for line in text.splitlines() if not line.startswith("#")]
    if not any(line.strip() for line in lines):
        return pd.DataFrame()
    df = pd.read_table(StringIO("\n".join(lines)), sep="\t", dtype=str, on_bad_lines="skip")
    if df.empty:
        return df
    if "agency_cd" in df.columns:
        df = df[~df["agency_cd"].str.match(r"^\d+s$", na=False)].copy()
    return df.reset_index(drop=True)


def fetch_site_info(site_no):
    """
    Fetch gage metadata from the NWIS site service.

    Returns:
        dict with site_no, station_nm, latitude, longitude, elevation_m,
        drainage_area_km2 (elevation and drainage area may be NaN)
    """
    site_no = validate_site_number(site_no)
    logger.info(f"[NWIS] Fetching site metadata for {site_no}")

    text = _request_json_or_text(
        "NWIS site",
        config.USGS_SITE_URL,
        params={"format": "rdb", "sites": site_no, "siteOutput": "expanded", "siteStatus": "all"},
        as_json=False,
    )
    if text is None:
        raise SiteConfigurationError(f"Unknown USGS site: {site_no}")

    df = _parse_rdb(text)
    if df.empty or "site_no" not in df.columns:
        raise SiteConfigurationError(f"Unknown USGS site: {site_no}")

    row = df.iloc[0]
    lat, lon = validate_coordinates(
        pd.to_numeric(row.get("dec_lat_va"), errors="coerce"),
        pd.to_numeric(row.get("dec_long_va"), errors="coerce"),
    )
    elevation_ft = pd.to_numeric(row.get("alt_va"), errors="coerce")
    drainage_sqmi = pd.to_numeric(row.get("drain_area_va"), errors="coerce")

    info = {
        "site_no": site_no,
        "station_nm": row.get("station_nm", config.SITES.get(site_no, f"USGS {site_no}")),
        "latitude": lat,
        "longitude": lon,
        "elevation_m": float(feet_to_meters(elevation_ft)) if pd.notna(elevation_ft) else np.nan,
        "drainage_area_km2": float(sqmi_to_sqkm(drainage_sqmi)) if pd.notna(drainage_sqmi) else np.nan,
    }
    logger.info(f"[NWIS] {site_no} '{info['station_nm']}' at ({lat:.4f}, {lon:.4f})")
    return info


def _parse_iv_time_series(payload, param_codes):
    """Convert an NWIS IV JSON payload into one Series per requested parameter."""
    ts_data = payload.get("value", {}).get("timeSeries", [])
    series = {}

    for ts in ts_data:
        variable = ts.get("variable", {})
        code = variable.get("variableCode", [{}])[0].get("value")
        if code not in param_codes or param_codes[code] in series:
            continue

        no_data = variable.get("noDataValue", config.USGS_NO_DATA_VALUE)
        values = ts.get("values", [{}])[0].get("value", [])
        if not values:
            continue

        df = pd.DataFrame(values)
        times = pd.to_datetime(df["dateTime"], utc=True).dt.tz_localize(None)
        readings = pd.to_numeric(df["value"], errors="coerce")
        if no_data is not None:
            readings = readings.mask(readings == float(no_data))

        s = pd.Series(readings.values, index=times, name=param_codes[code])
        # Duplicate stamps appear around DST changes in the source offsets
        s = s.groupby(level=0).mean().sort_index()
        series[param_codes[code]] = s

    return series


def fetch_usgs_iv(site_no, start_date, end_date, param_codes=None):
    """
    Fetch instantaneous values from USGS NWIS Water Services.

    Args:
        site_no: USGS site number
        start_date: Start date (YYYY-MM-DD)
        end_date: End date (YYYY-MM-DD)
        param_codes: Mapping of parameter code -> column name
            (defaults to config.PARAM_CODES)

    Returns:
        DataFrame with a ``datetime`` column (UTC, tz-naive) and one column
        per parameter; readings the service marks as missing are NaN

    Raises:
        DataRetrievalError: service failure
        EmptyResultError: no readings for any requested parameter
    """
    site_no = validate_site_number(site_no)
    start, end = validate_date_range(start_date, end_date)
    param_codes = param_codes or config.PARAM_CODES

    logger.info(f"[NWIS] Fetching IV for {site_no} from {start.date()} to {end.date()}")
    logger.debug(f"[NWIS] Parameters: {', '.join(param_codes)}")

    payload = _request_json_or_text(
        "NWIS IV",
        config.USGS_IV_URL,
        params={
            "format": "json",
            "sites": site_no,
            "startDT": start.strftime("%Y-%m-%d"),
            "endDT": end.strftime("%Y-%m-%d"),
            "parameterCd": ",".join(param_codes),
            "siteStatus": "all",
        },
    )
    if payload is None:
        raise EmptyResultError(f"No instantaneous values for site {site_no} between {start.date()} and {end.date()}")

    series = _parse_iv_time_series(payload, param_codes)
    if not series:
        raise EmptyResultError(f"No instantaneous values for site {site_no} between {start.date()} and {end.date()}")

    for code, name in param_codes.items():
        if name not in series:
            logger.warning(f"[NWIS] Site {site_no} returned no data for parameter {code} ({name})")

    df = pd.concat(series.values(), axis=1).sort_index()
    df = df.reindex(columns=list(param_codes.values()))
    df.index.name = "datetime"
    df = df.reset_index()

    logger.info(f"[NWIS] Retrieved {len(df)} records from {df['datetime'].min()} to {df['datetime'].max()}")
    return df


def fetch_nasa_power(latitude, longitude, start_date, end_date, elevation_m=None):
    """
    Fetch hourly shortwave radiation and surface pressure from NASA POWER.

    Returns:
        DataFrame with ``datetime`` (UTC, tz-naive), ``sw_down`` (W m-2)
        and ``pressure_kpa`` (kPa); the POWER fill value becomes NaN
    """
    lat, lon = validate_coordinates(latitude, longitude)
    start, end = validate_date_range(start_date, end_date)

    params = {
        "parameters": ",".join(config.NASA_POWER_PARAMETERS),
        "community": config.NASA_POWER_COMMUNITY,
        "latitude": round(lat, 4),
        "longitude": round(lon, 4),
        "start": start.strftime("%Y%m%d"),
        "end": end.strftime("%Y%m%d"),
        "format": "JSON",
        "time-standard": "UTC",
    }
    if elevation_m is not None and pd.notna(elevation_m):
        params["site-elevation"] = round(float(elevation_m), 1)

    logger.info(f"[POWER] Fetching hourly data at ({lat:.4f}, {lon:.4f}) from {start.date()} to {end.date()}")
    payload = _request_json_or_text("NASA POWER", config.NASA_POWER_URL, params=params)
    if payload is None:
        raise EmptyResultError(f"No NASA POWER data at ({lat}, {lon})")

    parameters = payload.get("properties", {}).get("parameter", {})
    missing = [p for p in config.NASA_POWER_PARAMETERS if p not in parameters]
    if missing:
        raise DataRetrievalError("NASA POWER", f"response missing parameters {missing}")

    frames = []
    for name, column in (("ALLSKY_SFC_SW_DWN", "sw_down"), ("PS", "pressure_kpa")):
        values = parameters[name]
        s = pd.Series(values, name=column, dtype=float)
        s.index = pd.to_datetime(s.index, format="%Y%m%d%H")
        frames.append(s.mask(s == config.NASA_POWER_FILL_VALUE))

    df = pd.concat(frames, axis=1).sort_index()
    if df.empty:
        raise EmptyResultError(f"No NASA POWER data at ({lat}, {lon})")
    df.index.name = "datetime"
    df = df.reset_index()

    logger.info(f"[POWER] Retrieved {len(df)} hourly records")
    return df


def fetch_upstream_sites(site_no, distance_km=None):
    """
    Navigate the upstream mainstem from a gage and list the USGS gages on it.

    Returns:
        List of site numbers, nearest-first as returned by NLDI, excluding
        ``site_no`` itself
    """
    site_no = validate_site_number(site_no)
    distance_km = distance_km or config.UPSTREAM_DISTANCE_KM

    url = f"{config.NLDI_URL}/nwissite/USGS-{site_no}/navigation/UM/nwissite"
    logger.info(f"[NLDI] Navigating upstream mainstem from {site_no} ({distance_km} km)")
    payload = _request_json_or_text("NLDI", url, params={"distance": distance_km})
    if payload is None:
        raise SiteConfigurationError(f"Site {site_no} is not indexed on the NLDI network")

    upstream = []
    for feature in payload.get("features", []):
        identifier = feature.get("properties", {}).get("identifier", "")
        candidate = identifier.replace("USGS-", "").strip()
        if candidate and candidate != site_no and candidate not in upstream:
            upstream.append(candidate)

    logger.info(f"[NLDI] Found {len(upstream)} upstream gages")
    return upstream


def fetch_cached(key, fetch_fn, cache_dir=None, refresh=None):
    """
    Return ``fetch_fn()`` through a parquet cache keyed by ``key``.

    Reruns over the same window read the cached frame instead of hitting
    the services again; ``refresh`` forces a new download.
    """
    cache_dir = cache_dir or config.RAW_CACHE_DIR
    refresh = config.FORCE_REFRESH if refresh is None else refresh
    path = os.path.join(cache_dir, f"{key}.parquet")

    if not refresh and os.path.exists(path):
        logger.info(f"Using cached data: {path}")
        return pd.read_parquet(path)

    df = fetch_fn()
    os.makedirs(cache_dir, exist_ok=True)
    # Write then rename so an interrupted write never leaves a partial file
    tmp_path = f"{path}.tmp"
    try:
        df.to_parquet(tmp_path, index=False)
    except Exception:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    os.replace(tmp_path, path)
    logger.debug(f"Cached {len(df)} rows to {path}")
    return df
