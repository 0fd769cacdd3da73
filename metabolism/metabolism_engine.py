"""
Metabolism Engine
Retrieval, alignment, and daily estimation for one or more Pecos gages
"""

import os

import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

import config
from .data_processor import DataProcessor
from .errors import EmptyResultError
from .metabolism_model import MetabolismModel
from .retrieval import (
    fetch_cached,
    fetch_nasa_power,
    fetch_site_info,
    fetch_upstream_sites,
    fetch_usgs_iv,
)
from .validation import validate_date_range, validate_site_number
from .logging_config import get_logger

logger = get_logger(__name__)


class MetabolismEngine:
    """
    Orchestrates a metabolism run.

    Each gage's retrieval and gap-fill sequence is independent, so gages
    are prepared concurrently in worker processes and concatenated. A
    gage that fails is logged and reported; it never touches the frames
    of the other gages.
    """

    def __init__(self, refresh=None, cache_dir=None, data_processor=None, model=None):
        logger.info("Initializing MetabolismEngine")
        self.refresh = config.FORCE_REFRESH if refresh is None else refresh
        self.cache_dir = cache_dir or config.RAW_CACHE_DIR
        self.data_processor = data_processor or DataProcessor()
        self.model = model or MetabolismModel()
        self.failures = {}
        logger.info(f"Configuration: cache_dir={self.cache_dir}, refresh={self.refresh}")

    def retrieve_site(self, site_no, start_date, end_date):
        """
        Download (or read from cache) everything one gage needs.

        Returns:
            (site_info dict, sensor DataFrame, reanalysis DataFrame)
        """
        site_no = validate_site_number(site_no)
        start, end = validate_date_range(start_date, end_date)
        window = f"{start:%Y%m%d}_{end:%Y%m%d}"

        info_df = fetch_cached(
            f"site_{site_no}",
            lambda: pd.DataFrame([fetch_site_info(site_no)]),
            cache_dir=self.cache_dir,
            refresh=self.refresh,
        )
        site_info = info_df.iloc[0].to_dict()
        site_info["site_no"] = site_no

        sensors = fetch_cached(
            f"nwis_iv_{site_no}_{window}",
            lambda: fetch_usgs_iv(site_no, start, end),
            cache_dir=self.cache_dir,
            refresh=self.refresh,
        )
        power = fetch_cached(
            f"power_{site_no}_{window}",
            lambda: fetch_nasa_power(
                site_info["latitude"], site_info["longitude"], start, end,
                elevation_m=site_info.get("elevation_m"),
            ),
            cache_dir=self.cache_dir,
            refresh=self.refresh,
        )
        return site_info, sensors, power

    def prepare_site(self, site_no, start_date, end_date):
        """
        Retrieve and align one gage.

        Returns:
            (aligned DataFrame tagged with ``site_no``, raw sensor DataFrame)
        """
        site_info, sensors, power = self.retrieve_site(site_no, start_date, end_date)
        aligned = self.data_processor.prepare_site_frame(
            sensors, power, site_info["longitude"], site_no=site_info["site_no"]
        )
        raw = sensors.copy()
        raw.insert(0, "site_no", site_info["site_no"])
        return aligned, raw

    def _prepare_site_isolated(self, site_no, start_date, end_date):
        """Worker entry point: never raises, reports the failure instead."""
        try:
            aligned, raw = self.prepare_site(site_no, start_date, end_date)
            return {"site_no": site_no, "aligned": aligned, "raw": raw, "error": None}
        except Exception as e:
            logger.error(f"Gage {site_no} failed: {type(e).__name__}: {e}")
            return {"site_no": site_no, "aligned": None, "raw": None, "error": f"{type(e).__name__}: {e}"}

    def prepare_sites(self, site_nos, start_date, end_date, n_jobs=None):
        """
        Prepare several gages concurrently.

        Returns:
            (aligned DataFrame of all successful gages,
             raw sensor DataFrame of all successful gages)

        Failed gages are recorded in ``self.failures`` (site -> error).
        """
        site_nos = list(dict.fromkeys(site_nos))
        if n_jobs is None:
            n_jobs = config.PIPELINE_N_JOBS
        if len(site_nos) == 1:
            n_jobs = 1

        logger.info(f"Preparing {len(site_nos)} gages with n_jobs={n_jobs}")
        results = Parallel(n_jobs=n_jobs)(
            delayed(self._prepare_site_isolated)(site_no, start_date, end_date)
            for site_no in tqdm(site_nos, desc="Preparing gages", unit="gage")
        )

        self.failures = {r["site_no"]: r["error"] for r in results if r["error"] is not None}
        succeeded = [r for r in results if r["error"] is None]
        if self.failures:
            logger.warning(f"{len(self.failures)} of {len(site_nos)} gages failed: {sorted(self.failures)}")
        if not succeeded:
            raise EmptyResultError(f"No gage could be prepared: {self.failures}")

        aligned = pd.concat([r["aligned"] for r in succeeded], ignore_index=True)
        raw = pd.concat([r["raw"] for r in succeeded], ignore_index=True)
        logger.info(f"Prepared {len(succeeded)} gages: {len(aligned)} aligned records")
        return aligned, raw

    def estimate(self, aligned_df):
        """Fit daily GPP, ER and K600 for a single gage's aligned table."""
        if aligned_df is None or aligned_df.empty:
            raise EmptyResultError("No aligned data to fit")
        if "site_no" in aligned_df.columns and aligned_df["site_no"].nunique() > 1:
            raise ValueError("estimate() expects one gage; filter by site_no first")

        daily = self.model.fit(aligned_df)
        if "site_no" in aligned_df.columns:
            daily.insert(0, "site_no", aligned_df["site_no"].iloc[0])
        return daily

    def discover_sites(self, site_no, include_upstream=False, distance_km=None):
        """Primary gage first, followed by upstream mainstem gages when requested."""
        site_no = validate_site_number(site_no)
        sites = [site_no]
        if include_upstream:
            sites.extend(fetch_upstream_sites(site_no, distance_km))
        return sites

    def save_outputs(self, aligned=None, raw=None, daily=None,
                     aligned_path=None, raw_dir=None, daily_path=None):
        """Write the aligned table, per-gage raw sensor files, and daily estimates as CSV."""
        written = []
        if aligned is not None:
            path = aligned_path or config.ALIGNED_OUTPUT_PATH
            _ensure_parent(path)
            aligned.to_csv(path, index=False)
            written.append(path)

        if raw is not None:
            raw_dir = raw_dir or config.RAW_SITE_DIR
            os.makedirs(raw_dir, exist_ok=True)
            for site_no, site_raw in raw.groupby("site_no"):
                path = os.path.join(raw_dir, f"{site_no}_sensors.csv")
                site_raw.to_csv(path, index=False)
                written.append(path)

        if daily is not None:
            path = daily_path or config.METABOLISM_OUTPUT_PATH
            _ensure_parent(path)
            daily.to_csv(path, index=False, date_format="%Y-%m-%d")
            written.append(path)

        for path in written:
            logger.info(f"Saved {path}")
        return written

    def run(self, site_no=None, start_date=None, end_date=None, include_upstream=False, n_jobs=None):
        """
        Full run for the primary gage (and optionally its upstream gages).

        Returns:
            dict with ``aligned``, ``raw``, ``daily`` and ``failures``
        """
        site_no = site_no or config.PRIMARY_SITE
        start_date = start_date or config.START_DATE
        end_date = end_date or config.END_DATE

        sites = self.discover_sites(site_no, include_upstream)
        aligned, raw = self.prepare_sites(sites, start_date, end_date, n_jobs=n_jobs)

        if site_no in self.failures:
            raise EmptyResultError(f"Primary gage {site_no} failed: {self.failures[site_no]}")

        primary = aligned[aligned["site_no"] == site_no]
        daily = self.estimate(primary)
        return {"aligned": aligned, "raw": raw, "daily": daily, "failures": dict(self.failures)}


def _ensure_parent(path):
    output_dir = os.path.dirname(path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
