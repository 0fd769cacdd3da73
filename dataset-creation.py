#!/usr/bin/env python3
"""
Pecos River Metabolism Dataset Creation Pipeline

Downloads and processes:
- Water temperature, discharge and dissolved oxygen (USGS NWIS, 15-minute)
- Shortwave radiation and surface pressure (NASA POWER, hourly)
- Upstream mainstem gages (USGS NLDI), optional

Aligns every gage onto a uniform 15-minute grid, fills short gaps and keeps
only complete days. Configuration in config.py.
"""

import argparse
import sys
import warnings
from datetime import datetime

import config
from metabolism import MetabolismEngine
from metabolism.errors import PipelineError
from metabolism.logging_config import setup_logging, get_logger

logger = get_logger(__name__)
warnings.filterwarnings("ignore", category=FutureWarning)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Retrieve and align Pecos gage data onto a 15-minute grid"
    )
    parser.add_argument("--site", "-s", default=config.PRIMARY_SITE,
                        help="Primary USGS site number")
    parser.add_argument("--start", default=config.START_DATE, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", default=config.END_DATE, help="End date (YYYY-MM-DD)")
    parser.add_argument("--upstream", action="store_true",
                        help="Also prepare gages on the upstream mainstem")
    parser.add_argument("--sites", nargs="+", default=None,
                        help="Explicit list of site numbers (overrides --site/--upstream)")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel workers (-1 = all cores)")
    parser.add_argument("--refresh", action="store_true", help="Ignore cached downloads")
    parser.add_argument("--output", "-o", default=config.ALIGNED_OUTPUT_PATH,
                        help="Aligned CSV output path")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None):
    """
    Build the aligned dataset.

    1. Resolves the gage list (primary plus NLDI upstream, or explicit sites)
    2. Retrieves NWIS and POWER data for each gage in parallel
    3. Aligns, gap-fills and day-filters each gage independently
    4. Writes one raw sensor CSV per gage and the combined aligned CSV

    Gages that fail are reported and skipped; the run fails only when no
    gage can be prepared.
    """
    args = parse_args(argv)
    setup_logging(log_level=args.log_level, enable_file_logging=True)

    print("\n======= Starting Dataset Creation =======")
    start_time = datetime.now()

    engine = MetabolismEngine(refresh=args.refresh)
    try:
        sites = args.sites or engine.discover_sites(args.site, include_upstream=args.upstream)
        print(f"Gages: {', '.join(sites)}")
        aligned, raw = engine.prepare_sites(sites, args.start, args.end, n_jobs=args.n_jobs)
    except PipelineError as e:
        logger.error(f"Dataset creation failed: {e}")
        return 1

    engine.save_outputs(aligned=aligned, raw=raw, aligned_path=args.output)

    print("\n--- Summary ---")
    for site_no, site_df in aligned.groupby("site_no"):
        print(f"  {site_no}: {site_df['solar.date'].nunique()} complete days, {len(site_df)} records")
    for site_no, error in engine.failures.items():
        print(f"  {site_no}: FAILED ({error})")

    print(f"\n======= Script Finished in {datetime.now() - start_time} =======")
    return 0


if __name__ == "__main__":
    sys.exit(main())
