#!/usr/bin/env python3
"""
Pecos Metabolism Runner
Retrieves, aligns and fits daily GPP / ER / K600 for the primary gage,
then writes CSV outputs and diagnostic plots.
"""

import argparse
import sys
from datetime import datetime

import config
from metabolism import MetabolismEngine
from metabolism.errors import PipelineError
from metabolism.logging_config import setup_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Estimate daily stream metabolism for a Pecos River gage"
    )
    parser.add_argument("--site", "-s", default=config.PRIMARY_SITE, help="USGS site number")
    parser.add_argument("--start", default=config.START_DATE, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", default=config.END_DATE, help="End date (YYYY-MM-DD)")
    parser.add_argument("--upstream", action="store_true",
                        help="Also retrieve and align upstream mainstem gages")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel workers (-1 = all cores)")
    parser.add_argument("--refresh", action="store_true", help="Ignore cached downloads")
    parser.add_argument("--no-plots", action="store_true", help="Skip plot rendering")
    parser.add_argument("--plot-format", default="png", choices=["png", "svg", "pdf", "html"])
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(log_level=args.log_level, enable_file_logging=True)
    start_time = datetime.now()

    print("Pecos Metabolism Runner")
    print("=============================")

    engine = MetabolismEngine(refresh=args.refresh)
    try:
        results = engine.run(
            site_no=args.site,
            start_date=args.start,
            end_date=args.end,
            include_upstream=args.upstream,
            n_jobs=args.n_jobs,
        )
    except PipelineError as e:
        logger.error(f"Run failed: {e}")
        return 1

    engine.save_outputs(aligned=results["aligned"], raw=results["raw"], daily=results["daily"])

    if not args.no_plots:
        from backend.visualizations import save_run_plots

        primary = results["aligned"][results["aligned"]["site_no"] == args.site]
        predicted = engine.model.predict_do(primary, results["daily"])
        save_run_plots(primary, results["daily"], predicted, site=args.site, fmt=args.plot_format)

    daily = results["daily"]
    usable = int(daily["converged"].sum())
    print(f"\nDays fitted: {len(daily)} ({usable} usable)")
    if usable:
        summary = daily.loc[daily["converged"], ["GPP", "ER", "K600"]].mean()
        print(f"Mean GPP {summary['GPP']:.2f}, ER {summary['ER']:.2f} g O2 m-2 d-1, K600 {summary['K600']:.2f} d-1")
    for site_no, error in results["failures"].items():
        print(f"Upstream gage {site_no} skipped: {error}")

    print(f"Finished in {datetime.now() - start_time}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
