#!/usr/bin/env python3
"""
Aligned grid integrity validation script.
"""

import sys

import config
from metabolism.data_processor import DataProcessor
from metabolism.validation import validate_aligned_table


def validate_site_ordering(df):
    for site in df["site_no"].unique():
        site_df = df[df["site_no"] == site]
        if not site_df["datetime"].is_monotonic_increasing:
            raise ValueError(f"Timestamp ordering violated for site: {site}")
        if site_df["datetime"].duplicated().any():
            raise ValueError(f"Duplicate timestamps for site: {site}")


def validate_physical_values(df):
    """Model inputs must be populated and depth strictly positive."""
    for site in df["site_no"].unique():
        site_df = df[df["site_no"] == site]
        for col in ("DO.obs", "temp.water", "light"):
            if site_df[col].isna().any():
                raise ValueError(f"Missing {col} values for site: {site}")
        if (site_df["depth"] <= 0).any():
            raise ValueError(f"Non-positive depth for site: {site}")


def main():
    processor = DataProcessor()
    data = processor.load_aligned_data(config.ALIGNED_OUTPUT_PATH, validate=False)

    validate_site_ordering(data)
    for _, site_df in data.groupby("site_no"):
        validate_aligned_table(site_df)
    validate_physical_values(data)

    print("Grid integrity validation completed successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
