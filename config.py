# Pecos Metabolism Configuration
# Settings for data retrieval, series alignment, metabolism fitting, and plots

import os

# Monitoring Sites

# Pecos River USGS gages with dissolved oxygen sensors (site number -> short name)
SITES = {
    "08446500": "Pecos Rv nr Girvin",
    "08447300": "Pecos Rv at Brotherton Rh nr Pandale",
    "08447410": "Pecos Rv nr Langtry",
}

# Gage the metabolism model is fitted for
PRIMARY_SITE = "08447410"

# Upstream gages are discovered with NLDI navigation up to this distance
UPSTREAM_DISTANCE_KM = 300

# Date Ranges
START_DATE = "2022-06-01"
END_DATE = "2022-09-30"

# Data Sources

# USGS NWIS instantaneous values and site metadata
USGS_IV_URL = "https://waterservices.usgs.gov/nwis/iv/"
USGS_SITE_URL = "https://waterservices.usgs.gov/nwis/site/"

# NASA POWER hourly point data (UTC time standard)
NASA_POWER_URL = "https://power.larc.nasa.gov/api/temporal/hourly/point"
NASA_POWER_PARAMETERS = ["ALLSKY_SFC_SW_DWN", "PS"]
NASA_POWER_COMMUNITY = "RE"
NASA_POWER_FILL_VALUE = -999.0

# NLDI river network navigation
NLDI_URL = "https://api.water.usgs.gov/nldi/linked-data"

REQUEST_TIMEOUT = 120
REQUEST_MAX_RETRIES = 3

# USGS parameter codes -> column names used throughout the pipeline
PARAM_CODES = {
    "00010": "temp_water",     # Temperature, water, degrees Celsius
    "00060": "discharge_cfs",  # Discharge, cubic feet per second
    "00300": "DO_obs",         # Dissolved oxygen, mg/L
}

# NWIS marks missing instantaneous values with this sentinel
USGS_NO_DATA_VALUE = -999999.0

# Series Alignment

GRID_FREQUENCY = "15min"
MAX_GAP_SLOTS = 24  # 6 hours at 15-minute cadence

# Columns every retained day must have populated in all 96 slots
MODEL_INPUT_COLUMNS = ["solar.time", "DO.obs", "DO.sat", "depth", "temp.water", "light"]

# Columns filled by bounded interpolation before derived quantities are computed
INTERPOLATED_COLUMNS = ["temp_water", "discharge", "DO_obs", "light", "pressure_mbar"]

# Unit Conversions
CFS_TO_CMS = 0.0283168469
SQKM_TO_SQMI = 0.38610216
FEET_TO_METERS = 0.3048
KPA_TO_MBAR = 10.0
SW_TO_PAR = 2.114  # umol m-2 s-1 per W m-2

# Depth-discharge power law: ln(z) = DEPTH_SLOPE * ln(Q) + DEPTH_INTERCEPT
DEPTH_SLOPE = 0.294
DEPTH_INTERCEPT = -0.895

# Solar time definition for day grouping: "mean" or "apparent"
SOLAR_TIME_KIND = "mean"

# Salinity used for DO saturation (freshwater)
SALINITY_PSU = 0.0

# Output Paths

DATA_DIR = "./data"
RAW_CACHE_DIR = "./data/raw/cache"
RAW_SITE_DIR = "./data/raw/sites"
ALIGNED_OUTPUT_PATH = "./data/processed/aligned_series.csv"
METABOLISM_OUTPUT_PATH = "./data/processed/daily_metabolism.csv"
PLOT_DIR = "./data/plots"
LOG_DIR = "./logs"

# Re-download even when cached raw files exist
FORCE_REFRESH = False

# Metabolism Model Configuration

# Initial guesses for the daily maximum-likelihood fit
MODEL_INITIAL_VALUES = {
    "GPP": 3.0,    # g O2 m-2 d-1
    "ER": -5.0,    # g O2 m-2 d-1
    "K600": 10.0,  # d-1
}

# Physically plausible bounds, used to flag fits that ran off the rails
MODEL_PARAMETER_BOUNDS = {
    "GPP": (-5.0, 50.0),
    "ER": (-100.0, 5.0),
    "K600": (0.0, 200.0),
}

# Two-sided normal confidence level for daily estimates
CONFIDENCE_LEVEL = 0.95

# Days whose summed light is below this are not fitted (umol m-2 s-1 summed over the day)
MIN_DAILY_LIGHT = 1.0

MODEL_MAX_ITERATIONS = 2000

# Parallelism

# Per-gage fan-out across worker processes (-1 = all cores)
PIPELINE_N_JOBS = int(os.getenv("PECOS_N_JOBS", "-1"))

# Plot Configuration
PLOT_WIDTH = 1100
PLOT_HEIGHT = 500
PLOT_SCALE = 2
