from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DATA_FILE = DATA_DIR / "wycany.csv"   # state/taxonomy/segment percentage table

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Audience Population Estimator"
APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Data source
#
# The row table is a delimited file with the columns
#   state_code, taxonomy, segment, population_pct
# It can live on disk or behind an HTTP(S) endpoint. A URL wins over a path
# when both are set.
# ---------------------------------------------------------------------------

AUDIENCE_DATA_PATH = os.getenv("AUDIENCE_DATA_PATH", "").strip()
AUDIENCE_DATA_URL = os.getenv("AUDIENCE_DATA_URL", "").strip()

# HTTP timeout for the loader (seconds)
AUDIENCE_DATA_TIMEOUT = int(os.getenv("AUDIENCE_DATA_TIMEOUT", "60").strip() or "60")

# ---------------------------------------------------------------------------
# Logging / validation
# ---------------------------------------------------------------------------

LOG_LEVEL = os.getenv("AUDIENCE_LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Allowed deviation (in percentage points) of a (state, taxonomy) sum from 100
SUM_TOLERANCE_PCT = float(os.getenv("AUDIENCE_SUM_TOLERANCE", "1.0").strip() or "1.0")


def default_data_source() -> str:
    """
    Resolve the data source used when the caller does not pass one.

    Order: AUDIENCE_DATA_URL, AUDIENCE_DATA_PATH, then data/wycany.csv.
    """
    if AUDIENCE_DATA_URL:
        return AUDIENCE_DATA_URL
    if AUDIENCE_DATA_PATH:
        return AUDIENCE_DATA_PATH
    return str(DEFAULT_DATA_FILE)
