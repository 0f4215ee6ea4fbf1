"""Runtime configuration.

Every setting can be overridden from the environment, which is mostly useful
for pointing the data directory somewhere else.
"""

import os
from pathlib import Path

# --- Storage ---
DATA_DIR = Path(os.environ.get("CLI_CALC_DATA_DIR", "~/.cli-calc")).expanduser()
DEFAULT_SLOT = "default"

# --- Line editing ---
HISTORY_FILE = Path(
    os.environ.get("CLI_CALC_HISTORY_FILE", "~/.cli_calc_history")
).expanduser()
HISTORY_LENGTH = 1000

# --- Memory ---
# A chain of variables referencing each other deeper than this is treated as a
# circular reference
MAX_SUBSTITUTION_PASSES = 100

# --- Exchange rates ---
# Without an API key the built-in demo rates are used
EXCHANGE_RATE_API_KEY = os.environ.get("EXCHANGE_RATE_API_KEY") or None
EXCHANGE_RATE_API_URL = os.environ.get(
    "EXCHANGE_RATE_API_URL", "http://api.exchangeratesapi.io/v1/latest"
)
EXCHANGE_RATE_CACHE_TTL = 3600  # Cache exchange rates for 1 hour
EXCHANGE_RATE_TIMEOUT = 5

# --- Logging ---
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

VERSION_STRING = "cli-calc {version}"
