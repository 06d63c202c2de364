"""
Runtime configuration.

Values are read from the environment once at import, after loading a `.env`
file from the working directory if one exists.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

# --- Dataset ---
# Path or URL of the JSON dataset used when no trained model is stored
DEFAULT_DATASET_PATH = os.path.join(PACKAGE_DIR, 'data', 'real_estate_data.json')
DATASET_SOURCE = os.getenv("PRICE_ESTIMATOR_DATASET", DEFAULT_DATASET_PATH)

# --- Model storage ---
MODEL_STORE_DIR = os.getenv(
    "PRICE_ESTIMATOR_STORE_DIR",
    os.path.join(os.path.expanduser("~"), ".price_estimator")
)
MODEL_STORAGE_KEY = "trainedModel"

# --- Training ---
_seed_str = os.getenv("PRICE_ESTIMATOR_SEED", "")
TRAINING_SEED: Optional[int] = int(_seed_str) if _seed_str.strip() else None

# --- Logging ---
LOG_LEVEL = os.getenv("PRICE_ESTIMATOR_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a basic root handler for scripts and the API server."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
