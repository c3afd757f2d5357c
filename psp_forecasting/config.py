"""
Configuration for PSP toxicity hindcast classifier.

This module contains all column names, toxicity bins, windowing parameters,
hyperparameters and paths for the shellfish toxicity forecasting model.
"""

import os
from pathlib import Path

# ============================================================================
# PATHS
# ============================================================================

# Base directory for the forecasting module
BASE_DIR = Path(__file__).parent
PROJECT_ROOT = BASE_DIR.parent

# Input data
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_CSV = DATA_DIR / "psp_toxins.csv"

# Output paths
OUTPUT_DIR = PROJECT_ROOT / "outputs"
MODEL_FILENAME = "best_model.keras"
FEATURE_MEANS_FILENAME = "feature_means.npy"
FEATURE_STDS_FILENAME = "feature_stds.npy"
RESULTS_TABLE_FILENAME = "hindcast_results.csv"
PLOTS_DIR = OUTPUT_DIR / "plots"

# ============================================================================
# INPUT SCHEMA
# ============================================================================

STATION_COLUMN = "station"
DATE_COLUMN = "date"

# Paralytic shellfish toxin congeners (µg STX eq / 100 g tissue)
TOXIN_COLUMNS = [
    "stx", "neo", "gtx1", "gtx2", "gtx3", "gtx4",
    "dcstx", "dcneo", "dcgtx2", "dcgtx3", "c1", "c2",
]

# Environmental sensor readings
ENVIRONMENTAL_COLUMNS = [
    "sst",       # Sea-surface temperature (°C)
    "sst_cum",   # Cumulative sea-surface temperature since Jan 1 (°C·day)
    "par_8day",  # 8-day rolling mean photosynthetically active radiation
]

# Derived column holding the summed (untransformed) toxin concentration
TOTAL_TOXICITY_COLUMN = "total_toxicity"

# ============================================================================
# TOXICITY BINS
# ============================================================================

# Upper-exclusive bin edges on total toxicity (µg STX eq / 100 g).
# 80 is the regulatory closure limit.
TOXICITY_THRESHOLDS = [10.0, 40.0, 80.0]
TOXICITY_CLASS_NAMES = ["Low", "Moderate", "Elevated", "Above Limit"]
N_CLASSES = len(TOXICITY_CLASS_NAMES)

# Label assigned to observations with no toxin data at all
UNLABELED = -1

# ============================================================================
# WINDOWING
# ============================================================================

N_STEPS = 3          # Observations per input window
FORECAST_GAP = 1     # Observations between last input and the target
STEP_SPACING = 1     # Stride between observations inside a window
MAX_GAP_DAYS = 45    # Max days between consecutive used observations (None disables)

# ============================================================================
# TEMPORAL SPLIT (by target year)
# ============================================================================

TEST_YEARS = [2021]
TRAIN_YEARS = None   # None = every year not in TEST_YEARS

# ============================================================================
# MODEL HYPERPARAMETERS
# ============================================================================

HIDDEN_UNITS = (64, 32)
DROPOUT = 0.2
LEARNING_RATE = 1e-3

# ============================================================================
# TRAINING CONFIGURATION
# ============================================================================

BATCH_SIZE = 32
EPOCHS = 200
VALIDATION_SPLIT = 0.15
PATIENCE = 20

# Checkpointing
CHECKPOINT_MONITOR = "val_loss"
CHECKPOINT_MODE = "min"
CHECKPOINT_SAVE_BEST_ONLY = True

# ============================================================================
# REPRODUCIBILITY
# ============================================================================

RANDOM_SEED = 42

# ============================================================================
# LOGGING & VISUALIZATION
# ============================================================================

LOG_LEVEL = "INFO"  # Options: DEBUG, INFO, WARNING, ERROR
DPI = 150

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_feature_columns() -> list:
    """Columns concatenated for every time step of an image, in order."""
    return TOXIN_COLUMNS + ENVIRONMENTAL_COLUMNS


def get_image_size(n_steps: int = None) -> int:
    """Length of a flattened image vector."""
    n_steps = n_steps or N_STEPS
    return n_steps * len(get_feature_columns())


def ensure_directories(output_dir=None):
    """Create output directories if they don't exist."""
    output_dir = Path(output_dir) if output_dir is not None else OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / "plots").mkdir(parents=True, exist_ok=True)
    return output_dir


if __name__ == "__main__":
    print("PSP Toxicity Forecasting Configuration")
    print("=" * 50)
    print(f"Input CSV: {DEFAULT_CSV}")
    print(f"Toxins: {len(TOXIN_COLUMNS)}")
    print(f"Environmental: {ENVIRONMENTAL_COLUMNS}")
    print(f"Thresholds: {TOXICITY_THRESHOLDS}")
    print(f"Window: n_steps={N_STEPS}, gap={FORECAST_GAP}, spacing={STEP_SPACING}")
    print(f"Image size: {get_image_size()}")
    print(f"Test years: {TEST_YEARS}")
    print(f"Output directory: {os.fspath(OUTPUT_DIR)}")
