"""
Utility functions for PSP toxicity forecasting.

This module handles:
- Logging configuration and reproducibility seeds
- Loading the toxin/environmental CSV
- Log transformation of toxin concentrations
- Saving figures
"""

import os
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from . import config


def configure_logging(level: Union[int, str] = None) -> None:
    """
    Configure logging for the module.

    Args:
        level: Logging level (default from config.LOG_LEVEL)
    """
    if level is None:
        level = config.LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def set_random_seeds(seed: int = None) -> None:
    """Seed numpy, TensorFlow and Python hashing for reproducible runs."""
    import tensorflow as tf

    seed = config.RANDOM_SEED if seed is None else seed
    os.environ['PYTHONHASHSEED'] = str(seed)
    np.random.seed(seed)
    tf.random.set_seed(seed)


def log_transform(values):
    """Natural log of (concentration + 1); zero stays zero."""
    return np.log(np.asarray(values, dtype=float) + 1.0)


def inverse_log_transform(values):
    """Invert log_transform back to concentrations."""
    return np.exp(np.asarray(values, dtype=float)) - 1.0


def load_toxin_data(
    csv_path: Union[str, Path] = None,
    toxin_columns: Optional[List[str]] = None,
    environmental_columns: Optional[List[str]] = None,
    station_column: str = None,
    date_column: str = None
) -> pd.DataFrame:
    """
    Load raw toxin measurements and log-transform the toxin columns.

    One row per (station, date). Total toxicity is computed from the raw
    concentrations before the transform so that class thresholds stay in
    regulatory units.

    Args:
        csv_path: Path to CSV file (default: config.DEFAULT_CSV)
        toxin_columns: Toxin concentration columns (default: config.TOXIN_COLUMNS)
        environmental_columns: Sensor columns (default: config.ENVIRONMENTAL_COLUMNS)
        station_column: Station identifier column in the CSV, renamed to
                        config.STATION_COLUMN on load
        date_column: Sampling date column in the CSV, renamed to
                     config.DATE_COLUMN on load

    Returns:
        DataFrame sorted by station and date with log-transformed toxins and
        an added total toxicity column

    Raises:
        FileNotFoundError: If the CSV does not exist
        ValueError: If required columns are missing or no rows remain
    """
    csv_path = Path(csv_path or config.DEFAULT_CSV)
    toxin_columns = list(toxin_columns or config.TOXIN_COLUMNS)
    environmental_columns = list(environmental_columns or config.ENVIRONMENTAL_COLUMNS)
    station_column = station_column or config.STATION_COLUMN
    date_column = date_column or config.DATE_COLUMN

    if not csv_path.exists():
        raise FileNotFoundError(f"Toxin data file not found: {csv_path}")

    df = pd.read_csv(csv_path)
    logging.info(f"Loaded {len(df)} rows, {len(df.columns)} columns from {csv_path}")

    required = [station_column, date_column] + toxin_columns + environmental_columns
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns in {csv_path.name}: {missing}")

    # Downstream steps read the canonical config names
    df = df[required].rename(columns={
        station_column: config.STATION_COLUMN,
        date_column: config.DATE_COLUMN,
    })
    station_column = config.STATION_COLUMN
    date_column = config.DATE_COLUMN
    df[date_column] = pd.to_datetime(df[date_column], errors='coerce')

    n_before = len(df)
    df = df.dropna(subset=[station_column, date_column])
    if len(df) < n_before:
        logging.warning(f"Dropped {n_before - len(df)} rows without station or date")

    df[station_column] = df[station_column].astype(str)
    numeric = toxin_columns + environmental_columns
    df[numeric] = df[numeric].apply(pd.to_numeric, errors='coerce')

    duplicated = df.duplicated(subset=[station_column, date_column], keep='last')
    if duplicated.any():
        logging.warning(f"Dropping {duplicated.sum()} duplicate (station, date) rows, "
                        f"keeping the last occurrence")
        df = df[~duplicated]

    negative = (df[toxin_columns] < 0).to_numpy().sum()
    if negative:
        logging.warning(f"Clipping {negative} negative toxin values to 0")
        df[toxin_columns] = df[toxin_columns].clip(lower=0)

    if len(df) == 0:
        raise ValueError(f"No usable rows in {csv_path}")

    df[config.TOTAL_TOXICITY_COLUMN] = df[toxin_columns].sum(axis=1, min_count=1)
    df[toxin_columns] = log_transform(df[toxin_columns].to_numpy())

    df = df.sort_values([station_column, date_column]).reset_index(drop=True)

    logging.info(f"Prepared {len(df)} records across {df[station_column].nunique()} stations")
    logging.info(f"  Date range: {df[date_column].min().strftime('%Y-%m-%d')} to "
                 f"{df[date_column].max().strftime('%Y-%m-%d')}")

    return df


def save_plot(
    fig: plt.Figure,
    basename: str = 'plot',
    suffix: Optional[str] = None,
    fmt: str = 'png',
    dpi: int = None,
    output_dir: Optional[str] = None
) -> str:
    """
    Save a matplotlib figure with timestamp.

    Args:
        fig: Matplotlib figure to save
        basename: Base name for the file
        suffix: Optional suffix before timestamp
        fmt: Image format (png, pdf, etc.)
        dpi: Resolution in dots per inch (default: config.DPI)
        output_dir: Output directory (default: config.PLOTS_DIR)

    Returns:
        Path to saved file
    """
    output_dir = output_dir or config.PLOTS_DIR
    dpi = dpi or config.DPI
    os.makedirs(output_dir, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    parts = [basename]
    if suffix:
        parts.append(suffix)
    parts.append(timestamp)
    filename = '_'.join(parts) + f'.{fmt}'
    path = os.path.join(output_dir, filename)

    fig.savefig(path, dpi=dpi, bbox_inches='tight')
    logging.info(f"Saved plot to {path}")

    return path
