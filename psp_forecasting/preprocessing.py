"""
Windowing and labeling of toxin time series.

Turns the flat per-station time series into fixed-size labeled samples
("images"): each image concatenates `n_steps` observations of toxin and
environmental readings for one station and is labeled with the toxicity
class of an observation `gap` samplings later.

Windows only look backward from the target observation, so a hindcast on a
held-out year never sees that year's target values as inputs of the
training pool.
"""

import os
import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from . import config


def classify_toxicity(total, thresholds: Optional[List[float]] = None):
    """
    Bin total toxin concentration into toxicity classes.

    With thresholds [t0, t1, t2]:
        total < t0        -> 0
        t0 <= total < t1  -> 1
        t1 <= total < t2  -> 2
        total >= t2       -> 3
    NaN totals get config.UNLABELED.

    Args:
        total: Scalar or array of total toxicity (untransformed units)
        thresholds: Strictly increasing bin edges (default: config.TOXICITY_THRESHOLDS)

    Returns:
        int for scalar input, int array otherwise
    """
    thresholds = np.asarray(
        config.TOXICITY_THRESHOLDS if thresholds is None else thresholds, dtype=float
    )
    if thresholds.ndim != 1 or len(thresholds) == 0:
        raise ValueError("thresholds must be a non-empty 1-D sequence")
    if np.any(np.diff(thresholds) <= 0):
        raise ValueError(f"thresholds must be strictly increasing, got {thresholds.tolist()}")

    values = np.asarray(total, dtype=float)
    classes = np.digitize(values, thresholds, right=False).astype(int)
    classes = np.where(np.isnan(values), config.UNLABELED, classes)

    if classes.ndim == 0:
        return int(classes)
    return classes


def one_hot(labels: np.ndarray, n_classes: int = None) -> np.ndarray:
    """One-hot encode integer class labels as float32."""
    n_classes = n_classes or config.N_CLASSES
    labels = np.asarray(labels, dtype=int)
    if labels.size and (labels.min() < 0 or labels.max() >= n_classes):
        raise ValueError(f"Labels must lie in [0, {n_classes}), "
                         f"got range [{labels.min()}, {labels.max()}]")
    return np.eye(n_classes, dtype='float32')[labels]


def class_distribution(labels: np.ndarray, n_classes: int = None) -> np.ndarray:
    """Count samples per class; accepts integer labels or one-hot rows."""
    n_classes = n_classes or config.N_CLASSES
    labels = np.asarray(labels)
    if labels.ndim == 2:
        labels = labels.argmax(axis=1)
    return np.bincount(labels.astype(int), minlength=n_classes)


def _validate_window_params(n_steps: int, gap: int, step_spacing: int) -> None:
    if n_steps < 1:
        raise ValueError(f"n_steps must be >= 1, got {n_steps}")
    if gap < 1:
        raise ValueError(f"gap must be >= 1, got {gap}")
    if step_spacing < 1:
        raise ValueError(f"step_spacing must be >= 1, got {step_spacing}")


def _max_spacing_days(dates: np.ndarray) -> int:
    if len(dates) < 2:
        return 0
    return int(np.diff(dates).astype('timedelta64[D]').astype(int).max())


def create_station_images(
    station_df: pd.DataFrame,
    n_steps: int,
    gap: int,
    step_spacing: int = 1,
    max_gap_days: Optional[int] = None,
    thresholds: Optional[List[float]] = None,
    feature_columns: Optional[List[str]] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, Dict[str, int]]:
    """
    Build labeled images for a single station.

    Input rows for window i are i, i+s, ..., i+(n_steps-1)*s (s = step_spacing);
    the target is the row `gap` observations after the last input row.

    Args:
        station_df: Rows of one station, sorted by date
        n_steps: Observations per window
        gap: Observations between last input row and target row
        step_spacing: Stride between input observations
        max_gap_days: Max days between consecutive used rows (None disables)
        thresholds: Toxicity bin edges
        feature_columns: Columns per time step (default: config.get_feature_columns())

    Returns:
        Tuple of (X, y, dates, totals, skipped) where:
            X: (N, n_steps * n_features) float32, time-major
            y: (N,) toxicity class of each target
            dates: (N,) datetime64 target dates
            totals: (N,) target total toxicity
            skipped: Counts of discarded windows by reason
    """
    _validate_window_params(n_steps, gap, step_spacing)
    feature_columns = feature_columns or config.get_feature_columns()

    values = station_df[feature_columns].to_numpy(dtype=float)
    dates = station_df[config.DATE_COLUMN].to_numpy(dtype='datetime64[ns]')
    totals = station_df[config.TOTAL_TOXICITY_COLUMN].to_numpy(dtype=float)

    last_offset = (n_steps - 1) * step_spacing
    target_offset = last_offset + gap
    input_offsets = np.arange(n_steps) * step_spacing

    X_list, y_list, date_list, total_list = [], [], [], []
    skipped = {'missing_features': 0, 'missing_target': 0, 'time_gap': 0}

    for i in range(len(station_df) - target_offset):
        input_idx = i + input_offsets
        target_idx = i + target_offset

        if np.isnan(totals[target_idx]):
            skipped['missing_target'] += 1
            continue

        if max_gap_days is not None:
            # Spacing is checked along the rows actually used, target included
            used_dates = dates[np.append(input_idx, target_idx)]
            if _max_spacing_days(used_dates) > max_gap_days:
                skipped['time_gap'] += 1
                continue

        window = values[input_idx]
        if not np.all(np.isfinite(window)):
            skipped['missing_features'] += 1
            continue

        X_list.append(window.ravel())
        y_list.append(classify_toxicity(totals[target_idx], thresholds))
        date_list.append(dates[target_idx])
        total_list.append(totals[target_idx])

    n_features = len(feature_columns)
    X = np.array(X_list, dtype=np.float32).reshape(-1, n_steps * n_features)
    y = np.array(y_list, dtype=int)
    out_dates = np.array(date_list, dtype='datetime64[ns]')
    out_totals = np.array(total_list, dtype=float)

    return X, y, out_dates, out_totals, skipped


def create_images(
    df: pd.DataFrame,
    n_steps: int = None,
    gap: int = None,
    step_spacing: int = None,
    max_gap_days: Optional[int] = config.MAX_GAP_DAYS,
    thresholds: Optional[List[float]] = None,
    feature_columns: Optional[List[str]] = None
) -> Dict[int, Dict[str, np.ndarray]]:
    """
    Build labeled images for every station, grouped by target year.

    Args:
        df: Output of utils.load_toxin_data
        n_steps: Observations per window (default: config.N_STEPS)
        gap: Forecast gap in observations (default: config.FORECAST_GAP)
        step_spacing: Stride inside a window (default: config.STEP_SPACING)
        max_gap_days: Max days between consecutive used rows (None disables)
        thresholds: Toxicity bin edges (default: config.TOXICITY_THRESHOLDS)
        feature_columns: Columns per time step

    Returns:
        Dict mapping year -> {'X', 'y', 'dates', 'stations', 'totals'}

    Raises:
        ValueError: On invalid window parameters or if no images are produced
    """
    n_steps = config.N_STEPS if n_steps is None else n_steps
    gap = config.FORECAST_GAP if gap is None else gap
    step_spacing = config.STEP_SPACING if step_spacing is None else step_spacing
    _validate_window_params(n_steps, gap, step_spacing)

    parts = []
    skipped_total = {'missing_features': 0, 'missing_target': 0, 'time_gap': 0}
    short_stations = []

    for station, station_df in df.groupby(config.STATION_COLUMN, sort=True):
        station_df = station_df.sort_values(config.DATE_COLUMN)
        X, y, dates, totals, skipped = create_station_images(
            station_df,
            n_steps=n_steps,
            gap=gap,
            step_spacing=step_spacing,
            max_gap_days=max_gap_days,
            thresholds=thresholds,
            feature_columns=feature_columns
        )
        for reason, count in skipped.items():
            skipped_total[reason] += count

        if len(X) == 0:
            short_stations.append(station)
            continue

        parts.append((X, y, dates, np.full(len(X), station, dtype=object), totals))
        logging.debug(f"Station {station}: {len(X)} images")

    if short_stations:
        logging.info(f"{len(short_stations)} stations produced no images: {short_stations}")

    logging.info(f"Window parameters: n_steps={n_steps}, gap={gap}, "
                 f"step_spacing={step_spacing}, max_gap_days={max_gap_days}")
    logging.info(f"  Skipped (missing features): {skipped_total['missing_features']}")
    logging.info(f"  Skipped (missing target):   {skipped_total['missing_target']}")
    logging.info(f"  Skipped (time gap):         {skipped_total['time_gap']}")

    if not parts:
        raise ValueError("No valid images created. Try decreasing n_steps/gap "
                         "or increasing max_gap_days")

    X_all = np.concatenate([p[0] for p in parts])
    y_all = np.concatenate([p[1] for p in parts])
    dates_all = np.concatenate([p[2] for p in parts])
    stations_all = np.concatenate([p[3] for p in parts])
    totals_all = np.concatenate([p[4] for p in parts])

    years = pd.DatetimeIndex(dates_all).year.to_numpy()

    images_by_year = {}
    for year in np.unique(years):
        mask = years == year
        images_by_year[int(year)] = {
            'X': X_all[mask],
            'y': y_all[mask],
            'dates': dates_all[mask],
            'stations': stations_all[mask],
            'totals': totals_all[mask],
        }

    logging.info(f"Created {len(X_all)} images of length {X_all.shape[1]} "
                 f"across {len(images_by_year)} years")
    for year, images in images_by_year.items():
        counts = class_distribution(images['y'])
        logging.info(f"  {year}: {len(images['y'])} images, class counts {counts.tolist()}")

    return images_by_year


def split_by_year(
    images_by_year: Dict[int, Dict[str, np.ndarray]],
    test_years: Optional[Iterable[int]] = None,
    train_years: Optional[Iterable[int]] = None,
    n_classes: int = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, pd.DataFrame]:
    """
    Partition images into train/test pools by target year.

    Args:
        images_by_year: Output of create_images
        test_years: Years held out for the hindcast (default: config.TEST_YEARS)
        train_years: Training years (default: every year not in test_years)
        n_classes: Number of toxicity classes (default: config.N_CLASSES)

    Returns:
        Tuple of (X_train, y_train, X_test, y_test, test_meta) where the label
        arrays are one-hot and test_meta has one row per test image

    Raises:
        ValueError: If train and test years overlap or a pool is empty
    """
    n_classes = n_classes or config.N_CLASSES
    test_years = sorted({int(y) for y in (config.TEST_YEARS if test_years is None else test_years)})
    if train_years is None:
        train_years = config.TRAIN_YEARS
    if train_years is None:
        train_years = sorted(y for y in images_by_year if y not in test_years)
    else:
        train_years = sorted({int(y) for y in train_years})

    overlap = set(train_years) & set(test_years)
    if overlap:
        raise ValueError(f"Train and test years overlap: {sorted(overlap)}")

    for year in train_years + test_years:
        if year not in images_by_year:
            logging.warning(f"No images available for year {year}")

    def _pool(years):
        present = [y for y in years if y in images_by_year]
        if not present:
            return None
        return {
            key: np.concatenate([images_by_year[y][key] for y in present])
            for key in ('X', 'y', 'dates', 'stations', 'totals')
        }

    train = _pool(train_years)
    test = _pool(test_years)

    if train is None or len(train['y']) == 0:
        raise ValueError(f"Training pool is empty for years {train_years}")
    if test is None or len(test['y']) == 0:
        raise ValueError(f"Test pool is empty for years {test_years}")

    X_train, y_train = train['X'], one_hot(train['y'], n_classes)
    X_test, y_test = test['X'], one_hot(test['y'], n_classes)

    test_meta = pd.DataFrame({
        'date': pd.to_datetime(test['dates']),
        'station': test['stations'].astype(str),
        'year': pd.DatetimeIndex(test['dates']).year,
        'observed_class': test['y'],
        'total_toxicity': test['totals'],
    })

    logging.info(f"Temporal split by year:")
    logging.info(f"  Train {train_years}: {len(X_train)} images, "
                 f"class counts {class_distribution(y_train, n_classes).tolist()}")
    logging.info(f"  Test  {test_years}: {len(X_test)} images, "
                 f"class counts {class_distribution(y_test, n_classes).tolist()}")

    return X_train, y_train, X_test, y_test, test_meta


def normalize_features(
    X_train: np.ndarray,
    X_test: np.ndarray,
    save_dir: Optional[str] = None
) -> Tuple[np.ndarray, np.ndarray, Dict[str, np.ndarray]]:
    """
    Standardize features with statistics from the training pool only.

    Constant columns keep unit scale so they map to zero instead of blowing up.

    Args:
        X_train: Training images
        X_test: Test images
        save_dir: Directory to save normalization stats (optional)

    Returns:
        Tuple of (X_train_norm, X_test_norm, stats)
    """
    means = X_train.mean(axis=0)
    stds = X_train.std(axis=0)
    stds = np.where(stds > 0, stds, 1.0)
    stats = {'means': means.astype(np.float32), 'stds': stds.astype(np.float32)}

    if save_dir:
        os.makedirs(save_dir, exist_ok=True)
        np.save(os.path.join(save_dir, config.FEATURE_MEANS_FILENAME), stats['means'])
        np.save(os.path.join(save_dir, config.FEATURE_STDS_FILENAME), stats['stds'])
        logging.info(f"Saved normalization stats to {save_dir}")

    return apply_normalization(X_train, stats), apply_normalization(X_test, stats), stats


def apply_normalization(X: np.ndarray, stats: Optional[Dict[str, np.ndarray]]) -> np.ndarray:
    """Apply saved standardization stats; passthrough when stats is None."""
    if stats is None:
        return X.astype(np.float32)
    return ((X - stats['means']) / stats['stds']).astype(np.float32)


def build_forecast_windows(
    df: pd.DataFrame,
    n_steps: int = None,
    step_spacing: int = None,
    max_gap_days: Optional[int] = config.MAX_GAP_DAYS,
    feature_columns: Optional[List[str]] = None
) -> Tuple[np.ndarray, pd.DataFrame]:
    """
    Build the most recent input window for each station.

    Unlike create_images no target is required, so these windows can be
    classified to forecast beyond the last observation.

    Returns:
        Tuple of (X, meta) where meta has columns station and last_date
    """
    n_steps = config.N_STEPS if n_steps is None else n_steps
    step_spacing = config.STEP_SPACING if step_spacing is None else step_spacing
    _validate_window_params(n_steps, 1, step_spacing)
    feature_columns = feature_columns or config.get_feature_columns()

    last_offset = (n_steps - 1) * step_spacing
    X_list, stations, last_dates = [], [], []

    for station, station_df in df.groupby(config.STATION_COLUMN, sort=True):
        station_df = station_df.sort_values(config.DATE_COLUMN)
        if len(station_df) <= last_offset:
            logging.warning(f"Station {station}: only {len(station_df)} observations, "
                            f"cannot build a {n_steps}-step window")
            continue

        end = len(station_df) - 1
        idx = end - last_offset + np.arange(n_steps) * step_spacing
        window = station_df[feature_columns].to_numpy(dtype=float)[idx]
        dates = station_df[config.DATE_COLUMN].to_numpy(dtype='datetime64[ns]')[idx]

        if not np.all(np.isfinite(window)):
            logging.warning(f"Station {station}: latest window has missing values, skipping")
            continue
        if max_gap_days is not None and _max_spacing_days(dates) > max_gap_days:
            logging.warning(f"Station {station}: latest window spans a gap "
                            f"> {max_gap_days} days, skipping")
            continue

        X_list.append(window.ravel())
        stations.append(station)
        last_dates.append(dates[-1])

    X = np.array(X_list, dtype=np.float32).reshape(-1, n_steps * len(feature_columns))
    meta = pd.DataFrame({'station': stations, 'last_date': pd.to_datetime(last_dates)})

    logging.info(f"Built forecast windows for {len(meta)} stations")
    return X, meta
