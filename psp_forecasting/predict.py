"""
Forward forecasting with a trained toxicity classifier.

Classifies the latest complete window of each station, i.e. the toxicity
class expected `gap` samplings after the most recent observation.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from . import config
from .utils import configure_logging, load_toxin_data
from .preprocessing import apply_normalization, build_forecast_windows
from .evaluate import predict_classes
from .model import load_model_with_normalization


def forecast_latest(
    model,
    df: pd.DataFrame,
    stats: Optional[Dict[str, np.ndarray]] = None,
    n_steps: int = None,
    step_spacing: int = None,
    max_gap_days: Optional[int] = config.MAX_GAP_DAYS,
    class_names: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Predict the toxicity class following each station's latest window.

    Args:
        model: Trained Keras model
        df: Output of utils.load_toxin_data
        stats: Normalization stats saved during training
        n_steps: Observations per window, must match training
        step_spacing: Stride inside a window, must match training
        max_gap_days: Max days between used observations (None disables)
        class_names: Toxicity class names (default: config.TOXICITY_CLASS_NAMES)

    Returns:
        DataFrame with station, last_date, predicted_class, predicted_name and
        one probability column per class
    """
    class_names = list(class_names or config.TOXICITY_CLASS_NAMES)

    X, meta = build_forecast_windows(
        df, n_steps=n_steps, step_spacing=step_spacing, max_gap_days=max_gap_days
    )
    if len(X) == 0:
        logging.warning("No station has a complete recent window; nothing to forecast")
        return meta.assign(predicted_class=pd.Series(dtype=int),
                           predicted_name=pd.Series(dtype=str))

    if stats is None:
        logging.warning("No normalization stats supplied, using raw features")
    probs, classes = predict_classes(model, apply_normalization(X, stats))

    forecast = meta.copy()
    forecast['predicted_class'] = classes.astype(int)
    forecast['predicted_name'] = [class_names[c] for c in classes]
    for i, name in enumerate(class_names):
        forecast[f'p_{name.lower().replace(" ", "_")}'] = probs[:, i]

    return forecast


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Forecast toxicity class per station')
    parser.add_argument('--csv', type=str, default=None,
                        help='Input CSV (default: from config)')
    parser.add_argument('--model', type=str,
                        default=str(config.OUTPUT_DIR / config.MODEL_FILENAME),
                        help='Path to trained .keras model')
    parser.add_argument('--n-steps', type=int, default=None,
                        help='Observations per window (default: from config)')

    args = parser.parse_args()

    configure_logging()
    model, stats = load_model_with_normalization(args.model)
    df = load_toxin_data(args.csv)
    forecast = forecast_latest(model, df, stats, n_steps=args.n_steps)
    print(forecast.to_string(index=False))
