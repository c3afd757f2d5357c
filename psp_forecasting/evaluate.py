"""
Hindcast evaluation and visualization.

This module handles:
- Class predictions from the trained classifier
- Test-set metrics (loss, accuracy, macro F1, classification report)
- Per-sample results table
- Confusion matrix plot
"""

import os
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.metrics import (
    ConfusionMatrixDisplay, accuracy_score, classification_report, confusion_matrix,
    f1_score
)

from . import config


def predict_classes(model, X: np.ndarray, batch_size: int = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Predict class probabilities and the most likely class.

    Returns:
        Tuple of (probabilities (N, n_classes), classes (N,))
    """
    batch_size = batch_size or config.BATCH_SIZE
    probs = model.predict(X, batch_size=batch_size, verbose=0)
    return probs, np.argmax(probs, axis=1)


def build_results_table(
    test_meta: pd.DataFrame,
    probs: np.ndarray,
    predicted: np.ndarray,
    class_names: List[str]
) -> pd.DataFrame:
    """One row per hindcast sample with observed vs predicted class."""
    results = test_meta.copy().reset_index(drop=True)
    results['observed_name'] = [class_names[c] for c in results['observed_class']]
    results['predicted_class'] = predicted.astype(int)
    results['predicted_name'] = [class_names[c] for c in predicted]
    for i, name in enumerate(class_names):
        results[f'p_{name.lower().replace(" ", "_")}'] = probs[:, i]
    results['correct'] = results['observed_class'] == results['predicted_class']
    return results.sort_values(['date', 'station']).reset_index(drop=True)


def evaluate_hindcast(
    model,
    X_test: np.ndarray,
    y_test: np.ndarray,
    test_meta: pd.DataFrame,
    class_names: Optional[List[str]] = None,
    batch_size: int = None
) -> Dict:
    """
    Evaluate the classifier on the held-out years.

    Args:
        model: Trained Keras model
        X_test: Normalized test images
        y_test: One-hot test labels
        test_meta: Per-image metadata from preprocessing.split_by_year
        class_names: Toxicity class names (default: config.TOXICITY_CLASS_NAMES)
        batch_size: Prediction batch size

    Returns:
        Dict with loss, accuracy, f1_macro, confusion_matrix, report and results
    """
    class_names = list(class_names or config.TOXICITY_CLASS_NAMES)
    labels = list(range(len(class_names)))
    batch_size = batch_size or config.BATCH_SIZE

    evaluation = model.evaluate(X_test, y_test, batch_size=batch_size, verbose=0)
    loss = evaluation[0] if isinstance(evaluation, (list, tuple)) else evaluation

    probs, y_pred = predict_classes(model, X_test, batch_size)
    y_true = np.argmax(y_test, axis=1)

    accuracy = accuracy_score(y_true, y_pred)
    f1_macro = f1_score(y_true, y_pred, labels=labels, average='macro', zero_division=0)
    cm = confusion_matrix(y_true, y_pred, labels=labels)
    report = classification_report(
        y_true, y_pred,
        labels=labels,
        target_names=class_names,
        zero_division=0
    )

    results = build_results_table(test_meta, probs, y_pred, class_names)

    logging.info(f"\nHindcast Results ({len(y_true)} samples):")
    logging.info(f"  Loss:      {float(loss):.4f}")
    logging.info(f"  Accuracy:  {accuracy:.4f}")
    logging.info(f"  Macro F1:  {f1_macro:.4f}")
    logging.info("\nClassification Report:\n" + report)
    logging.info(f"\nConfusion Matrix (rows=observed, cols=predicted):\n{cm}")

    return {
        'loss': float(loss),
        'accuracy': float(accuracy),
        'f1_macro': float(f1_macro),
        'confusion_matrix': cm,
        'report': report,
        'results': results,
    }


def print_hindcast_summary(evaluation: Dict, max_rows: int = 50) -> None:
    """Print metrics and the head of the results table to the console."""
    results = evaluation['results']
    columns = ['date', 'station', 'total_toxicity', 'observed_name', 'predicted_name', 'correct']

    print("\n" + "=" * 60)
    print("HINDCAST RESULTS")
    print("=" * 60)
    print(f"Loss:      {evaluation['loss']:.4f}")
    print(f"Accuracy:  {evaluation['accuracy']:.4f}")
    print(f"Macro F1:  {evaluation['f1_macro']:.4f}")
    print("=" * 60)
    print(evaluation['report'])
    print(results[columns].head(max_rows).to_string(index=False))
    if len(results) > max_rows:
        print(f"... ({len(results) - max_rows} more rows)")


def plot_confusion_matrix(
    cm: np.ndarray,
    class_names: Optional[List[str]] = None,
    normalize: bool = False,
    title: str = 'Hindcast Confusion Matrix',
    output_path: Optional[str] = None,
    cmap: str = 'Blues'
) -> plt.Figure:
    """
    Plot a confusion matrix with per-cell annotations.

    Args:
        cm: Square confusion matrix (rows=observed, cols=predicted)
        class_names: Tick labels (default: config.TOXICITY_CLASS_NAMES)
        normalize: Show row-normalized fractions instead of counts
        title: Plot title
        output_path: Path to save the figure (optional)
        cmap: Colormap name

    Returns:
        Matplotlib figure
    """
    class_names = list(class_names or config.TOXICITY_CLASS_NAMES)
    cm = np.asarray(cm)
    if cm.shape != (len(class_names), len(class_names)):
        raise ValueError(f"Confusion matrix shape {cm.shape} does not match "
                         f"{len(class_names)} class names")

    if normalize:
        row_sums = cm.sum(axis=1, keepdims=True)
        values = np.divide(cm, row_sums, out=np.zeros(cm.shape, dtype=float),
                           where=row_sums > 0)
        fmt = '.0%'
    else:
        values = cm
        fmt = 'd'

    fig, ax = plt.subplots(figsize=(7, 6))
    display = ConfusionMatrixDisplay(confusion_matrix=values, display_labels=class_names)
    display.plot(ax=ax, cmap=cmap, values_format=fmt, xticks_rotation=45,
                 colorbar=True, im_kw={'vmin': 0, 'vmax': 1} if normalize else None)

    ax.set_xlabel('Predicted class', fontsize=12)
    ax.set_ylabel('Observed class', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')

    fig.tight_layout()

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        fig.savefig(output_path, dpi=config.DPI, bbox_inches='tight')
        logging.info(f"Saved confusion matrix plot to {output_path}")

    return fig


def save_results_table(results: pd.DataFrame, path: str) -> str:
    """Write the hindcast results table as CSV."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    results.to_csv(path, index=False, date_format='%Y-%m-%d')
    logging.info(f"Saved results table to {path}")
    return path
