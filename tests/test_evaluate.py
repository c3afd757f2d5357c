"""
Tests for hindcast metrics, results table and confusion matrix plot.
"""

import os

import numpy as np
import pandas as pd
import pytest
import matplotlib.pyplot as plt

from psp_forecasting import config
from psp_forecasting.evaluate import (
    evaluate_hindcast, plot_confusion_matrix, save_results_table
)


def _test_pool():
    observed = np.array([0, 0, 1, 3])
    meta = pd.DataFrame({
        'date': pd.to_datetime(['2021-03-01', '2021-01-04', '2021-02-01', '2021-04-05']),
        'station': ['A', 'A', 'B', 'B'],
        'year': 2021,
        'observed_class': observed,
        'total_toxicity': [2.0, 3.0, 15.0, 120.0],
    })
    y_test = np.eye(config.N_CLASSES, dtype=np.float32)[observed]
    # Predicts 0, 1, 1, 3
    probs = np.array([
        [0.7, 0.1, 0.1, 0.1],
        [0.2, 0.6, 0.1, 0.1],
        [0.1, 0.8, 0.05, 0.05],
        [0.0, 0.1, 0.2, 0.7],
    ])
    return np.zeros((4, 6), dtype=np.float32), y_test, meta, probs


def test_evaluate_hindcast_metrics(fake_model):
    X_test, y_test, meta, probs = _test_pool()
    evaluation = evaluate_hindcast(fake_model(probs, loss=0.42), X_test, y_test, meta)

    assert evaluation['loss'] == pytest.approx(0.42)
    assert evaluation['accuracy'] == pytest.approx(0.75)

    cm = evaluation['confusion_matrix']
    # Class 2 is absent but still has a row and column
    assert cm.shape == (4, 4)
    assert cm[0, 0] == 1 and cm[0, 1] == 1
    assert cm[1, 1] == 1 and cm[3, 3] == 1
    assert cm[2].sum() == 0
    assert 'Above Limit' in evaluation['report']
    assert 0.0 < evaluation['f1_macro'] < 1.0


def test_results_table(fake_model):
    X_test, y_test, meta, probs = _test_pool()
    results = evaluate_hindcast(fake_model(probs), X_test, y_test, meta)['results']

    assert len(results) == 4
    assert results['date'].is_monotonic_increasing
    assert results['correct'].sum() == 3
    for name in config.TOXICITY_CLASS_NAMES:
        assert f'p_{name.lower().replace(" ", "_")}' in results.columns

    wrong = results[~results['correct']].iloc[0]
    assert wrong['observed_name'] == 'Low'
    assert wrong['predicted_name'] == 'Moderate'


def test_save_results_table(tmp_path, fake_model):
    X_test, y_test, meta, probs = _test_pool()
    results = evaluate_hindcast(fake_model(probs), X_test, y_test, meta)['results']

    path = save_results_table(results, str(tmp_path / 'out' / config.RESULTS_TABLE_FILENAME))
    reloaded = pd.read_csv(path)
    assert len(reloaded) == 4
    assert reloaded['date'].iloc[0] == '2021-01-04'


def test_plot_confusion_matrix_counts(tmp_path):
    cm = np.array([[5, 1, 0, 0], [2, 3, 0, 0], [0, 0, 0, 0], [0, 0, 1, 4]])
    out = tmp_path / 'plots' / 'cm.png'

    fig = plot_confusion_matrix(cm, output_path=str(out))

    ax = fig.axes[0]
    texts = [t.get_text() for t in ax.texts]
    assert len(texts) == 16
    assert texts[0] == '5'
    # Heatmap plus colorbar axis
    assert len(ax.images) == 1
    assert len(fig.axes) == 2
    assert [t.get_text() for t in ax.get_xticklabels()] == config.TOXICITY_CLASS_NAMES
    assert os.path.exists(out)
    plt.close(fig)


def test_plot_confusion_matrix_normalized_empty_row():
    cm = np.array([[3, 1, 0, 0], [0, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 1]])
    fig = plot_confusion_matrix(cm, normalize=True)

    texts = [t.get_text() for t in fig.axes[0].texts]
    assert texts[0] == '75%'
    assert texts[8:12] == ['0%', '0%', '0%', '0%']
    assert fig.axes[0].images[0].get_clim() == (0, 1)
    plt.close(fig)


def test_plot_confusion_matrix_shape_mismatch():
    with pytest.raises(ValueError):
        plot_confusion_matrix(np.zeros((3, 3), dtype=int))
