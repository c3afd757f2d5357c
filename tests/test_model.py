"""
Tests for the feed-forward classifier.
"""

import os

import numpy as np

from psp_forecasting import config
from psp_forecasting.model import build_model, load_model_with_normalization


def test_build_model_shapes():
    model = build_model(input_dim=45, hidden_units=(16, 8), dropout=0.1)

    assert model.input_shape == (None, 45)
    assert model.output_shape == (None, config.N_CLASSES)
    assert [layer.name for layer in model.layers] == [
        'dense1', 'dropout1', 'dense2', 'dropout2', 'output'
    ]

    probs = model.predict(np.zeros((3, 45), dtype=np.float32), verbose=0)
    np.testing.assert_allclose(probs.sum(axis=1), 1.0, rtol=1e-5)


def test_build_model_without_dropout():
    model = build_model(input_dim=10, n_classes=3, hidden_units=(4,), dropout=0.0)
    assert [layer.name for layer in model.layers] == ['dense1', 'output']
    assert model.output_shape == (None, 3)


def test_model_fits_one_epoch():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(32, 12)).astype(np.float32)
    y = np.eye(config.N_CLASSES, dtype=np.float32)[rng.integers(0, config.N_CLASSES, 32)]

    model = build_model(input_dim=12, hidden_units=(8,))
    history = model.fit(X, y, epochs=1, batch_size=8, verbose=0)

    assert 'loss' in history.history
    assert 'accuracy' in history.history


def test_load_model_with_normalization(tmp_path):
    model = build_model(input_dim=6, hidden_units=(4,))
    model_path = os.path.join(tmp_path, config.MODEL_FILENAME)
    model.save(model_path)

    loaded, stats = load_model_with_normalization(model_path)
    assert stats is None
    assert loaded.output_shape == (None, config.N_CLASSES)

    np.save(tmp_path / config.FEATURE_MEANS_FILENAME, np.zeros(6))
    np.save(tmp_path / config.FEATURE_STDS_FILENAME, np.ones(6))
    _, stats = load_model_with_normalization(model_path, str(tmp_path))
    assert stats['means'].shape == (6,)
    assert stats['stds'].shape == (6,)
