"""
End-to-end smoke test of the training pipeline on synthetic data.
"""

import os

import pandas as pd
import pytest

from psp_forecasting import config
from psp_forecasting.train import build_callbacks, train_model


def test_build_callbacks(tmp_path):
    names = [type(cb).__name__ for cb in build_callbacks(str(tmp_path), early_stopping=True)]
    assert names == ['ModelCheckpoint', 'CSVLogger', 'EarlyStopping', 'ReduceLROnPlateau']

    names = [type(cb).__name__ for cb in build_callbacks(str(tmp_path), early_stopping=False)]
    assert names == ['ModelCheckpoint', 'CSVLogger']


def test_train_model_pipeline(tmp_path, toxin_csv):
    output_dir = tmp_path / 'run'

    model, history, evaluation = train_model(
        csv_path=str(toxin_csv),
        output_dir=str(output_dir),
        n_steps=2,
        gap=1,
        test_years=[2021],
        epochs=2,
        batch_size=16
    )

    assert len(history.history['loss']) <= 2
    assert 0.0 <= evaluation['accuracy'] <= 1.0
    assert evaluation['confusion_matrix'].shape == (config.N_CLASSES, config.N_CLASSES)

    for name in [config.MODEL_FILENAME,
                 config.FEATURE_MEANS_FILENAME,
                 config.FEATURE_STDS_FILENAME,
                 config.RESULTS_TABLE_FILENAME,
                 'training_history.csv',
                 'training_summary.txt',
                 os.path.join('plots', 'confusion_matrix.png'),
                 os.path.join('plots', 'training_history.png')]:
        assert os.path.exists(output_dir / name), name

    results = pd.read_csv(output_dir / config.RESULTS_TABLE_FILENAME)
    assert len(results) == evaluation['confusion_matrix'].sum()
    assert set(results['year']) == {2021}


def test_train_model_keeps_explicit_zero_window(tmp_path, toxin_csv):
    # n_steps=0 must reach validation instead of falling back to config.N_STEPS
    with pytest.raises(ValueError, match='n_steps must be >= 1'):
        train_model(
            csv_path=str(toxin_csv),
            output_dir=str(tmp_path / 'run'),
            n_steps=0,
            gap=1,
            test_years=[2021],
            epochs=1
        )
