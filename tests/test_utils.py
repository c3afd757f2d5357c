"""
Tests for CSV loading and log transformation.
"""

import os

import numpy as np
import pandas as pd
import pytest
import matplotlib.pyplot as plt

from psp_forecasting import config
from psp_forecasting.preprocessing import create_images
from psp_forecasting.utils import (
    load_toxin_data, log_transform, inverse_log_transform, save_plot
)


def test_log_transform_zero_and_inverse():
    assert log_transform(0.0) == 0.0
    values = np.array([0.0, 1.5, 80.0])
    np.testing.assert_allclose(inverse_log_transform(log_transform(values)), values)


def test_load_toxin_data_transforms_toxins(toxin_csv, raw_frame):
    df = load_toxin_data(toxin_csv)

    assert len(df) == len(raw_frame)
    assert config.TOTAL_TOXICITY_COLUMN in df.columns
    assert pd.api.types.is_datetime64_any_dtype(df[config.DATE_COLUMN])

    # Sorted by station then date
    keys = list(zip(df[config.STATION_COLUMN], df[config.DATE_COLUMN]))
    assert keys == sorted(keys)

    raw = raw_frame[raw_frame[config.STATION_COLUMN] == 'Juneau'].iloc[0]
    row = df[(df[config.STATION_COLUMN] == 'Juneau')].iloc[0]
    raw_toxins = raw[config.TOXIN_COLUMNS].to_numpy(dtype=float)

    np.testing.assert_allclose(row[config.TOXIN_COLUMNS].to_numpy(dtype=float),
                               np.log(raw_toxins + 1))
    assert row[config.TOTAL_TOXICITY_COLUMN] == pytest.approx(raw_toxins.sum())
    # Environmental columns are not transformed
    assert row['sst_cum'] == pytest.approx(raw['sst_cum'])


def test_load_toxin_data_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_toxin_data(tmp_path / 'nope.csv')


def test_load_toxin_data_missing_columns(tmp_path, raw_frame):
    path = tmp_path / 'bad.csv'
    raw_frame.drop(columns=['gtx4', 'par_8day']).to_csv(path, index=False)

    with pytest.raises(ValueError, match='gtx4'):
        load_toxin_data(path)


def test_load_toxin_data_cleans_rows(tmp_path, raw_frame):
    frame = raw_frame.head(5).copy()
    # Duplicate of the first row with different values; last one wins
    dup = frame.iloc[[0]].copy()
    dup[config.TOXIN_COLUMNS] = 1.0
    frame.loc[1, 'stx'] = -3.0
    frame.loc[2, config.TOXIN_COLUMNS] = np.nan
    frame = pd.concat([frame, dup], ignore_index=True)
    path = tmp_path / 'messy.csv'
    frame.to_csv(path, index=False)

    df = load_toxin_data(path)

    assert len(df) == 5
    first = df.iloc[0]
    assert first[config.TOTAL_TOXICITY_COLUMN] == pytest.approx(len(config.TOXIN_COLUMNS))
    assert df.iloc[1]['stx'] == 0.0
    assert np.isnan(df.iloc[2][config.TOTAL_TOXICITY_COLUMN])


def test_load_toxin_data_custom_column_names(tmp_path, raw_frame):
    path = tmp_path / 'renamed.csv'
    raw_frame.rename(columns={config.DATE_COLUMN: 'sample_date',
                              config.STATION_COLUMN: 'site'}).to_csv(path, index=False)

    df = load_toxin_data(path, station_column='site', date_column='sample_date')

    assert config.DATE_COLUMN in df.columns
    assert config.STATION_COLUMN in df.columns
    assert 'sample_date' not in df.columns
    images = create_images(df, n_steps=2, gap=1)
    assert sum(len(pool['y']) for pool in images.values()) > 0


def test_save_plot_writes_timestamped_file(tmp_path):
    fig, ax = plt.subplots()
    ax.plot([0, 1], [1, 0])

    path = save_plot(fig, basename='confusion_matrix', suffix='eval', output_dir=str(tmp_path))
    plt.close(fig)

    assert os.path.exists(path)
    name = os.path.basename(path)
    assert name.startswith('confusion_matrix_eval_')
    assert name.endswith('.png')
