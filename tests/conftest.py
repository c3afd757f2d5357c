"""
Shared fixtures: small synthetic toxin datasets.
"""

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest

from psp_forecasting import config


@pytest.fixture
def raw_frame():
    """Weekly raw (untransformed) records for three stations, 2019-2021."""
    rng = np.random.default_rng(0)
    dates = pd.date_range('2019-01-07', '2021-12-27', freq='7D')
    scales = np.array([0.5, 4.0, 9.0, 20.0])

    rows = []
    for station in ['Ketchikan', 'Juneau', 'Sitka']:
        for date in dates:
            scale = scales[rng.integers(0, len(scales))]
            toxins = scale * rng.random(len(config.TOXIN_COLUMNS))
            row = {config.STATION_COLUMN: station, config.DATE_COLUMN: date.strftime('%Y-%m-%d')}
            row.update(dict(zip(config.TOXIN_COLUMNS, toxins)))
            row['sst'] = 8 + 4 * np.sin(2 * np.pi * date.dayofyear / 365) + rng.normal(0, 0.5)
            row['sst_cum'] = 10.0 * date.dayofyear
            row['par_8day'] = 30 + 10 * rng.random()
            rows.append(row)

    return pd.DataFrame(rows)


@pytest.fixture
def toxin_csv(tmp_path, raw_frame):
    path = tmp_path / 'psp_toxins.csv'
    raw_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def station_frame():
    """Factory for a single prepared station (post-load layout)."""
    def _make(n_rows=6, start='2020-01-01', spacing_days=7, station='A'):
        dates = pd.date_range(start, periods=n_rows, freq=f'{spacing_days}D')
        data = {
            config.STATION_COLUMN: station,
            config.DATE_COLUMN: dates,
        }
        for j, col in enumerate(config.get_feature_columns()):
            data[col] = np.arange(n_rows, dtype=float) * 100 + j
        # Totals walk through every class
        data[config.TOTAL_TOXICITY_COLUMN] = np.resize([5.0, 20.0, 50.0, 100.0], n_rows)
        return pd.DataFrame(data)

    return _make


class FakeModel:
    """Stands in for a Keras model with fixed predictions."""

    def __init__(self, probs, loss=0.5):
        self.probs = np.asarray(probs, dtype=float)
        self.loss = loss

    def predict(self, X, batch_size=None, verbose=0):
        assert len(X) == len(self.probs)
        return self.probs

    def evaluate(self, X, y, batch_size=None, verbose=0):
        acc = float(np.mean(self.probs.argmax(axis=1) == np.asarray(y).argmax(axis=1)))
        return [self.loss, acc]


@pytest.fixture
def fake_model():
    return FakeModel
