"""
PSP Toxicity Forecasting Module

This module trains a feed-forward classifier that predicts paralytic
shellfish poisoning (PSP) toxicity classes from windowed toxin and
environmental readings at shellfish monitoring stations, and evaluates it
as a year-held-out hindcast.

Main Components:
- config: Column schema, toxicity bins, windowing and training parameters
- utils: Logging, seeding, CSV loading and log transformation
- preprocessing: Windowing into labeled images, year split, normalization
- model: Fully-connected Keras classifier
- train: End-to-end training pipeline
- evaluate: Hindcast metrics, results table and confusion matrix
- predict: Forward forecast from each station's latest window

Example Usage:
    # Train and evaluate a hindcast
    from psp_forecasting.train import train_model
    model, history, evaluation = train_model(csv_path='data/psp_toxins.csv',
                                             test_years=[2021])

    # Forecast the next sampling at every station
    from psp_forecasting.predict import forecast_latest
    forecast = forecast_latest(model, df, stats)
"""

__version__ = "1.0.0"

from . import config
from . import utils
from . import preprocessing
from . import model
from . import evaluate
from . import train
from . import predict

# Main functions
from .utils import load_toxin_data
from .preprocessing import classify_toxicity, create_images, split_by_year
from .model import build_model, load_model_with_normalization
from .evaluate import evaluate_hindcast, plot_confusion_matrix
from .train import train_model
from .predict import forecast_latest

__all__ = [
    'config',
    'utils',
    'preprocessing',
    'model',
    'evaluate',
    'train',
    'predict',
    'load_toxin_data',
    'classify_toxicity',
    'create_images',
    'split_by_year',
    'build_model',
    'load_model_with_normalization',
    'evaluate_hindcast',
    'plot_confusion_matrix',
    'train_model',
    'forecast_latest',
]
