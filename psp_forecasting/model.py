"""
Feed-forward classifier for PSP toxicity classes.

The network maps a flattened window of log toxin and environmental readings
to a softmax over toxicity bins.
"""

import os
import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import tensorflow as tf
from tensorflow.keras import layers, Input, Sequential

from . import config


def build_model(
    input_dim: int,
    n_classes: int = None,
    hidden_units: Sequence[int] = None,
    dropout: float = None,
    learning_rate: float = None
) -> tf.keras.Model:
    """
    Build and compile the fully-connected toxicity classifier.

    Architecture:
        Input (input_dim,)
        [Dense(units, relu) -> Dropout] for each entry of hidden_units
        Dense(n_classes, softmax)

    Args:
        input_dim: Length of a flattened image (n_steps * n_features)
        n_classes: Number of toxicity bins (default: config.N_CLASSES)
        hidden_units: Units per hidden layer (default: config.HIDDEN_UNITS)
        dropout: Dropout rate after each hidden layer (default: config.DROPOUT)
        learning_rate: Adam learning rate (default: config.LEARNING_RATE)

    Returns:
        Compiled Keras model
    """
    n_classes = n_classes or config.N_CLASSES
    hidden_units = tuple(hidden_units or config.HIDDEN_UNITS)
    dropout = config.DROPOUT if dropout is None else dropout
    learning_rate = learning_rate or config.LEARNING_RATE

    model = Sequential(name='psp_toxicity_classifier')
    model.add(Input(shape=(input_dim,), name='image_input'))

    for i, units in enumerate(hidden_units, start=1):
        model.add(layers.Dense(units, activation='relu', name=f'dense{i}'))
        if dropout > 0:
            model.add(layers.Dropout(dropout, name=f'dropout{i}'))

    model.add(layers.Dense(n_classes, activation='softmax', name='output'))

    model.compile(
        optimizer=tf.keras.optimizers.Adam(learning_rate),
        loss='categorical_crossentropy',
        metrics=['accuracy']
    )

    logging.info(f"Built classifier: input_dim={input_dim}, hidden={hidden_units}, "
                 f"dropout={dropout}, classes={n_classes}")

    return model


def load_model_with_normalization(
    model_path: str,
    stats_dir: Optional[str] = None
) -> Tuple[tf.keras.Model, Optional[dict]]:
    """
    Load saved model and its feature normalization statistics.

    Args:
        model_path: Path to saved .keras model file
        stats_dir: Directory containing feature_means.npy / feature_stds.npy
                   (default: directory of model_path)

    Returns:
        Tuple of (model, stats) where stats is {'means', 'stds'} or None
    """
    model = tf.keras.models.load_model(model_path)
    logging.info(f"Loaded model from {model_path}")

    stats_dir = stats_dir or os.path.dirname(os.path.abspath(model_path))
    try:
        stats = {
            'means': np.load(os.path.join(stats_dir, config.FEATURE_MEANS_FILENAME)),
            'stds': np.load(os.path.join(stats_dir, config.FEATURE_STDS_FILENAME)),
        }
        logging.info(f"Loaded normalization stats from {stats_dir}")
    except FileNotFoundError as e:
        logging.warning(f"Could not load normalization stats: {e}")
        stats = None

    return model, stats
