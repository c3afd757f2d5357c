"""
Training pipeline for PSP toxicity classification.

This module handles:
- Loading and log-transforming toxin measurements
- Windowing into labeled images and splitting by year
- Training the feed-forward classifier with callbacks
- Hindcast evaluation, confusion matrix and training history plots
"""

import os
import logging
from datetime import datetime
from typing import Iterable, List, Optional

import numpy as np
import matplotlib.pyplot as plt
from tensorflow.keras.callbacks import (
    ModelCheckpoint, EarlyStopping, ReduceLROnPlateau, CSVLogger
)

from . import config
from .utils import configure_logging, set_random_seeds, load_toxin_data
from .preprocessing import create_images, split_by_year, normalize_features
from .model import build_model
from .evaluate import (
    evaluate_hindcast, plot_confusion_matrix, print_hindcast_summary, save_results_table
)


def build_callbacks(
    output_dir: str,
    early_stopping: bool = True,
    patience: int = None
) -> List:
    """
    Checkpoint, early stopping, LR schedule and CSV history callbacks.

    Args:
        output_dir: Directory for the checkpoint and history CSV
        early_stopping: Add EarlyStopping and ReduceLROnPlateau
        patience: Early stopping patience (default: config.PATIENCE)
    """
    patience = patience or config.PATIENCE

    callbacks = [
        ModelCheckpoint(
            os.path.join(output_dir, config.MODEL_FILENAME),
            monitor=config.CHECKPOINT_MONITOR,
            mode=config.CHECKPOINT_MODE,
            save_best_only=config.CHECKPOINT_SAVE_BEST_ONLY,
            verbose=0
        ),
        CSVLogger(os.path.join(output_dir, 'training_history.csv')),
    ]

    if early_stopping:
        callbacks.append(
            EarlyStopping(
                monitor='val_loss',
                patience=patience,
                restore_best_weights=True,
                verbose=1
            )
        )
        callbacks.append(
            ReduceLROnPlateau(
                monitor='val_loss',
                factor=0.5,
                patience=max(1, patience // 2),
                min_lr=1e-6,
                verbose=1
            )
        )

    return callbacks


def plot_training_history(history, output_path: Optional[str] = None):
    """
    Plot training and validation loss/accuracy curves.

    Args:
        history: Keras training history object
        output_path: Path to save plot (optional)
    """
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 5))

    epochs = range(1, len(history.history['loss']) + 1)

    ax1.plot(epochs, history.history['loss'], 'b-', label='Training Loss', linewidth=2)
    if 'val_loss' in history.history:
        ax1.plot(epochs, history.history['val_loss'], 'r-', label='Validation Loss', linewidth=2)
    ax1.set_xlabel('Epoch', fontsize=12)
    ax1.set_ylabel('Loss (categorical cross-entropy)', fontsize=12)
    ax1.set_title('Training and Validation Loss', fontsize=14, fontweight='bold')
    ax1.legend(fontsize=11)
    ax1.grid(True, alpha=0.3)

    ax2.plot(epochs, history.history['accuracy'], 'b-', label='Training Accuracy', linewidth=2)
    if 'val_accuracy' in history.history:
        ax2.plot(epochs, history.history['val_accuracy'], 'r-', label='Validation Accuracy', linewidth=2)
    ax2.set_xlabel('Epoch', fontsize=12)
    ax2.set_ylabel('Accuracy', fontsize=12)
    ax2.set_title('Training and Validation Accuracy', fontsize=14, fontweight='bold')
    ax2.legend(fontsize=11)
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        plt.savefig(output_path, dpi=config.DPI, bbox_inches='tight')
        logging.info(f"Saved training history plot to {output_path}")

    plt.close(fig)


def train_model(
    csv_path: str = None,
    output_dir: str = None,
    n_steps: int = None,
    gap: int = None,
    step_spacing: int = None,
    max_gap_days: Optional[int] = config.MAX_GAP_DAYS,
    test_years: Optional[Iterable[int]] = None,
    train_years: Optional[Iterable[int]] = None,
    epochs: int = None,
    batch_size: int = None,
    learning_rate: float = None,
    patience: int = None,
    early_stopping: bool = True,
    show_plots: bool = False
):
    """
    Complete hindcast pipeline for PSP toxicity classification.

    This function:
    1. Loads and log-transforms toxin measurements
    2. Builds labeled images per station, grouped by year
    3. Splits into train/test pools by year and normalizes
    4. Builds and trains the classifier
    5. Evaluates the hindcast and saves plots, results and summary

    Args:
        csv_path: Input CSV (default: config.DEFAULT_CSV)
        output_dir: Output directory (default: config.OUTPUT_DIR)
        n_steps: Observations per window (default: config.N_STEPS)
        gap: Forecast gap in observations (default: config.FORECAST_GAP)
        step_spacing: Stride inside a window (default: config.STEP_SPACING)
        max_gap_days: Max days between used observations (None disables)
        test_years: Held-out years (default: config.TEST_YEARS)
        train_years: Training years (default: all other years)
        epochs: Maximum epochs (default: config.EPOCHS)
        batch_size: Batch size (default: config.BATCH_SIZE)
        learning_rate: Learning rate (default: config.LEARNING_RATE)
        patience: Early stopping patience (default: config.PATIENCE)
        early_stopping: Whether to use early stopping
        show_plots: Display the confusion matrix interactively

    Returns:
        Tuple of (model, history, evaluation)
    """
    configure_logging()
    set_random_seeds(config.RANDOM_SEED)

    csv_path = str(csv_path or config.DEFAULT_CSV)
    output_dir = str(config.ensure_directories(output_dir))
    n_steps = config.N_STEPS if n_steps is None else n_steps
    gap = config.FORECAST_GAP if gap is None else gap
    step_spacing = config.STEP_SPACING if step_spacing is None else step_spacing
    test_years = list(config.TEST_YEARS if test_years is None else test_years)
    epochs = epochs or config.EPOCHS
    batch_size = batch_size or config.BATCH_SIZE
    learning_rate = learning_rate or config.LEARNING_RATE
    patience = patience or config.PATIENCE

    # Setup logging to file
    log_file = os.path.join(output_dir, f'training_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(message)s'))
    logging.getLogger().addHandler(file_handler)

    try:
        logging.info("=" * 80)
        logging.info("PSP TOXICITY HINDCAST - TRAINING PIPELINE")
        logging.info("=" * 80)
        logging.info(f"Random seed: {config.RANDOM_SEED}")
        logging.info(f"Input CSV: {csv_path}")
        logging.info(f"Output directory: {output_dir}")
        logging.info(f"Window: n_steps={n_steps}, gap={gap}, step_spacing={step_spacing}")
        logging.info(f"Test years: {test_years}")
        logging.info(f"Batch size: {batch_size}, max epochs: {epochs}, lr: {learning_rate}")

        # ========== STEP 1: LOAD DATA ==========
        logging.info("\n" + "=" * 80)
        logging.info("STEP 1: LOADING TOXIN MEASUREMENTS")
        logging.info("=" * 80)

        df = load_toxin_data(csv_path)

        # ========== STEP 2: BUILD IMAGES ==========
        logging.info("\n" + "=" * 80)
        logging.info("STEP 2: BUILDING WINDOWED IMAGES")
        logging.info("=" * 80)

        images_by_year = create_images(
            df,
            n_steps=n_steps,
            gap=gap,
            step_spacing=step_spacing,
            max_gap_days=max_gap_days
        )

        # ========== STEP 3: SPLIT BY YEAR ==========
        logging.info("\n" + "=" * 80)
        logging.info("STEP 3: SPLITTING BY YEAR")
        logging.info("=" * 80)

        X_train, y_train, X_test, y_test, test_meta = split_by_year(
            images_by_year, test_years=test_years, train_years=train_years
        )
        X_train, X_test, _ = normalize_features(X_train, X_test, save_dir=output_dir)

        # ========== STEP 4: BUILD MODEL ==========
        logging.info("\n" + "=" * 80)
        logging.info("STEP 4: BUILDING MODEL")
        logging.info("=" * 80)

        model = build_model(input_dim=X_train.shape[1], learning_rate=learning_rate)
        print("\n")
        model.summary()
        print("\n")

        # ========== STEP 5: TRAIN ==========
        logging.info("\n" + "=" * 80)
        logging.info("STEP 5: TRAINING MODEL")
        logging.info("=" * 80)

        history = model.fit(
            X_train,
            y_train,
            validation_split=config.VALIDATION_SPLIT,
            epochs=epochs,
            batch_size=batch_size,
            shuffle=True,
            callbacks=build_callbacks(output_dir, early_stopping, patience),
            verbose=2
        )

        n_epochs = len(history.history['loss'])
        best_epoch = int(np.argmin(history.history['val_loss'])) + 1
        logging.info(f"Total epochs trained: {n_epochs}")
        logging.info(f"Best epoch: {best_epoch} "
                     f"(val_loss={np.min(history.history['val_loss']):.4f})")

        # ========== STEP 6: EVALUATE HINDCAST ==========
        logging.info("\n" + "=" * 80)
        logging.info("STEP 6: EVALUATING HINDCAST")
        logging.info("=" * 80)

        evaluation = evaluate_hindcast(model, X_test, y_test, test_meta, batch_size=batch_size)
        print_hindcast_summary(evaluation)

        results_path = os.path.join(output_dir, config.RESULTS_TABLE_FILENAME)
        save_results_table(evaluation['results'], results_path)

        # ========== STEP 7: PLOTS ==========
        plots_dir = os.path.join(output_dir, 'plots')
        cm_path = os.path.join(plots_dir, 'confusion_matrix.png')
        fig = plot_confusion_matrix(
            evaluation['confusion_matrix'],
            title=f"Hindcast Confusion Matrix ({', '.join(map(str, test_years))})",
            output_path=cm_path
        )
        if show_plots:
            plt.show()
        plt.close(fig)

        history_plot_path = os.path.join(plots_dir, 'training_history.png')
        plot_training_history(history, history_plot_path)

        # ========== STEP 8: SUMMARY ==========
        summary_path = os.path.join(output_dir, 'training_summary.txt')
        with open(summary_path, 'w') as f:
            f.write("PSP TOXICITY HINDCAST - TRAINING SUMMARY\n")
            f.write("=" * 80 + "\n\n")
            f.write(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write(f"Random seed: {config.RANDOM_SEED}\n\n")

            f.write("CONFIGURATION:\n")
            f.write(f"  Window steps: {n_steps}\n")
            f.write(f"  Forecast gap: {gap} observation(s)\n")
            f.write(f"  Step spacing: {step_spacing}\n")
            f.write(f"  Max gap: {max_gap_days} days\n")
            f.write(f"  Thresholds: {config.TOXICITY_THRESHOLDS}\n")
            f.write(f"  Batch size: {batch_size}\n")
            f.write(f"  Learning rate: {learning_rate}\n\n")

            f.write("DATA:\n")
            f.write(f"  Train images: {len(X_train)}\n")
            f.write(f"  Test images: {len(X_test)}\n")
            f.write(f"  Test years: {test_years}\n")
            f.write(f"  Image length: {X_train.shape[1]}\n\n")

            f.write("TRAINING:\n")
            f.write(f"  Total parameters: {model.count_params():,}\n")
            f.write(f"  Epochs trained: {n_epochs}\n")
            f.write(f"  Best epoch: {best_epoch}\n\n")

            f.write("HINDCAST:\n")
            f.write(f"  Loss: {evaluation['loss']:.4f}\n")
            f.write(f"  Accuracy: {evaluation['accuracy']:.4f}\n")
            f.write(f"  Macro F1: {evaluation['f1_macro']:.4f}\n\n")
            f.write(evaluation['report'] + "\n")

        logging.info(f"Saved training summary to {summary_path}")
        logging.info("=" * 80)
        logging.info("✓ TRAINING COMPLETE")
        logging.info("=" * 80)
    finally:
        logging.getLogger().removeHandler(file_handler)
        file_handler.close()

    return model, history, evaluation


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Train PSP toxicity hindcast classifier')
    parser.add_argument('--csv', type=str, default=None,
                        help='Input CSV (default: from config)')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Output directory (default: from config)')
    parser.add_argument('--n-steps', type=int, default=None,
                        help='Observations per window (default: from config)')
    parser.add_argument('--gap', type=int, default=None,
                        help='Forecast gap in observations (default: from config)')
    parser.add_argument('--step-spacing', type=int, default=None,
                        help='Stride inside a window (default: from config)')
    parser.add_argument('--test-years', type=int, nargs='+', default=None,
                        help='Held-out hindcast years (default: from config)')
    parser.add_argument('--epochs', type=int, default=None,
                        help='Max epochs (default: from config)')
    parser.add_argument('--batch-size', type=int, default=None,
                        help='Batch size (default: from config)')
    parser.add_argument('--lr', type=float, default=None,
                        help='Learning rate (default: from config)')
    parser.add_argument('--no-early-stopping', action='store_true',
                        help='Disable early stopping')
    parser.add_argument('--show', action='store_true',
                        help='Show the confusion matrix window')

    args = parser.parse_args()

    train_model(
        csv_path=args.csv,
        output_dir=args.output_dir,
        n_steps=args.n_steps,
        gap=args.gap,
        step_spacing=args.step_spacing,
        test_years=args.test_years,
        epochs=args.epochs,
        batch_size=args.batch_size,
        learning_rate=args.lr,
        early_stopping=not args.no_early_stopping,
        show_plots=args.show
    )
