"""
Re-run the hindcast evaluation of a trained PSP toxicity model.
"""
import os
import argparse

import matplotlib.pyplot as plt

from psp_forecasting import config
from psp_forecasting.utils import configure_logging, load_toxin_data, save_plot
from psp_forecasting.preprocessing import create_images, split_by_year, apply_normalization
from psp_forecasting.model import load_model_with_normalization
from psp_forecasting.evaluate import (
    evaluate_hindcast, plot_confusion_matrix, print_hindcast_summary, save_results_table
)

parser = argparse.ArgumentParser(description='Evaluate a trained model on held-out years')
parser.add_argument('--csv', type=str, default=None, help='Input CSV (default: from config)')
parser.add_argument('--output-dir', type=str, default=str(config.OUTPUT_DIR),
                    help='Training output directory holding model and stats')
parser.add_argument('--test-years', type=int, nargs='+', default=None,
                    help='Held-out years (default: from config)')
parser.add_argument('--n-steps', type=int, default=None,
                    help='Observations per window, must match training')
parser.add_argument('--gap', type=int, default=None,
                    help='Forecast gap, must match training')
parser.add_argument('--step-spacing', type=int, default=None,
                    help='Stride inside a window, must match training')
parser.add_argument('--max-gap-days', type=int, default=config.MAX_GAP_DAYS,
                    help='Max days between used observations, must match training '
                         '(negative disables)')
parser.add_argument('--normalize', action='store_true',
                    help='Plot row-normalized confusion matrix')
args = parser.parse_args()

configure_logging()

max_gap_days = None if args.max_gap_days is not None and args.max_gap_days < 0 else args.max_gap_days

print("Loading model and normalization stats...")
model, stats = load_model_with_normalization(
    os.path.join(args.output_dir, config.MODEL_FILENAME), args.output_dir
)

print("Building test pool...")
df = load_toxin_data(args.csv)
images_by_year = create_images(
    df,
    n_steps=args.n_steps,
    gap=args.gap,
    step_spacing=args.step_spacing,
    max_gap_days=max_gap_days
)
_, _, X_test, y_test, test_meta = split_by_year(images_by_year, test_years=args.test_years)
X_test = apply_normalization(X_test, stats)

print(f"Test set: {len(X_test)} images")

evaluation = evaluate_hindcast(model, X_test, y_test, test_meta)
print_hindcast_summary(evaluation)

save_results_table(evaluation['results'],
                   os.path.join(args.output_dir, config.RESULTS_TABLE_FILENAME))
fig = plot_confusion_matrix(evaluation['confusion_matrix'], normalize=args.normalize)
save_plot(fig, basename='confusion_matrix', suffix='eval',
          output_dir=os.path.join(args.output_dir, 'plots'))
plt.show()
