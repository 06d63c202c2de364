"""
Model validation and sanity checks
"""
import json
import sys

import numpy as np
from sklearn.metrics import mean_absolute_error, r2_score

from price_estimator import config
from price_estimator.model import ERROR_THRESHOLD, TrainedModel, compute_metrics, train_model_with_report
from price_estimator.preprocessing import load_dataset


def main(source: str = config.DATASET_SOURCE) -> int:
    print("=" * 80)
    print("MODEL VALIDATION & SANITY CHECKS")
    print("=" * 80)

    records = load_dataset(source)
    print(f"\nTotal records: {len(records):,}")

    # CHECK 1: Baseline
    print("\n" + "=" * 80)
    print("CHECK 1: GLOBAL MEDIAN BASELINE")
    print("=" * 80)

    y_true = np.array([record.price for record in records])
    baseline = np.full(len(y_true), np.median(y_true))
    mae_baseline = mean_absolute_error(y_true, baseline)
    r2_baseline = r2_score(y_true, baseline)
    print(f"\n   Median: ${np.median(y_true):,.0f}k")
    print(f"   R²: {r2_baseline:.4f}")
    print(f"   MAE: ${mae_baseline:,.1f}k")

    # CHECK 2: Training
    model, report = train_model_with_report(records, random_seed=config.TRAINING_SEED, verbose=True)
    metrics = compute_metrics(model, records, "Training", verbose=True)

    # CHECK 3: Persistence round trip
    print("\n" + "=" * 80)
    print("CHECK 3: SERIALIZATION ROUND TRIP")
    print("=" * 80)
    restored = TrainedModel.from_dict(json.loads(json.dumps(model.to_dict())))
    round_trip_ok = restored == model
    print(f"\nRestored model identical: {round_trip_ok}")

    print("\n" + "=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"  Baseline:  R²={r2_baseline:.4f}, MAE=${mae_baseline:,.1f}k")
    print(f"  Network:   R²={metrics['r2']:.4f}, MAE=${metrics['mae']:,.1f}k")

    if not report.converged:
        print(f"\n⚠️  Training stopped at the iteration cap with error {report.final_error:.4f} (threshold {ERROR_THRESHOLD})")
    if metrics['mae'] > mae_baseline:
        print("\n⚠️  WARNING: Network is WORSE than the median baseline!")
    else:
        improvement = (mae_baseline - metrics['mae']) / mae_baseline * 100
        print(f"\n✓ Network beats baseline by {improvement:.1f}% MAE reduction")

    return 0 if round_trip_ok else 1


if __name__ == "__main__":
    config.configure_logging()
    sys.exit(main(*sys.argv[1:2]))
