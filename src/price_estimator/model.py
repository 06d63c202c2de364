"""
Model Training Module for Real Estate Price Estimation

This module handles:
1. Feed-forward network training with a fixed topology
2. Conversion of the fitted network into a serializable TrainedModel
3. Single-record price prediction
4. Model evaluation metrics (R², MAE, MAPE)

Key Technical Decisions:
- Model: scikit-learn MLPRegressor, hidden layers (5, 3), logistic activations
- Training: plain SGD (lr 0.3, momentum 0.1), one epoch per partial_fit call
- Stopping: 2000 iterations or mean squared error below 0.005, whichever first
- No held-out set: the whole dataset is used for fitting
- Random seed optional; unseeded runs are not reproducible
"""

import math
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics import mean_absolute_error, mean_absolute_percentage_error, mean_squared_error, r2_score
from sklearn.neural_network import MLPRegressor

from price_estimator.exceptions import ModelNotReadyError, PredictionUnavailableError
from price_estimator.preprocessing import (
    FEATURE_NAMES,
    INPUT_SCALES,
    OUTPUT_NAME,
    OUTPUT_SCALE,
    PropertyQuery,
    PropertyRecord,
    build_training_set,
    denormalize_output,
    normalize_query,
)

warnings.filterwarnings('ignore', category=ConvergenceWarning)

HIDDEN_LAYERS = (5, 3)
MAX_ITERATIONS = 2000
ERROR_THRESHOLD = 0.005
LEARNING_RATE = 0.3
MOMENTUM = 0.1

# Bump whenever topology, activations or serialized layout change
SCHEMA_VERSION = 1


def _logistic(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))


@dataclass
class TrainedModel:
    """
    Topology and weights of a fitted network.

    Restorable from `to_dict()` output alone; the training data is not needed.
    Layer `i` maps its input through `x @ weights[i] + biases[i]`, with a
    logistic activation on every layer but the last.
    """

    hidden_layers: Tuple[int, ...]
    weights: List[List[List[float]]]
    biases: List[List[float]]
    activation: str = 'logistic'
    feature_names: List[str] = field(default_factory=lambda: list(FEATURE_NAMES))
    output_name: str = OUTPUT_NAME

    @classmethod
    def from_regressor(cls, regressor: MLPRegressor) -> "TrainedModel":
        return cls(
            hidden_layers=tuple(regressor.hidden_layer_sizes),
            weights=[w.tolist() for w in regressor.coefs_],
            biases=[b.tolist() for b in regressor.intercepts_],
            activation=regressor.activation
        )

    def run(self, features: Mapping[str, float]) -> Dict[str, float]:
        """
        Forward pass on one normalized input.

        Args:
            features: Normalized values keyed by feature name

        Returns:
            Dict with the single output field
        """
        x = np.array([[features[name] for name in self.feature_names]], dtype=float)
        last_layer = len(self.weights) - 1

        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            x = x @ np.asarray(w) + np.asarray(b)
            if i != last_layer:
                x = _logistic(x)

        return {self.output_name: float(x[0, 0])}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': SCHEMA_VERSION,
            'input_scales': dict(INPUT_SCALES),
            'output_scale': OUTPUT_SCALE,
            'activation': self.activation,
            'hidden_layers': list(self.hidden_layers),
            'feature_names': list(self.feature_names),
            'output_name': self.output_name,
            'weights': [[list(row) for row in layer] for layer in self.weights],
            'biases': [list(layer) for layer in self.biases],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainedModel":
        """
        Restore a model from `to_dict()` output.

        Raises:
            ValueError: schema version or normalization scales differ from the
                running code, or the weight shapes do not match the topology
            KeyError: a required entry is missing
        """
        version = data.get('schema_version')
        if version != SCHEMA_VERSION:
            raise ValueError(f"schema version {version!r} does not match {SCHEMA_VERSION}")
        if data.get('input_scales') != INPUT_SCALES or data.get('output_scale') != OUTPUT_SCALE:
            raise ValueError("normalization scales differ from the current ones")

        model = cls(
            hidden_layers=tuple(int(n) for n in data['hidden_layers']),
            weights=[[[float(v) for v in row] for row in layer] for layer in data['weights']],
            biases=[[float(v) for v in layer] for layer in data['biases']],
            activation=data['activation'],
            feature_names=list(data['feature_names']),
            output_name=data['output_name']
        )

        expected_sizes = [len(model.feature_names)] + list(model.hidden_layers) + [1]
        if len(model.weights) != len(expected_sizes) - 1 or len(model.biases) != len(model.weights):
            raise ValueError("layer count does not match hidden_layers")
        for i, (w, b) in enumerate(zip(model.weights, model.biases)):
            if np.asarray(w).shape != (expected_sizes[i], expected_sizes[i + 1]) or len(b) != expected_sizes[i + 1]:
                raise ValueError(f"layer {i} weights have the wrong shape")

        return model


@dataclass
class TrainingReport:
    iterations: int
    final_error: float
    converged: bool


def build_regressor(random_seed: Optional[int] = None) -> MLPRegressor:
    return MLPRegressor(
        hidden_layer_sizes=HIDDEN_LAYERS,
        activation='logistic',
        solver='sgd',
        learning_rate='constant',
        learning_rate_init=LEARNING_RATE,
        momentum=MOMENTUM,
        nesterovs_momentum=False,
        alpha=0.0,
        max_iter=MAX_ITERATIONS,
        random_state=random_seed
    )


def train_model_with_report(
    records: List[PropertyRecord],
    random_seed: Optional[int] = None,
    max_iterations: int = MAX_ITERATIONS,
    error_threshold: float = ERROR_THRESHOLD,
    verbose: bool = False
) -> Tuple[TrainedModel, TrainingReport]:
    """
    Fit a fresh network to every record.

    Each iteration is one epoch over the full dataset. Training stops after
    `max_iterations` or as soon as the mean squared error (in normalized
    price units) drops below `error_threshold`.

    Args:
        records: Non-empty list of training records
        random_seed: Seed for weight initialization and shuffling
        max_iterations: Iteration cap
        error_threshold: Convergence threshold on training MSE
        verbose: Print a training summary

    Returns:
        Trained model and a report of how training ended

    Raises:
        ValueError: records is empty
    """
    if not records:
        raise ValueError("Cannot train on an empty dataset")

    X, y = build_training_set(records)
    X_arr = X.to_numpy()
    y_arr = y.to_numpy()

    if verbose:
        print("=" * 80)
        print("TRAINING PRICE NETWORK")
        print("=" * 80)
        print(f"Samples: {len(X_arr):,}")
        print(f"Hidden layers: {HIDDEN_LAYERS}")
        print(f"Max iterations: {max_iterations}, error threshold: {error_threshold}")

    regressor = build_regressor(random_seed)
    error = math.inf
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        regressor.partial_fit(X_arr, y_arr)
        error = mean_squared_error(y_arr, regressor.predict(X_arr))
        if error < error_threshold:
            break

    report = TrainingReport(iterations=iterations, final_error=float(error), converged=error < error_threshold)

    if verbose:
        print("\n" + "=" * 80)
        print("TRAINING COMPLETE")
        print("=" * 80)
        print(f"Iterations: {report.iterations}")
        print(f"Training error (MSE, normalized): {report.final_error:.6f}")
        print(f"Converged: {report.converged}")

    return TrainedModel.from_regressor(regressor), report


def train_model(records: List[PropertyRecord], random_seed: Optional[int] = None) -> TrainedModel:
    model, _ = train_model_with_report(records, random_seed=random_seed)
    return model


def predict_price(model: Optional[TrainedModel], query: PropertyQuery) -> float:
    """
    Predict the price of one property.

    Args:
        model: Trained model, or None if none is loaded
        query: Raw property attributes

    Returns:
        Predicted price in $1000s

    Raises:
        ModelNotReadyError: model is None
        PredictionUnavailableError: the output field is missing, non-finite or zero
    """
    if model is None:
        raise ModelNotReadyError()

    output = model.run(normalize_query(query))
    value = output.get(OUTPUT_NAME)

    if value is None or not math.isfinite(value) or value == 0:
        raise PredictionUnavailableError(output)

    return denormalize_output(value)


def compute_metrics(
    model: TrainedModel,
    records: List[PropertyRecord],
    dataset_name: str = "Dataset",
    verbose: bool = False
) -> Dict[str, float]:
    """
    Compute regression metrics in price space ($1000s).

    Args:
        model: Trained model
        records: Labeled records to score against
        dataset_name: Name for printing
        verbose: Print the metrics

    Records whose prediction is unavailable are excluded and counted.

    Returns:
        Dictionary with r2, mae, mape (percent) and unavailable_count
    """
    y_true = []
    y_pred = []
    unavailable = 0

    for record in records:
        try:
            y_pred.append(predict_price(model, record.to_query()))
        except PredictionUnavailableError:
            unavailable += 1
            continue
        y_true.append(record.price)

    y_true = np.array(y_true)
    y_pred = np.array(y_pred)

    if len(y_true) > 0:
        # r2 is undefined for a single sample
        r2 = r2_score(y_true, y_pred) if len(y_true) > 1 else float('nan')
        mae = mean_absolute_error(y_true, y_pred)
        mape = mean_absolute_percentage_error(y_true, y_pred) * 100
    else:
        r2 = mae = mape = float('nan')

    metrics = {
        'r2': float(r2),
        'mae': float(mae),
        'mape': float(mape),
        'unavailable_count': unavailable,
    }

    if verbose:
        print(f"\n{'=' * 80}")
        print(f"{dataset_name.upper()} METRICS (Price in $1000s)")
        print(f"{'=' * 80}")
        print(f"R² Score:  {metrics['r2']:.4f}")
        print(f"MAE:       {metrics['mae']:,.2f}")
        print(f"MAPE:      {metrics['mape']:.2f}%")
        if unavailable:
            print(f"Excluded {unavailable} records with no usable prediction")

    return metrics
