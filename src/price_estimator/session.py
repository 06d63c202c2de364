"""
Session controller.

Owns the single in-memory model and drives its lifecycle:

    UNINITIALIZED -> LOADING -> READY -> [PREDICTING -> READY]* -> CLEARED

start() loads the stored model, or fetches the dataset, trains and saves
when nothing usable is stored. Failures never propagate out of the
controller; they are logged and reported through `notify`.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from price_estimator import config
from price_estimator.exceptions import (
    DatasetLoadError,
    ModelNotReadyError,
    PredictionUnavailableError,
    StorageCorruptionError,
)
from price_estimator.model import TrainedModel, predict_price, train_model
from price_estimator.preprocessing import FEATURE_NAMES, PropertyQuery, PropertyRecord, load_dataset
from price_estimator.storage import ModelStore

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    PREDICTING = "predicting"
    CLEARED = "cleared"


@dataclass
class PredictionResult:
    predicted_price: float
    comparison_series: Tuple[float, float]

    def chart_data(self) -> Dict[str, Any]:
        """Bar-chart payload comparing the reference price with the prediction."""
        return {
            'labels': ["Actual Price", "Predicted Price"],
            'datasets': [
                {
                    'label': "Price ($1000s)",
                    'data': list(self.comparison_series),
                    'backgroundColor': ["rgba(75, 192, 192, 0.6)", "rgba(255, 99, 132, 0.6)"],
                }
            ],
        }


def _log_notice(message: str) -> None:
    logger.warning(message)


class SessionController:
    """
    Args:
        store: Model store holding the persisted model
        dataset_loader: Called with no arguments when training is needed
        trainer: Builds a TrainedModel from records
        notify: Receives user-facing notices
    """

    def __init__(
        self,
        store: ModelStore,
        dataset_loader: Optional[Callable[[], List[PropertyRecord]]] = None,
        trainer: Optional[Callable[[List[PropertyRecord]], TrainedModel]] = None,
        notify: Callable[[str], None] = _log_notice,
        predictor: Callable[[Optional[TrainedModel], PropertyQuery], float] = predict_price
    ) -> None:
        self.store = store
        self.dataset_loader = dataset_loader or (lambda: load_dataset(config.DATASET_SOURCE))
        self.trainer = trainer or (lambda records: train_model(records, random_seed=config.TRAINING_SEED))
        self.notify = notify
        self.predictor = predictor

        self.state = SessionState.UNINITIALIZED
        self.model: Optional[TrainedModel] = None
        self.records: List[PropertyRecord] = []
        self.form: Dict[str, str] = {name: "" for name in FEATURE_NAMES}
        self.last_result: Optional[PredictionResult] = None
        self.last_error: Optional[Exception] = None

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY and self.model is not None

    def start(self) -> SessionState:
        """
        Load the stored model or train a new one.

        Returns:
            The resulting state: READY on success, LOADING if the dataset
            could not be loaded or training failed
        """
        self.state = SessionState.LOADING
        self.last_error = None

        try:
            model = self.store.load()
        except StorageCorruptionError as e:
            logger.warning("%s; discarding it and retraining", e.message)
            model = None
            try:
                self.store.clear()
            except OSError as clear_error:
                logger.error("Could not remove stored model: %s", clear_error)
        except OSError as e:
            logger.error("Could not read stored model, retraining: %s", e)
            model = None

        if model is not None:
            logger.info("Loading model from storage")
            self.model = model
            self.state = SessionState.READY
            return self.state

        try:
            records = self.dataset_loader()
        except DatasetLoadError as e:
            logger.error("Error loading data: %s", e.message)
            self.last_error = e
            return self.state

        logger.info("Training model with %d records", len(records))
        try:
            model = self.trainer(records)
        except Exception as e:
            logger.exception("Error training model: %s", e)
            self.last_error = e
            return self.state
        logger.info("Model training completed")

        # An unsaved model still serves this session; it is retrained on next start
        try:
            self.store.save(model)
        except OSError as e:
            logger.error("Could not save trained model: %s", e)
            self.last_error = e

        self.records = records
        self.model = model
        self.state = SessionState.READY
        return self.state

    def update_field(self, name: str, value: Any) -> None:
        if name not in self.form:
            raise ValueError(f"Unknown field '{name}', expected one of {FEATURE_NAMES}")
        self.form[name] = "" if value is None else str(value)

    def predict(self) -> Optional[PredictionResult]:
        """
        Predict the price for the current form values.

        Returns:
            PredictionResult, or None when no model is ready, the form holds
            non-numeric values, or the network gives no usable output
        """
        if not self.is_ready:
            logger.error("Model is not trained yet.")
            self.notify(ModelNotReadyError().message)
            return None

        try:
            query = PropertyQuery(**{name: float(value) for name, value in self.form.items()})
        except (ValueError, ValidationError):
            self.notify(PredictionUnavailableError().message)
            return None

        self.state = SessionState.PREDICTING
        try:
            predicted = self.predictor(self.model, query)
        except PredictionUnavailableError as e:
            logger.error("Prediction failed: no output from model (%s)", e.details.get('output'))
            self.notify(e.message)
            return None
        finally:
            self.state = SessionState.READY

        actual = self.records[0].price if self.records else 0.0
        self.last_result = PredictionResult(predicted_price=predicted, comparison_series=(actual, predicted))
        logger.info("Predicted price: %.2f", predicted)
        return self.last_result

    def clear_model(self) -> None:
        try:
            self.store.clear()
        except OSError as e:
            logger.error("Could not remove stored model: %s", e)
            self.last_error = e
        self.model = None
        self.last_result = None
        self.state = SessionState.CLEARED
        self.notify("Trained model has been removed. Please refresh the page to retrain.")
