"""
Exception classes for the price estimator.

Every error carries a message, a short error code and a details dict so the
session controller and the HTTP layer can report it consistently.
"""

from typing import Any, Dict, Optional


class PriceEstimatorError(Exception):
    """Base class for all price estimator errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class DatasetLoadError(PriceEstimatorError):
    """Raised when the bundled dataset cannot be fetched or parsed."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Failed to load dataset from {source}: {reason}",
            error_code="DATASET_LOAD_FAILED",
            details={"source": source, "reason": reason}
        )


class ModelNotReadyError(PriceEstimatorError):
    """Raised when a prediction is requested before a model exists."""

    def __init__(self, message: str = "Model is not trained yet. Please train it first."):
        super().__init__(message=message, error_code="MODEL_NOT_READY")


class PredictionUnavailableError(PriceEstimatorError):
    """Raised when the forward pass yields no usable price."""

    def __init__(self, output: Any = None):
        super().__init__(
            message="Prediction failed. Please check your input values.",
            error_code="PREDICTION_UNAVAILABLE",
            details={"output": output}
        )


class StorageCorruptionError(PriceEstimatorError):
    """Raised when a persisted model cannot be restored."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            message=f"Stored model under '{key}' is unusable: {reason}",
            error_code="STORAGE_CORRUPTION",
            details={"key": key, "reason": reason}
        )
