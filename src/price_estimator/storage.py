"""
Model persistence.

A single trained model is kept under one fixed key in a durable key-value
store, encoded as JSON text. Saving overwrites; there is never more than one
model.
"""

import json
import logging
import os
import tempfile
from typing import Dict, Optional

from price_estimator.config import MODEL_STORAGE_KEY
from price_estimator.exceptions import StorageCorruptionError
from price_estimator.model import TrainedModel

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Minimal string key-value interface used by ModelStore."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """
    One file per key inside `directory`.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers see either the old value or the new
    one.
    """

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        try:
            with open(self._path(key), 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp = tempfile.NamedTemporaryFile(
            'w', encoding='utf-8', dir=self.directory, prefix=f".{key}.", suffix=".tmp", delete=False
        )
        try:
            with tmp:
                tmp.write(value)
            os.replace(tmp.name, self._path(key))
        except BaseException:
            if os.path.exists(tmp.name):
                os.remove(tmp.name)
            raise

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass


class ModelStore:
    """Single-slot store for the trained model."""

    def __init__(self, backend: KeyValueStore, key: str = MODEL_STORAGE_KEY) -> None:
        self.backend = backend
        self.key = key

    def save(self, model: TrainedModel) -> None:
        self.backend.set(self.key, json.dumps(model.to_dict()))
        logger.info("Saved trained model under '%s'", self.key)

    def load(self) -> Optional[TrainedModel]:
        """
        Read the stored model.

        Returns:
            The model, or None if nothing is stored

        Raises:
            StorageCorruptionError: the entry is not valid JSON, is missing
                fields, or was written for different normalization/topology
        """
        try:
            raw = self.backend.get(self.key)
            if raw is None:
                return None
            model = TrainedModel.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as e:
            # UnicodeDecodeError is a ValueError; OverflowError from int(inf) an ArithmeticError
            raise StorageCorruptionError(self.key, str(e)) from e

        logger.info("Loaded trained model from '%s'", self.key)
        return model

    def clear(self) -> None:
        self.backend.delete(self.key)
        logger.info("Cleared stored model '%s'", self.key)
