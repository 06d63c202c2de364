import json

import pytest

from price_estimator.model import TrainedModel
from price_estimator.preprocessing import PropertyRecord
from price_estimator.storage import InMemoryKeyValueStore, ModelStore

SAMPLE_ROWS = [
    {"Area (sq ft)": 2000, "Bedrooms": 3, "Bathrooms": 2, "Location": 3, "Age of Property (years)": 10, "Price (in $1000)": 300},
    {"Area (sq ft)": 1500, "Bedrooms": 2, "Bathrooms": 1, "Location": 2, "Age of Property (years)": 25, "Price (in $1000)": 230},
    {"Area (sq ft)": 3200, "Bedrooms": 4, "Bathrooms": 3, "Location": 5, "Age of Property (years)": 5, "Price (in $1000)": 620},
    {"Area (sq ft)": 1100, "Bedrooms": 2, "Bathrooms": 1, "Location": 1, "Age of Property (years)": 40, "Price (in $1000)": 140},
    {"Area (sq ft)": 2500, "Bedrooms": 3, "Bathrooms": 2, "Location": 4, "Age of Property (years)": 15, "Price (in $1000)": 430},
]


def make_constant_model(output: float) -> TrainedModel:
    """Network whose zero weights make every input produce `output`."""
    return TrainedModel(
        hidden_layers=(5, 3),
        weights=[
            [[0.0] * 5 for _ in range(5)],
            [[0.0] * 3 for _ in range(5)],
            [[0.0] for _ in range(3)],
        ],
        biases=[[0.0] * 5, [0.0] * 3, [output]],
    )


@pytest.fixture
def sample_rows():
    return [dict(row) for row in SAMPLE_ROWS]


@pytest.fixture
def sample_records(sample_rows):
    return [PropertyRecord.model_validate(row) for row in sample_rows]


@pytest.fixture
def dataset_file(tmp_path, sample_rows):
    path = tmp_path / "real_estate_data.json"
    path.write_text(json.dumps(sample_rows))
    return str(path)


@pytest.fixture
def constant_model():
    return make_constant_model(0.3)


@pytest.fixture
def memory_backend():
    return InMemoryKeyValueStore()


@pytest.fixture
def memory_store(memory_backend):
    return ModelStore(memory_backend)
