"""
Data Preprocessing Module for Real Estate Price Estimation

This module contains the transformation logic shared by:
1. Model training (price_estimator.model.train_model)
2. Inference (price_estimator.model.predict_price)

CRITICAL: The scale factors below are fixed constants. A model is only valid
for the scales it was trained with; persisted models record them so a change
here invalidates stored entries instead of silently skewing predictions.

Architecture decisions:
- Fixed per-feature divisors instead of fitted scalers (no statistics to leak)
- No clamping: out-of-range inputs pass through and the network extrapolates
- Dataset rows validated once at load time; malformed rows are logged and skipped
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from price_estimator.exceptions import DatasetLoadError

logger = logging.getLogger(__name__)

# ==================== NORMALIZATION CONSTANTS ====================

FEATURE_NAMES = ['area', 'bedrooms', 'bathrooms', 'location', 'age']
OUTPUT_NAME = 'price'

INPUT_SCALES = {
    'area': 10000.0,
    'bedrooms': 10.0,
    'bathrooms': 10.0,
    'location': 5.0,
    'age': 100.0,
}
OUTPUT_SCALE = 1000.0


# ==================== RECORD SCHEMAS ====================

class PropertyQuery(BaseModel):
    """Raw property attributes entered by the user."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    area: float = Field(..., description="Living area in sq ft")
    bedrooms: float = Field(..., description="Number of bedrooms")
    bathrooms: float = Field(..., description="Number of bathrooms")
    location: float = Field(..., description="Encoded location")
    age: float = Field(..., description="Age of property in years")


class PropertyRecord(BaseModel):
    """
    One labeled training example from the dataset.

    Field aliases match the column names of the bundled JSON file, so a raw
    row validates directly with `PropertyRecord.model_validate(row)`.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False, populate_by_name=True)

    area: float = Field(..., gt=0, alias="Area (sq ft)")
    bedrooms: float = Field(..., ge=0, alias="Bedrooms")
    bathrooms: float = Field(..., ge=0, alias="Bathrooms")
    location: float = Field(..., ge=0, alias="Location")
    age: float = Field(..., ge=0, alias="Age of Property (years)")
    price: float = Field(..., gt=0, alias="Price (in $1000)")

    def to_query(self) -> PropertyQuery:
        return PropertyQuery(
            area=self.area,
            bedrooms=self.bedrooms,
            bathrooms=self.bathrooms,
            location=self.location,
            age=self.age
        )


# ==================== NORMALIZATION ====================

def normalize_input(area, bedrooms, bathrooms, location, age) -> Dict[str, Any]:
    """
    Rescale raw attributes into the network's input range.

    Works element-wise, so the arguments may be plain numbers or pandas Series
    (training uses whole columns, inference single values).

    Returns:
        Dict keyed by FEATURE_NAMES
    """
    return {
        'area': area / INPUT_SCALES['area'],
        'bedrooms': bedrooms / INPUT_SCALES['bedrooms'],
        'bathrooms': bathrooms / INPUT_SCALES['bathrooms'],
        'location': location / INPUT_SCALES['location'],
        'age': age / INPUT_SCALES['age'],
    }


def normalize_output(price_thousands):
    return price_thousands / OUTPUT_SCALE


def denormalize_output(normalized_price):
    return normalized_price * OUTPUT_SCALE


def normalize_query(query: PropertyQuery) -> Dict[str, float]:
    return normalize_input(query.area, query.bedrooms, query.bathrooms, query.location, query.age)


# ==================== DATASET LOADING ====================

def parse_records(rows: Iterable[Mapping[str, Any]]) -> List[PropertyRecord]:
    """
    Validate raw dataset rows into PropertyRecords.

    Rows that fail validation (missing fields, non-numeric or NaN values,
    non-positive area/price) are logged and skipped.

    Args:
        rows: Mappings keyed by the dataset's column names

    Returns:
        List of valid records in input order
    """
    records = []
    skipped = 0

    for index, row in enumerate(rows):
        try:
            records.append(PropertyRecord.model_validate(dict(row)))
        except ValidationError as e:
            skipped += 1
            logger.warning("Skipping malformed dataset row %d: %s", index, e.errors()[0]['msg'])

    if skipped:
        logger.warning("Skipped %d malformed rows, kept %d", skipped, len(records))

    return records


def load_dataset(source: str) -> List[PropertyRecord]:
    """
    Fetch and parse the JSON dataset.

    Args:
        source: Local path or URL of a JSON array of property rows

    Returns:
        Non-empty list of PropertyRecords

    Raises:
        DatasetLoadError: source unreadable, not a JSON array, or no valid rows
    """
    logger.info("Loading dataset from %s", source)

    try:
        df = pd.read_json(source, orient='records', convert_dates=False)
    except (OSError, ValueError) as e:
        raise DatasetLoadError(str(source), str(e)) from e

    # pandas turns missing keys into NaN; None lets pydantic report them as missing
    rows = [
        {key: value for key, value in row.items() if not _is_missing(value)}
        for row in df.to_dict(orient='records')
    ]
    records = parse_records(rows)

    if not records:
        raise DatasetLoadError(str(source), "dataset contains no valid property records")

    logger.info("Loaded %d property records", len(records))
    return records


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


# ==================== TRAINING SET ====================

def build_training_set(records: List[PropertyRecord]) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Convert records to normalized feature matrix and target vector.

    Args:
        records: Parsed property records

    Returns:
        X (columns in FEATURE_NAMES order), y (normalized price)
    """
    df = pd.DataFrame([record.model_dump() for record in records], columns=FEATURE_NAMES + [OUTPUT_NAME])

    X = pd.DataFrame(
        normalize_input(df['area'], df['bedrooms'], df['bathrooms'], df['location'], df['age']),
        columns=FEATURE_NAMES
    )
    y = normalize_output(df[OUTPUT_NAME]).rename(OUTPUT_NAME)

    return X, y
