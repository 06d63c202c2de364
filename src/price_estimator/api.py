"""
FastAPI Service for Real Estate Price Estimation

REST surface over the session controller:
- GET /health: Service health check
- PUT /api/v1/fields/{name}: Update one form field
- POST /api/v1/predict-price: Predict a price and return chart data
- DELETE /api/v1/model: Remove the stored model
"""

from contextlib import asynccontextmanager
import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from price_estimator import config
from price_estimator.preprocessing import FEATURE_NAMES
from price_estimator.session import SessionController, SessionState
from price_estimator.storage import FileKeyValueStore, ModelStore

logger = logging.getLogger(__name__)


# ==================== API MODELS (Request/Response Schemas) ====================

class FieldUpdate(BaseModel):
    value: Union[float, str] = Field(..., description="Raw form value")


class PredictionRequest(BaseModel):
    """
    Request schema for price prediction.

    All fields are optional; supplied fields overwrite the current form values
    before predicting.
    """
    area: Optional[float] = Field(None, description="Area in sq ft")
    bedrooms: Optional[float] = Field(None, description="Number of bedrooms")
    bathrooms: Optional[float] = Field(None, description="Number of bathrooms")
    location: Optional[float] = Field(None, description="Encoded location")
    age: Optional[float] = Field(None, description="Age of property in years")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "area": 2000,
            "bedrooms": 3,
            "bathrooms": 2,
            "location": 3,
            "age": 10
        }
    })


class ChartDataset(BaseModel):
    label: str
    data: List[float]
    backgroundColor: List[str]


class ChartData(BaseModel):
    labels: List[str]
    datasets: List[ChartDataset]


class PredictionResponse(BaseModel):
    predicted_price: float = Field(..., description="Predicted price in $1000s")
    chart: ChartData = Field(..., description="Reference price vs predicted price")


class HealthResponse(BaseModel):
    status: str
    state: str
    model_loaded: bool
    last_error: Optional[str] = None


# ==================== FASTAPI APPLICATION ====================

def create_app(controller: Optional[SessionController] = None) -> FastAPI:
    """
    Build the API around a session controller.

    The controller is started when the app starts, so the model is loaded or
    trained before the first request is served.
    """
    if controller is None:
        controller = SessionController(ModelStore(FileKeyValueStore(config.MODEL_STORE_DIR)))

    notices: List[str] = []
    default_notify = controller.notify

    def collect_notice(message: str) -> None:
        notices.append(message)
        default_notify(message)

    controller.notify = collect_notice

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        controller.start()
        yield

    app = FastAPI(
        title="Real Estate Price Estimation API",
        description="Neural-network property price estimates",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.controller = controller

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        return HealthResponse(
            status="healthy" if controller.is_ready else "unhealthy",
            state=controller.state.value,
            model_loaded=controller.model is not None,
            last_error=getattr(controller.last_error, "message", str(controller.last_error)) if controller.last_error else None
        )

    @app.put("/api/v1/fields/{name}", tags=["Form"])
    async def update_field(name: str, update: FieldUpdate) -> Dict[str, Any]:
        if name not in FEATURE_NAMES:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown field '{name}'"
            )
        controller.update_field(name, update.value)
        return {"form": dict(controller.form)}

    @app.post("/api/v1/predict-price", response_model=PredictionResponse, tags=["Prediction"])
    async def predict(request: Optional[PredictionRequest] = None):
        """
        Raises:
            503: Model not ready
            422: Invalid input or no usable prediction
        """
        if request is not None:
            for name, value in request.model_dump(exclude_none=True).items():
                controller.update_field(name, value)

        notices.clear()
        result = controller.predict()

        if result is None:
            message = notices[-1] if notices else "Prediction failed."
            code = (
                status.HTTP_422_UNPROCESSABLE_ENTITY
                if controller.state == SessionState.READY
                else status.HTTP_503_SERVICE_UNAVAILABLE
            )
            raise HTTPException(status_code=code, detail=message)

        return PredictionResponse(predicted_price=result.predicted_price, chart=ChartData(**result.chart_data()))

    @app.delete("/api/v1/model", tags=["Model"])
    async def clear_model() -> Dict[str, Any]:
        notices.clear()
        controller.clear_model()
        return {"state": controller.state.value, "message": notices[-1] if notices else None}

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "status_code": exc.status_code
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc)
            }
        )

    return app


# ==================== MAIN (for local testing) ====================

if __name__ == "__main__":
    import uvicorn

    config.configure_logging()
    logger.info("Starting Real Estate Price Estimation API on http://localhost:8000")

    uvicorn.run(create_app(), host="0.0.0.0", port=8000, log_level="info")
