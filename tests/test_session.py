import json

import pytest

from price_estimator.config import MODEL_STORAGE_KEY
from price_estimator.exceptions import DatasetLoadError, PredictionUnavailableError
from price_estimator.session import PredictionResult, SessionController, SessionState
from price_estimator.storage import FileKeyValueStore, InMemoryKeyValueStore, ModelStore
from tests.conftest import make_constant_model

FORM = {'area': "2000", 'bedrooms': "3", 'bathrooms': "2", 'location': "3", 'age': "10"}


class Recorder:
    """Stand-in for dataset loader, trainer and predictor that counts calls."""

    def __init__(self, records=None, model=None, error=None):
        self.records = records
        self.model = model
        self.error = error
        self.loads = 0
        self.trains = 0
        self.predictions = 0

    def load(self):
        self.loads += 1
        if self.error:
            raise self.error
        return self.records

    def train(self, records):
        self.trains += 1
        return self.model

    def predict(self, model, query):
        self.predictions += 1
        return 321.0


@pytest.fixture
def notices():
    return []


@pytest.fixture
def recorder(sample_records):
    return Recorder(records=sample_records, model=make_constant_model(0.3))


@pytest.fixture
def controller(memory_store, recorder, notices):
    return SessionController(
        memory_store,
        dataset_loader=recorder.load,
        trainer=recorder.train,
        notify=notices.append
    )


def fill_form(controller, values=FORM):
    for name, value in values.items():
        controller.update_field(name, value)


def test_initial_state(controller):
    assert controller.state == SessionState.UNINITIALIZED
    assert controller.model is None
    assert not controller.is_ready


def test_start_uses_stored_model(controller, memory_store, recorder, constant_model):
    memory_store.save(constant_model)

    assert controller.start() == SessionState.READY

    assert controller.model == constant_model
    assert recorder.loads == 0
    assert recorder.trains == 0


def test_start_trains_and_saves_when_store_empty(controller, memory_store, recorder):
    assert controller.start() == SessionState.READY

    assert recorder.loads == 1
    assert recorder.trains == 1
    assert memory_store.load() == recorder.model
    assert controller.records == recorder.records


def test_start_retrains_over_corrupt_entry(controller, memory_store, memory_backend, recorder):
    memory_backend.set(memory_store.key, "{garbage")

    assert controller.start() == SessionState.READY

    assert recorder.trains == 1
    assert memory_store.load() == recorder.model


def test_dataset_failure_leaves_controller_loading(memory_store, notices, caplog):
    failing = Recorder(error=DatasetLoadError("/real_estate_data.json", "not found"))
    controller = SessionController(memory_store, dataset_loader=failing.load, trainer=failing.train, notify=notices.append)

    assert controller.start() == SessionState.LOADING

    assert isinstance(controller.last_error, DatasetLoadError)
    assert failing.trains == 0
    assert memory_store.load() is None
    assert "Error loading data" in caplog.text


def test_predict_before_start_is_gated(memory_store, recorder, notices):
    controller = SessionController(memory_store, notify=notices.append, predictor=recorder.predict)
    fill_form(controller)

    assert controller.predict() is None

    assert recorder.predictions == 0
    assert notices == ["Model is not trained yet. Please train it first."]


def test_predict_while_loading_is_gated(memory_store, notices):
    failing = Recorder(error=DatasetLoadError("data.json", "timeout"))
    spy = Recorder()
    controller = SessionController(
        memory_store, dataset_loader=failing.load, notify=notices.append, predictor=spy.predict
    )
    controller.start()
    fill_form(controller)

    assert controller.predict() is None
    assert spy.predictions == 0
    assert len(notices) == 1


def test_predict_returns_result_with_first_record_price(controller, sample_records):
    controller.start()
    fill_form(controller)

    result = controller.predict()

    assert isinstance(result, PredictionResult)
    assert result.predicted_price == pytest.approx(300)
    assert result.comparison_series == (sample_records[0].price, result.predicted_price)
    assert controller.last_result is result
    assert controller.state == SessionState.READY


def test_comparison_price_is_zero_when_model_came_from_storage(controller, memory_store, constant_model):
    memory_store.save(constant_model)
    controller.start()
    fill_form(controller)

    result = controller.predict()

    assert result.comparison_series[0] == 0


def test_chart_data():
    chart = PredictionResult(predicted_price=310.5, comparison_series=(300, 310.5)).chart_data()

    assert chart['labels'] == ["Actual Price", "Predicted Price"]
    assert chart['datasets'][0]['label'] == "Price ($1000s)"
    assert chart['datasets'][0]['data'] == [300, 310.5]


@pytest.mark.parametrize("field, value", [('area', ""), ('bedrooms', "three"), ('age', "nan")])
def test_predict_with_invalid_form_values(controller, notices, field, value):
    controller.start()
    fill_form(controller)
    controller.update_field(field, value)

    assert controller.predict() is None

    assert notices == ["Prediction failed. Please check your input values."]
    assert controller.state == SessionState.READY


def test_predict_unavailable_output(memory_store, recorder, notices):
    def failing_predictor(model, query):
        raise PredictionUnavailableError({'price': 0.0})

    controller = SessionController(
        memory_store,
        dataset_loader=recorder.load,
        trainer=recorder.train,
        notify=notices.append,
        predictor=failing_predictor
    )
    controller.start()
    fill_form(controller)

    assert controller.predict() is None

    assert notices == ["Prediction failed. Please check your input values."]
    assert controller.state == SessionState.READY
    assert controller.last_result is None


def test_update_field_rejects_unknown_name(controller):
    with pytest.raises(ValueError):
        controller.update_field('garage', "1")


def test_update_field_accepts_numbers(controller):
    controller.update_field('area', 1850.5)

    assert controller.form['area'] == "1850.5"


def test_clear_then_predict(memory_store, recorder, notices):
    controller = SessionController(
        memory_store,
        dataset_loader=recorder.load,
        trainer=recorder.train,
        notify=notices.append,
        predictor=recorder.predict
    )
    controller.start()
    fill_form(controller)
    assert controller.predict() is not None

    controller.clear_model()

    assert controller.state == SessionState.CLEARED
    assert controller.model is None
    assert memory_store.load() is None
    assert notices[-1] == "Trained model has been removed. Please refresh the page to retrain."

    predictions_before = recorder.predictions
    assert controller.predict() is None
    assert recorder.predictions == predictions_before
    assert notices[-1] == "Model is not trained yet. Please train it first."


def test_clear_does_not_retrain(controller, recorder):
    controller.start()
    controller.clear_model()

    assert recorder.trains == 1
    assert controller.state == SessionState.CLEARED


def test_restart_after_clear_retrains(controller, memory_store, recorder):
    controller.start()
    controller.clear_model()

    assert controller.start() == SessionState.READY

    assert recorder.trains == 2
    assert memory_store.load() is not None


@pytest.mark.parametrize("raw", [
    b"\xff\xfe\x00garbage",
    json.dumps(dict(make_constant_model(0.3).to_dict(), hidden_layers=[float('inf'), 3])).encode(),
])
def test_start_retrains_over_undecodable_file_entry(tmp_path, recorder, notices, raw):
    directory = tmp_path / "store"
    directory.mkdir()
    (directory / f"{MODEL_STORAGE_KEY}.json").write_bytes(raw)
    store = ModelStore(FileKeyValueStore(str(directory)))
    controller = SessionController(store, dataset_loader=recorder.load, trainer=recorder.train, notify=notices.append)

    assert controller.start() == SessionState.READY

    assert recorder.trains == 1
    assert store.load() == recorder.model


def test_start_keeps_model_when_save_fails(tmp_path, recorder, notices):
    not_a_directory = tmp_path / "store"
    not_a_directory.write_text("occupied")
    store = ModelStore(FileKeyValueStore(str(not_a_directory)))
    controller = SessionController(store, dataset_loader=recorder.load, trainer=recorder.train, notify=notices.append)

    assert controller.start() == SessionState.READY

    assert controller.model == recorder.model
    assert isinstance(controller.last_error, OSError)
    fill_form(controller)
    assert controller.predict() is not None


def test_start_survives_trainer_failure(memory_store, recorder, notices):
    def failing_trainer(records):
        raise ValueError("Cannot train on an empty dataset")

    controller = SessionController(memory_store, dataset_loader=recorder.load, trainer=failing_trainer, notify=notices.append)

    assert controller.start() == SessionState.LOADING

    assert controller.model is None
    assert isinstance(controller.last_error, ValueError)
    assert memory_store.load() is None
    assert controller.predict() is None


class UnwritableBackend(InMemoryKeyValueStore):
    def delete(self, key):
        raise PermissionError(13, "Permission denied")


def test_clear_model_survives_storage_failure(recorder, notices):
    controller = SessionController(
        ModelStore(UnwritableBackend()), dataset_loader=recorder.load, trainer=recorder.train, notify=notices.append
    )
    controller.start()

    controller.clear_model()

    assert controller.state == SessionState.CLEARED
    assert controller.model is None
    assert isinstance(controller.last_error, PermissionError)
