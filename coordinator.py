"""
Prediction Coordinator
======================

Runs the ensemble engine in a separate process so training never blocks the
host, and exchanges plain-dict messages with it over two queues.

Commands (host -> worker):
    train_model  {matches, params}
    predict      {fixture, settings}            + request_id
    shutdown

Events (worker -> host):
    status_update       message string (also one per training epoch)
    model_trained       {minRating, maxRating, trainingRows, teams, vocabularyVersion}
    training_error      {message, errorType}
    prediction_result   PredictionResult dict   + request_id
    prediction_error    {message, errorType}    + request_id

The worker handles one command at a time. Every predict call gets its own
request id and Future, so replies can never be handed to the wrong caller.
Trained state lives only in the worker and is lost when it stops.
"""

import logging
import multiprocessing
import threading
import uuid
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional, Union

import prediction_errors
from engine_config import MIN_TRAINING_ROWS, Settings, load_settings
from hybrid.engine import EnsembleEngine
from match_data import Fixture
from monitoring.runtime_logger import RuntimeLogger
from prediction_errors import EngineNotReadyError, InsufficientDataError, PredictionEngineError

logger = logging.getLogger(__name__)

TRAIN_MODEL = 'train_model'
PREDICT = 'predict'
SHUTDOWN = 'shutdown'

STATUS_UPDATE = 'status_update'
MODEL_TRAINED = 'model_trained'
TRAINING_ERROR = 'training_error'
PREDICTION_RESULT = 'prediction_result'
PREDICTION_ERROR = 'prediction_error'


def _message(msg_type: str, payload=None, request_id: str = None) -> Dict:
    message = {'type': msg_type, 'payload': payload}
    if request_id is not None:
        message['request_id'] = request_id
    return message


def _error_payload(error: Exception) -> Dict:
    return {'message': str(error), 'errorType': type(error).__name__}


def _error_from_payload(payload: Dict) -> Exception:
    """Rebuild an engine exception on the host from its event payload."""
    error_class = getattr(prediction_errors, payload.get('errorType', ''), None)
    message = payload.get('message', 'Unknown error')
    if error_class is prediction_errors.TeamNotFoundError:
        # message is "Team not found: '<name>'"
        return error_class(message.split(': ', 1)[-1].strip("'"))
    if isinstance(error_class, type) and issubclass(error_class, PredictionEngineError):
        return error_class(message)
    return PredictionEngineError(message)


def handle_command(engine: EnsembleEngine, command: Dict, emit: Callable[[Dict], None]) -> bool:
    """
    Process one command against the engine, reporting through ``emit``.

    Returns:
        False when the worker should stop, True otherwise
    """
    msg_type = command.get('type')
    payload = command.get('payload') or {}

    if msg_type == SHUTDOWN:
        logger.info("Shutdown requested")
        return False

    if msg_type == TRAIN_MODEL:
        def on_epoch(model_name, epoch, total, logs):
            emit(_message(STATUS_UPDATE, f"Training {model_name} {epoch}/{total}"))

        try:
            settings = Settings.from_dict(payload.get('params'))
            matches = payload.get('matches') or []
            outcome = engine.train(
                matches, settings, progress=on_epoch,
                status=lambda text: emit(_message(STATUS_UPDATE, text)),
            )
        except Exception as e:
            logger.error(f"train_model failed: {e}")
            emit(_message(TRAINING_ERROR, _error_payload(e)))
        else:
            emit(_message(MODEL_TRAINED, outcome.to_dict()))
        return True

    if msg_type == PREDICT:
        request_id = command.get('request_id')
        try:
            settings = Settings.from_dict(payload.get('settings'))
            result = engine.predict(Fixture.from_dict(payload.get('fixture') or {}), settings)
        except Exception as e:
            logger.error(f"predict failed: {e}")
            emit(_message(PREDICTION_ERROR, _error_payload(e), request_id))
        else:
            emit(_message(PREDICTION_RESULT, result.to_dict(), request_id))
        return True

    logger.warning(f"Ignoring unknown command type: {msg_type!r}")
    return True


def worker_main(command_queue, event_queue, classifier_options: Optional[Dict] = None):
    """Entry point of the worker process."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    engine = EnsembleEngine(classifier_options)
    logger.info("Prediction worker started")

    running = True
    while running:
        command = command_queue.get()
        running = handle_command(engine, command, event_queue.put)

    logger.info("Prediction worker stopped")


class PredictionCoordinator:
    """
    Host-side client of the worker process.

    Usage:
        with PredictionCoordinator() as coordinator:
            coordinator.train(records, {'temperature': 1.2}).result()
            probs = coordinator.predict({'HomeTeam': 'Arsenal', 'AwayTeam': 'Chelsea'}).result()
    """

    def __init__(self,
                 log_dir: str = None,
                 on_status: Callable[[str], None] = None,
                 classifier_options: Optional[Dict] = None,
                 start_method: str = 'spawn',
                 config_path: str = None):
        """
        Args:
            log_dir: If set, every prediction result is appended to a log there
            on_status: Called with each status_update message
            classifier_options: Forwarded to the engine's classifiers
            start_method: multiprocessing start method for the worker
            config_path: JSON settings file; its values are the defaults that
                per-call settings dicts are merged over
        """
        self.classifier_options = classifier_options
        self.start_method = start_method
        self.prediction_log = RuntimeLogger(log_dir) if log_dir else None
        self.on_status = on_status
        self.default_settings = load_settings(config_path) if config_path else Settings()

        self._lock = threading.Lock()
        self._pending: Dict[str, tuple] = {}
        self._train_future: Optional[Future] = None
        self._process = None
        self._listener = None
        self._command_queue = None
        self._event_queue = None

        self.is_training = False
        self.models_trained = False
        self.last_training: Optional[Dict] = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def start(self):
        """Spawn the worker process and the event listener thread."""
        if self.is_running:
            return
        ctx = multiprocessing.get_context(self.start_method)
        self._command_queue = ctx.Queue()
        self._event_queue = ctx.Queue()
        self._process = ctx.Process(
            target=worker_main,
            args=(self._command_queue, self._event_queue, self.classifier_options),
            daemon=True,
        )
        self._process.start()

        self._listener = threading.Thread(target=self._listen, name='coordinator-events', daemon=True)
        self._listener.start()
        logger.info(f"Prediction worker process started (pid {self._process.pid})")

    def stop(self, timeout: float = 10.0):
        """Shut the worker down; pending calls fail with EngineNotReadyError."""
        if self._process is None:
            return

        self._command_queue.put(_message(SHUTDOWN))
        self._process.join(timeout)
        if self._process.is_alive():
            logger.warning("Worker did not stop in time, terminating")
            self._process.terminate()
            self._process.join()

        # Wake the listener so it can exit
        self._event_queue.put(None)
        self._listener.join(timeout)

        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
            train_future, self._train_future = self._train_future, None
        stopped = EngineNotReadyError("Coordinator stopped")
        for future, _ in pending:
            future.set_exception(stopped)
        if train_future is not None and not train_future.done():
            train_future.set_exception(stopped)

        self._process = None
        self.is_training = False
        self.models_trained = False
        logger.info("Prediction worker process stopped")

    def train(self, matches: List[Dict], settings: Union[Settings, Dict] = None) -> Future:
        """
        Start training in the worker.

        Returns:
            Future resolved with the model_trained payload, or with the
            training error

        Raises:
            InsufficientDataError: fewer than MIN_TRAINING_ROWS records supplied
            EngineNotReadyError: worker not started or already training
        """
        if len(matches) < MIN_TRAINING_ROWS:
            raise InsufficientDataError(
                f"Only {len(matches)} match records supplied (need at least {MIN_TRAINING_ROWS})"
            )
        if not self.is_running:
            raise EngineNotReadyError("Coordinator is not started")
        settings = self._settings_payload(settings)

        future = Future()
        with self._lock:
            if self.is_training:
                raise EngineNotReadyError("Training already in progress")
            self.is_training = True
            self.models_trained = False
            self._train_future = future

        self._command_queue.put(_message(TRAIN_MODEL, {'matches': list(matches), 'params': settings}))
        return future

    def predict(self, fixture: Union[Fixture, Dict], settings: Union[Settings, Dict] = None) -> Future:
        """
        Ask the worker for one prediction.

        Returns:
            Future resolved with the prediction result dict
        """
        if not self.is_running:
            raise EngineNotReadyError("Coordinator is not started")
        if not self.models_trained:
            raise EngineNotReadyError("Models are not trained")

        if isinstance(fixture, Fixture):
            fixture = {
                'HomeTeam': fixture.home_team,
                'AwayTeam': fixture.away_team,
                'MatchDate': fixture.match_date.isoformat() if fixture.match_date else None,
            }
        settings = self._settings_payload(settings)

        request_id = uuid.uuid4().hex
        future = Future()
        with self._lock:
            self._pending[request_id] = (future, fixture)

        self._command_queue.put(_message(PREDICT, {'fixture': fixture, 'settings': settings}, request_id))
        return future

    def _settings_payload(self, settings: Union[Settings, Dict, None]) -> Dict:
        """Settings objects go as-is; dicts are merged over the configured defaults."""
        if isinstance(settings, Settings):
            return settings.to_dict()
        return self.default_settings.with_overrides(settings).to_dict()

    def _notify_status(self, message: str):
        if self.on_status is None:
            return
        try:
            self.on_status(message)
        except Exception:
            logger.exception(f"Status callback failed for {message!r}")

    def _listen(self):
        while True:
            event = self._event_queue.get()
            if event is None:
                break
            try:
                self._dispatch(event)
            except Exception:
                logger.exception(f"Failed to handle worker event {event.get('type')!r}")

    def _dispatch(self, event: Dict):
        msg_type = event.get('type')
        payload = event.get('payload')

        if msg_type == STATUS_UPDATE:
            logger.debug(f"Worker status: {payload}")
            self._notify_status(payload)

        elif msg_type in (MODEL_TRAINED, TRAINING_ERROR):
            with self._lock:
                future, self._train_future = self._train_future, None
                self.is_training = False
                self.models_trained = msg_type == MODEL_TRAINED
            if msg_type == MODEL_TRAINED:
                self.last_training = payload
                if future is not None:
                    future.set_result(payload)
                self._notify_status('Model trained')
            else:
                logger.error(f"Training failed in worker: {payload.get('message')}")
                if future is not None:
                    future.set_exception(_error_from_payload(payload))
                self._notify_status(f"Training failed: {payload.get('message')}")

        elif msg_type in (PREDICTION_RESULT, PREDICTION_ERROR):
            with self._lock:
                pending = self._pending.pop(event.get('request_id'), None)
            if pending is None:
                logger.warning(f"Reply for unknown request {event.get('request_id')}")
                return
            future, fixture = pending
            if msg_type == PREDICTION_ERROR:
                future.set_exception(_error_from_payload(payload))
                return
            future.set_result(payload)
            if self.prediction_log is not None:
                try:
                    self.prediction_log.log_prediction(Fixture.from_dict(fixture), payload)
                except Exception:
                    logger.exception(f"Could not log prediction {event.get('request_id')}")

        else:
            logger.warning(f"Ignoring unknown event type: {msg_type!r}")
