"""
Test Prediction Log
"""

import csv
from datetime import date

import pytest

from engine_config import Settings
from hybrid.engine import EnsembleEngine
from match_data import Fixture
from monitoring.runtime_logger import RuntimeLogger, predicted_outcome


@pytest.fixture(scope='module')
def engine(league_records, fast_training):
    engine = EnsembleEngine(fast_training)
    engine.train(league_records)
    return engine


def test_stored_prediction_replays_identically(engine, tmp_path):
    log = RuntimeLogger(str(tmp_path))
    fixture = Fixture('Chelsea', 'Arsenal', date(2022, 8, 13))
    settings = Settings(temperature=0.8, nn_weight=0.5, lr_weight=0.2, poisson_weight=0.3)
    log.log_prediction(fixture, engine.predict(fixture, settings).to_dict())

    entry = log.get_recent_predictions(1)[0]
    replay_fixture, replay_settings = RuntimeLogger.replay_request(entry)
    assert replay_fixture == fixture
    assert replay_settings == settings
    assert engine.predict(replay_fixture, replay_settings).to_dict() == entry['result']


def test_csv_summary_and_evaluation(engine, tmp_path):
    log = RuntimeLogger(str(tmp_path))
    result = engine.predict(Fixture('Arsenal', 'Fulham')).to_dict()
    entry = log.log_prediction(Fixture('Arsenal', 'Fulham'), result, actual_result='H')

    assert entry['evaluation']['prediction_correct'] == (entry['predicted_outcome'] == 'H')
    with open(tmp_path / 'predictions_summary.csv', newline='', encoding='utf-8') as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 1
    assert rows[0]['home_team'] == 'Arsenal'
    assert rows[0]['actual_outcome'] == 'H'
    assert log.accuracy() in (0.0, 1.0)


def test_rejects_unknown_outcome_code(engine, tmp_path):
    log = RuntimeLogger(str(tmp_path))
    result = engine.predict(Fixture('Arsenal', 'Fulham')).to_dict()
    with pytest.raises(ValueError):
        log.log_prediction(Fixture('Arsenal', 'Fulham'), result, actual_result='W')


def test_empty_log(tmp_path):
    log = RuntimeLogger(str(tmp_path / 'nested' / 'logs'))
    assert log.get_recent_predictions() == []
    assert log.accuracy() is None


def test_predicted_outcome():
    assert predicted_outcome([0.5, 0.3, 0.2]) == 'H'
    assert predicted_outcome([0.2, 0.3, 0.5]) == 'A'
    assert predicted_outcome([0.3, 0.4, 0.3]) == 'D'
    assert predicted_outcome([0.4, 0.4, 0.2]) == 'H'
