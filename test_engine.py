"""
Test Ensemble Engine
====================

State machine, training outcome, prediction contents and reproducibility.
"""

import warnings
from datetime import date

import numpy as np
import pytest

from elo_ratings import compute_ratings
from engine_config import FeatureToggles, Settings
import hybrid.engine
from hybrid.engine import EngineState, EnsembleEngine
from match_data import Fixture, filter_recent_seasons, load_matches
from prediction_errors import EngineNotReadyError, InsufficientDataError, TeamNotFoundError


@pytest.fixture(scope='module')
def trained_engine(league_records, fast_training):
    engine = EnsembleEngine(fast_training)
    engine.train(league_records)
    return engine


def test_trains_to_ready_with_reference_elo_range(trained_engine, league_records):
    assert trained_engine.state == EngineState.READY
    _, low, high = compute_ratings(load_matches(league_records))

    outcome = trained_engine.outcome
    assert outcome.min_rating == pytest.approx(low)
    assert outcome.max_rating == pytest.approx(high)
    assert outcome.training_rows == 90
    assert outcome.teams == 4
    assert outcome.to_dict()['vocabularyVersion'] == trained_engine.vocabulary.version


def test_predict_before_training_is_rejected():
    engine = EnsembleEngine({'epochs': 1})
    assert engine.state == EngineState.IDLE
    with pytest.raises(EngineNotReadyError):
        engine.predict(Fixture('Arsenal', 'Chelsea'))


def test_prediction_triples(trained_engine):
    result = trained_engine.predict(Fixture('Arsenal', 'Fulham', date(2022, 8, 6)))

    for probs in (result.nn_probs, result.lr_probs, result.poisson_probs, result.ensemble_probs):
        assert len(probs) == 3
        assert sum(probs) == pytest.approx(1.0, abs=1e-6)
        assert all(0.0 <= p <= 1.0 for p in probs)
    assert (result.resolved_home_team, result.resolved_away_team) == ('Arsenal', 'Fulham')
    assert result.settings_used == Settings()
    assert trained_engine.state == EngineState.READY


def test_result_dict_keys(trained_engine):
    result = trained_engine.predict({'HomeTeam': 'Chelsea', 'AwayTeam': 'Everton'}).to_dict()
    assert set(result) == {
        'nnProbs', 'lrProbs', 'poissonProbs', 'ensembleProbs',
        'reasoningSnapshot', 'resolvedHomeTeam', 'resolvedAwayTeam', 'settingsUsed',
    }
    assert result['reasoningSnapshot']['home_days_since'] == 14.0
    assert result['settingsUsed']['nnWeight'] == 0.40


def test_single_model_weight_returns_that_model(trained_engine):
    settings = Settings(nn_weight=1.0, lr_weight=0.0, poisson_weight=0.0)
    result = trained_engine.predict(Fixture('Arsenal', 'Chelsea'), settings)
    assert result.ensemble_probs == result.nn_probs

    settings = Settings(nn_weight=0.0, lr_weight=0.0, poisson_weight=1.0)
    result = trained_engine.predict(Fixture('Arsenal', 'Chelsea'), settings)
    assert result.ensemble_probs == result.poisson_probs


def test_temperature_flattens_classifier_output(trained_engine):
    fixture = Fixture('Arsenal', 'Fulham')
    sharp = trained_engine.predict(fixture, Settings(temperature=0.5))
    flat = trained_engine.predict(fixture, Settings(temperature=5.0))
    assert max(flat.nn_probs) <= max(sharp.nn_probs)
    # Poisson probabilities do not depend on the temperature
    assert flat.poisson_probs == sharp.poisson_probs


def test_name_resolution(trained_engine):
    result = trained_engine.predict(Fixture('arsenal', 'CHELSEA'))
    assert (result.resolved_home_team, result.resolved_away_team) == ('Arsenal', 'Chelsea')

    with pytest.raises(TeamNotFoundError) as exc:
        trained_engine.predict(Fixture('Arsenal', 'Real Madrid'))
    assert exc.value.team_name == 'Real Madrid'
    assert trained_engine.state == EngineState.READY

    with pytest.raises(TeamNotFoundError) as exc:
        trained_engine.predict(Fixture('Fulhem', 'Chelsea'))
    assert exc.value.team_name == 'Fulhem'


def test_team_with_short_history_still_gets_prediction(league_factory, fast_training):
    records = league_factory()
    records += [
        {'Date': '06/08/2022', 'HomeTeam': 'Burnley', 'AwayTeam': 'Arsenal', 'FTHG': 0, 'FTAG': 2, 'FTR': 'A'},
        {'Date': '13/08/2022', 'HomeTeam': 'Chelsea', 'AwayTeam': 'Burnley', 'FTHG': 1, 'FTAG': 1, 'FTR': 'D'},
    ]
    engine = EnsembleEngine(fast_training)
    engine.train(records)

    assert 'Burnley' in engine.vocabulary
    result = engine.predict(Fixture('Burnley', 'Everton'))
    assert sum(result.ensemble_probs) == pytest.approx(1.0, abs=1e-6)
    assert result.reasoning_snapshot.home_overall_stats.games_played == 2


def test_training_and_prediction_are_reproducible(league_records, fast_training, trained_engine):
    replay = EnsembleEngine(fast_training)
    replay.train(league_records)

    fixture = Fixture('Everton', 'Arsenal', date(2022, 8, 6))
    settings = Settings(temperature=1.2)
    first = trained_engine.predict(fixture, settings).to_dict()
    second = replay.predict(fixture, settings).to_dict()
    assert first == second
    np.testing.assert_array_equal(trained_engine.nn_model.predict_logits(np.ones((1, 27))),
                                  replay.nn_model.predict_logits(np.ones((1, 27))))


def test_insufficient_data_returns_to_idle(league_factory, fast_training):
    engine = EnsembleEngine(fast_training)
    with pytest.raises(InsufficientDataError):
        engine.train(league_factory(n_matches=40))
    assert engine.state == EngineState.IDLE
    with pytest.raises(EngineNotReadyError):
        engine.predict(Fixture('Arsenal', 'Chelsea'))


def test_failed_retrain_discards_previous_models(league_records, league_factory, fast_training):
    engine = EnsembleEngine(fast_training)
    engine.train(league_records)
    assert engine.is_ready

    with pytest.raises(InsufficientDataError):
        engine.train(league_factory(n_matches=20))
    assert not engine.is_ready
    assert engine.nn_model is None


def test_training_reports_progress_per_epoch(league_records):
    calls = []
    engine = EnsembleEngine({'epochs': 2})
    engine.train(league_records, progress=lambda name, epoch, total, logs: calls.append((name, epoch, total)))
    assert calls == [
        ('neural_network', 1, 2), ('neural_network', 2, 2),
        ('logistic_regression', 1, 2), ('logistic_regression', 2, 2),
    ]


def test_settings_used_reports_training_time_options(league_factory, fast_training):
    engine = EnsembleEngine(fast_training)
    training = Settings(recency_weighting=0.9, features=FeatureToggles(h2h=False, elo=False))
    engine.train(league_factory(), training)

    used = engine.predict(Fixture('Arsenal', 'Chelsea'), Settings(temperature=2.0, nn_weight=0.5)).to_dict()['settingsUsed']
    assert used['recencyWeighting'] == 0.9
    assert used['features']['h2h'] is False
    assert used['features']['elo'] is False
    assert (used['temperature'], used['nnWeight']) == (2.0, 0.5)

    # Training-time fields in the call are ignored
    used = engine.predict(Fixture('Arsenal', 'Chelsea'), Settings(recency_weighting=0.1)).settings_used
    assert used.recency_weighting == 0.9
    assert used.features == FeatureToggles(h2h=False, elo=False)


def test_training_status_counts_matches_after_season_filter(league_factory, fast_training):
    records = league_factory(n_matches=200)
    messages = []
    engine = EnsembleEngine(fast_training)
    engine.train(records, Settings(training_data_range=1), status=messages.append)

    assert messages[0] == 'Filtering data by season...'
    latest_season = filter_recent_seasons(load_matches(records), 1)
    assert len(latest_season) < len(records)
    assert messages[1] == f"Training with {len(latest_season)} matches..."


def test_module_source_compiles_without_warnings():
    with open(hybrid.engine.__file__) as f:
        source = f.read()
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        compile(source, hybrid.engine.__file__, 'exec')
