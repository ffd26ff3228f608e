"""
Ensemble Engine - Training and Prediction Orchestrator
======================================================

Owns every piece of trained state and moves through an explicit lifecycle:

    Idle --train--> Training --ok--> Ready --predict--> Predicting --> Ready
    Training --error--> Idle

Training rebuilds everything from scratch: the causal training set, the
final Elo table, Poisson team strengths and both classifiers. The engine is
only marked Ready after all of them succeed, so a failed run never leaves a
half-trained model behind.

Prediction combines three independent opinions on the fixture:
1. Neural network logits -> temperature softmax
2. Logistic regression logits -> temperature softmax
3. Poisson goal model probabilities
and blends them with the caller's weights.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np

from engine_config import MIN_TRAINING_ROWS, Settings
from goal_model import TeamStrength, compute_team_strengths, poisson_outcome_probabilities
from match_data import Fixture, Match
from ml_models.classifiers import ProgressCallback, build_logistic_regression, build_neural_network
from ml_models.feature_builder import FeatureBuilder, ReasoningSnapshot, TeamVocabulary
from ml_models.training_set import assemble_training_set
from prediction_errors import EngineNotReadyError, InsufficientDataError, TeamNotFoundError
from team_names import Unresolved, resolve_team_name
from hybrid.ensemble import blend_probabilities, temperature_softmax

logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = 'idle'
    TRAINING = 'training'
    READY = 'ready'
    PREDICTING = 'predicting'


@dataclass
class TrainingOutcome:
    min_rating: Optional[float]
    max_rating: Optional[float]
    training_rows: int
    teams: int
    vocabulary_version: str

    def to_dict(self) -> Dict:
        return {
            'minRating': self.min_rating,
            'maxRating': self.max_rating,
            'trainingRows': self.training_rows,
            'teams': self.teams,
            'vocabularyVersion': self.vocabulary_version,
        }


@dataclass
class PredictionResult:
    nn_probs: List[float]
    lr_probs: List[float]
    poisson_probs: List[float]
    ensemble_probs: List[float]
    reasoning_snapshot: ReasoningSnapshot
    resolved_home_team: str
    resolved_away_team: str
    settings_used: Settings = field(default_factory=Settings)

    def to_dict(self) -> Dict:
        return {
            'nnProbs': list(self.nn_probs),
            'lrProbs': list(self.lr_probs),
            'poissonProbs': list(self.poisson_probs),
            'ensembleProbs': list(self.ensemble_probs),
            'reasoningSnapshot': self.reasoning_snapshot.to_dict(),
            'resolvedHomeTeam': self.resolved_home_team,
            'resolvedAwayTeam': self.resolved_away_team,
            'settingsUsed': self.settings_used.to_dict(),
        }


class EnsembleEngine:
    """
    Trainable H/D/A predictor.

    Not thread-safe: one command at a time, which the coordinator guarantees.
    """

    def __init__(self, classifier_options: Optional[Dict] = None):
        """
        Args:
            classifier_options: Keyword overrides passed to both classifiers
                (epochs, batch_size, seed, ...)
        """
        self.classifier_options = dict(classifier_options or {})
        self.state = EngineState.IDLE
        self._clear()

    def _clear(self):
        self.vocabulary: Optional[TeamVocabulary] = None
        self.builder: Optional[FeatureBuilder] = None
        self.histories: Dict[str, List[Match]] = {}
        self.ratings: Dict[str, float] = {}
        self.strengths: Dict[str, TeamStrength] = {}
        self.avg_home_goals = 1.0
        self.avg_away_goals = 1.0
        self.nn_model = None
        self.lr_model = None
        self.training_settings: Optional[Settings] = None
        self.outcome: Optional[TrainingOutcome] = None

    @property
    def is_ready(self) -> bool:
        return self.state == EngineState.READY

    def train(self,
              raw_matches: Iterable[Union[Dict, Match]],
              settings: Settings = None,
              progress: ProgressCallback = None,
              status: Callable[[str], None] = None) -> TrainingOutcome:
        """
        Train every model from scratch.

        Args:
            raw_matches: Historical match records (dicts) or Match objects
            settings: Season range, recency weighting and feature toggles
            progress: Per-epoch callback forwarded to both classifiers
            status: Called with human-readable milestones

        Returns:
            TrainingOutcome with the Elo range and training-set size

        Raises:
            InsufficientDataError: fewer than MIN_TRAINING_ROWS usable examples
        """
        if self.state in (EngineState.TRAINING, EngineState.PREDICTING):
            raise EngineNotReadyError(f"Cannot train while {self.state.value}")

        settings = settings if settings is not None else Settings()
        self._clear()
        self.state = EngineState.TRAINING
        logger.info(f"Training started (seasons={settings.training_data_range}, "
                    f"recency={settings.recency_weighting}, "
                    f"features={settings.features.to_dict()})")

        try:
            if status is not None:
                status('Filtering data by season...')
            training_set = assemble_training_set(
                raw_matches,
                season_range=settings.training_data_range,
                recency_weight=settings.recency_weighting,
                feature_toggles=settings.features,
            )
            if status is not None:
                status(f"Training with {len(training_set.matches)} matches...")
            if len(training_set) < MIN_TRAINING_ROWS:
                raise InsufficientDataError(
                    f"Only {len(training_set)} training examples "
                    f"(need at least {MIN_TRAINING_ROWS})"
                )

            strengths, avg_home, avg_away = compute_team_strengths(training_set.matches)

            nn_model = build_neural_network(**self.classifier_options)
            nn_model.train(training_set.features, training_set.labels, progress)
            lr_model = build_logistic_regression(**self.classifier_options)
            lr_model.train(training_set.features, training_set.labels, progress)

        except Exception:
            self.state = EngineState.IDLE
            logger.error("Training failed", exc_info=True)
            raise

        self.vocabulary = training_set.vocabulary
        self.builder = FeatureBuilder(
            training_set.vocabulary, training_set.toggles, training_set.recency_weight
        )
        self.histories = training_set.histories
        self.ratings = training_set.ratings
        self.strengths = strengths
        self.avg_home_goals = avg_home
        self.avg_away_goals = avg_away
        self.nn_model = nn_model
        self.lr_model = lr_model
        self.training_settings = settings
        self.outcome = TrainingOutcome(
            min_rating=training_set.min_rating,
            max_rating=training_set.max_rating,
            training_rows=len(training_set),
            teams=len(training_set.vocabulary),
            vocabulary_version=training_set.vocabulary.version,
        )
        self.state = EngineState.READY

        logger.info(f"Models trained on {self.outcome.training_rows} examples, "
                    f"{self.outcome.teams} teams (vocabulary {self.outcome.vocabulary_version}), "
                    f"Elo range {self.outcome.min_rating:.1f}-{self.outcome.max_rating:.1f}")
        return self.outcome

    def _resolve(self, name: str) -> str:
        resolution = resolve_team_name(name, self.vocabulary.teams)
        if isinstance(resolution, Unresolved):
            raise TeamNotFoundError(resolution.query)
        return resolution.name

    def predict(self, fixture: Union[Fixture, Dict], settings: Settings = None) -> PredictionResult:
        """
        Predict one fixture.

        Args:
            fixture: Fixture or {'HomeTeam', 'AwayTeam', 'MatchDate'?} dict
            settings: Temperature and blend weights for this call

        Returns:
            PredictionResult with all four probability triples

        Raises:
            EngineNotReadyError: models are not trained
            TeamNotFoundError: a team cannot be resolved against the vocabulary
        """
        if self.state != EngineState.READY:
            raise EngineNotReadyError(f"Models are not trained (state: {self.state.value})")

        if isinstance(fixture, dict):
            fixture = Fixture.from_dict(fixture)
        settings = settings if settings is not None else Settings()

        self.state = EngineState.PREDICTING
        try:
            home = self._resolve(fixture.home_team)
            away = self._resolve(fixture.away_team)
            resolved = Fixture(home, away, fixture.match_date)

            features, snapshot = self.builder.build(resolved, self.histories, self.ratings)

            nn_probs = temperature_softmax(self.nn_model.predict_logits(features)[0], settings.temperature)
            lr_probs = temperature_softmax(self.lr_model.predict_logits(features)[0], settings.temperature)
            poisson_probs = np.asarray(poisson_outcome_probabilities(
                home, away, self.strengths, self.avg_home_goals, self.avg_away_goals
            ))
            ensemble_probs = blend_probabilities(nn_probs, lr_probs, poisson_probs, settings.weights)
        finally:
            self.state = EngineState.READY

        logger.info(f"Predicted {home} vs {away}: "
                    f"H {ensemble_probs[0]:.3f} / D {ensemble_probs[1]:.3f} / A {ensemble_probs[2]:.3f}")

        return PredictionResult(
            nn_probs=nn_probs.tolist(),
            lr_probs=lr_probs.tolist(),
            poisson_probs=poisson_probs.tolist(),
            ensemble_probs=ensemble_probs.tolist(),
            reasoning_snapshot=snapshot,
            resolved_home_team=home,
            resolved_away_team=away,
            settings_used=replace(
                self.training_settings,
                temperature=settings.temperature,
                nn_weight=settings.nn_weight,
                lr_weight=settings.lr_weight,
                poisson_weight=settings.poisson_weight,
            ),
        )
