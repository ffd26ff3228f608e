"""
Training Set Assembly
=====================

Walks the historical matches in date order and turns every eligible match
into a (feature vector, one-hot outcome) pair using only what was known
before kick-off.

Matches are processed one calendar day at a time: features for all of a
day's matches are built first, then that day's results are added to the team
histories and the Elo table. A match therefore never sees itself, a later
match, or another match played the same day.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby
from typing import Dict, Iterable, List, Optional, Union

import numpy as np

from elo_ratings import EloRatings
from engine_config import MAX_SEASONS, MIN_PRIOR_MATCHES, FeatureToggles
from match_data import Fixture, Match, filter_recent_seasons, load_matches
from ml_models.feature_builder import FeatureBuilder, TeamVocabulary

logger = logging.getLogger(__name__)

# Outcome -> one-hot label [home, draw, away]
OUTCOME_LABELS = {
    'H': (1.0, 0.0, 0.0),
    'D': (0.0, 1.0, 0.0),
    'A': (0.0, 0.0, 1.0),
}


@dataclass
class TrainingSet:
    """Assembled examples plus the state pinned while building them."""
    features: np.ndarray
    labels: np.ndarray
    vocabulary: TeamVocabulary
    feature_names: List[str]
    matches: List[Match]
    histories: Dict[str, List[Match]]
    ratings: Dict[str, float]
    min_rating: Optional[float]
    max_rating: Optional[float]
    recency_weight: float
    toggles: FeatureToggles
    example_matches: List[Match] = field(default_factory=list)
    history_cutoffs: List[date] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)


def _as_matches(raw_matches: Iterable[Union[Match, Dict]]) -> List[Match]:
    items = list(raw_matches)
    if items and all(isinstance(m, Match) for m in items):
        return sorted(items, key=lambda m: m.date)
    return load_matches(items)


def assemble_training_set(raw_matches: Iterable[Union[Match, Dict]],
                          season_range: int = MAX_SEASONS,
                          recency_weight: float = 0.5,
                          feature_toggles: FeatureToggles = None) -> TrainingSet:
    """
    Build a strictly causal training set.

    Args:
        raw_matches: Raw match records (dicts) or Match objects, any order
        season_range: Number of most recent seasons to keep
        recency_weight: Recency weighting for the form windows
        feature_toggles: Feature family switches

    Returns:
        TrainingSet whose vocabulary must be reused at prediction time
    """
    toggles = feature_toggles if feature_toggles is not None else FeatureToggles()

    matches = filter_recent_seasons(_as_matches(raw_matches), season_range)
    vocabulary = TeamVocabulary.from_matches(matches)
    builder = FeatureBuilder(vocabulary, toggles, recency_weight)

    histories: Dict[str, List[Match]] = {team: [] for team in vocabulary.teams}
    elo = EloRatings()
    for team in vocabulary.teams:
        elo.ratings[team] = elo.initial_rating

    features: List[np.ndarray] = []
    labels: List[tuple] = []
    example_matches: List[Match] = []
    cutoffs: List[date] = []
    skipped_min_history = 0

    for match_date, day in groupby(matches, key=lambda m: m.date):
        day = list(day)

        # 1. Features from strictly earlier days only
        for match in day:
            home_history = histories[match.home_team]
            away_history = histories[match.away_team]
            if len(home_history) < MIN_PRIOR_MATCHES or len(away_history) < MIN_PRIOR_MATCHES:
                skipped_min_history += 1
                continue

            fixture = Fixture(match.home_team, match.away_team, match.date)
            vector, _ = builder.build(fixture, histories, elo.ratings)
            features.append(vector)
            labels.append(OUTCOME_LABELS[match.result])
            example_matches.append(match)
            cutoffs.append(max(home_history[-1].date, away_history[-1].date))

        # 2. Only then record the day's results
        for match in day:
            elo.update(match)
            histories[match.home_team].append(match)
            histories[match.away_team].append(match)

    n_features = builder.get_feature_count()
    X = np.vstack(features).astype(np.float32) if features else np.zeros((0, n_features), dtype=np.float32)
    y = np.asarray(labels, dtype=np.float32).reshape(-1, 3)

    min_rating, max_rating = elo.bounds()

    logger.info(f"Training data: {len(matches)} matches processed, "
                f"{len(example_matches)} examples created, "
                f"{skipped_min_history} skipped (history < {MIN_PRIOR_MATCHES}), "
                f"{len(vocabulary)} teams, {n_features} features")

    return TrainingSet(
        features=X,
        labels=y,
        vocabulary=vocabulary,
        feature_names=list(builder.feature_names),
        matches=matches,
        histories=histories,
        ratings=elo.snapshot(),
        min_rating=min_rating,
        max_rating=max_rating,
        recency_weight=recency_weight,
        toggles=toggles,
        example_matches=example_matches,
        history_cutoffs=cutoffs,
    )
