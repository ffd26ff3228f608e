"""
Feature Builder for Machine Learning Models
============================================

Converts a fixture plus the teams' prior match histories into a fixed-length
feature vector and a human-readable reasoning snapshot.

The vector is a concatenation of named feature blocks, evaluated from one
declarative list at both training and prediction time:

    home_team   one-hot home id                    (|vocabulary|)
    away_team   one-hot away id                    (|vocabulary|)
    elo         Elo / 2000, home and away          (2)   toggle: elo
    form        points, scored, conceded           (6)   toggle: form
    h2h         Laplace-smoothed W/D/L rates       (3)   toggle: h2h
    offense     shooting accuracy, conversion      (4)   toggle: offense
    defense     shots against                      (2)   toggle: defense
    congestion  days since last match, capped      (2)   toggle: congestion

A block whose toggle is off is emitted as zeros of the same width, so the
vector length only depends on the vocabulary.
"""

import hashlib
import logging
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from engine_config import (
    CONGESTION_CAP_DAYS,
    DEFAULT_DAYS_SINCE,
    ELO_SCALE,
    FORM_MATCHES_COUNT,
    H2H_MATCHES_COUNT,
    INITIAL_RATING,
    FeatureToggles,
)
from match_data import Fixture, Match
from prediction_errors import TeamNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class FormStats:
    """Recency-weighted averages over a team's last few matches."""
    games_played: int = 0
    form_points: float = 0.0
    avg_goals_scored: float = 0.0
    avg_goals_conceded: float = 0.0
    avg_shots: float = 0.0
    avg_shots_on_target: float = 0.0
    avg_shots_against: float = 0.0
    avg_shots_on_target_against: float = 0.0
    shooting_accuracy: float = 0.0
    conversion_rate: float = 0.0


@dataclass
class HeadToHead:
    """Recent meetings counted from the current fixture's home side."""
    home_team_wins: int = 0
    draws: int = 0
    away_team_wins: int = 0
    total_matches: int = 0
    feature_home_win: float = 1.0 / 3.0
    feature_draw: float = 1.0 / 3.0
    feature_away_win: float = 1.0 / 3.0


@dataclass
class ReasoningSnapshot:
    """Non-numeric view of the inputs behind one prediction."""
    home_stats: FormStats
    away_stats: FormStats
    home_overall_stats: FormStats
    away_overall_stats: FormStats
    h2h_stats: HeadToHead
    home_elo: float
    away_elo: float
    home_days_since: float
    away_days_since: float

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class TeamVocabulary:
    """
    Team name -> one-hot position, pinned when the training set is built.

    The version digest changes whenever the team list or its order changes,
    so a model can refuse vectors built against another vocabulary.
    """
    teams: Tuple[str, ...]
    index: Dict[str, int] = field(init=False, repr=False, compare=False)
    version: str = field(init=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'index', {team: i for i, team in enumerate(self.teams)})
        digest = hashlib.sha1('\n'.join(self.teams).encode('utf-8')).hexdigest()[:12]
        object.__setattr__(self, 'version', digest)

    @classmethod
    def from_matches(cls, matches: Sequence[Match]) -> 'TeamVocabulary':
        """Teams in order of first appearance."""
        seen: Dict[str, None] = {}
        for m in matches:
            seen.setdefault(m.home_team, None)
            seen.setdefault(m.away_team, None)
        return cls(tuple(seen))

    def __len__(self) -> int:
        return len(self.teams)

    def __contains__(self, team: str) -> bool:
        return team in self.index

    def one_hot(self, team: str) -> List[float]:
        vec = [0.0] * len(self.teams)
        vec[self.index[team]] = 1.0
        return vec


def recency_weights(n: int, recency_weight: float) -> np.ndarray:
    """
    Linear weights, oldest first: w_i = (1 - r) + 2r * i / (n - 1).

    With r > 0.5 the newest match weighs the most; r = 0.5 gives 0.5 .. 1.5.
    """
    if n <= 0:
        return np.zeros(0)
    denom = (n - 1) or 1
    i = np.arange(n, dtype=float)
    return (1.0 - recency_weight) + 2.0 * recency_weight * (i / denom)


def form_stats(team: str,
               past_matches: Sequence[Match],
               recency_weight: float,
               venue: str = 'overall') -> FormStats:
    """
    Weighted form over the team's last FORM_MATCHES_COUNT matches.

    Args:
        team: Team name
        past_matches: The team's earlier matches, oldest first
        recency_weight: 0..1, how strongly newer matches are favoured
        venue: 'overall', 'home' (only home fixtures) or 'away'

    Returns:
        FormStats; matches with unparsable goals add nothing to the sums but
        still count towards games_played
    """
    if venue == 'home':
        relevant = [m for m in past_matches if m.home_team == team]
    elif venue == 'away':
        relevant = [m for m in past_matches if m.away_team == team]
    else:
        relevant = list(past_matches)

    window = relevant[-FORM_MATCHES_COUNT:]
    if not window:
        return FormStats(games_played=0)

    weights = recency_weights(len(window), recency_weight)
    total_weight = float(weights.sum())
    if total_weight == 0:
        return FormStats(games_played=len(relevant))

    points = scored = conceded = 0.0
    shots = shots_on_target = shots_against = shots_on_target_against = 0.0

    for w, m in zip(weights, window):
        if not m.has_goals:
            continue
        at_home = m.home_team == team
        points += m.points_for(team) * w
        scored += (m.home_goals if at_home else m.away_goals) * w
        conceded += (m.away_goals if at_home else m.home_goals) * w
        shots += ((m.home_shots if at_home else m.away_shots) or 0) * w
        shots_on_target += ((m.home_shots_on_target if at_home else m.away_shots_on_target) or 0) * w
        shots_against += ((m.away_shots if at_home else m.home_shots) or 0) * w
        shots_on_target_against += ((m.away_shots_on_target if at_home else m.home_shots_on_target) or 0) * w

    avg_scored = scored / total_weight
    avg_shots = shots / total_weight
    avg_sot = shots_on_target / total_weight

    return FormStats(
        games_played=len(relevant),
        form_points=points / (total_weight * 3),
        avg_goals_scored=avg_scored,
        avg_goals_conceded=conceded / total_weight,
        avg_shots=avg_shots,
        avg_shots_on_target=avg_sot,
        avg_shots_against=shots_against / total_weight,
        avg_shots_on_target_against=shots_on_target_against / total_weight,
        shooting_accuracy=avg_sot / avg_shots if avg_shots > 0 else 0.0,
        conversion_rate=avg_scored / avg_sot if avg_sot > 0 else 0.0,
    )


def head_to_head(home_team: str, away_team: str, matches_before: Sequence[Match]) -> HeadToHead:
    """
    Last H2H_MATCHES_COUNT meetings in either venue order, from the current
    home side's point of view, with add-one smoothing over the three buckets.
    """
    meetings = [
        m for m in matches_before
        if (m.home_team == home_team and m.away_team == away_team)
        or (m.home_team == away_team and m.away_team == home_team)
    ][-H2H_MATCHES_COUNT:]

    wins = draws = losses = 0
    for m in meetings:
        if m.result == 'D':
            draws += 1
        elif (m.result == 'H' and m.home_team == home_team) or \
             (m.result == 'A' and m.away_team == home_team):
            wins += 1
        else:
            losses += 1

    n = len(meetings)
    smoothed_total = n + 3
    return HeadToHead(
        home_team_wins=wins,
        draws=draws,
        away_team_wins=losses,
        total_matches=n,
        feature_home_win=(wins + 1) / smoothed_total,
        feature_draw=(draws + 1) / smoothed_total,
        feature_away_win=(losses + 1) / smoothed_total,
    )


def days_since_last_match(history: Sequence[Match], fixture_date: Optional[date]) -> float:
    """Days between the last prior match and the fixture (DEFAULT_DAYS_SINCE if unknown)."""
    if not history or fixture_date is None:
        return float(DEFAULT_DAYS_SINCE)
    return float(max((fixture_date - history[-1].date).days, 0))


def _congestion(days: float) -> float:
    return min(days, CONGESTION_CAP_DAYS) / CONGESTION_CAP_DAYS


@dataclass
class FixtureInputs:
    """Everything the feature blocks read for one fixture."""
    home_team: str
    away_team: str
    home_stats: FormStats
    away_stats: FormStats
    h2h: HeadToHead
    home_elo: float
    away_elo: float
    home_days_since: float
    away_days_since: float


@dataclass(frozen=True)
class FeatureBlock:
    name: str
    toggle: Optional[str]
    columns: Callable[['TeamVocabulary'], List[str]]
    compute: Callable[[FixtureInputs, 'TeamVocabulary'], List[float]]


def _fixed(*names: str) -> Callable[[TeamVocabulary], List[str]]:
    return lambda vocab: list(names)


FEATURE_BLOCKS: Tuple[FeatureBlock, ...] = (
    FeatureBlock(
        'home_team', None,
        lambda vocab: [f'home_team={t}' for t in vocab.teams],
        lambda f, vocab: vocab.one_hot(f.home_team),
    ),
    FeatureBlock(
        'away_team', None,
        lambda vocab: [f'away_team={t}' for t in vocab.teams],
        lambda f, vocab: vocab.one_hot(f.away_team),
    ),
    FeatureBlock(
        'elo', 'elo',
        _fixed('home_elo', 'away_elo'),
        lambda f, vocab: [f.home_elo / ELO_SCALE, f.away_elo / ELO_SCALE],
    ),
    FeatureBlock(
        'form', 'form',
        _fixed('home_form_points', 'away_form_points',
               'home_goals_scored', 'away_goals_scored',
               'home_goals_conceded', 'away_goals_conceded'),
        lambda f, vocab: [
            f.home_stats.form_points, f.away_stats.form_points,
            f.home_stats.avg_goals_scored, f.away_stats.avg_goals_scored,
            f.home_stats.avg_goals_conceded, f.away_stats.avg_goals_conceded,
        ],
    ),
    FeatureBlock(
        'h2h', 'h2h',
        _fixed('h2h_home_win', 'h2h_draw', 'h2h_away_win'),
        lambda f, vocab: [f.h2h.feature_home_win, f.h2h.feature_draw, f.h2h.feature_away_win],
    ),
    FeatureBlock(
        'offense', 'offense',
        _fixed('home_shooting_accuracy', 'away_shooting_accuracy',
               'home_conversion_rate', 'away_conversion_rate'),
        lambda f, vocab: [
            f.home_stats.shooting_accuracy, f.away_stats.shooting_accuracy,
            f.home_stats.conversion_rate, f.away_stats.conversion_rate,
        ],
    ),
    FeatureBlock(
        'defense', 'defense',
        _fixed('home_shots_against', 'away_shots_against'),
        lambda f, vocab: [f.home_stats.avg_shots_against, f.away_stats.avg_shots_against],
    ),
    FeatureBlock(
        'congestion', 'congestion',
        _fixed('home_days_since', 'away_days_since'),
        lambda f, vocab: [_congestion(f.home_days_since), _congestion(f.away_days_since)],
    ),
)


class FeatureBuilder:
    """Build feature vectors against a pinned team vocabulary."""

    def __init__(self,
                 vocabulary: TeamVocabulary,
                 toggles: FeatureToggles = None,
                 recency_weight: float = 0.5,
                 blocks: Sequence[FeatureBlock] = FEATURE_BLOCKS):
        """
        Args:
            vocabulary: Team vocabulary fixed at training time
            toggles: Feature family switches (all on if None)
            recency_weight: Recency weighting for form windows
            blocks: Feature block list, identical for training and prediction
        """
        self.vocabulary = vocabulary
        self.toggles = toggles if toggles is not None else FeatureToggles()
        self.recency_weight = recency_weight
        self.blocks = tuple(blocks)
        self.feature_names: List[str] = []
        self._slices: Dict[str, slice] = {}
        self._build_feature_names()

    def _build_feature_names(self):
        start = 0
        for block in self.blocks:
            cols = block.columns(self.vocabulary)
            self._slices[block.name] = slice(start, start + len(cols))
            self.feature_names.extend(cols)
            start += len(cols)

    def get_feature_count(self) -> int:
        return len(self.feature_names)

    def block_slice(self, name: str) -> slice:
        return self._slices[name]

    def _enabled(self, block: FeatureBlock) -> bool:
        return block.toggle is None or getattr(self.toggles, block.toggle)

    def vectorize(self, inputs: FixtureInputs) -> np.ndarray:
        """Concatenate every block, zero-filling the disabled ones."""
        parts: List[float] = []
        for block in self.blocks:
            width = self._slices[block.name].stop - self._slices[block.name].start
            if self._enabled(block):
                values = block.compute(inputs, self.vocabulary)
                if len(values) != width:
                    raise ValueError(f"Block '{block.name}' produced {len(values)} values, expected {width}")
                parts.extend(values)
            else:
                parts.extend([0.0] * width)
        return np.asarray(parts, dtype=np.float32)

    def build(self,
              fixture: Fixture,
              histories: Dict[str, Sequence[Match]],
              ratings: Dict[str, float]) -> Tuple[np.ndarray, ReasoningSnapshot]:
        """
        Build the feature vector for one fixture.

        Args:
            fixture: Home/away team names and (optional) date
            histories: Team -> earlier matches, oldest first. Must not contain
                anything on or after the fixture date.
            ratings: Team -> Elo rating before the fixture

        Returns:
            (feature_vector, reasoning_snapshot)
        """
        for team in (fixture.home_team, fixture.away_team):
            if team not in self.vocabulary:
                raise TeamNotFoundError(team)

        home_history = histories.get(fixture.home_team, [])
        away_history = histories.get(fixture.away_team, [])

        home_stats = form_stats(fixture.home_team, home_history, self.recency_weight, 'home')
        away_stats = form_stats(fixture.away_team, away_history, self.recency_weight, 'away')
        # Every meeting of the pair is in the home side's own history
        h2h = head_to_head(fixture.home_team, fixture.away_team, home_history)

        inputs = FixtureInputs(
            home_team=fixture.home_team,
            away_team=fixture.away_team,
            home_stats=home_stats,
            away_stats=away_stats,
            h2h=h2h,
            home_elo=ratings.get(fixture.home_team, INITIAL_RATING),
            away_elo=ratings.get(fixture.away_team, INITIAL_RATING),
            home_days_since=days_since_last_match(home_history, fixture.match_date),
            away_days_since=days_since_last_match(away_history, fixture.match_date),
        )

        snapshot = ReasoningSnapshot(
            home_stats=home_stats,
            away_stats=away_stats,
            home_overall_stats=form_stats(fixture.home_team, home_history, self.recency_weight),
            away_overall_stats=form_stats(fixture.away_team, away_history, self.recency_weight),
            h2h_stats=h2h,
            home_elo=inputs.home_elo,
            away_elo=inputs.away_elo,
            home_days_since=inputs.home_days_since,
            away_days_since=inputs.away_days_since,
        )
        return self.vectorize(inputs), snapshot


def build_features(fixture: Fixture,
                   vocabulary: TeamVocabulary,
                   histories: Dict[str, Sequence[Match]],
                   ratings: Dict[str, float],
                   recency_weight: float = 0.5,
                   toggles: FeatureToggles = None) -> Tuple[np.ndarray, ReasoningSnapshot]:
    """Functional wrapper around FeatureBuilder.build."""
    return FeatureBuilder(vocabulary, toggles, recency_weight).build(fixture, histories, ratings)
