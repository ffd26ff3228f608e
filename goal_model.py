"""
Poisson Goal-Rate Model
=======================

Closed-form outcome probabilities from team attack/defence multipliers.
Nothing here is trained: strengths are recomputed from the full match set.

Team strengths (ratios to league averages):
    home_attack  = avg goals scored at home    / league avg home goals
    home_defence = avg goals conceded at home  / league avg away goals
    away_attack  = avg goals scored away       / league avg away goals
    away_defence = avg goals conceded away     / league avg home goals

Expected goals for a fixture:
    λ_home = home_attack(home) * away_defence(away) * avg_home_goals
    λ_away = away_attack(away) * home_defence(home) * avg_away_goals

Outcome probabilities sum the joint Poisson mass over scorelines 0..5 for
each side and renormalise by the enumerated total. Mass beyond five goals is
dropped, which slightly understates lopsided results; this is a known
approximation.
"""

import math
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

import numpy as np
from scipy.stats import poisson

from engine_config import NEUTRAL_PROBS, POISSON_MAX_GOALS
from match_data import Match

logger = logging.getLogger(__name__)


@dataclass
class TeamStrength:
    """A zero multiplier means the team has no games for that split."""
    home_attack: float = 0.0
    home_defence: float = 0.0
    away_attack: float = 0.0
    away_defence: float = 0.0
    home_games: int = 0
    away_games: int = 0


def compute_team_strengths(all_matches: Iterable[Match]) -> Tuple[Dict[str, TeamStrength], float, float]:
    """
    Estimate attack/defence multipliers for every team in the match set.

    Matches with unparsable goals are ignored.

    Returns:
        (strength_by_team, avg_home_goals, avg_away_goals)
    """
    matches = list(all_matches)
    strengths: Dict[str, TeamStrength] = {}
    for m in matches:
        strengths.setdefault(m.home_team, TeamStrength())
        strengths.setdefault(m.away_team, TeamStrength())

    # Raw goal totals first, divided into ratios below
    total_home_goals = 0
    total_away_goals = 0
    game_count = 0
    for m in matches:
        if not m.has_goals:
            continue
        home = strengths[m.home_team]
        away = strengths[m.away_team]
        home.home_attack += m.home_goals
        home.home_defence += m.away_goals
        home.home_games += 1
        away.away_attack += m.away_goals
        away.away_defence += m.home_goals
        away.away_games += 1
        total_home_goals += m.home_goals
        total_away_goals += m.away_goals
        game_count += 1

    avg_home_goals = (total_home_goals / game_count) if game_count else 0.0
    avg_away_goals = (total_away_goals / game_count) if game_count else 0.0
    avg_home_goals = avg_home_goals or 1.0
    avg_away_goals = avg_away_goals or 1.0

    for s in strengths.values():
        if s.home_games > 0:
            s.home_attack = (s.home_attack / s.home_games) / avg_home_goals
            s.home_defence = (s.home_defence / s.home_games) / avg_away_goals
        if s.away_games > 0:
            s.away_attack = (s.away_attack / s.away_games) / avg_away_goals
            s.away_defence = (s.away_defence / s.away_games) / avg_home_goals

    logger.info(f"Team strengths for {len(strengths)} teams from {game_count} matches "
                f"(avg goals {avg_home_goals:.2f}-{avg_away_goals:.2f})")
    return strengths, avg_home_goals, avg_away_goals


def expected_goals(home_team: str,
                   away_team: str,
                   strengths: Dict[str, TeamStrength],
                   avg_home_goals: float,
                   avg_away_goals: float) -> Tuple[float, float]:
    """λ pair for a fixture; raises KeyError for unknown teams."""
    home = strengths[home_team]
    away = strengths[away_team]
    lambda_home = home.home_attack * away.away_defence * avg_home_goals
    lambda_away = away.away_attack * home.home_defence * avg_away_goals
    return lambda_home, lambda_away


def poisson_outcome_probabilities(home_team: str,
                                  away_team: str,
                                  strengths: Dict[str, TeamStrength],
                                  avg_home_goals: float,
                                  avg_away_goals: float) -> List[float]:
    """
    Home/draw/away probabilities from the Poisson goal model.

    Returns:
        [p_home, p_draw, p_away]; NEUTRAL_PROBS when a team is unknown or
        either λ is non-positive or non-finite
    """
    if home_team not in strengths or away_team not in strengths:
        return list(NEUTRAL_PROBS)

    lambda_home, lambda_away = expected_goals(
        home_team, away_team, strengths, avg_home_goals, avg_away_goals
    )
    if not (math.isfinite(lambda_home) and math.isfinite(lambda_away)):
        logger.warning(f"Non-finite λ for {home_team} v {away_team}, using neutral probabilities")
        return list(NEUTRAL_PROBS)
    if lambda_home <= 0 or lambda_away <= 0:
        return list(NEUTRAL_PROBS)

    goals = np.arange(POISSON_MAX_GOALS + 1)
    # grid[i, j] = P(home scores i) * P(away scores j)
    grid = np.outer(poisson.pmf(goals, lambda_home), poisson.pmf(goals, lambda_away))

    home_win = float(np.tril(grid, -1).sum())
    draw = float(np.trace(grid))
    away_win = float(np.triu(grid, 1).sum())

    total = home_win + draw + away_win
    if total <= 0 or not math.isfinite(total):
        return list(NEUTRAL_PROBS)
    return [home_win / total, draw / total, away_win / total]
