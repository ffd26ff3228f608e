"""
Shared fixtures: small synthetic leagues with reproducible results.
"""

from datetime import date, timedelta
from typing import Dict, List, Sequence

import numpy as np
import pytest

from match_data import load_matches

TEAMS = ['Arsenal', 'Chelsea', 'Everton', 'Fulham']

# Keeps engine tests fast; the full epoch budget is exercised in production only
FAST_TRAINING = {'epochs': 3}


def _round_robin(teams: Sequence[str]) -> List[List[tuple]]:
    """Double round robin (circle method); every team plays once per round."""
    teams = list(teams)
    n = len(teams)
    rounds = []
    for _ in range(n - 1):
        rounds.append([(teams[i], teams[n - 1 - i]) for i in range(n // 2)])
        teams = [teams[0], teams[-1]] + teams[1:-1]
    return rounds + [[(away, home) for home, away in pairs] for pairs in rounds]


def make_league(teams: Sequence[str] = TEAMS,
                n_matches: int = 100,
                start: date = date(2021, 8, 14),
                seed: int = 0) -> List[Dict]:
    """
    Raw football-data style records, one round per week.

    Earlier teams in the list are stronger, so results are not pure noise.
    """
    rng = np.random.RandomState(seed)
    strength = {team: 1.8 - 0.3 * i for i, team in enumerate(teams)}
    schedule = _round_robin(teams)

    records = []
    week = 0
    while len(records) < n_matches:
        pairs = schedule[week % len(schedule)]
        match_day = start + timedelta(days=7 * week)
        for home, away in pairs:
            if len(records) >= n_matches:
                break
            home_goals = int(rng.poisson(strength[home] * 1.1))
            away_goals = int(rng.poisson(strength[away] * 0.9))
            home_shots = home_goals * 3 + int(rng.randint(3, 10))
            away_shots = away_goals * 3 + int(rng.randint(2, 8))
            records.append({
                'Date': match_day.strftime('%d/%m/%Y'),
                'HomeTeam': home,
                'AwayTeam': away,
                'FTHG': home_goals,
                'FTAG': away_goals,
                'FTR': 'H' if home_goals > away_goals else 'A' if home_goals < away_goals else 'D',
                'HS': home_shots,
                'AS': away_shots,
                'HST': home_goals + int(rng.randint(0, 4)),
                'AST': away_goals + int(rng.randint(0, 3)),
            })
        week += 1
    return records


@pytest.fixture(scope='session')
def league_factory():
    return make_league


@pytest.fixture(scope='session')
def league_records():
    return make_league()


@pytest.fixture(scope='session')
def league_matches(league_records):
    return load_matches(league_records)


@pytest.fixture(scope='session')
def fast_training():
    return dict(FAST_TRAINING)
