"""
Test Elo Rating Engine
"""

from datetime import date

import pytest

from elo_ratings import EloRatings, compute_ratings, expected_score
from match_data import Match


def test_single_home_win_hand_computed():
    ratings, low, high = compute_ratings([Match('A', 'B', date(2021, 1, 1), 'H', 1, 0)])
    assert ratings['A'] == pytest.approx(1516.0)
    assert ratings['B'] == pytest.approx(1484.0)
    assert (low, high) == (pytest.approx(1484.0), pytest.approx(1516.0))


def test_draw_between_equals_changes_nothing():
    ratings, _, _ = compute_ratings([Match('A', 'B', date(2021, 1, 1), 'D', 1, 1)])
    assert ratings == {'A': 1500.0, 'B': 1500.0}


def test_update_is_zero_sum():
    elo = EloRatings()
    elo.ratings.update({'A': 1620.0, 'B': 1480.0})
    elo.update(Match('A', 'B', date(2021, 1, 1), 'A', 0, 2))
    assert elo.ratings['A'] + elo.ratings['B'] == pytest.approx(3100.0)
    assert elo.ratings['A'] < 1620.0


def test_expected_score_symmetry():
    assert expected_score(1500, 1500) == pytest.approx(0.5)
    assert expected_score(1700, 1500) + expected_score(1500, 1700) == pytest.approx(1.0)


def test_empty_input():
    assert compute_ratings([]) == ({}, None, None)


def test_deterministic(league_matches):
    assert compute_ratings(league_matches) == compute_ratings(league_matches)


def test_reordering_disjoint_matches_is_harmless():
    first = Match('A', 'B', date(2021, 1, 1), 'H', 2, 0)
    second = Match('C', 'D', date(2021, 1, 1), 'A', 0, 1)
    assert compute_ratings([first, second])[0] == compute_ratings([second, first])[0]


def test_reordering_shared_team_changes_ratings():
    first = Match('A', 'B', date(2021, 1, 1), 'H', 2, 0)
    second = Match('A', 'C', date(2021, 1, 8), 'A', 0, 1)
    assert compute_ratings([first, second])[0] != compute_ratings([second, first])[0]


def test_vocabulary_skips_unknown_teams():
    matches = [
        Match('A', 'B', date(2021, 1, 1), 'H', 1, 0),
        Match('A', 'Z', date(2021, 1, 8), 'H', 3, 0),
    ]
    ratings, _, _ = compute_ratings(matches, vocabulary=['A', 'B', 'C'])
    assert 'Z' not in ratings
    assert ratings['C'] == 1500.0
    assert ratings['A'] == pytest.approx(1516.0)
