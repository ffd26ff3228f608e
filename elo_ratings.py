"""
Elo Rating Engine
=================

Sequential paired Elo updates over chronologically ordered matches.

Core formulas:
    Expected home score:  E = 1 / (1 + 10 ^ ((R_away - R_home) / 400))
    Actual home score:    S = 1 (win), 0.5 (draw), 0 (loss)
    Update:               R_home += K * (S - E);  R_away += K * ((1 - S) - (1 - E))

The update is order-sensitive: feed matches strictly in date order.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from engine_config import INITIAL_RATING, K_FACTOR
from match_data import Match

logger = logging.getLogger(__name__)

ACTUAL_SCORE = {'H': 1.0, 'D': 0.5, 'A': 0.0}


def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability-like expected score of A against B."""
    return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / 400.0))


@dataclass
class EloRatings:
    """Running Elo table. Teams start at ``initial_rating`` on first sight."""
    k: float = K_FACTOR
    initial_rating: float = INITIAL_RATING
    ratings: Dict[str, float] = field(default_factory=dict)

    def rating(self, team: str) -> float:
        return self.ratings.get(team, self.initial_rating)

    def update(self, match: Match) -> Tuple[float, float]:
        """Apply one result and return the new (home, away) ratings."""
        r_home = self.rating(match.home_team)
        r_away = self.rating(match.away_team)

        e_home = expected_score(r_home, r_away)
        s_home = ACTUAL_SCORE[match.result]

        new_home = r_home + self.k * (s_home - e_home)
        new_away = r_away + self.k * ((1.0 - s_home) - (1.0 - e_home))

        self.ratings[match.home_team] = new_home
        self.ratings[match.away_team] = new_away
        return new_home, new_away

    def snapshot(self) -> Dict[str, float]:
        return dict(self.ratings)

    def bounds(self) -> Tuple[Optional[float], Optional[float]]:
        if not self.ratings:
            return None, None
        values = self.ratings.values()
        return min(values), max(values)


def compute_ratings(ordered_matches: Iterable[Match],
                    vocabulary: Optional[Iterable[str]] = None
                    ) -> Tuple[Dict[str, float], Optional[float], Optional[float]]:
    """
    Compute final Elo ratings.

    Args:
        ordered_matches: Matches in chronological order
        vocabulary: Known team names; matches naming any other team are
            skipped. None means every team is known.

    Returns:
        (rating_by_team, min_rating, max_rating); ({}, None, None) for no input
    """
    known = set(vocabulary) if vocabulary is not None else None
    elo = EloRatings()
    if known is not None:
        for team in known:
            elo.ratings[team] = elo.initial_rating

    skipped = 0
    for match in ordered_matches:
        if known is not None and (match.home_team not in known or match.away_team not in known):
            skipped += 1
            continue
        elo.update(match)

    if skipped:
        logger.warning(f"Skipped {skipped} matches with teams outside the vocabulary")

    min_rating, max_rating = elo.bounds()
    return elo.snapshot(), min_rating, max_rating
