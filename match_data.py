"""
Match data ingestion utilities.
Turns raw football-data.co.uk style records into immutable, chronologically
ordered Match objects and handles season bucketing.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

from engine_config import MAX_SEASONS, SEASON_START_MONTH
from team_names import canonical_name

logger = logging.getLogger(__name__)

# Accepted date layouts, tried in order
DATE_FORMATS = ['%d/%m/%Y', '%d/%m/%y', '%Y-%m-%d']

# Optional shot columns -> Match attribute
SHOT_COLUMNS = {
    'HS': 'home_shots',
    'AS': 'away_shots',
    'HST': 'home_shots_on_target',
    'AST': 'away_shots_on_target',
}

VALID_RESULTS = ('H', 'D', 'A')


@dataclass(frozen=True)
class Match:
    """A played match. Goals are None when the source value was unparsable."""
    home_team: str
    away_team: str
    date: date
    result: str
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    home_shots: Optional[int] = None
    away_shots: Optional[int] = None
    home_shots_on_target: Optional[int] = None
    away_shots_on_target: Optional[int] = None

    @property
    def has_goals(self) -> bool:
        return self.home_goals is not None and self.away_goals is not None

    def involves(self, team: str) -> bool:
        return team == self.home_team or team == self.away_team

    def points_for(self, team: str) -> int:
        """League points earned by ``team`` in this match."""
        if self.result == 'D':
            return 1
        won = (self.result == 'H' and team == self.home_team) or \
              (self.result == 'A' and team == self.away_team)
        return 3 if won else 0


@dataclass(frozen=True)
class Fixture:
    """An upcoming match to predict."""
    home_team: str
    away_team: str
    match_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'Fixture':
        return cls(
            home_team=str(data.get('HomeTeam', '')).strip(),
            away_team=str(data.get('AwayTeam', '')).strip(),
            match_date=parse_match_date(data.get('MatchDate')),
        )


def _parse_dates(raw: pd.Series) -> pd.Series:
    text = raw.astype(str).str.strip()
    parsed = pd.to_datetime(text, format=DATE_FORMATS[0], errors='coerce')
    for fmt in DATE_FORMATS[1:]:
        parsed = parsed.fillna(pd.to_datetime(text, format=fmt, errors='coerce'))
    return parsed


def parse_match_date(value) -> Optional[date]:
    """Parse a single date in any accepted layout; None if unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = _parse_dates(pd.Series([value])).iloc[0]
    if pd.isna(parsed):
        return None
    return parsed.date()


def _optional_int(value) -> Optional[int]:
    if pd.isna(value):
        return None
    return int(value)


def _derive_result(home_goals, away_goals) -> Optional[str]:
    if pd.isna(home_goals) or pd.isna(away_goals):
        return None
    if home_goals > away_goals:
        return 'H'
    if home_goals < away_goals:
        return 'A'
    return 'D'


def load_matches(records: Iterable[Dict]) -> List[Match]:
    """
    Parse raw match records into Match objects sorted by date.

    Rows with unparsable dates, missing team names or no usable result are
    dropped with a warning; they never fail the whole load.

    Args:
        records: Dictionaries with HomeTeam, AwayTeam, Date, FTHG, FTAG, FTR
            and optionally HS, AS, HST, AST

    Returns:
        Chronologically sorted list of Match
    """
    df = pd.DataFrame(list(records))
    if df.empty:
        logger.warning("No match records supplied")
        return []

    for col in ['HomeTeam', 'AwayTeam', 'Date', 'FTHG', 'FTAG', 'FTR']:
        if col not in df.columns:
            df[col] = None

    total = len(df)
    df['parsed_date'] = _parse_dates(df['Date'])
    bad_dates = int(df['parsed_date'].isna().sum())
    if bad_dates:
        logger.warning(f"Dropped {bad_dates} of {total} records with malformed dates")
    df = df.dropna(subset=['parsed_date'])

    df = df[df['HomeTeam'].notna() & df['AwayTeam'].notna()].copy()
    df['HomeTeam'] = df['HomeTeam'].astype(str).map(canonical_name)
    df['AwayTeam'] = df['AwayTeam'].astype(str).map(canonical_name)
    df = df[(df['HomeTeam'] != '') & (df['AwayTeam'] != '')]

    df['FTHG'] = pd.to_numeric(df['FTHG'], errors='coerce')
    df['FTAG'] = pd.to_numeric(df['FTAG'], errors='coerce')
    for src in SHOT_COLUMNS:
        df[src] = pd.to_numeric(df[src], errors='coerce') if src in df.columns else float('nan')

    result = df['FTR'].where(df['FTR'].notna(), '').astype(str).str.strip().str.upper()
    derived = [_derive_result(h, a) for h, a in zip(df['FTHG'], df['FTAG'])]
    df['result'] = [r if r in VALID_RESULTS else d for r, d in zip(result, derived)]
    no_result = int(df['result'].isna().sum())
    if no_result:
        logger.warning(f"Dropped {no_result} records without a usable result")
    df = df.dropna(subset=['result'])

    df = df.sort_values('parsed_date', kind='mergesort')
    df = df[['HomeTeam', 'AwayTeam', 'parsed_date', 'result', 'FTHG', 'FTAG', *SHOT_COLUMNS]]

    matches = [
        Match(
            home_team=row.HomeTeam,
            away_team=row.AwayTeam,
            date=row.parsed_date.date(),
            result=row.result,
            home_goals=_optional_int(row.FTHG),
            away_goals=_optional_int(row.FTAG),
            home_shots=_optional_int(row.HS),
            away_shots=_optional_int(row.AS),
            home_shots_on_target=_optional_int(row.HST),
            away_shots_on_target=_optional_int(row.AST),
        )
        for row in df.itertuples(index=False)
    ]
    logger.info(f"Loaded {len(matches)} of {total} match records")
    return matches


def season_end_year(match_date: date) -> int:
    """August onwards belongs to the season ending the following year."""
    return match_date.year + 1 if match_date.month >= SEASON_START_MONTH else match_date.year


def season_code(match_date: date) -> str:
    """Season label such as '2324'."""
    end = season_end_year(match_date)
    return f"{(end - 1) % 100:02d}{end % 100:02d}"


def filter_recent_seasons(matches: List[Match], n_seasons: int) -> List[Match]:
    """Keep only the ``n_seasons`` most recent seasons (all of them at MAX_SEASONS or more)."""
    if n_seasons >= MAX_SEASONS:
        return list(matches)

    seasons = sorted({season_end_year(m.date) for m in matches}, reverse=True)
    keep = set(seasons[:n_seasons])
    kept = [m for m in matches if season_end_year(m.date) in keep]
    logger.info(f"Season filter kept {len(kept)} of {len(matches)} matches "
                f"({len(keep)} season(s))")
    return kept
