"""
Team Name Resolution
====================

Maps the many spellings of a club onto the canonical name used in the
historical data.

Resolution order:
    1. Exact match against the known names
    2. Alias table (e.g. 'Manchester United' -> 'Man United')
    3. Case-insensitive match
    4. Substring fallback: first known name containing the query

Anything else is Unresolved, including near misses ('Burnley' is not
'Barnsley').
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Union

logger = logging.getLogger(__name__)

# Fixture feeds and the historical CSVs disagree on these names
TEAM_NAME_ALIASES: Dict[str, str] = {
    'Wolverhampton Wanderers': 'Wolves',
    'Man Utd': 'Man United',
    'Manchester United': 'Man United',
    'Manchester City': 'Man City',
    'Tottenham Hotspur': 'Tottenham',
    'West Bromwich Albion': 'West Brom',
    'Nottingham Forest': "Nott'm Forest",
    'Sheffield Wednesday': 'Sheff Wed',
    'Queens Park Rangers': 'QPR',
    'Brighton & Hove Albion': 'Brighton',
    'Newcastle United': 'Newcastle',
    'West Ham United': 'West Ham',
    'Leicester City': 'Leicester',
    'Leeds United': 'Leeds',
}


@dataclass(frozen=True)
class Resolved:
    name: str


@dataclass(frozen=True)
class Unresolved:
    query: str


Resolution = Union[Resolved, Unresolved]


def canonical_name(name: str, aliases: Dict[str, str] = None) -> str:
    """Apply the alias table to a raw name from the historical data."""
    aliases = TEAM_NAME_ALIASES if aliases is None else aliases
    name = name.strip()
    return aliases.get(name, name)


def resolve_team_name(name: str,
                      known_teams: Iterable[str],
                      aliases: Dict[str, str] = None) -> Resolution:
    """
    Resolve a fixture's team name against the known canonical names.

    Args:
        name: Team name as written in the fixture
        known_teams: Canonical names (the pinned vocabulary)
        aliases: Alias table (defaults to TEAM_NAME_ALIASES)

    Returns:
        Resolved(canonical_name) or Unresolved(name)
    """
    aliases = TEAM_NAME_ALIASES if aliases is None else aliases
    known = list(known_teams)
    known_set = set(known)
    query = (name or '').strip()

    if not query:
        return Unresolved(name)

    if query in known_set:
        return Resolved(query)

    alias = aliases.get(query)
    if alias is not None and alias in known_set:
        return Resolved(alias)

    lower = query.lower()
    for team in known:
        if team.lower() == lower:
            return Resolved(team)

    for team in known:
        if lower in team.lower():
            logger.info(f"Matched '{name}' -> '{team}' by substring")
            return Resolved(team)

    return Unresolved(name)
