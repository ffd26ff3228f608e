"""
Exceptions raised by the prediction engine.

Only failures that abort a whole command are raised; per-record and
per-example problems are logged and skipped where they occur.
"""


class PredictionEngineError(Exception):
    """Base class for engine errors."""


class InsufficientDataError(PredictionEngineError, ValueError):
    """Too few usable matches to build a training set."""


class TeamNotFoundError(PredictionEngineError, LookupError):
    """A fixture names a team outside the pinned vocabulary."""

    def __init__(self, team_name: str):
        self.team_name = team_name
        super().__init__(f"Team not found: '{team_name}'")


class EngineNotReadyError(PredictionEngineError, RuntimeError):
    """A prediction was requested before training completed."""


class SettingsError(PredictionEngineError, ValueError):
    """An option is outside its allowed range."""
