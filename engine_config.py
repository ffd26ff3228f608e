"""
Engine Configuration
====================

Single source of truth for the prediction engine's parameters.

Algorithm constants live at module level. Caller-facing options (temperature,
blend weights, season range, recency weighting, feature toggles) are carried
by the ``Settings`` dataclass, which serialises to the camelCase dictionary
exchanged with the host application.
"""

import json
import math
import os
import logging
from dataclasses import dataclass, field, fields, asdict
from typing import Dict, Optional

from prediction_errors import SettingsError

logger = logging.getLogger(__name__)

# Rating engine
INITIAL_RATING = 1500.0
K_FACTOR = 32.0
ELO_SCALE = 2000.0

# Feature windows
FORM_MATCHES_COUNT = 5
H2H_MATCHES_COUNT = 5
MIN_PRIOR_MATCHES = 5
DEFAULT_DAYS_SINCE = 14
CONGESTION_CAP_DAYS = 21

# Goal model
POISSON_MAX_GOALS = 5
NEUTRAL_PROBS = (0.33, 0.34, 0.33)

# Season filter (a range at or above this keeps every season)
MAX_SEASONS = 6
SEASON_START_MONTH = 8  # August

# Training
MIN_TRAINING_ROWS = 50
EPOCHS = 50
BATCH_SIZE = 32
VALIDATION_SPLIT = 0.1
EARLY_STOPPING_PATIENCE = 5
LEARNING_RATE = 0.0001
L2_PENALTY = 0.0001
DROPOUT_RATE = 0.5
HIDDEN_SIZES = (128, 64)
RANDOM_SEED = 42

CONFIG_PATH = 'engine_config.json'


@dataclass
class FeatureToggles:
    """On/off switch per feature family."""
    form: bool = True
    h2h: bool = True
    elo: bool = True
    offense: bool = True
    defense: bool = True
    congestion: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'FeatureToggles':
        if data is None:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise SettingsError(f"Unknown feature toggle(s): {sorted(unknown)}")
        return cls(**{k: bool(v) for k, v in data.items()})

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


@dataclass
class Settings:
    """
    Options supplied by the caller.

    Toggles, season range and recency weighting apply at train time; the
    temperature and blend weights apply at predict time. Blend weights are
    validated to lie in [0, 1] but are never renormalised.
    """
    temperature: float = 1.5
    nn_weight: float = 0.40
    lr_weight: float = 0.25
    poisson_weight: float = 0.35
    training_data_range: int = MAX_SEASONS
    recency_weighting: float = 0.5
    features: FeatureToggles = field(default_factory=FeatureToggles)

    # camelCase key used on the wire -> attribute name
    _KEYS = {
        'temperature': 'temperature',
        'nnWeight': 'nn_weight',
        'lrWeight': 'lr_weight',
        'poissonWeight': 'poisson_weight',
        'trainingDataRange': 'training_data_range',
        'recencyWeighting': 'recency_weighting',
    }

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise SettingsError if any option is outside its domain."""
        if not math.isfinite(self.temperature) or self.temperature <= 0:
            raise SettingsError(f"temperature must be > 0, got {self.temperature}")
        for name in ('nn_weight', 'lr_weight', 'poisson_weight'):
            value = getattr(self, name)
            if not math.isfinite(value) or not 0.0 <= value <= 1.0:
                raise SettingsError(f"{name} must be in [0, 1], got {value}")
        if int(self.training_data_range) < 1:
            raise SettingsError(
                f"training_data_range must be >= 1 season, got {self.training_data_range}"
            )
        if not 0.0 <= self.recency_weighting <= 1.0:
            raise SettingsError(
                f"recency_weighting must be in [0, 1], got {self.recency_weighting}"
            )

    @property
    def weights(self) -> Dict[str, float]:
        return {'nn': self.nn_weight, 'lr': self.lr_weight, 'poisson': self.poisson_weight}

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'Settings':
        """Build settings from the camelCase dictionary; missing keys keep defaults."""
        if data is None:
            return cls()
        kwargs = {}
        for key, attr in cls._KEYS.items():
            if key in data and data[key] is not None:
                kwargs[attr] = data[key]
        try:
            kwargs = {
                k: (int(v) if k == 'training_data_range' else float(v))
                for k, v in kwargs.items()
            }
        except (TypeError, ValueError) as e:
            raise SettingsError(f"Invalid numeric setting: {e}") from e
        kwargs['features'] = FeatureToggles.from_dict(data.get('features'))
        return cls(**kwargs)

    def to_dict(self) -> Dict:
        """Inverse of from_dict; floats are stored as-is so a round trip is exact."""
        out = {key: getattr(self, attr) for key, attr in self._KEYS.items()}
        out['features'] = self.features.to_dict()
        return out

    def with_overrides(self, data: Optional[Dict]) -> 'Settings':
        """Return a copy with the keys present in ``data`` replaced."""
        merged = self.to_dict()
        if data:
            for key, value in data.items():
                if key == 'features' and value is not None:
                    merged['features'] = {**merged['features'], **value}
                elif value is not None:
                    merged[key] = value
        return Settings.from_dict(merged)


def load_settings(config_path: str = CONFIG_PATH) -> Settings:
    """Load settings from a JSON file, falling back to defaults if it is absent."""
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            data = json.load(f)
        logger.info(f"Loaded engine settings from {config_path}")
        return Settings.from_dict(data)

    logger.info(f"No settings file at {config_path}, using defaults")
    return Settings()
