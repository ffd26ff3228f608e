"""
Hybrid Prediction System
========================

Blends two trained classifiers with the closed-form Poisson goal model.

Components:
- engine: Training/prediction state machine owning all trained state
- ensemble: Temperature softmax and weighted blending of outcome triples
"""

from .ensemble import blend_probabilities, temperature_softmax
from .engine import EngineState, EnsembleEngine, PredictionResult, TrainingOutcome

__all__ = [
    'blend_probabilities',
    'temperature_softmax',
    'EngineState',
    'EnsembleEngine',
    'PredictionResult',
    'TrainingOutcome',
]
