"""
Ensemble Blending for Classifier and Poisson Probabilities
==========================================================

Turns classifier logits into calibrated probabilities with a temperature
softmax, then takes the weighted sum of the three outcome triples.

Weights are applied exactly as given. They are not renormalised, so a caller
passing weights that do not sum to 1 gets a triple that does not sum to 1.
"""

import logging
from typing import Dict, Sequence

import numpy as np
from scipy.special import softmax

from prediction_errors import SettingsError

logger = logging.getLogger(__name__)

MODEL_KEYS = ('nn', 'lr', 'poisson')


def temperature_softmax(logits: np.ndarray, temperature: float) -> np.ndarray:
    """
    softmax(logits / T) along the last axis.

    T > 1 flattens the distribution, T < 1 sharpens it.
    """
    if not temperature > 0:
        raise SettingsError(f"Temperature must be positive, got {temperature}")
    scaled = np.asarray(logits, dtype=np.float64) / temperature
    return softmax(scaled, axis=-1)


def blend_probabilities(nn_probs: Sequence[float],
                        lr_probs: Sequence[float],
                        poisson_probs: Sequence[float],
                        weights: Dict[str, float]) -> np.ndarray:
    """
    Weighted sum of the three [home, draw, away] triples.

    Args:
        nn_probs: Neural network probabilities
        lr_probs: Logistic regression probabilities
        poisson_probs: Poisson goal model probabilities
        weights: {'nn': w1, 'lr': w2, 'poisson': w3}

    Returns:
        Blended triple (float64)
    """
    missing = [k for k in MODEL_KEYS if k not in weights]
    if missing:
        raise SettingsError(f"Missing ensemble weights: {missing}")

    triples = {
        'nn': np.asarray(nn_probs, dtype=np.float64),
        'lr': np.asarray(lr_probs, dtype=np.float64),
        'poisson': np.asarray(poisson_probs, dtype=np.float64),
    }
    blended = sum(weights[k] * triples[k] for k in MODEL_KEYS)

    logger.debug(f"Blended NN{np.round(triples['nn'], 3)} + LR{np.round(triples['lr'], 3)} + "
                 f"Poisson{np.round(triples['poisson'], 3)} -> {np.round(blended, 3)} "
                 f"[weights: {weights}]")
    return blended
