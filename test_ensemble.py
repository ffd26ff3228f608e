"""
Test Ensemble Blending
"""

import numpy as np
import pytest

from hybrid.ensemble import blend_probabilities, temperature_softmax
from prediction_errors import SettingsError

NN = [0.5, 0.3, 0.2]
LR = [0.4, 0.4, 0.2]
POISSON = [0.2, 0.3, 0.5]


def test_single_model_weights_select_that_model():
    np.testing.assert_array_equal(blend_probabilities(NN, LR, POISSON, {'nn': 1, 'lr': 0, 'poisson': 0}), NN)
    np.testing.assert_array_equal(blend_probabilities(NN, LR, POISSON, {'nn': 0, 'lr': 0, 'poisson': 1}), POISSON)


def test_weighted_sum():
    blended = blend_probabilities(NN, LR, POISSON, {'nn': 0.4, 'lr': 0.25, 'poisson': 0.35})
    expected = 0.4 * np.array(NN) + 0.25 * np.array(LR) + 0.35 * np.array(POISSON)
    np.testing.assert_allclose(blended, expected)
    assert blended.sum() == pytest.approx(1.0)


def test_weights_are_not_renormalised():
    blended = blend_probabilities(NN, LR, POISSON, {'nn': 0.5, 'lr': 0.5, 'poisson': 0.5})
    assert blended.sum() == pytest.approx(1.5)


def test_missing_weight_is_rejected():
    with pytest.raises(SettingsError):
        blend_probabilities(NN, LR, POISSON, {'nn': 1.0, 'lr': 0.0})


def test_temperature_softmax():
    logits = np.array([2.0, 1.0, 0.0])
    plain = temperature_softmax(logits, 1.0)
    flat = temperature_softmax(logits, 3.0)
    sharp = temperature_softmax(logits, 0.5)

    np.testing.assert_allclose(plain, np.exp(logits) / np.exp(logits).sum())
    for probs in (plain, flat, sharp):
        assert probs.sum() == pytest.approx(1.0)
    assert sharp[0] > plain[0] > flat[0]


def test_temperature_softmax_batches_and_rejects_bad_temperature():
    batch = temperature_softmax(np.zeros((4, 3)), 1.5)
    np.testing.assert_allclose(batch, np.full((4, 3), 1 / 3))
    with pytest.raises(SettingsError):
        temperature_softmax([1.0, 0.0, 0.0], 0.0)
