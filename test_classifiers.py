"""
Test Outcome Classifiers
"""

import numpy as np
import pytest

from ml_models.classifiers import (
    LinearOutcomeNet,
    OutcomeNet,
    build_logistic_regression,
    build_neural_network,
)


@pytest.fixture
def data():
    rng = np.random.RandomState(7)
    X = rng.normal(size=(60, 5)).astype(np.float32)
    y = np.eye(3, dtype=np.float32)[rng.randint(0, 3, size=60)]
    return X, y


def test_untrained_model_refuses_to_predict():
    with pytest.raises(ValueError):
        build_neural_network().predict_logits(np.zeros(5))


def test_logits_shape_for_single_vector_and_batch(data):
    X, y = data
    model = build_logistic_regression(epochs=2)
    model.train(X, y)
    assert model.predict_logits(X[0]).shape == (1, 3)
    assert model.predict_logits(X).shape == (60, 3)
    np.testing.assert_allclose(model.predict_proba(X).sum(axis=1), 1.0, rtol=1e-6)


def test_feature_width_is_checked(data):
    X, y = data
    model = build_logistic_regression(epochs=1)
    model.train(X, y)
    with pytest.raises(ValueError):
        model.predict_logits(np.zeros((1, 4)))


def test_labels_must_be_one_hot(data):
    X, _ = data
    with pytest.raises(ValueError):
        build_neural_network(epochs=1).train(X, np.zeros(60))


def test_training_is_deterministic(data):
    X, y = data
    first = build_neural_network(epochs=3)
    second = build_neural_network(epochs=3)
    assert first.train(X, y) == second.train(X, y)
    np.testing.assert_array_equal(first.predict_logits(X), second.predict_logits(X))


def test_history_and_progress(data):
    X, y = data
    seen = []
    model = build_logistic_regression(epochs=4)
    history = model.train(X, y, progress=lambda name, epoch, total, logs: seen.append((epoch, sorted(logs))))
    assert len(history) == 4
    assert seen[0] == (1, ['loss', 'val_loss'])
    assert not model.early_stopping


def test_early_stopping_never_exceeds_budget(data):
    X, y = data
    model = build_neural_network(epochs=30, patience=1)
    assert len(model.train(X, y)) <= 30
    assert model.early_stopping


def test_network_shapes():
    net = OutcomeNet(10)
    linears = [m for m in net.network if m.__class__.__name__ == 'Linear']
    assert [(l.in_features, l.out_features) for l in linears] == [(10, 128), (128, 64), (64, 3)]
    assert LinearOutcomeNet(10).linear.out_features == 3
