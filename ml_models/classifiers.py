"""
Outcome Classifiers
===================

The two trainable members of the ensemble. Both read the same feature
vectors and emit raw logits for [home, draw, away]; they differ only in
capacity:

- neural network: two hidden ReLU layers with dropout and L2 penalty,
  early stopping on a held-out validation split
- logistic regression: one linear layer with softmax output, same epoch
  budget and split, no early stopping

Temperature scaling and softmax are applied by the ensemble, not here.
"""

import copy
import logging
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from torch.utils.data import DataLoader, TensorDataset
from sklearn.metrics import accuracy_score, log_loss
from sklearn.model_selection import train_test_split

from engine_config import (
    BATCH_SIZE,
    DROPOUT_RATE,
    EARLY_STOPPING_PATIENCE,
    EPOCHS,
    HIDDEN_SIZES,
    L2_PENALTY,
    LEARNING_RATE,
    RANDOM_SEED,
    VALIDATION_SPLIT,
)

logger = logging.getLogger(__name__)

# progress(model_name, epoch, total_epochs, logs)
ProgressCallback = Callable[[str, int, int, Dict[str, float]], None]


class OutcomeNet(nn.Module):
    """Multi-layer classifier: Linear -> ReLU -> Dropout per hidden layer."""

    def __init__(self, input_size: int, hidden_sizes: Sequence[int] = HIDDEN_SIZES,
                 dropout: float = DROPOUT_RATE):
        super().__init__()

        layers = []
        prev_size = input_size
        for hidden_size in hidden_sizes:
            layers.extend([
                nn.Linear(prev_size, hidden_size),
                nn.ReLU(),
                nn.Dropout(dropout),
            ])
            prev_size = hidden_size

        # Output layer - 3 classes (home, draw, away)
        layers.append(nn.Linear(prev_size, 3))
        self.network = nn.Sequential(*layers)

    def forward(self, x):
        return self.network(x)


class LinearOutcomeNet(nn.Module):
    """Multinomial logistic regression as a single linear layer."""

    def __init__(self, input_size: int):
        super().__init__()
        self.linear = nn.Linear(input_size, 3)

    def forward(self, x):
        return self.linear(x)


class OutcomeClassifier:
    """
    Trains one network on (features, one-hot labels) and serves logits.

    Training is deterministic for a given seed and input.
    """

    def __init__(self,
                 name: str,
                 network_factory: Callable[[int], nn.Module],
                 early_stopping: bool,
                 weight_decay: float = 0.0,
                 epochs: int = EPOCHS,
                 batch_size: int = BATCH_SIZE,
                 learning_rate: float = LEARNING_RATE,
                 validation_split: float = VALIDATION_SPLIT,
                 patience: int = EARLY_STOPPING_PATIENCE,
                 seed: int = RANDOM_SEED):
        self.name = name
        self.network_factory = network_factory
        self.early_stopping = early_stopping
        self.weight_decay = weight_decay
        self.epochs = epochs
        self.batch_size = batch_size
        self.learning_rate = learning_rate
        self.validation_split = validation_split
        self.patience = patience
        self.seed = seed

        self.model: Optional[nn.Module] = None
        self.input_size: Optional[int] = None
        self.history: List[Dict[str, float]] = []
        self.is_trained = False

    def _split(self, X: np.ndarray, y: np.ndarray):
        # Trailing slice is the validation set, as with chronological data
        if len(X) < 10 or self.validation_split <= 0:
            return X, y, None, None
        X_train, X_val, y_train, y_val = train_test_split(
            X, y, test_size=self.validation_split, shuffle=False
        )
        return X_train, y_train, X_val, y_val

    def train(self, X: np.ndarray, y: np.ndarray, progress: ProgressCallback = None) -> List[Dict[str, float]]:
        """
        Fit the network from scratch.

        Args:
            X: Feature matrix (n, d)
            y: One-hot labels (n, 3) in [home, draw, away] order
            progress: Called after every epoch

        Returns:
            Per-epoch history of loss / val_loss
        """
        X = np.asarray(X, dtype=np.float32)
        y = np.asarray(y, dtype=np.float32)
        if X.ndim != 2 or len(X) == 0:
            raise ValueError(f"{self.name}: empty or malformed feature matrix {X.shape}")
        if y.shape != (len(X), 3):
            raise ValueError(f"{self.name}: labels must be one-hot (n, 3), got {y.shape}")

        self.is_trained = False
        self.input_size = X.shape[1]
        torch.manual_seed(self.seed)
        self.model = self.network_factory(self.input_size)

        X_train, y_train, X_val, y_val = self._split(X, y)
        targets = torch.as_tensor(y_train.argmax(axis=1), dtype=torch.long)
        loader = DataLoader(
            TensorDataset(torch.as_tensor(X_train), targets),
            batch_size=self.batch_size,
            shuffle=True,
            generator=torch.Generator().manual_seed(self.seed),
        )
        if X_val is not None:
            val_inputs = torch.as_tensor(X_val)
            val_targets = torch.as_tensor(y_val.argmax(axis=1), dtype=torch.long)

        criterion = nn.CrossEntropyLoss()
        optimizer = optim.Adam(self.model.parameters(), lr=self.learning_rate,
                               weight_decay=self.weight_decay)

        best_val = float('inf')
        best_state = None
        stale_epochs = 0
        self.history = []

        for epoch in range(self.epochs):
            self.model.train()
            running = 0.0
            for batch_x, batch_y in loader:
                optimizer.zero_grad()
                loss = criterion(self.model(batch_x), batch_y)
                loss.backward()
                optimizer.step()
                running += loss.item() * len(batch_x)

            logs = {'loss': running / len(X_train)}
            if X_val is not None:
                self.model.eval()
                with torch.no_grad():
                    logs['val_loss'] = criterion(self.model(val_inputs), val_targets).item()
            self.history.append(logs)

            if progress is not None:
                progress(self.name, epoch + 1, self.epochs, logs)

            if self.early_stopping and 'val_loss' in logs:
                if logs['val_loss'] < best_val:
                    best_val = logs['val_loss']
                    best_state = copy.deepcopy(self.model.state_dict())
                    stale_epochs = 0
                else:
                    stale_epochs += 1
                    if stale_epochs >= self.patience:
                        logger.info(f"{self.name}: early stopping at epoch {epoch + 1} "
                                    f"(best val_loss {best_val:.4f})")
                        break

        if best_state is not None:
            self.model.load_state_dict(best_state)
        self.model.eval()
        self.is_trained = True

        probs = self.predict_proba(X)
        true = y.argmax(axis=1)
        logger.info(f"{self.name}: trained {len(self.history)} epochs, "
                    f"accuracy {accuracy_score(true, probs.argmax(axis=1)):.3f}, "
                    f"log loss {log_loss(true, probs, labels=[0, 1, 2]):.4f}")
        return self.history

    def predict_logits(self, features: np.ndarray) -> np.ndarray:
        """Raw scores for a single vector or a batch; always returns (n, 3)."""
        if not self.is_trained:
            raise ValueError(f"{self.name}: model not trained!")

        features = np.asarray(features, dtype=np.float32)
        if features.ndim == 1:
            features = features.reshape(1, -1)
        if features.shape[1] != self.input_size:
            raise ValueError(f"{self.name}: expected {self.input_size} features, "
                             f"got {features.shape[1]}")

        with torch.no_grad():
            logits = self.model(torch.as_tensor(features))
        return logits.numpy().astype(np.float64)

    def predict_proba(self, features: np.ndarray) -> np.ndarray:
        """Untempered softmax probabilities."""
        logits = self.predict_logits(features)
        shifted = logits - logits.max(axis=1, keepdims=True)
        exp = np.exp(shifted)
        return exp / exp.sum(axis=1, keepdims=True)


def build_neural_network(**overrides) -> OutcomeClassifier:
    return OutcomeClassifier(
        'neural_network',
        lambda n: OutcomeNet(n),
        early_stopping=True,
        weight_decay=L2_PENALTY,
        **overrides,
    )


def build_logistic_regression(**overrides) -> OutcomeClassifier:
    return OutcomeClassifier(
        'logistic_regression',
        lambda n: LinearOutcomeNet(n),
        early_stopping=False,
        **overrides,
    )
