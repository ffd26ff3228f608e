"""
ML Models Package for Football Prediction System
=================================================

Modules:
    feature_builder: Fixture + team histories -> feature vector and reasoning snapshot
    training_set: Causal (no-lookahead) training set assembly
    classifiers: Neural network and logistic regression outcome classifiers
"""

__version__ = "1.0.0"
__all__ = [
    "feature_builder",
    "training_set",
    "classifiers",
]
