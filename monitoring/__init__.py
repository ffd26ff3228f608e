"""
Monitoring Module for the Prediction Engine
===========================================

Append-only log of prediction results.
"""

from .runtime_logger import RuntimeLogger

__all__ = [
    'RuntimeLogger',
]
