"""
Shared training components: learning rate schedules, loss and bookkeeping.
"""

from .lr_scheduler import rate, DecayLearningRate
from .training import TrainState, ProgressEvent, EvaluationEvent
from .loss import MaskedCrossEntropy

__all__ = [
    # Learning rate schedulers
    "rate",
    "DecayLearningRate",
    # Training utilities
    "TrainState",
    "ProgressEvent",
    "EvaluationEvent",
    # Loss functions
    "MaskedCrossEntropy",
]
