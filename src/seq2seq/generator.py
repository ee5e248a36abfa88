"""
Output layer: projects decoder outputs to target vocabulary scores.
"""

import torch.nn as nn

from .tensor_io import ParameterBlobMixin


class Generator(ParameterBlobMixin, nn.Module):
    """
    Linear projection from hidden_dim to the target vocabulary.

    forward() returns raw logits (the training loss applies its own
    log-softmax, decoding applies log_softmax to them).

    Args:
        hidden_dim: Decoder output size
        vocab_size: Target vocabulary size
    """

    def __init__(self, hidden_dim, vocab_size):
        super(Generator, self).__init__()
        self.proj = nn.Linear(hidden_dim, vocab_size)

    def forward(self, x):
        return self.proj(x)

    @property
    def vocab_size(self):
        return self.proj.out_features
