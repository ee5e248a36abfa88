"""
LSTM decoder with additive attention over the encoder outputs.

At each step the attention unit reads the cell state of the top layer,
produces a context vector, and every layer consumes [input, context].
"""

from typing import NamedTuple, Optional, Tuple

import torch
import torch.nn as nn

from .attention_unit import AttentionUnit, CoverageState
from .tensor_io import ParameterBlobMixin


class DecoderState(NamedTuple):
    """Snapshot of all recurrent state needed to resume decoding."""

    hidden: Tuple[torch.Tensor, ...]
    cell: Tuple[torch.Tensor, ...]
    coverage: Optional[CoverageState] = None


class AttentionDecoder(ParameterBlobMixin, nn.Module):
    """
    Stacked LSTM cells fed with attention contexts.

    Args:
        name: Scope name
        hidden_dim: LSTM hidden size (also the attention size)
        embedding_dim: Target embedding size
        context_dim: Encoder output size
        depth: Number of LSTM layers
        enable_coverage_model: Forwarded to the attention unit
    """

    def __init__(self, name, hidden_dim, embedding_dim, context_dim, depth,
                 enable_coverage_model=False):
        super(AttentionDecoder, self).__init__()
        self.name = name
        self.hidden_dim = hidden_dim
        self.depth = depth

        self.attention = AttentionUnit(
            f"{name}.AttnUnit", hidden_dim, context_dim, enable_coverage_model
        )
        self.cells = nn.ModuleList(
            [nn.LSTMCell(embedding_dim + context_dim, hidden_dim)]
            + [nn.LSTMCell(hidden_dim + context_dim, hidden_dim) for _ in range(depth - 1)]
        )

        self.hidden = []
        self.cell = []

    def reset(self, batch_size):
        """Zero the recurrent state of every layer for a new batch."""
        weight = self.cells[0].weight_ih
        zeros = torch.zeros(batch_size, self.hidden_dim, device=weight.device, dtype=weight.dtype)
        self.hidden = [zeros] * self.depth
        self.cell = [zeros] * self.depth

    def pre_process(self, encoded, batch_size):
        return self.attention.pre_process(encoded, batch_size)

    def decode(self, inputs, pre, batch_size):
        """
        Run one decoding step.

        Args:
            inputs: Embedded previous tokens, shape (batch, embedding_dim)
            pre: AttentionPreProcessResult for the current sources
            batch_size: Number of sentences

        Returns:
            Top layer output, shape (batch, hidden_dim)
        """
        context = self.attention.perform(self.cell[-1], pre, batch_size)

        x = inputs
        for i, lstm_cell in enumerate(self.cells):
            h, c = lstm_cell(torch.cat([x, context], dim=1), (self.hidden[i], self.cell[i]))
            self.hidden[i] = h
            self.cell[i] = c
            x = h
        return x

    def get_state(self):
        return DecoderState(tuple(self.hidden), tuple(self.cell), self.attention.coverage_state)

    def set_state(self, state):
        self.hidden = list(state.hidden)
        self.cell = list(state.cell)
        self.attention.coverage_state = state.coverage
