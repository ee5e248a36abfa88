"""
Position-wise Feed-Forward Network for the Transformer encoder.

FFN(x) = max(0, xW_1 + b_1)W_2 + b_2

Reference: "Attention is All You Need" Section 3.3
"""

import torch.nn as nn


class PositionwiseFeedForward(nn.Module):
    """
    Same two-layer ReLU network applied to every position.

    Args:
        hidden_dim: Input and output dimension
        inner_dim: Inner layer dimension (the encoder uses 4 * hidden_dim)
        dropout: Dropout probability between the two layers
    """

    def __init__(self, hidden_dim, inner_dim, dropout=0.0):
        super(PositionwiseFeedForward, self).__init__()
        self.w_1 = nn.Linear(hidden_dim, inner_dim)
        self.w_2 = nn.Linear(inner_dim, hidden_dim)
        self.dropout = nn.Dropout(dropout)

    def forward(self, x):
        return self.w_2(self.dropout(self.w_1(x).relu()))
