"""
Sinusoidal positional encoding added to source embeddings before the
Transformer encoder layers.

Reference: "Attention is All You Need" Section 3.5
"""

import math
import torch
import torch.nn as nn


class PositionalEncoding(nn.Module):
    """
    Sinusoidal positional encoding.

    PE(pos, 2i) = sin(pos / 10000^(2i/hidden_dim))
    PE(pos, 2i+1) = cos(pos / 10000^(2i/hidden_dim))

    The table is a buffer, so it follows the module across devices but is
    never part of the parameter list that gets saved or optimized.

    Args:
        hidden_dim: Model dimension
        dropout: Dropout probability applied after the addition
        max_len: Longest supported sequence
    """

    def __init__(self, hidden_dim, dropout=0.0, max_len=5000):
        super(PositionalEncoding, self).__init__()
        self.dropout = nn.Dropout(p=dropout)

        pe = torch.zeros(max_len, hidden_dim)
        position = torch.arange(0, max_len).unsqueeze(1)
        div_term = torch.exp(
            torch.arange(0, hidden_dim, 2) * -(math.log(10000.0) / hidden_dim)
        )
        pe[:, 0::2] = torch.sin(position * div_term)
        pe[:, 1::2] = torch.cos(position * div_term[: hidden_dim // 2])
        self.register_buffer("pe", pe.unsqueeze(0), persistent=False)

    def forward(self, x):
        """
        Args:
            x: Batch-first embeddings, shape (batch, seq_len, hidden_dim)
        """
        x = x + self.pe[:, : x.size(1)]
        return self.dropout(x)
