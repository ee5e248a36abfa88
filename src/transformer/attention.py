"""
Multi-head self-attention for the Transformer encoder.

Implements:
- Scaled dot-product attention
- Multi-head attention over [batch, seq_len, hidden_dim] inputs
- Source padding masks built from true sentence lengths

Reference: "Attention is All You Need" Section 3.2
"""

import math
import copy
import torch
import torch.nn as nn


def attention(query, key, value, mask=None, dropout=None):
    """
    Compute 'Scaled Dot-Product Attention'.

    Attention(Q, K, V) = softmax(QK^T / sqrt(d_k)) V

    Args:
        query: shape (batch, heads, q_len, d_k)
        key: shape (batch, heads, k_len, d_k)
        value: shape (batch, heads, k_len, d_k)
        mask: Optional bool mask broadcastable to (batch, heads, q_len, k_len),
              True where attending is allowed
        dropout: Optional dropout module applied to the weights

    Returns:
        tuple: (output (batch, heads, q_len, d_k), weights (batch, heads, q_len, k_len))
    """
    d_k = query.size(-1)
    scores = torch.matmul(query, key.transpose(-2, -1)) / math.sqrt(d_k)

    if mask is not None:
        scores = scores.masked_fill(~mask, -1e9)

    p_attn = scores.softmax(dim=-1)
    if dropout is not None:
        p_attn = dropout(p_attn)

    return torch.matmul(p_attn, value), p_attn


def padding_mask(lengths, max_len, device=None):
    """
    Build a key mask from true sequence lengths.

    Args:
        lengths: Sequence of ints, one per batch row
        max_len: Padded length
        device: Device for the mask

    Returns:
        Bool tensor of shape (batch, 1, 1, max_len), True on real tokens
    """
    lengths = torch.as_tensor(lengths, device=device)
    positions = torch.arange(max_len, device=device)
    return (positions.unsqueeze(0) < lengths.unsqueeze(1))[:, None, None, :]


def clones(module, n):
    """Produce n independent deep copies of a module as an nn.ModuleList."""
    return nn.ModuleList([copy.deepcopy(module) for _ in range(n)])


class MultiHeadAttention(nn.Module):
    """
    Multi-head self-attention.

    MultiHead(X) = Concat(head_1, ..., head_h) W^O
    where head_i = Attention(X W^Q_i, X W^K_i, X W^V_i)

    Args:
        multi_head_num: Number of heads
        hidden_dim: Model dimension, must be divisible by multi_head_num
        dropout: Dropout probability on attention weights
    """

    def __init__(self, multi_head_num, hidden_dim, dropout=0.0):
        super(MultiHeadAttention, self).__init__()
        assert hidden_dim % multi_head_num == 0, "hidden_dim must be divisible by multi_head_num"

        self.d_k = hidden_dim // multi_head_num
        self.multi_head_num = multi_head_num
        self.linears = clones(nn.Linear(hidden_dim, hidden_dim), 4)
        self.dropout = nn.Dropout(p=dropout)

    def forward(self, x, mask=None):
        """
        Args:
            x: Input tensor, shape (batch, seq_len, hidden_dim)
            mask: Optional key mask from padding_mask()

        Returns:
            Output tensor, shape (batch, seq_len, hidden_dim)
        """
        nbatches = x.size(0)

        # Project once per role, then split into heads: hidden_dim => h x d_k
        query, key, value = [
            lin(x).view(nbatches, -1, self.multi_head_num, self.d_k).transpose(1, 2)
            for lin in self.linears[:3]
        ]

        out, _ = attention(query, key, value, mask=mask, dropout=self.dropout)

        out = (
            out.transpose(1, 2)
            .contiguous()
            .view(nbatches, -1, self.multi_head_num * self.d_k)
        )
        return self.linears[-1](out)
