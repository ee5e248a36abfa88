"""
Transformer encoder stack used by the seq2seq source encoder.

Provides:
- LayerNorm: Normalization over the hidden dimension with a learned gain and bias
- SublayerConnection: Pre-norm residual wrapper around attention or feed-forward
- EncoderLayer: Self-attention followed by a position-wise feed-forward network
- Encoder: `depth` independent copies of one layer plus a final norm

Reference: "Attention is All You Need" Section 3.1
"""

import torch
import torch.nn as nn

from .attention import clones


class LayerNorm(nn.Module):
    """
    gain * (x - mean) / (std + eps) + bias over the last dimension.

    Args:
        hidden_dim: Size of the normalized dimension
        eps: Added to the standard deviation
    """

    def __init__(self, hidden_dim, eps=1e-6):
        super(LayerNorm, self).__init__()
        self.gain = nn.Parameter(torch.ones(hidden_dim))
        self.bias = nn.Parameter(torch.zeros(hidden_dim))
        self.eps = eps

    def forward(self, x):
        centered = x - x.mean(-1, keepdim=True)
        std = x.std(-1, keepdim=True, unbiased=False)
        return self.gain * centered / (std + self.eps) + self.bias


class SublayerConnection(nn.Module):
    """x + Dropout(sublayer(LayerNorm(x)))"""

    def __init__(self, hidden_dim, dropout):
        super(SublayerConnection, self).__init__()
        self.norm = LayerNorm(hidden_dim)
        self.drop = nn.Dropout(dropout)

    def forward(self, x, sublayer):
        return x + self.drop(sublayer(self.norm(x)))


class EncoderLayer(nn.Module):
    """
    Args:
        hidden_dim: Model dimension
        self_attn: MultiHeadAttention module
        feed_forward: PositionwiseFeedForward module
        dropout: Residual dropout probability
    """

    def __init__(self, hidden_dim, self_attn, feed_forward, dropout):
        super(EncoderLayer, self).__init__()
        self.hidden_dim = hidden_dim
        self.self_attn = self_attn
        self.feed_forward = feed_forward
        self.attn_sublayer = SublayerConnection(hidden_dim, dropout)
        self.ff_sublayer = SublayerConnection(hidden_dim, dropout)

    def forward(self, x, mask=None):
        x = self.attn_sublayer(x, lambda y: self.self_attn(y, mask))
        return self.ff_sublayer(x, self.feed_forward)


class Encoder(nn.Module):
    def __init__(self, layer, depth):
        super(Encoder, self).__init__()
        self.layers = clones(layer, depth)
        self.norm = LayerNorm(layer.hidden_dim)

    def forward(self, x, mask=None):
        """
        Args:
            x: Batch-first input, shape (batch, seq_len, hidden_dim)
            mask: Optional key mask from padding_mask()

        Returns:
            Tensor of the same shape
        """
        for layer in self.layers:
            x = layer(x, mask)
        return self.norm(x)
