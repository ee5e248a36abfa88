"""
Transformer encoder building blocks.

Based on "Attention is All You Need" (Vaswani et al., 2017) and the
Harvard NLP "Annotated Transformer". Only the encoder half is provided:
the seq2seq model pairs it with an LSTM + additive attention decoder.
"""

from .attention import MultiHeadAttention, attention, padding_mask, clones
from .layers import Encoder, EncoderLayer, SublayerConnection, LayerNorm
from .embeddings import PositionalEncoding
from .feedforward import PositionwiseFeedForward

__all__ = [
    # Encoder stack
    "Encoder",
    "EncoderLayer",
    # Attention
    "MultiHeadAttention",
    "attention",
    "padding_mask",
    # Layers
    "SublayerConnection",
    "LayerNorm",
    "clones",
    # Positions
    "PositionalEncoding",
    # Feed-forward
    "PositionwiseFeedForward",
]
