"""
Source encoders.

Both variants share one interface:
    reset(batch_size)                     -> clear per-batch state
    encode(embedded, batch_size, lengths) -> time-major outputs (src_len, batch, output_dim)
    param_list() / save(stream) / load(stream)
    output_dim                            -> size of each output vector

The concrete class is picked once from the EncoderType tag stored in the
model header (build_encoder).
"""

from enum import Enum

import torch.nn as nn

from src.transformer import (
    Encoder,
    EncoderLayer,
    MultiHeadAttention,
    PositionalEncoding,
    PositionwiseFeedForward,
    padding_mask,
)
from .tensor_io import ParameterBlobMixin


class EncoderType(str, Enum):
    BiLSTM = "BiLSTM"
    Transformer = "Transformer"


class BiLSTMEncoder(ParameterBlobMixin, nn.Module):
    """
    Stacked bidirectional LSTM; every layer concatenates the forward and
    backward outputs, so output_dim == 2 * hidden_dim.

    Args:
        name: Scope name
        hidden_dim: Hidden size per direction
        embedding_dim: Input embedding size
        depth: Number of stacked layers
        dropout: Dropout between layers (only used when depth > 1)
    """

    def __init__(self, name, hidden_dim, embedding_dim, depth, dropout=0.0):
        super(BiLSTMEncoder, self).__init__()
        self.name = name
        self.hidden_dim = hidden_dim
        self.lstm = nn.LSTM(
            embedding_dim,
            hidden_dim,
            num_layers=depth,
            bidirectional=True,
            dropout=dropout if depth > 1 else 0.0,
        )

    @property
    def output_dim(self):
        return self.hidden_dim * 2

    def reset(self, batch_size):
        # nn.LSTM starts from zero state on every call
        pass

    def encode(self, embedded, batch_size, lengths=None):
        """
        Args:
            embedded: Time-major embeddings, shape (src_len, batch, embedding_dim)
            batch_size: Number of sentences
            lengths: Unused, sources in a batch share one length

        Returns:
            Tensor of shape (src_len, batch, 2 * hidden_dim)
        """
        outputs, _ = self.lstm(embedded)
        return outputs


class TransformerEncoder(ParameterBlobMixin, nn.Module):
    """
    Self-attention encoder: projection to hidden_dim (when the embedding
    size differs), sinusoidal positions, `depth` pre-norm encoder layers.

    Args:
        name: Scope name
        multi_head_num: Attention heads per layer
        hidden_dim: Model dimension, output_dim == hidden_dim
        embedding_dim: Input embedding size
        depth: Number of encoder layers
        dropout: Dropout probability in every sublayer
    """

    def __init__(self, name, multi_head_num, hidden_dim, embedding_dim, depth, dropout=0.0):
        super(TransformerEncoder, self).__init__()
        self.name = name
        self.hidden_dim = hidden_dim

        if embedding_dim != hidden_dim:
            self.input_proj = nn.Linear(embedding_dim, hidden_dim)
        else:
            self.input_proj = nn.Identity()
        self.position = PositionalEncoding(hidden_dim, dropout)

        attn = MultiHeadAttention(multi_head_num, hidden_dim, dropout)
        ff = PositionwiseFeedForward(hidden_dim, hidden_dim * 4, dropout)
        self.encoder = Encoder(EncoderLayer(hidden_dim, attn, ff, dropout), depth)

        for p in self.parameters():
            if p.dim() > 1:
                nn.init.xavier_uniform_(p)

    @property
    def output_dim(self):
        return self.hidden_dim

    def reset(self, batch_size):
        pass

    def encode(self, embedded, batch_size, lengths=None):
        """
        Args:
            embedded: Time-major embeddings, shape (src_len, batch, embedding_dim)
            batch_size: Number of sentences
            lengths: Optional true source lengths; positions past them are masked

        Returns:
            Tensor of shape (src_len, batch, hidden_dim)
        """
        x = self.input_proj(embedded.transpose(0, 1))
        x = self.position(x)

        mask = None
        if lengths is not None:
            mask = padding_mask(lengths, x.size(1), device=x.device)

        return self.encoder(x, mask).transpose(0, 1)


def build_encoder(encoder_type, hidden_dim, embedding_dim, depth, multi_head_num=8, dropout=0.0):
    """
    Construct the encoder variant named by `encoder_type`.

    Returns:
        BiLSTMEncoder or TransformerEncoder
    """
    encoder_type = EncoderType(encoder_type)
    if encoder_type is EncoderType.BiLSTM:
        return BiLSTMEncoder("BiLSTMEncoder", hidden_dim, embedding_dim, depth, dropout)
    return TransformerEncoder(
        "TransformerEncoder", multi_head_num, hidden_dim, embedding_dim, depth, dropout
    )
