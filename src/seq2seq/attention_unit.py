"""
Additive attention between decoder state and encoder outputs.

score(s, h_j) = V^T tanh(h_j Ua + bUa + s Wa + bWa [+ c_j Wc + bWc])
context(s)   = sum_j softmax_j(score) h_j

The optional coverage model keeps a small LSTM cell per source position
(batch * src_len virtual rows). Its hidden state biases the scores, and
after each step the cell consumes the attention weight, the encoder output
and the decoder state of that position, so it tracks how much attention a
position already received.

Reference: Bahdanau et al. 2015; Tu et al. 2016 (coverage)
"""

from typing import NamedTuple

import torch
import torch.nn as nn
from torch.autograd.profiler import record_function

from .tensor_io import ParameterBlobMixin


class AttentionPreProcessResult(NamedTuple):
    """Per-source precomputation reused by every decoding step."""

    raw_inputs: torch.Tensor          # encoder outputs as given (time-major)
    inputs_batch_first: torch.Tensor  # (batch, src_len, context_dim)
    uhs: torch.Tensor                 # (batch, src_len, hidden_dim)


class CoverageState(NamedTuple):
    hidden: torch.Tensor  # (batch * src_len, COVERAGE_MODEL_DIM)
    cell: torch.Tensor


class AttentionUnit(ParameterBlobMixin, nn.Module):
    """
    Additive attention with an optional coverage model.

    Parameters are registered, and therefore saved, in the order
    Ua, Wa, bUa, bWa, V, then Wc, bWc and the coverage cell.

    Args:
        name: Scope name used in profiler traces
        hidden_dim: Decoder state size and attention projection size
        context_dim: Encoder output size
        enable_coverage_model: Track cumulative attention per source position
    """

    COVERAGE_MODEL_DIM = 8

    def __init__(self, name, hidden_dim, context_dim, enable_coverage_model=False):
        super(AttentionUnit, self).__init__()
        self.name = name
        self.hidden_dim = hidden_dim
        self.context_dim = context_dim
        self.enable_coverage_model = enable_coverage_model

        self.Ua = nn.Parameter(torch.empty(context_dim, hidden_dim))
        self.Wa = nn.Parameter(torch.empty(hidden_dim, hidden_dim))
        self.bUa = nn.Parameter(torch.zeros(1, hidden_dim))
        self.bWa = nn.Parameter(torch.zeros(1, hidden_dim))
        self.V = nn.Parameter(torch.empty(hidden_dim, 1))

        if enable_coverage_model:
            self.Wc = nn.Parameter(torch.empty(self.COVERAGE_MODEL_DIM, hidden_dim))
            self.bWc = nn.Parameter(torch.zeros(1, hidden_dim))
            self.coverage = nn.LSTMCell(1 + context_dim + hidden_dim, self.COVERAGE_MODEL_DIM)
        self.coverage_state = None

        for p in (self.Ua, self.Wa, self.V) + ((self.Wc,) if enable_coverage_model else ()):
            nn.init.xavier_uniform_(p)

    def reset_coverage(self, rows, device=None):
        """Zero the coverage cell state for `rows` source positions."""
        device = device if device is not None else self.Ua.device
        zeros = torch.zeros(rows, self.COVERAGE_MODEL_DIM, device=device, dtype=self.Ua.dtype)
        self.coverage_state = CoverageState(zeros, zeros.clone())

    def pre_process(self, inputs, batch_size):
        """
        Precompute keys for one batch of encoded sources.

        Args:
            inputs: Time-major encoder outputs, shape (src_len, batch, context_dim)
                    or (src_len * batch, context_dim)
            batch_size: Number of sentences in the batch

        Returns:
            AttentionPreProcessResult
        """
        context_dim = inputs.size(-1)
        src_len = inputs.numel() // (batch_size * context_dim)

        batch_first = (
            inputs.reshape(src_len, batch_size, context_dim).transpose(0, 1).contiguous()
        )
        uhs = torch.addmm(self.bUa, batch_first.view(-1, context_dim), self.Ua)
        uhs = uhs.view(batch_size, src_len, -1)

        if self.enable_coverage_model:
            self.reset_coverage(batch_size * src_len, device=inputs.device)

        return AttentionPreProcessResult(inputs, batch_first, uhs)

    def attention_weights(self, state, pre, batch_size):
        """
        Attention distribution over source positions.

        Args:
            state: Decoder state, shape (batch, hidden_dim)
            pre: Result of pre_process() for the same batch
            batch_size: Number of sentences

        Returns:
            Tensor of shape (batch, src_len); rows are non-negative and sum to 1
        """
        src_len = pre.inputs_batch_first.size(1)

        wc = torch.addmm(self.bWa, state, self.Wa)
        wc_exp = wc.view(batch_size, 1, -1).expand(batch_size, src_len, wc.size(-1))

        ggs = pre.uhs + wc_exp
        if self.enable_coverage_model:
            w_coverage = torch.addmm(self.bWc, self.coverage_state.hidden, self.Wc)
            ggs = ggs + w_coverage.view(batch_size, src_len, -1)
        ggs = torch.tanh(ggs)

        scores = ggs.reshape(batch_size * src_len, -1).mm(self.V).view(batch_size, src_len)

        # exp(x - rowmax) keeps the largest exponent at 1
        scores = scores - scores.max(dim=-1, keepdim=True).values.detach()
        weights = scores.exp()
        return weights / weights.sum(dim=-1, keepdim=True)

    def perform(self, state, pre, batch_size):
        """
        Compute the context vector for one decoder step.

        With coverage enabled this also advances the coverage cell by one
        step; nothing else outside the unit is modified.

        Returns:
            Context tensor, shape (batch, context_dim)
        """
        with record_function(self.name):
            weights = self.attention_weights(state, pre, batch_size)
            contexts = torch.bmm(weights.unsqueeze(1), pre.inputs_batch_first).squeeze(1)

            if self.enable_coverage_model:
                src_len = pre.inputs_batch_first.size(1)
                state_exp = state.view(batch_size, 1, -1).expand(batch_size, src_len, state.size(-1))
                concat = torch.cat(
                    [
                        weights.reshape(-1, 1),
                        pre.inputs_batch_first.reshape(batch_size * src_len, -1),
                        state_exp.reshape(batch_size * src_len, -1),
                    ],
                    dim=1,
                )
                hidden, cell = self.coverage(concat, tuple(self.coverage_state))
                self.coverage_state = CoverageState(hidden, cell)

            return contexts
