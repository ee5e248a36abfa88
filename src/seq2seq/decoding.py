"""
Inference-time decoding for attention seq2seq models.

Provides:
- beam_search: keeps the `beam_size` best hypotheses by accumulated
  negative log-likelihood
- greedy_decode: batched argmax decoding (same result as a beam of one)

Hypotheses are immutable; the decoder state each one continues from lives in
a StateArena and is referenced by index.
"""

import heapq
from typing import List, NamedTuple, Tuple

import torch
import torch.nn.functional as F

from src.seq2seq_data import BOS_ID, EOS_ID


class BeamSearchStatus(NamedTuple):
    output_ids: Tuple[int, ...]
    score: float        # accumulated -log p, lower is better
    state_index: int    # decoder state to continue from

    @property
    def last_id(self):
        return self.output_ids[-1]


class StateArena:
    """Append-only store of decoder state snapshots."""

    def __init__(self):
        self._states = []

    def add(self, state):
        self._states.append(state)
        return len(self._states) - 1

    def __getitem__(self, index):
        return self._states[index]

    def __len__(self):
        return len(self._states)


def length_normalized(score, length, length_penalty):
    """GNMT length penalty: score / ((5 + length) / 6) ** length_penalty."""
    return score / (((5.0 + length) / 6.0) ** length_penalty)


def top_n_hypotheses(candidates, n, length_penalty=0.0):
    """
    The `n` best hypotheses, best first. Equal scores keep their input order.

    With length_penalty > 0 hypotheses are ranked by their length-normalized
    score; the stored score stays the raw sum.
    """
    if length_penalty > 0.0:
        key = lambda h: length_normalized(h.score, len(h.output_ids), length_penalty)
    else:
        key = lambda h: h.score
    return heapq.nsmallest(n, candidates, key=key)


def _encode_source(model, src_ids, batch_size):
    model.reset(batch_size)
    encoded = model.encode(src_ids, batch_size)
    return model.pre_process(encoded, batch_size)


@torch.no_grad()
def beam_search(model, src_ids, beam_size, max_len, start_symbol=BOS_ID, end_symbol=EOS_ID,
                length_penalty=0.0) -> List[BeamSearchStatus]:
    """
    Beam search over one source sentence.

    Args:
        model: Seq2SeqModel
        src_ids: Source ids, shape (src_len, 1)
        beam_size: Hypotheses kept after every step
        max_len: Maximum number of emitted tokens
        start_symbol: Id fed to the decoder first
        end_symbol: Id that ends a hypothesis
        length_penalty: Rank by length-normalized score when > 0

    Returns:
        Final hypotheses, best first
    """
    device = src_ids.device
    pre = _encode_source(model, src_ids, 1)
    vocab_size = model.generator.vocab_size

    arena = StateArena()
    hypotheses = [BeamSearchStatus((start_symbol,), 0.0, arena.add(model.decoder.get_state()))]

    finished = False
    output_length = 0
    while not finished and output_length < max_len:
        finished = True
        candidates = []
        for hyp in hypotheses:
            if hyp.last_id == end_symbol or len(hyp.output_ids) > max_len:
                candidates.append(hyp)
                continue

            finished = False
            model.decoder.set_state(arena[hyp.state_index])
            prev = torch.tensor([hyp.last_id], dtype=torch.long, device=device)
            log_probs = F.log_softmax(model.decode_step(prev, pre, 1), dim=-1)[0]
            top_log_probs, top_ids = log_probs.topk(min(beam_size, vocab_size))

            state_index = arena.add(model.decoder.get_state())
            for log_prob, idx in zip(top_log_probs.tolist(), top_ids.tolist()):
                candidates.append(
                    BeamSearchStatus(hyp.output_ids + (idx,), hyp.score - log_prob, state_index)
                )

        hypotheses = top_n_hypotheses(candidates, beam_size, length_penalty)
        output_length += 1

    return hypotheses


@torch.no_grad()
def greedy_decode(model, src_ids, batch_size, max_len, start_symbol=BOS_ID, end_symbol=EOS_ID):
    """
    Pick the most likely token at every step for a batch of sources.

    Args:
        model: Seq2SeqModel
        src_ids: Source ids, shape (src_len, batch_size)
        batch_size: Number of sentences
        max_len: Maximum number of emitted tokens

    Returns:
        List of id lists, each starting with start_symbol
    """
    pre = _encode_source(model, src_ids, batch_size)

    outputs = [[start_symbol] for _ in range(batch_size)]
    done = [False] * batch_size
    prev = torch.full((batch_size,), start_symbol, dtype=torch.long, device=src_ids.device)

    for _ in range(max_len):
        if all(done):
            break
        next_ids = model.decode_step(prev, pre, batch_size).argmax(dim=-1)
        for i, idx in enumerate(next_ids.tolist()):
            if done[i]:
                continue
            outputs[i].append(idx)
            done[i] = idx == end_symbol
        prev = next_ids

    return outputs
