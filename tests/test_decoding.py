# pylint:disable=missing-function-docstring, missing-module-docstring
# pylint:disable=redefined-outer-name

import pytest
import torch
import torch.nn.functional as F

from conftest import make_meta
from src.seq2seq import Seq2SeqModel
from src.seq2seq.decoding import BeamSearchStatus, beam_search, greedy_decode, top_n_hypotheses
from src.seq2seq_data import BOS_ID, EOS_ID


@pytest.fixture(params=[False, True], ids=["plain", "coverage"])
def model(request, vocab):
    meta = make_meta(vocab, enable_coverage_model=request.param)
    return Seq2SeqModel(meta).eval()


def source_ids(n=4):
    return torch.tensor([[BOS_ID]] + [[3 + i % 3] for i in range(n)] + [[EOS_ID]])


@torch.no_grad()
def step_costs(model, src_ids, output_ids):
    """-log p of every emitted token, feeding the hypothesis back in."""
    model.reset(1)
    pre = model.pre_process(model.encode(src_ids, 1), 1)
    costs = []
    for prev, nxt in zip(output_ids[:-1], output_ids[1:]):
        log_probs = F.log_softmax(model.decode_step(torch.tensor([prev]), pre, 1), dim=-1)[0]
        costs.append(-log_probs[nxt].item())
    return costs


def test_scores_accumulate_non_negative_steps(model):
    src_ids = source_ids()
    hypotheses = beam_search(model, src_ids, beam_size=3, max_len=6)

    assert hypotheses
    for hyp in hypotheses:
        assert hyp.output_ids[0] == BOS_ID
        costs = step_costs(model, src_ids, hyp.output_ids)
        partial = 0.0
        for cost in costs:
            assert cost >= 0.0
            assert partial + cost >= partial
            partial += cost
        assert hyp.score == pytest.approx(partial, rel=1e-4, abs=1e-4)

    scores = [h.score for h in hypotheses]
    assert scores == sorted(scores)


@pytest.mark.parametrize("beam_size", [1, 3, 5, 10])
def test_result_count_is_bounded_by_reachable_hypotheses(model, beam_size):
    vocab_size = model.generator.vocab_size
    hypotheses = beam_search(model, source_ids(), beam_size=beam_size, max_len=1)
    assert len(hypotheses) == min(beam_size, vocab_size)


def test_hypotheses_stop_at_eos_or_length_cap(model):
    max_len = 4
    for hyp in beam_search(model, source_ids(), beam_size=4, max_len=max_len):
        emitted = hyp.output_ids[1:]
        assert len(emitted) <= max_len
        assert EOS_ID not in emitted[:-1]


def test_beam_of_one_equals_greedy(model):
    src_ids = source_ids(5)
    best = beam_search(model, src_ids, beam_size=1, max_len=8)[0]
    greedy = greedy_decode(model, src_ids, batch_size=1, max_len=8)[0]
    assert list(best.output_ids) == greedy


def test_greedy_decode_batch_matches_single_rows(model):
    src_ids = torch.cat([source_ids(3), source_ids(3).flip(0)], dim=1)
    batched = greedy_decode(model, src_ids, batch_size=2, max_len=6)
    for i in range(2):
        assert batched[i] == greedy_decode(model, src_ids[:, i:i + 1], batch_size=1, max_len=6)[0]


def test_top_n_keeps_first_seen_on_ties():
    a = BeamSearchStatus((1, 3), 1.0, 0)
    b = BeamSearchStatus((1, 4), 1.0, 0)
    c = BeamSearchStatus((1, 5), 0.5, 0)

    assert top_n_hypotheses([a, b, c], 2) == [c, a]
    assert top_n_hypotheses([b, a, c], 2) == [c, b]


def test_length_penalty_prefers_longer_hypotheses():
    short = BeamSearchStatus((1, 3), 2.0, 0)
    long = BeamSearchStatus((1, 3, 4, 5, 6, 7, 8, 9), 2.2, 0)

    assert top_n_hypotheses([short, long], 1) == [short]
    assert top_n_hypotheses([short, long], 1, length_penalty=1.0) == [long]
