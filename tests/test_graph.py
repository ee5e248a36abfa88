# pylint:disable=missing-function-docstring, missing-module-docstring

import pytest
import torch

from src.seq2seq import ComputeGraph


def test_backward_accumulates_every_loss():
    w = torch.ones(3, requires_grad=True)
    graph = ComputeGraph("cpu")

    with graph.scope():
        with graph.create_sub_graph("Decoder").scope():
            graph.add_loss((w * 2).sum())
            graph.add_loss((w * 3).sum())
    graph.backward()

    assert torch.equal(w.grad, torch.full((3,), 5.0))
    assert graph.scope_names == ("root", "root.Decoder")


def test_backward_is_single_use():
    w = torch.ones(2, requires_grad=True)
    graph = ComputeGraph("cpu")
    with graph.scope():
        graph.add_loss(w.sum())
    graph.backward()

    with pytest.raises(RuntimeError):
        graph.backward()


def test_inference_graph_has_no_autograd():
    w = torch.ones(2, requires_grad=True)
    graph = ComputeGraph("cpu", needs_backward=False)

    with graph.scope():
        out = (w * 2).sum()

    assert not out.requires_grad
    with pytest.raises(RuntimeError):
        graph.backward()


def test_sub_graph_shares_the_ledger():
    w = torch.ones(2, requires_grad=True)
    graph = ComputeGraph("cpu")
    sub = graph.create_sub_graph("Encoder")

    with sub.scope():
        sub.add_loss(w.sum())

    assert sub.root is graph
    assert len(graph.losses) == 1
    sub.backward()
    assert torch.equal(w.grad, torch.ones(2))


def test_scope_names_are_shared_by_sub_graphs():
    graph = ComputeGraph("cpu", needs_backward=False, name="Device0")
    encoder = graph.create_sub_graph("Encoder")

    with graph.scope():
        with encoder.scope():
            pass
        with encoder.create_sub_graph("Layer0").scope():
            pass

    assert encoder.name == "Device0.Encoder"
    assert encoder.scope_names == graph.scope_names
    assert graph.scope_names == ("Device0", "Device0.Encoder", "Device0.Encoder.Layer0")
