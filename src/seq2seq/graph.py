"""
Per-device computation ledger for one forward/backward pass.

A ComputeGraph records the loss nodes produced while a replica runs its
forward pass and later hands them to autograd in reverse order. Named
sub-graphs only add profiler scopes; they share the root's ledger.

Usage:
    graph = ComputeGraph(device)
    with graph.scope():
        with graph.create_sub_graph("Encoder").scope():
            ...
        graph.add_loss(loss)
    graph.backward()
"""

from contextlib import contextmanager

import torch
from torch.autograd.profiler import record_function


class ComputeGraph:
    """
    Args:
        device: Device the recorded computation runs on
        needs_backward: False runs the forward pass without autograd
        name: Scope name shown in profiler traces
        parent: Enclosing graph (set by create_sub_graph)
    """

    def __init__(self, device, needs_backward=True, name="root", parent=None):
        self.device = torch.device(device)
        self.needs_backward = needs_backward
        self.name = name if parent is None else f"{parent.name}.{name}"
        self.parent = parent
        self.root = self if parent is None else parent.root

        if parent is None:
            self.losses = []
            self.scopes = []
            self._backward_done = False

    @property
    def scope_names(self):
        """Names of the scopes entered so far, in entry order."""
        return tuple(self.root.scopes)

    def create_sub_graph(self, name):
        return ComputeGraph(self.device, self.needs_backward, name, parent=self)

    @contextmanager
    def scope(self):
        """Run the enclosed code under this graph's name and grad mode."""
        self.root.scopes.append(self.name)
        with record_function(self.name), torch.set_grad_enabled(self.needs_backward):
            yield self

    def add_loss(self, loss):
        """Register a scalar loss node; returns it for chaining."""
        self.root.losses.append(loss)
        return loss

    def backward(self):
        """
        Backpropagate every registered loss, last registered first.

        Raises:
            RuntimeError: On an inference graph, or when called twice
        """
        root = self.root
        if not root.needs_backward:
            raise RuntimeError(f"Graph '{root.name}' was built without backward support")
        if root._backward_done:
            raise RuntimeError(f"Graph '{root.name}' has already been backpropagated")
        root._backward_done = True

        losses = [loss for loss in reversed(root.losses) if loss.requires_grad]
        if losses:
            torch.autograd.backward(losses)
