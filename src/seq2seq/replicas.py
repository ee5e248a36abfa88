"""
One model replica per device, with weight broadcast and gradient reduction.

Replica 0 holds the canonical weights; it is the only copy the optimizer
touches. Every replica tensor carries an ownership tag computed once at
construction. Replica 0 owns all of its tensors. On later replicas a tensor
that is the same object as one on an earlier replica is an alias and is
skipped by broadcast and reduction; every other tensor is owned.
"""

import copy
from dataclasses import dataclass
from typing import List, Optional

import torch
import torch.nn as nn


@dataclass(frozen=True)
class ReplicaTensor:
    name: str
    tensor: torch.Tensor
    alias_of: Optional[int] = None  # device index that owns the storage

    @property
    def is_alias(self):
        return self.alias_of is not None


class ReplicaSet:
    """
    Args:
        model: Canonical model; moved to the first device
        device_ids: Device strings, e.g. ("cuda:0", "cuda:1") or ("cpu", "cpu")
    """

    def __init__(self, model: nn.Module, device_ids):
        if not device_ids:
            raise ValueError("ReplicaSet needs at least one device")
        self.devices = [torch.device(d) for d in device_ids]
        self.models: List[nn.Module] = [model.to(self.devices[0])]
        for device in self.devices[1:]:
            self.models.append(copy.deepcopy(model).to(device))

        # named_parameters() already drops tied duplicates inside one replica
        self._tensors = []
        seen = {}
        for i, replica in enumerate(self.models):
            tags = []
            for name, p in replica.named_parameters():
                if i > 0 and id(p) in seen:
                    tags.append(ReplicaTensor(name, p, alias_of=seen[id(p)]))
                else:
                    tags.append(ReplicaTensor(name, p))
                    seen[id(p)] = i
            self._tensors.append(tags)

    def __len__(self):
        return len(self.models)

    @property
    def canonical(self):
        return self.models[0]

    def tensors(self, index):
        """Ownership-tagged tensors of replica `index`, in canonical order."""
        return list(self._tensors[index])

    def canonical_parameters(self):
        return [t.tensor for t in self._tensors[0]]

    @torch.no_grad()
    def sync_weights(self, index=None):
        """
        Copy canonical weights into replica `index` (all replicas when None).
        Can run concurrently for different indices.
        """
        indices = range(1, len(self.models)) if index is None else [index]
        canonical = self._tensors[0]
        for i in indices:
            for src, dst in zip(canonical, self._tensors[i]):
                if dst.is_alias:
                    continue
                dst.tensor.copy_(src.tensor, non_blocking=True)

    @torch.no_grad()
    def sync_gradients(self):
        """Sum the gradients of all replicas into the canonical copy, in replica order."""
        canonical = self._tensors[0]
        for i in range(1, len(self.models)):
            for dst, src in zip(canonical, self._tensors[i]):
                if src.is_alias or src.tensor.grad is None:
                    continue
                grad = src.tensor.grad.to(dst.tensor.device)
                if dst.tensor.grad is None:
                    dst.tensor.grad = grad.clone()
                else:
                    dst.tensor.grad.add_(grad)

    def clear_gradients(self):
        for replica in self.models:
            replica.zero_grad(set_to_none=True)
