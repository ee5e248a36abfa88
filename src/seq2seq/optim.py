"""
Weight update rules for the canonical model copy.

Both rules normalize the accumulated gradient by the number of target tokens
in the macro-step, clip it element-wise, then apply their own step plus a
small L2 shrinkage of the weights:

    g = clip(grad / batch_size, -clip_value, clip_value)
    RMSProp: cache = decay * cache + (1 - decay) * g^2
             w -= lr * g / sqrt(cache + eps) + regc * w
    Adam:    m, v lerped towards g, g^2 with bias correction
             w -= lr * m_hat / (sqrt(v_hat) + eps) + regc * w

Usage:
    optimizer = RMSPropOptimizer(model.parameters(), clip_value=3.0)
    optimizer.update_weights(batch_size=tgt_words, learning_rate=lr)
"""

from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor

import torch


# ---- Update functions ----


def clipped_gradient(grad, batch_size, clip_value):
    """Gradient divided by `batch_size` and clipped to [-clip_value, clip_value]."""
    g = grad.float() / batch_size
    return g.clamp_(-clip_value, clip_value)


def rmsprop_update(grad, cache, decay_rate, eps):
    """RMSProp direction; updates `cache` in place."""
    cache.mul_(decay_rate).addcmul_(grad, grad, value=1 - decay_rate)
    return grad / (cache + eps).sqrt()


def adam_update(grad, buf1, buf2, step, betas, eps):
    """Standard Adam update with bias correction."""
    buf1.lerp_(grad, 1 - betas[0])
    buf2.lerp_(grad.square(), 1 - betas[1])
    buf1c = buf1 / (1 - betas[0] ** step)
    buf2c = buf2 / (1 - betas[1] ** step)
    return buf1c / (buf2c.sqrt() + eps)


# ---- Optimizers ----


class WeightOptimizer(torch.optim.Optimizer):
    """
    Base class: partitions parameters by device and updates each partition
    on its own thread. Subclasses implement _update_tensor().

    Per-tensor state (the cache plane) lives in self.state and is dropped by
    clean_cache().
    """

    def __init__(self, params, defaults):
        super(WeightOptimizer, self).__init__(params, defaults)

    def _partitions(self):
        partitions = OrderedDict()
        for group in self.param_groups:
            for p in group["params"]:
                if p.grad is None:
                    continue
                partitions.setdefault(p.device, []).append((p, group))
        return partitions

    # grad mode is thread-local, so worker threads need their own no_grad
    @torch.no_grad()
    def _update_partition(self, items, batch_size):
        for p, group in items:
            g = clipped_gradient(p.grad, batch_size, group["clip_value"])
            self._update_tensor(p, g, self.state[p], group)

    @torch.no_grad()
    def update_weights(self, batch_size, learning_rate=None):
        """
        Apply one update to every parameter that holds a gradient.

        Args:
            batch_size: Normalizer for the accumulated gradients (target tokens)
            learning_rate: Overrides the learning rate of every param group
        """
        if batch_size <= 0:
            return
        if learning_rate is not None:
            for group in self.param_groups:
                group["lr"] = learning_rate

        partitions = list(self._partitions().values())
        if len(partitions) <= 1:
            for items in partitions:
                self._update_partition(items, batch_size)
            return

        with ThreadPoolExecutor(max_workers=len(partitions)) as pool:
            futures = [pool.submit(self._update_partition, items, batch_size) for items in partitions]
            for f in futures:
                f.result()

    def step(self, closure=None):
        """torch.optim entry point: one update normalized by a batch size of 1."""
        loss = None
        if closure is not None:
            with torch.enable_grad():
                loss = closure()
        self.update_weights(batch_size=1)
        return loss

    def clean_cache(self):
        """Forget all per-tensor history (called at the start of each epoch)."""
        self.state.clear()

    def _update_tensor(self, p, grad, state, group):
        raise NotImplementedError


class RMSPropOptimizer(WeightOptimizer):
    """
    RMSProp with gradient clipping and L2 shrinkage.

    Args:
        params: Iterable of parameters or param groups
        lr: Initial learning rate (usually overridden per update)
        clip_value: Element-wise gradient clip after normalization
        decay_rate: Decay of the squared-gradient cache
        regc: L2 shrinkage coefficient
        eps: Added inside the square root
    """

    def __init__(self, params, lr=0.001, clip_value=3.0, decay_rate=0.999, regc=1e-10, eps=1e-10):
        defaults = dict(lr=lr, clip_value=clip_value, decay_rate=decay_rate, regc=regc, eps=eps)
        super(RMSPropOptimizer, self).__init__(params, defaults)

    def _update_tensor(self, p, grad, state, group):
        if len(state) == 0:
            state["cache"] = torch.zeros_like(p, dtype=torch.float32)
        update = rmsprop_update(grad, state["cache"], group["decay_rate"], group["eps"])
        delta = update * group["lr"] + p.float() * group["regc"]
        p.sub_(delta.to(p.dtype))


class AdamOptimizer(WeightOptimizer):
    """
    Adam with gradient clipping and L2 shrinkage.

    Args:
        params: Iterable of parameters or param groups
        lr: Initial learning rate (usually overridden per update)
        clip_value: Element-wise gradient clip after normalization
        betas: Decay of the first and second moment estimates
        regc: L2 shrinkage coefficient
        eps: Added to the denominator
    """

    def __init__(self, params, lr=0.001, clip_value=3.0, betas=(0.9, 0.98), regc=1e-10, eps=1e-8):
        defaults = dict(lr=lr, clip_value=clip_value, betas=betas, regc=regc, eps=eps)
        super(AdamOptimizer, self).__init__(params, defaults)

    def _update_tensor(self, p, grad, state, group):
        if len(state) == 0:
            state["exp_avg"] = torch.zeros_like(p, dtype=torch.float32)
            state["exp_avg_sq"] = torch.zeros_like(p, dtype=torch.float32)
            state["step"] = 0
        state["step"] += 1
        update = adam_update(
            grad,
            state["exp_avg"],
            state["exp_avg_sq"],
            state["step"],
            group["betas"],
            group["eps"],
        )
        delta = update * group["lr"] + p.float() * group["regc"]
        p.sub_(delta.to(p.dtype))
