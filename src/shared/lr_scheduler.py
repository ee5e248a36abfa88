"""
Learning rate schedules for seq2seq training.

Provides:
1. Noam scheduler (Annotated Transformer style) - rate()
2. DecayLearningRate - warm-up + inverse square root decay, queried once
   per weights update by the training engine
"""


def rate(step, model_size, factor, warmup):
    """
    Noam-style learning rate scheduler from "Attention is All You Need".

    lrate = d_model^{-0.5} * min(step^{-0.5}, step * warmup^{-1.5})

    This increases linearly for the first warmup steps, and decreases
    thereafter proportionally to the inverse square root of step number.

    Args:
        step: Current training step (will default to 1 if 0 to avoid divide by zero)
        model_size: Model dimension (d_model / hidden_dim)
        factor: Scaling factor
        warmup: Number of warmup steps

    Returns:
        Learning rate for current step
    """
    if step == 0:
        step = 1
    return factor * (
        model_size ** (-0.5) * min(step ** (-0.5), step * warmup ** (-1.5))
    )


class DecayLearningRate:
    """
    Warm-up then decay schedule that peaks at `start_learning_rate`.

    lr(step) = start_lr * min(step^{-0.5}, step * warmup^{-1.5}) / warmup^{-0.5}

    which is rate() with unit model size and the factor chosen so that the
    value at step == warmup_steps equals start_lr.

    Args:
        start_learning_rate: Peak learning rate, reached after warm-up
        warmup_steps: Number of warm-up updates
        weights_update_count: Updates already done (resume from a checkpoint)
    """

    def __init__(self, start_learning_rate, warmup_steps, weights_update_count=0):
        self.start_learning_rate = start_learning_rate
        self.warmup_steps = warmup_steps
        self.weights_update_count = weights_update_count

    def get_current_learning_rate(self):
        """Advance one update and return the learning rate to apply."""
        self.weights_update_count += 1
        return self.peek(self.weights_update_count)

    def peek(self, step):
        factor = self.start_learning_rate * self.warmup_steps ** 0.5
        return rate(step, model_size=1, factor=factor, warmup=self.warmup_steps)
