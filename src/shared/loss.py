"""
Loss functions for seq2seq training.

Provides:
- MaskedCrossEntropy: token-level cross-entropy for one decoding step,
  ignoring positions past each sentence's true length
"""

import torch
import torch.nn.functional as F


class MaskedCrossEntropy:
    """
    Summed cross-entropy over the batch rows of one decoder step.

    Rows whose mask is False (the sentence already ended before this step,
    the position only holds padding) contribute nothing to the loss or its
    gradient.

    Args:
        label_smoothing: Smoothing factor passed to F.cross_entropy
                         (default: 0.0 = plain negative log-likelihood)
    """

    def __init__(self, label_smoothing=0.0):
        self.label_smoothing = label_smoothing

    def __call__(self, logits, targets, mask):
        """
        Compute the loss for one step.

        Args:
            logits: Output layer scores, shape (batch, vocab)
            targets: Target indices, shape (batch,)
            mask: Bool tensor, shape (batch,), True where the token counts

        Returns:
            tuple: (summed negative log-likelihood as float, loss node for backprop)
        """
        losses = F.cross_entropy(
            logits, targets, reduction="none", label_smoothing=self.label_smoothing
        )
        loss = (losses * mask.to(losses.dtype)).sum()

        if self.label_smoothing > 0.0:
            with torch.no_grad():
                nll = F.cross_entropy(logits, targets, reduction="none")
                cost = (nll * mask.to(nll.dtype)).sum().item()
        else:
            cost = loss.item()

        return cost, loss
