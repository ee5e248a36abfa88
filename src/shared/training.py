"""
Training bookkeeping shared by the engine and the driver script.

Provides:
- TrainState: Track updates, sentences, words and cost within an epoch
- ProgressEvent: Periodic status snapshot handed to status watchers
- EvaluationEvent: Titled message with a severity handed to evaluation watchers
"""

import time
from dataclasses import dataclass, field


class TrainState:
    """Track sentences, words and cost processed in the current epoch."""

    def __init__(self, epoch=0):
        self.epoch: int = epoch
        self.start_time: float = time.time()
        self.sentences: int = 0        # Sentence pairs processed
        self.src_words: int = 0        # Source tokens processed
        self.tgt_words: int = 0        # Target tokens that carried a loss
        self.cost: float = 0.0         # Summed negative log-likelihood

    def add(self, cost, sentences, src_words, tgt_words):
        self.cost += cost
        self.sentences += sentences
        self.src_words += src_words
        self.tgt_words += tgt_words

    @property
    def words(self):
        return self.src_words + self.tgt_words

    @property
    def avg_cost_per_word(self):
        if self.tgt_words == 0:
            return 0.0
        return self.cost / self.tgt_words

    @property
    def elapsed(self):
        return time.time() - self.start_time


@dataclass(frozen=True)
class ProgressEvent:
    """Status after a weights update."""

    update: int
    epoch: int
    learning_rate: float
    cost_per_word: float
    avg_cost_in_total: float
    processed_sentences_in_total: int
    processed_words_in_total: int
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed(self):
        return time.time() - self.start_time

    @property
    def sentences_per_minute(self):
        minutes = self.elapsed / 60.0
        return self.processed_sentences_in_total / minutes if minutes > 0 else 0.0

    @property
    def words_per_second(self):
        seconds = self.elapsed
        return self.processed_words_in_total / seconds if seconds > 0 else 0.0

    def __str__(self):
        return (
            f"Update = {self.update}, Epoch = {self.epoch}, "
            f"LR = {self.learning_rate:.6f}, AvgCost = {self.avg_cost_in_total:.4f}, "
            f"Sent = {self.processed_sentences_in_total}, "
            f"SentPerMin = {self.sentences_per_minute:.2f}, "
            f"WordPerSec = {self.words_per_second:.2f}"
        )


@dataclass(frozen=True)
class EvaluationEvent:
    """Evaluation result or notable training outcome."""

    title: str
    message: str
    severity: str = "info"  # "info", "warning" or "error"
