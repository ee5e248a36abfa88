"""
Options for training and running attention seq2seq models.

Every knob surfaced to callers lives here. The driver script builds a
Seq2SeqOptions from its config globals; library code only reads it.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Tuple

from src.shared.lr_scheduler import DecayLearningRate
from .encoders import EncoderType
from .errors import ConfigurationError
from .optim import AdamOptimizer, RMSPropOptimizer


OPTIMIZERS = ("Adam", "RMSProp")


@dataclass
class Seq2SeqOptions:
    # Model shape
    embedding_dim: int = 128
    hidden_dim: int = 128
    encoder_layer_depth: int = 1
    decoder_layer_depth: int = 1
    multi_head_num: int = 8
    encoder_type: str = "BiLSTM"
    enable_coverage_model: bool = False
    shared_embeddings: bool = False

    # Devices
    device_ids: Tuple[str, ...] = ("cpu",)

    # Corpus
    batch_size: int = 1
    max_src_length: int = 32
    max_tgt_length: int = 32
    shuffle_block_size: int = -1
    vocab_size: int = 45000

    # Regularization
    dropout: float = 0.0
    grad_clip: float = 3.0
    regc: float = 1e-10
    label_smoothing: float = 0.0

    # Optimizer and learning rate
    optimizer: str = "Adam"
    beta1: float = 0.9
    beta2: float = 0.98
    decay_rate: float = 0.999
    start_learning_rate: float = 0.001
    warmup_steps: int = 8000
    weights_update_count: int = 0

    # Decoding
    beam_size: int = 1
    max_decode_length: int = 100
    length_penalty: float = 0.0

    # Persistence and reporting
    model_file_path: str = "seq2seq.model"
    src_embedding_file_path: Optional[str] = None
    tgt_embedding_file_path: Optional[str] = None
    status_interval: int = 100
    save_interval: int = 1000

    def __post_init__(self):
        self.device_ids = tuple(self.device_ids)
        if not self.device_ids:
            raise ConfigurationError("At least one device id is required.")

        try:
            self.encoder_type = EncoderType(self.encoder_type).value
        except ValueError:
            raise ConfigurationError(
                f"Unknown encoder type '{self.encoder_type}', "
                f"expected one of {[e.value for e in EncoderType]}"
            ) from None

        matched = [name for name in OPTIMIZERS if name.lower() == str(self.optimizer).lower()]
        if not matched:
            raise ConfigurationError(
                f"Unknown optimizer '{self.optimizer}', expected one of {OPTIMIZERS}"
            )
        self.optimizer = matched[0]

        for name in ("embedding_dim", "hidden_dim", "encoder_layer_depth",
                     "decoder_layer_depth", "batch_size", "beam_size",
                     "max_decode_length", "warmup_steps"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"'{name}' must be positive, got {getattr(self, name)}")
        if self.weights_update_count < 0:
            raise ConfigurationError(f"weights_update_count must not be negative, got {self.weights_update_count}")

        if (self.encoder_type == EncoderType.Transformer.value
                and self.hidden_dim % self.multi_head_num != 0):
            raise ConfigurationError(
                f"hidden_dim ({self.hidden_dim}) must be divisible by "
                f"multi_head_num ({self.multi_head_num})"
            )

        if not 0.0 <= self.dropout < 1.0:
            raise ConfigurationError(f"dropout must be in [0, 1), got {self.dropout}")

    def create_optimizer(self, params):
        """Build the weight-update rule chosen for this run."""
        if self.optimizer == "Adam":
            return AdamOptimizer(
                params,
                clip_value=self.grad_clip,
                betas=(self.beta1, self.beta2),
                regc=self.regc,
            )
        return RMSPropOptimizer(
            params,
            clip_value=self.grad_clip,
            decay_rate=self.decay_rate,
            regc=self.regc,
        )

    def create_learning_rate(self, weights_update_count=0):
        return DecayLearningRate(
            self.start_learning_rate, self.warmup_steps, weights_update_count
        )

    def to_dict(self):
        return asdict(self)
