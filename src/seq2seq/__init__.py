"""
Attention seq2seq networks trained data-parallel across the devices of one host.

The training engine, model file and decoding live in submodules that depend
on src.seq2seq_data:
    from src.seq2seq.engine import AttentionSeq2Seq
    from src.seq2seq.checkpoint import ModelMetaData, save_model, load_model
    from src.seq2seq.decoding import beam_search, greedy_decode
"""

from .errors import Seq2SeqError, ConfigurationError, CorpusFormatError
from .attention_unit import AttentionUnit, AttentionPreProcessResult, CoverageState
from .encoders import EncoderType, BiLSTMEncoder, TransformerEncoder, build_encoder
from .decoder import AttentionDecoder, DecoderState
from .generator import Generator
from .graph import ComputeGraph
from .replicas import ReplicaSet, ReplicaTensor
from .optim import WeightOptimizer, RMSPropOptimizer, AdamOptimizer
from .options import Seq2SeqOptions
from .model import Seq2SeqModel, load_word_embedding

__all__ = [
    # Errors
    "Seq2SeqError",
    "ConfigurationError",
    "CorpusFormatError",
    # Network parts
    "AttentionUnit",
    "AttentionPreProcessResult",
    "CoverageState",
    "EncoderType",
    "BiLSTMEncoder",
    "TransformerEncoder",
    "build_encoder",
    "AttentionDecoder",
    "DecoderState",
    "Generator",
    "Seq2SeqModel",
    "load_word_embedding",
    # Training
    "ComputeGraph",
    "ReplicaSet",
    "ReplicaTensor",
    "WeightOptimizer",
    "RMSPropOptimizer",
    "AdamOptimizer",
    "Seq2SeqOptions",
]
