"""
Model file: a pickled header followed by one tensor blob per parameter.

Layout:
    pickle(ModelMetaData.to_dict())
    np.save blobs: encoder, decoder, source embedding, target embedding,
                   output layer, classifier (class vocabularies only)

The header carries everything needed to rebuild the network shapes, so a
file can be loaded without the options it was trained with.
"""

import os
import pickle
import shutil
from dataclasses import dataclass, asdict

import torch
from loguru import logger

from src.seq2seq_data import Vocab
from .model import Seq2SeqModel


@dataclass
class ModelMetaData:
    hidden_dim: int
    embedding_dim: int
    encoder_layer_depth: int
    decoder_layer_depth: int
    multi_head_num: int
    encoder_type: str
    vocab: Vocab
    enable_coverage_model: bool = False
    shared_embeddings: bool = False

    @classmethod
    def from_options(cls, options, vocab):
        return cls(
            hidden_dim=options.hidden_dim,
            embedding_dim=options.embedding_dim,
            encoder_layer_depth=options.encoder_layer_depth,
            decoder_layer_depth=options.decoder_layer_depth,
            multi_head_num=options.multi_head_num,
            encoder_type=options.encoder_type,
            vocab=vocab,
            enable_coverage_model=options.enable_coverage_model,
            shared_embeddings=options.shared_embeddings,
        )

    def to_dict(self):
        d = {k: v for k, v in asdict(self).items() if k != "vocab"}
        d["vocab"] = self.vocab.to_dict()
        return d

    @classmethod
    def from_dict(cls, d):
        d = dict(d)
        d["vocab"] = Vocab.from_dict(d["vocab"])
        return cls(**d)


def save_model(path, model, meta):
    """
    Write `model` to `path`; an existing file is first copied to `path`.bak.
    """
    if os.path.exists(path):
        shutil.copyfile(path, f"{path}.bak")

    with open(path, "wb") as f:
        pickle.dump(meta.to_dict(), f)
        model.save_blobs(f)

    logger.info(f"Saved model to '{path}'")


def load_model(path, device="cpu", dropout=0.0):
    """
    Rebuild a model from its file.

    Returns:
        tuple: (Seq2SeqModel on `device`, ModelMetaData)
    """
    logger.info(f"Loading model from '{path}'...")
    with open(path, "rb") as f:
        meta = ModelMetaData.from_dict(pickle.load(f))
        model = Seq2SeqModel(meta, dropout=dropout)
        model.load_blobs(f)

    return model.to(torch.device(device)), meta
