# pylint:disable=missing-function-docstring, missing-module-docstring
# pylint:disable=redefined-outer-name

import pytest
import torch

from src.seq2seq import Seq2SeqOptions
from src.seq2seq.checkpoint import ModelMetaData
from src.seq2seq_data import Vocab


SRC_SENTENCES = [
    "a b c".split(),
    "b c d e".split(),
    "c d".split(),
    "e a b".split(),
]
TGT_SENTENCES = [
    "x y".split(),
    "y z w".split(),
    "z".split(),
    "w x y".split(),
]


@pytest.fixture(autouse=True)
def fixed_seed():
    torch.manual_seed(0)


@pytest.fixture
def vocab():
    return Vocab.build(SRC_SENTENCES, TGT_SENTENCES)


def make_options(tmp_path, **overrides):
    values = dict(
        embedding_dim=8,
        hidden_dim=8,
        multi_head_num=2,
        device_ids=("cpu",),
        batch_size=2,
        warmup_steps=10,
        status_interval=1,
        save_interval=1000,
        model_file_path=str(tmp_path / "seq2seq.model"),
    )
    values.update(overrides)
    return Seq2SeqOptions(**values)


def make_meta(vocab, **overrides):
    values = dict(
        hidden_dim=8,
        embedding_dim=8,
        encoder_layer_depth=1,
        decoder_layer_depth=1,
        multi_head_num=2,
        encoder_type="BiLSTM",
        vocab=vocab,
    )
    values.update(overrides)
    return ModelMetaData(**values)


def write_parallel_corpus(directory, pairs, name="train", src_lang="src", tgt_lang="tgt"):
    directory.mkdir(parents=True, exist_ok=True)
    src_path = directory / f"{name}.{src_lang}.snt"
    tgt_path = directory / f"{name}.{tgt_lang}.snt"
    src_path.write_text("".join(src + "\n" for src, _ in pairs), encoding="utf-8")
    tgt_path.write_text("".join(tgt + "\n" for _, tgt in pairs), encoding="utf-8")
    return src_path, tgt_path
