# pylint:disable=missing-function-docstring, missing-module-docstring

import os
import pickle

import pytest
import torch

from conftest import make_meta
from src.seq2seq import ConfigurationError, Seq2SeqModel, load_word_embedding
from src.seq2seq.checkpoint import ModelMetaData, load_model, save_model


@pytest.mark.parametrize("overrides", [
    dict(),
    dict(enable_coverage_model=True, decoder_layer_depth=2),
    dict(encoder_type="Transformer", encoder_layer_depth=2),
])
def test_round_trip(tmp_path, vocab, overrides):
    meta = make_meta(vocab, **overrides)
    model = Seq2SeqModel(meta)
    path = str(tmp_path / "model.bin")

    save_model(path, model, meta)
    loaded, loaded_meta = load_model(path)

    assert loaded_meta.to_dict() == meta.to_dict()
    assert loaded_meta.vocab.src == vocab.src
    for (name, p), (_, q) in zip(model.named_parameters(), loaded.named_parameters()):
        assert torch.equal(p, q), name


def test_shared_embeddings_round_trip(tmp_path):
    from src.seq2seq_data import Vocab

    vocab = Vocab.build([["a", "b"]], [["b", "c"]], shared=True)
    meta = make_meta(vocab, shared_embeddings=True)
    model = Seq2SeqModel(meta)
    assert model.tgt_embedding is model.src_embedding

    path = str(tmp_path / "model.bin")
    save_model(path, model, meta)
    loaded, _ = load_model(path)

    assert loaded.tgt_embedding is loaded.src_embedding
    assert torch.equal(loaded.src_embedding.weight, model.src_embedding.weight)


def test_header_is_a_pickled_dict(tmp_path, vocab):
    meta = make_meta(vocab, hidden_dim=6)
    path = tmp_path / "model.bin"
    save_model(str(path), Seq2SeqModel(meta), meta)

    with open(path, "rb") as f:
        header = pickle.load(f)

    assert header["hidden_dim"] == 6
    assert header["encoder_type"] == "BiLSTM"
    assert header["vocab"]["tgt"][:3] == ["<END>", "<START>", "<UNK>"]
    assert ModelMetaData.from_dict(header).hidden_dim == 6


def test_existing_file_is_backed_up(tmp_path, vocab):
    meta = make_meta(vocab)
    path = str(tmp_path / "model.bin")

    save_model(path, Seq2SeqModel(meta), meta)
    first = open(path, "rb").read()
    save_model(path, Seq2SeqModel(meta), meta)

    assert os.path.exists(path + ".bak")
    assert open(path + ".bak", "rb").read() == first


def test_load_word_embedding(tmp_path, vocab):
    model = Seq2SeqModel(make_meta(vocab, embedding_dim=3))
    path = tmp_path / "vectors.txt"
    path.write_text("2 3\na 0.1 0.2 0.3\nunknown 1 1 1\n", encoding="utf-8")

    loaded = load_word_embedding(str(path), model.src_embedding, vocab.src.word_to_index)

    assert loaded == 1
    row = model.src_embedding.weight[vocab.get_source_word_index("a")]
    assert torch.allclose(row, torch.tensor([0.1, 0.2, 0.3]))


def test_load_word_embedding_size_mismatch(tmp_path, vocab):
    model = Seq2SeqModel(make_meta(vocab, embedding_dim=4))
    path = tmp_path / "vectors.txt"
    path.write_text("a 0.1 0.2 0.3\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_word_embedding(str(path), model.src_embedding, vocab.src.word_to_index)
