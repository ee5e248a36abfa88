# pylint:disable=missing-function-docstring, missing-module-docstring
# pylint:disable=redefined-outer-name, protected-access

import os
import random
from collections import Counter

import pytest

from conftest import write_parallel_corpus
from src.seq2seq.errors import ConfigurationError, CorpusFormatError
from src.seq2seq_data import (
    BOS,
    BOS_ID,
    EOS,
    EOS_ID,
    UNK_ID,
    ClassificationCorpus,
    ParallelCorpus,
    SequenceLabelingCorpus,
    SntPair,
    SntPairBatch,
    Vocab,
    VocabSide,
    pad_sentences,
)


# ---- Vocabulary ----


def test_reserved_tokens_take_first_ids(vocab):
    assert vocab.get_source_word_index(EOS) == EOS_ID
    assert vocab.get_source_word_index(BOS) == BOS_ID
    assert vocab.get_target_word_index(EOS) == EOS_ID
    assert vocab.get_source_word_index("never-seen") == UNK_ID


def test_vocab_side_is_capped_by_frequency():
    side = VocabSide.from_counter(Counter({"a": 5, "b": 3, "c": 1}), vocab_size=5)
    assert len(side) == 5
    assert "a" in side and "b" in side
    assert "c" not in side


def test_vocab_dict_round_trip(vocab):
    restored = Vocab.from_dict(vocab.to_dict())
    assert restored.src == vocab.src
    assert restored.tgt == vocab.tgt
    assert restored.convert_target_ids_to_string([0, 1]) == [EOS, BOS]


def test_shared_vocab_check(vocab):
    with pytest.raises(ConfigurationError):
        vocab.check_shared()

    shared = Vocab.build([["a", "b"]], [["b", "c"]], shared=True)
    shared.check_shared()
    assert shared.source_word_size == shared.target_word_size


# ---- Padding ----


def test_pad_sentences_returns_original_lengths():
    sentences = [["a"], ["a", "b", "c"], []]
    lengths = pad_sentences(sentences)

    assert lengths == [1, 3, 0]
    assert all(len(s) == 3 for s in sentences)
    assert sentences[0] == ["a", EOS, EOS]


def test_pad_sentences_is_idempotent():
    sentences = [["a"], ["a", "b", "c"]]
    pad_sentences(sentences, max_len=4)
    once = [list(s) for s in sentences]
    pad_sentences(sentences, max_len=4)
    assert sentences == once


# ---- Parallel corpus ----


def test_four_pairs_make_two_homogeneous_batches(tmp_path):
    pairs = [
        ("a b c", "x"),
        ("a b d e f", "y"),
        ("c d e", "z"),
        ("b c d e f", "w"),
    ]
    write_parallel_corpus(tmp_path, pairs)
    corpus = ParallelCorpus(str(tmp_path), "src", "tgt", batch_size=2, seed=1)

    batches = list(corpus)

    assert len(batches) == 2
    for batch in batches:
        assert batch.batch_size == 2
        assert len({len(p.src_snt) for p in batch}) == 1
    seen = sorted(" ".join(p.src_snt[1:-1]) for b in batches for p in b)
    assert seen == sorted(src for src, _ in pairs)


def test_one_pass_covers_every_retained_pair_once(tmp_path):
    rng = random.Random(3)
    pairs = []
    for i in range(60):
        n = rng.randint(1, 6)
        pairs.append((" ".join(f"s{i}w{j}" for j in range(n)), f"t{i}"))
    pairs.append(("too long source sentence for the limit here", "t"))
    pairs.append(("", "empty source"))
    write_parallel_corpus(tmp_path, pairs)

    corpus = ParallelCorpus(
        str(tmp_path), "src", "tgt", batch_size=4, max_src_length=6, shuffle_block_size=16, seed=7
    )
    batches = list(corpus)

    assert sum(b.batch_size for b in batches) == 60
    assert corpus.corpus_size == 60
    for batch in batches:
        assert 1 <= batch.batch_size <= 4
        src_snts = batch.src_snts()
        pad_sentences(src_snts)
        assert len({len(s) for s in src_snts}) == 1
        assert len({len(p.src_snt) for p in batch}) == 1

    seen = Counter(" ".join(p.src_snt[1:-1]) for b in batches for p in b)
    assert seen == Counter(src for src, _ in pairs[:60])


def test_pairs_are_wrapped_with_bos_and_eos(tmp_path):
    write_parallel_corpus(tmp_path, [("A B", "X Y")])
    batch = next(iter(ParallelCorpus(str(tmp_path), "src", "tgt")))
    pair = batch.snt_pairs[0]

    assert pair.src_snt == [BOS, "a", "b", EOS]
    assert pair.tgt_snt == ["x", "y", EOS]


def test_descending_bucket_order(tmp_path):
    corpus = ParallelCorpus(src_files=[], tgt_files=[], bucket_order="descending", seed=0)
    pairs = [SntPair(["a"], ["x"])] + [SntPair(["a", "b"], ["x"])] * 3 + [SntPair(["a", "b", "c"], ["x"])] * 2

    shuffled = corpus._shuffle_block(pairs)

    assert [len(p.src_snt) for p in shuffled] == [2, 2, 2, 3, 3, 1]


def test_shuffle_files_are_removed_after_a_pass(tmp_path):
    write_parallel_corpus(tmp_path / "corpus", [("a b", "x"), ("c d", "y")])
    corpus = ParallelCorpus(str(tmp_path / "corpus"), "src", "tgt", temp_dir=str(tmp_path))

    shuffled = corpus.shuffle_all()
    assert shuffled.exists()
    assert corpus.shuffle_all(reuse_existing=True) is shuffled

    list(corpus)
    assert not os.path.exists(shuffled.src_path)
    assert not os.path.exists(shuffled.tgt_path)


def test_every_new_pass_is_reshuffled(tmp_path):
    pairs = [(f"w{i}", f"t{i}") for i in range(40)]
    write_parallel_corpus(tmp_path / "corpus", pairs)
    corpus = ParallelCorpus(str(tmp_path / "corpus"), "src", "tgt", batch_size=8, seed=0, temp_dir=str(tmp_path))

    orders = []
    for _ in range(2):
        corpus.shuffle_all(reuse_existing=False)
        orders.append([p.src_snt[1] for batch in corpus for p in batch])

    assert orders[0] != orders[1]
    assert sorted(orders[0]) == sorted(orders[1]) == sorted(src for src, _ in pairs)


def test_close_removes_unconsumed_shuffle(tmp_path):
    write_parallel_corpus(tmp_path / "corpus", [("a b", "x")])
    with ParallelCorpus(str(tmp_path / "corpus"), "src", "tgt", temp_dir=str(tmp_path)) as corpus:
        shuffled = corpus.shuffle_all()
    assert not shuffled.exists()


def test_mismatched_line_counts_raise(tmp_path):
    src_path, tgt_path = write_parallel_corpus(tmp_path, [("a b", "x"), ("c", "y")])
    tgt_path.write_text("x\n", encoding="utf-8")
    corpus = ParallelCorpus(src_files=[str(src_path)], tgt_files=[str(tgt_path)])

    with pytest.raises(CorpusFormatError):
        list(corpus)


def test_build_vocab_from_corpus(tmp_path):
    write_parallel_corpus(tmp_path, [("A b", "x"), ("b c", "y x")])
    vocab = ParallelCorpus(str(tmp_path), "src", "tgt").build_vocab()

    assert vocab.source_word_size == 3 + 3
    assert vocab.target_word_size == 3 + 2
    assert vocab.get_source_word_index("a") != UNK_ID


# ---- Sequence labeling ----


def test_sequence_labeling_corpus(tmp_path):
    path = tmp_path / "labels.txt"
    path.write_text("John\tB-PER\nlives\tO\n\nParis LOC\n", encoding="utf-8")

    with SequenceLabelingCorpus(str(path), batch_size=4) as corpus:
        work_dir = corpus._work_dir
        pairs = [p for batch in corpus for p in batch]

        assert len(pairs) == 2
        for pair in pairs:
            assert len(pair.src_snt) == len(pair.tgt_snt)
        by_src = {tuple(p.src_snt): p.tgt_snt for p in pairs}
        assert by_src[(BOS, "john", "lives", EOS)] == [BOS, "b-per", "o", EOS]

    assert not os.path.exists(work_dir)


def test_sequence_labeling_line_without_tag(tmp_path):
    path = tmp_path / "labels.txt"
    path.write_text("John B-PER\nlives\n", encoding="utf-8")

    with pytest.raises(CorpusFormatError):
        SequenceLabelingCorpus(str(path))


# ---- Classification ----


CLS_PAIRS = [
    ("a b", "Pos\tx y"),
    ("b c", "Neg z"),
    ("c a", "Pos"),
]


def test_classification_corpus_splits_off_the_label(tmp_path):
    write_parallel_corpus(tmp_path, CLS_PAIRS)
    with ClassificationCorpus(str(tmp_path), "src", "tgt", batch_size=4) as corpus:
        pairs = {tuple(p.src_snt): p for batch in corpus for p in batch}

    assert len(pairs) == 3
    assert pairs[(BOS, "a", "b", EOS)].cls == "Pos"
    assert pairs[(BOS, "a", "b", EOS)].tgt_snt == ["x", "y", EOS]
    assert pairs[(BOS, "b", "c", EOS)].tgt_snt == ["z", EOS]
    assert pairs[(BOS, "c", "a", EOS)].tgt_snt == [EOS]


def test_classification_batches_carry_labels(tmp_path):
    write_parallel_corpus(tmp_path, CLS_PAIRS)
    with ClassificationCorpus(str(tmp_path), "src", "tgt", batch_size=4) as corpus:
        labels = sorted(l for batch in corpus for l in batch.cls_labels())

    assert labels == ["Neg", "Pos", "Pos"]


def test_unlabeled_batch_has_no_class_labels():
    batch = SntPairBatch([SntPair(["a"], ["x"], "Pos"), SntPair(["b"], ["y"])])
    assert batch.cls_labels() is None


def test_classification_build_vocab(tmp_path):
    write_parallel_corpus(tmp_path, CLS_PAIRS)
    vocab = ClassificationCorpus(str(tmp_path), "src", "tgt").build_vocab()

    assert vocab.class_size == 3 + 2
    assert vocab.cls.items[3] == "Pos"
    assert vocab.get_class_index("Neg") != UNK_ID
    # labels stay out of the target side
    assert "pos" not in vocab.tgt
    assert vocab.target_word_size == 3 + 3
    assert Vocab.from_dict(vocab.to_dict()).cls == vocab.cls


def test_label_does_not_count_towards_target_length(tmp_path):
    write_parallel_corpus(tmp_path, [("a", "Pos x y"), ("b", "Neg x y z")])
    with ClassificationCorpus(str(tmp_path), "src", "tgt", max_tgt_length=2) as corpus:
        labels = [l for batch in corpus for l in batch.cls_labels()]

    assert labels == ["Pos"]


def test_target_line_without_label_raises(tmp_path):
    write_parallel_corpus(tmp_path, [("a b", "Pos x"), ("c", "")])
    corpus = ClassificationCorpus(str(tmp_path), "src", "tgt")

    with pytest.raises(CorpusFormatError):
        corpus.build_vocab()


def test_vocab_without_classes():
    vocab = Vocab.build([["a"]], [["x"]])

    assert vocab.class_size == 0
    with pytest.raises(ConfigurationError):
        vocab.get_class_index("Pos")
