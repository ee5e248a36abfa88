"""
Sequence-to-sequence data loading utilities.

Provides:
- Vocabulary (source / target / optional class side, reserved tokens)
- Sentence pairs and batches
- ParallelCorpus: length-bucketed streaming shuffler over parallel files
- SequenceLabelingCorpus: "token tag" files converted to a parallel corpus
- ClassificationCorpus: parallel files whose target lines start with a class label
- pad_sentences: in-place EOS padding

The corpus never holds more than one shuffle block in memory. Each pass
writes the shuffled corpus to temp files and streams batches from them;
the files are removed when the pass ends.
"""

import os
import glob
import random
import shutil
import tempfile
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import zip_longest
from types import MappingProxyType
from typing import Iterable, Iterator, List, Optional, Sequence

from loguru import logger

from src.seq2seq.errors import ConfigurationError, CorpusFormatError


EOS = "<END>"
BOS = "<START>"
UNK = "<UNK>"

RESERVED_TOKENS = (EOS, BOS, UNK)  # ids 0, 1, 2 on every side

EOS_ID = 0
BOS_ID = 1
UNK_ID = 2


def is_reserved_token(token):
    return token in RESERVED_TOKENS


# =============================================================================
# Vocabulary
# =============================================================================

class VocabSide:
    """
    Immutable token <-> index map for one side of the corpus.

    Reserved tokens always take ids 0..2, other tokens follow in the given
    order without duplicates.
    """

    def __init__(self, tokens: Iterable[str] = ()):
        itos = list(RESERVED_TOKENS)
        seen = set(itos)
        for tok in tokens:
            if tok not in seen:
                seen.add(tok)
                itos.append(tok)

        self._itos = tuple(itos)
        self._stoi = MappingProxyType({tok: i for i, tok in enumerate(itos)})
        self._logged_unk = set()

    @classmethod
    def from_counter(cls, counter: Counter, vocab_size: int = -1):
        """Keep the most frequent tokens (all of them when vocab_size <= 0)."""
        items = [tok for tok, _ in counter.most_common() if not is_reserved_token(tok)]
        if vocab_size > 0:
            items = items[: max(vocab_size - len(RESERVED_TOKENS), 0)]
        return cls(items)

    def __len__(self):
        return len(self._itos)

    def __contains__(self, token):
        return token in self._stoi

    def __eq__(self, other):
        return isinstance(other, VocabSide) and self._itos == other._itos

    def __hash__(self):
        return hash(self._itos)

    def __deepcopy__(self, memo):
        # immutable, replicas share one instance
        return self

    def index(self, token: str, log_unk: bool = False) -> int:
        idx = self._stoi.get(token)
        if idx is None:
            if log_unk and token not in self._logged_unk:
                self._logged_unk.add(token)
                logger.debug(f"Unknown token '{token}' mapped to {UNK}")
            return UNK_ID
        return idx

    def __call__(self, tokens: Iterable[str]) -> List[int]:
        """Convert tokens to indices."""
        return [self.index(tok) for tok in tokens]

    def token(self, idx: int) -> str:
        return self._itos[idx]

    @property
    def items(self):
        return self._itos

    @property
    def word_to_index(self):
        return self._stoi


class Vocab:
    """
    Source, target and (optional) class vocabularies of one model.

    Built once, then only read; replicas on every device share the same
    instance.
    """

    def __init__(self, src: VocabSide, tgt: VocabSide, cls: Optional[VocabSide] = None):
        self.src = src
        self.tgt = tgt
        self.cls = cls

    def __deepcopy__(self, memo):
        return self

    @classmethod
    def build(
        cls,
        src_sentences: Iterable[Sequence[str]],
        tgt_sentences: Iterable[Sequence[str]],
        vocab_size: int = 45000,
        shared: bool = False,
        cls_sentences: Optional[Iterable[Sequence[str]]] = None,
    ):
        """
        Build vocabularies from token sequences.

        Args:
            src_sentences: Source token lists
            tgt_sentences: Target token lists
            vocab_size: Cap per side, reserved tokens included
            shared: Build one vocabulary from both sides and use it twice
            cls_sentences: Optional class label lists

        Returns:
            Vocab
        """
        src_counter = Counter()
        for snt in src_sentences:
            src_counter.update(snt)
        tgt_counter = Counter()
        for snt in tgt_sentences:
            tgt_counter.update(snt)

        if shared:
            src = VocabSide.from_counter(src_counter + tgt_counter, vocab_size)
            tgt = src
        else:
            src = VocabSide.from_counter(src_counter, vocab_size)
            tgt = VocabSide.from_counter(tgt_counter, vocab_size)

        labels = None
        if cls_sentences is not None:
            cls_counter = Counter()
            for snt in cls_sentences:
                cls_counter.update(snt)
            labels = VocabSide.from_counter(cls_counter)

        logger.info(f"Built vocabulary: source = {len(src)}, target = {len(tgt)}, shared = {shared}")
        if labels is not None:
            logger.info(f"Built class vocabulary: {len(labels)} labels")
        return cls(src, tgt, labels)

    @property
    def source_word_size(self):
        return len(self.src)

    @property
    def target_word_size(self):
        return len(self.tgt)

    @property
    def class_size(self):
        return len(self.cls) if self.cls is not None else 0

    @property
    def is_shared(self):
        return self.src is self.tgt or self.src == self.tgt

    def get_source_word_index(self, word, log_unk=False):
        return self.src.index(word, log_unk=log_unk)

    def get_target_word_index(self, word, log_unk=False):
        return self.tgt.index(word, log_unk=log_unk)

    def convert_target_ids_to_string(self, ids):
        return [self.tgt.token(i) for i in ids]

    def get_class_index(self, label):
        """
        Raises:
            ConfigurationError: If the model has no class vocabulary
        """
        if self.cls is None:
            raise ConfigurationError("This vocabulary has no class labels.")
        return self.cls.index(label)

    def convert_class_id_to_string(self, idx):
        return self.cls.token(idx)

    def check_shared(self):
        """
        Raises:
            ConfigurationError: If shared embeddings were requested for
                                different source and target vocabularies
        """
        if not self.is_shared:
            raise ConfigurationError(
                "The source and target vocabularies must be identical if their embeddings are shared."
            )

    def to_dict(self):
        return {
            "src": list(self.src.items),
            "tgt": list(self.tgt.items),
            "cls": list(self.cls.items) if self.cls is not None else None,
        }

    @classmethod
    def from_dict(cls, d):
        src = VocabSide(d["src"])
        tgt = src if d["tgt"] == d["src"] else VocabSide(d["tgt"])
        labels = VocabSide(d["cls"]) if d.get("cls") is not None else None
        return cls(src, tgt, labels)


# =============================================================================
# Sentence pairs and batches
# =============================================================================

@dataclass
class SntPair:
    src_snt: List[str]
    tgt_snt: List[str]
    cls: Optional[str] = None


class SntPairBatch:
    """Sentence pairs of one training step; all sources share one length."""

    def __init__(self, snt_pairs: List[SntPair]):
        self.snt_pairs = snt_pairs

    @property
    def batch_size(self):
        return len(self.snt_pairs)

    def src_snts(self):
        """Copies of the source token lists (safe to pad in place)."""
        return [list(p.src_snt) for p in self.snt_pairs]

    def tgt_snts(self):
        return [list(p.tgt_snt) for p in self.snt_pairs]

    def cls_labels(self):
        """Class label of every pair, or None when the batch is unlabeled."""
        labels = [p.cls for p in self.snt_pairs]
        return None if any(l is None for l in labels) else labels

    def __len__(self):
        return len(self.snt_pairs)

    def __iter__(self):
        return iter(self.snt_pairs)


def pad_sentences(sentences: List[List[str]], max_len: int = -1, pad_token: str = EOS) -> List[int]:
    """
    Pad sentences in place to the same length.

    Args:
        sentences: Token lists, modified in place
        max_len: Target length; the longest sentence when <= 0
        pad_token: Token appended (default: EOS)

    Returns:
        Lengths of the sentences before padding
    """
    if max_len <= 0:
        max_len = max((len(s) for s in sentences), default=0)

    original_lengths = []
    for s in sentences:
        original_lengths.append(len(s))
        s.extend([pad_token] * (max_len - len(s)))
    return original_lengths


# =============================================================================
# Length-bucketed streaming corpus
# =============================================================================

class ShuffledFiles:
    """
    Temp files holding one shuffled pass of a corpus.

    Owned by whoever created them; cleanup() removes both files and is safe
    to call more than once.
    """

    def __init__(self, src_path, tgt_path, corpus_size):
        self.src_path = src_path
        self.tgt_path = tgt_path
        self.corpus_size = corpus_size

    def exists(self):
        return os.path.exists(self.src_path) and os.path.exists(self.tgt_path)

    def cleanup(self):
        for path in (self.src_path, self.tgt_path):
            if os.path.exists(path):
                os.remove(path)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.cleanup()
        return False


def _shuffle_bucket(bucket, seed):
    random.Random(seed).shuffle(bucket)


class ParallelCorpus:
    """
    Stream of SntPairBatch built from parallel text files.

    Iterating runs one pass: shuffle the corpus block by block into temp
    files (unless a prepared shuffle is waiting), then read them back and cut
    runs of equal source length into batches of at most `batch_size` pairs.

    Args:
        corpus_path: Directory with `*.{src_lang}.snt` files; the target file
                     replaces `.{src_lang}.` with `.{tgt_lang}.`
        src_lang: Source language suffix
        tgt_lang: Target language suffix
        batch_size: Maximum pairs per batch
        shuffle_block_size: Pairs per shuffle block; <= 0 shuffles the whole
                            corpus as one block
        max_src_length: Longer source sentences are dropped
        max_tgt_length: Longer target sentences are dropped
        src_files: Explicit source files (instead of corpus_path)
        tgt_files: Explicit target files, parallel to src_files
        add_bos_eos: Wrap sources in BOS/EOS and end targets with EOS
        lowercase: Lowercase tokens when streaming
        bucket_order: "random" (default) or "descending" order of bucket sizes
        seed: Seed for the shuffling RNG
        temp_dir: Where shuffle files are created (default: system temp dir)
    """

    ACCUMULATION_FACTOR = 10000

    def __init__(
        self,
        corpus_path: Optional[str] = None,
        src_lang: Optional[str] = None,
        tgt_lang: Optional[str] = None,
        batch_size: int = 1,
        shuffle_block_size: int = -1,
        max_src_length: int = 32,
        max_tgt_length: int = 32,
        src_files: Optional[List[str]] = None,
        tgt_files: Optional[List[str]] = None,
        add_bos_eos: bool = True,
        lowercase: bool = True,
        bucket_order: str = "random",
        seed: Optional[int] = None,
        temp_dir: Optional[str] = None,
    ):
        if bucket_order not in ("random", "descending"):
            raise ConfigurationError(f"Unknown bucket order '{bucket_order}'")
        if batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {batch_size}")

        self.batch_size = batch_size
        self.shuffle_block_size = shuffle_block_size
        self.max_src_length = max_src_length
        self.max_tgt_length = max_tgt_length
        self.add_bos_eos = add_bos_eos
        self.lowercase = lowercase
        self.bucket_order = bucket_order
        self.temp_dir = temp_dir
        self.corpus_size = 0

        self._rng = random.Random(seed)
        self._pending: Optional[ShuffledFiles] = None
        self._show_token_dist = True

        if src_files is not None:
            if tgt_files is None or len(src_files) != len(tgt_files):
                raise ConfigurationError("src_files and tgt_files must be given in pairs")
            self.src_files = list(src_files)
            self.tgt_files = list(tgt_files)
        else:
            self.src_files, self.tgt_files = self._find_files(corpus_path, src_lang, tgt_lang)

        logger.info(
            f"Loading corpus with {len(self.src_files)} file pair(s), batch size = {batch_size}, "
            f"max source length = {max_src_length}, max target length = {max_tgt_length}"
        )

    @staticmethod
    def _find_files(corpus_path, src_lang, tgt_lang):
        if corpus_path is None or src_lang is None or tgt_lang is None:
            raise ConfigurationError("corpus_path, src_lang and tgt_lang are required without explicit files")

        src_files = sorted(glob.glob(os.path.join(corpus_path, f"*.{src_lang}.snt")))
        tgt_files = []
        for src_file in src_files:
            dirname, basename = os.path.split(src_file)
            tgt_files.append(os.path.join(dirname, basename.replace(f".{src_lang}.", f".{tgt_lang}.")))
        return src_files, tgt_files

    # ---- Reading raw pairs ----

    def _read_raw_pairs(self, src_file, tgt_file) -> Iterator[SntPair]:
        """
        Yield whitespace-tokenized pairs from one file pair.

        Raises:
            CorpusFormatError: If the files have different line counts
        """
        with open(src_file, "r", encoding="utf-8") as f_src, open(tgt_file, "r", encoding="utf-8") as f_tgt:
            for line_no, (src_line, tgt_line) in enumerate(zip_longest(f_src, f_tgt), start=1):
                if src_line is None or tgt_line is None:
                    raise CorpusFormatError(
                        f"Files '{src_file}' and '{tgt_file}' have different line counts "
                        f"(mismatch at line {line_no})"
                    )
                yield SntPair(src_line.split(), tgt_line.split())

    def _side(self, pick, lowercase=True):
        """Stream pick(pair) over the raw corpus files."""
        for src_file, tgt_file in zip(self.src_files, self.tgt_files):
            for pair in self._read_raw_pairs(src_file, tgt_file):
                snt = pick(pair)
                yield [tok.lower() for tok in snt] if lowercase and self.lowercase else snt

    def build_vocab(self, vocab_size=45000, shared=False):
        """Build a Vocab from the raw corpus files (one streaming pass per side)."""
        return Vocab.build(
            self._side(lambda p: p.src_snt),
            self._side(lambda p: p.tgt_snt),
            vocab_size=vocab_size,
            shared=shared,
        )

    # ---- Block shuffling ----

    def _shuffle_block(self, snt_pairs: List[SntPair]) -> List[SntPair]:
        """
        Reorder one block so equal source lengths are contiguous.

        Pairs are bucketed by source length and each bucket is permuted.
        Buckets of the same size are merged, and the sizes are visited in
        descending order, randomized when bucket_order == "random".
        """
        buckets = defaultdict(list)
        for pair in snt_pairs:
            buckets[len(pair.src_snt)].append(pair)

        # Buckets are independent, so they can be permuted concurrently
        seeds = [self._rng.getrandbits(32) for _ in buckets]
        with ThreadPoolExecutor() as pool:
            list(pool.map(_shuffle_bucket, buckets.values(), seeds))

        by_size = defaultdict(list)
        for bucket in buckets.values():
            by_size[len(bucket)].extend(bucket)

        sizes = sorted(by_size, reverse=True)
        if self.bucket_order == "random":
            self._rng.shuffle(sizes)

        return [pair for size in sizes for pair in by_size[size]]

    def _write_block(self, snt_pairs, f_src, f_tgt):
        for pair in self._shuffle_block(snt_pairs):
            f_src.write(" ".join(pair.src_snt) + "\n")
            f_tgt.write(" ".join(pair.tgt_snt) + "\n")

    def shuffle_all(self, reuse_existing=False) -> ShuffledFiles:
        """
        Shuffle the whole corpus into fresh temp files.

        Args:
            reuse_existing: Keep an already prepared (not yet consumed)
                            shuffle instead of making a new one

        Returns:
            ShuffledFiles consumed by the next iteration
        """
        if reuse_existing and self._pending is not None and self._pending.exists():
            logger.info(
                f"Shuffled files '{self._pending.src_path}' and '{self._pending.tgt_path}' exist, so skip it."
            )
            return self._pending

        if self._pending is not None:
            self._pending.cleanup()
            self._pending = None

        logger.info(f"Shuffling corpus for '{len(self.src_files)}' files.")

        fd_src, src_path = tempfile.mkstemp(suffix=".src.tmp", dir=self.temp_dir)
        fd_tgt, tgt_path = tempfile.mkstemp(suffix=".tgt.tmp", dir=self.temp_dir)
        shuffled = ShuffledFiles(src_path, tgt_path, 0)

        src_len_dist = Counter()
        tgt_len_dist = Counter()
        corpus_size = 0
        too_long_cnt = 0
        empty_cnt = 0

        try:
            with os.fdopen(fd_src, "w", encoding="utf-8") as f_src, os.fdopen(fd_tgt, "w", encoding="utf-8") as f_tgt:
                block = []
                for src_file, tgt_file in zip(self.src_files, self.tgt_files):
                    logger.debug(f"Process file '{src_file}' and '{tgt_file}'")
                    for pair in self._read_raw_pairs(src_file, tgt_file):
                        src_len_dist[len(pair.src_snt) // 100] += 1
                        tgt_len_dist[len(pair.tgt_snt) // 100] += 1

                        if not pair.src_snt:
                            empty_cnt += 1
                            continue
                        if len(pair.src_snt) > self.max_src_length or len(pair.tgt_snt) > self.max_tgt_length:
                            too_long_cnt += 1
                            continue

                        block.append(pair)
                        corpus_size += 1
                        if 0 < self.shuffle_block_size <= len(block):
                            self._write_block(block, f_src, f_tgt)
                            block = []

                if block:
                    self._write_block(block, f_src, f_tgt)
        except BaseException:
            shuffled.cleanup()
            raise

        self.corpus_size = corpus_size
        shuffled.corpus_size = corpus_size
        logger.info(f"Shuffled '{corpus_size}' sentence pairs to file '{src_path}' and '{tgt_path}'.")

        if too_long_cnt > 0:
            logger.warning(
                f"Found {too_long_cnt} sentence pairs longer than '{self.max_src_length}' (source) "
                f"or '{self.max_tgt_length}' (target) tokens, ignore them."
            )
        if empty_cnt > 0:
            logger.warning(f"Found {empty_cnt} sentence pairs with an empty source side, ignore them.")

        if self._show_token_dist:
            self._log_length_distribution("Src", src_len_dist)
            self._log_length_distribution("Tgt", tgt_len_dist)
            self._show_token_dist = False

        self._pending = shuffled
        return shuffled

    @staticmethod
    def _log_length_distribution(side, dist):
        total = sum(dist.values())
        if total == 0:
            return
        logger.info(f"{side} token length distribution")
        acc = 0
        for bucket in sorted(dist):
            acc += dist[bucket]
            logger.info(
                f"{bucket * 100} ~ {(bucket + 1) * 100}: {dist[bucket]} (acc: {100.0 * acc / total:.2f}%)"
            )

    # ---- Streaming batches ----

    def _to_pair(self, src_line, tgt_line):
        src = src_line.strip()
        tgt = tgt_line.strip()
        if self.lowercase:
            src = src.lower()
            tgt = tgt.lower()

        src_snt = src.split()
        tgt_snt = tgt.split()
        if self.add_bos_eos:
            src_snt = [BOS] + src_snt + [EOS]
            tgt_snt = tgt_snt + [EOS]
        return SntPair(src_snt, tgt_snt)

    def _slice(self, outputs):
        for i in range(0, len(outputs), self.batch_size):
            yield SntPairBatch(outputs[i: i + self.batch_size])

    def __iter__(self) -> Iterator[SntPairBatch]:
        shuffled = self.shuffle_all(reuse_existing=True)
        self._pending = None

        with shuffled:
            max_outputs_size = self.batch_size * self.ACCUMULATION_FACTOR
            with open(shuffled.src_path, "r", encoding="utf-8") as f_src, \
                    open(shuffled.tgt_path, "r", encoding="utf-8") as f_tgt:
                last_src_len = -1
                outputs = []
                for src_line, tgt_line in zip(f_src, f_tgt):
                    pair = self._to_pair(src_line, tgt_line)

                    if (last_src_len > 0 and last_src_len != len(pair.src_snt)) or len(outputs) > max_outputs_size:
                        yield from self._slice(outputs)
                        outputs = []

                    outputs.append(pair)
                    last_src_len = len(pair.src_snt)

                yield from self._slice(outputs)

    def close(self):
        """Drop a prepared but unconsumed shuffle."""
        if self._pending is not None:
            self._pending.cleanup()
            self._pending = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class SequenceLabelingCorpus(ParallelCorpus):
    """
    Corpus for sequence labeling files.

    Input format: one "token<TAB or SPACE>tag" per line, records separated
    by blank lines. The file is converted into a token file and a tag file
    (in a private temp directory removed by close()) and then served like
    any parallel corpus. Sources and tags keep equal lengths, so BOS/EOS are
    added on both sides.

    Args:
        corpus_file_path: Sequence labeling file
        batch_size: Maximum pairs per batch
        shuffle_block_size: Pairs per shuffle block
        max_sent_length: Longer records are dropped
        **kwargs: Forwarded to ParallelCorpus
    """

    def __init__(self, corpus_file_path, batch_size=1, shuffle_block_size=-1, max_sent_length=128, **kwargs):
        self._work_dir = tempfile.mkdtemp(prefix="seqlabel_")
        try:
            src_path, tgt_path = self.convert_to_parallel(corpus_file_path, self._work_dir)
        except BaseException:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            raise

        super(SequenceLabelingCorpus, self).__init__(
            batch_size=batch_size,
            shuffle_block_size=shuffle_block_size,
            max_src_length=max_sent_length,
            max_tgt_length=max_sent_length,
            src_files=[src_path],
            tgt_files=[tgt_path],
            **kwargs,
        )

    @staticmethod
    def convert_to_parallel(file_path, out_dir):
        """
        Split a sequence labeling file into token and tag files.

        Returns:
            tuple: (source file path, tag file path)

        Raises:
            CorpusFormatError: If a non-blank line has fewer than two columns
        """
        src_lines, tgt_lines = [], []
        curr_src, curr_tgt = [], []

        with open(file_path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    if curr_src:
                        src_lines.append(" ".join(curr_src))
                        tgt_lines.append(" ".join(curr_tgt))
                    curr_src, curr_tgt = [], []
                    continue

                items = line.split()
                if len(items) < 2:
                    raise CorpusFormatError(f"Line {line_no} of '{file_path}' has no tag: '{line}'")
                curr_src.append(items[0])
                curr_tgt.append(items[1])

        if curr_src:
            src_lines.append(" ".join(curr_src))
            tgt_lines.append(" ".join(curr_tgt))

        src_path = os.path.join(out_dir, "labeling.src.snt")
        tgt_path = os.path.join(out_dir, "labeling.tgt.snt")
        for path, lines in ((src_path, src_lines), (tgt_path, tgt_lines)):
            with open(path, "w", encoding="utf-8") as f:
                f.writelines(l + "\n" for l in lines)

        logger.info(
            f"Convert sequence labeling corpus file '{file_path}' to parallel corpus files "
            f"'{src_path}' and '{tgt_path}'"
        )
        return src_path, tgt_path

    def _to_pair(self, src_line, tgt_line):
        pair = super(SequenceLabelingCorpus, self)._to_pair(src_line, tgt_line)
        if self.add_bos_eos:
            pair.tgt_snt = [BOS] + pair.tgt_snt
        return pair

    def close(self):
        super(SequenceLabelingCorpus, self).close()
        shutil.rmtree(self._work_dir, ignore_errors=True)


class ClassificationCorpus(ParallelCorpus):
    """
    Parallel corpus whose target lines carry a class label.

    Target line format: "label<TAB or SPACE>token token ...". The label is
    split off when streaming and stored on SntPair.cls; the remaining tokens
    form the target sentence (possibly empty). Labels keep their case.

    Args:
        corpus_path: Directory with `*.{src_lang}.snt` files
        src_lang: Source language suffix
        tgt_lang: Target language suffix
        max_tgt_length: Longer target sentences (label excluded) are dropped
        **kwargs: Forwarded to ParallelCorpus
    """

    def __init__(self, corpus_path=None, src_lang=None, tgt_lang=None, max_tgt_length=32, **kwargs):
        # label column
        super(ClassificationCorpus, self).__init__(
            corpus_path, src_lang, tgt_lang, max_tgt_length=max_tgt_length + 1, **kwargs
        )

    def _read_raw_pairs(self, src_file, tgt_file):
        """
        Raises:
            CorpusFormatError: If a target line has no class label
        """
        for line_no, pair in enumerate(
            super(ClassificationCorpus, self)._read_raw_pairs(src_file, tgt_file), start=1
        ):
            if not pair.tgt_snt:
                raise CorpusFormatError(f"Line {line_no} of '{tgt_file}' has no class label")
            yield pair

    def build_vocab(self, vocab_size=45000, shared=False):
        """Build source, target and class vocabularies from the raw corpus files."""
        return Vocab.build(
            self._side(lambda p: p.src_snt),
            self._side(lambda p: p.tgt_snt[1:]),
            vocab_size=vocab_size,
            shared=shared,
            cls_sentences=self._side(lambda p: p.tgt_snt[:1], lowercase=False),
        )

    def _to_pair(self, src_line, tgt_line):
        items = tgt_line.split(None, 1)
        label = items[0]
        rest = items[1] if len(items) > 1 else ""

        pair = super(ClassificationCorpus, self)._to_pair(src_line, rest)
        pair.cls = label
        return pair
