"""
Attention seq2seq network: embeddings, encoder, attention decoder and the
output layer, assembled from a ModelMetaData header. Vocabularies with a
class side add a classifier over the encoder output at the BOS position.

Token-id tensors are time-major, shape (seq_len, batch).
"""

import torch
import torch.nn as nn
from loguru import logger

from .decoder import AttentionDecoder
from .encoders import EncoderType, build_encoder
from .errors import ConfigurationError
from .generator import Generator
from .tensor_io import read_tensor_into, write_tensor


class Seq2SeqModel(nn.Module):
    """
    Args:
        meta: ModelMetaData describing shapes and the vocabulary
        dropout: Dropout on decoder outputs (and inside a Transformer encoder)
    """

    def __init__(self, meta, dropout=0.0):
        super(Seq2SeqModel, self).__init__()
        self.meta = meta
        vocab = meta.vocab

        self.encoder = build_encoder(
            meta.encoder_type,
            meta.hidden_dim,
            meta.embedding_dim,
            meta.encoder_layer_depth,
            multi_head_num=meta.multi_head_num,
            dropout=dropout,
        )
        context_dim = meta.hidden_dim * 2 if EncoderType(meta.encoder_type) is EncoderType.BiLSTM else meta.hidden_dim
        self.decoder = AttentionDecoder(
            "AttnLSTMDecoder",
            meta.hidden_dim,
            meta.embedding_dim,
            context_dim,
            meta.decoder_layer_depth,
            enable_coverage_model=meta.enable_coverage_model,
        )

        self.src_embedding = nn.Embedding(vocab.source_word_size, meta.embedding_dim)
        if meta.shared_embeddings:
            self.tgt_embedding = self.src_embedding
        else:
            self.tgt_embedding = nn.Embedding(vocab.target_word_size, meta.embedding_dim)

        self.drop = nn.Dropout(dropout)
        self.generator = Generator(meta.hidden_dim, vocab.target_word_size)
        self.classifier = Generator(context_dim, vocab.class_size) if vocab.cls is not None else None

    def reset(self, batch_size):
        self.encoder.reset(batch_size)
        self.decoder.reset(batch_size)

    def encode(self, src_ids, batch_size, lengths=None):
        """
        Args:
            src_ids: Source token ids, shape (src_len, batch)
            batch_size: Number of sentences
            lengths: Optional true source lengths

        Returns:
            Time-major encoder outputs, shape (src_len, batch, context_dim)
        """
        embedded = self.src_embedding(src_ids)
        return self.encoder.encode(embedded, batch_size, lengths)

    def pre_process(self, encoded, batch_size):
        return self.decoder.pre_process(encoded, batch_size)

    def decode_step(self, prev_ids, pre, batch_size):
        """
        Feed the previous tokens through one decoder step.

        Args:
            prev_ids: Previously emitted ids, shape (batch,)
            pre: AttentionPreProcessResult of the current sources

        Returns:
            Output layer logits, shape (batch, target_vocab)
        """
        x = self.tgt_embedding(prev_ids)
        out = self.decoder.decode(x, pre, batch_size)
        return self.generator(self.drop(out))

    def classify(self, encoded):
        """
        Args:
            encoded: Time-major encoder outputs, shape (src_len, batch, context_dim)

        Returns:
            Class logits, shape (batch, class_vocab)
        """
        return self.classifier(self.drop(encoded[0]))

    # ===================== Model file blobs =====================

    def save_blobs(self, stream):
        """Write every tensor blob: encoder, decoder, embeddings, output layer, classifier."""
        self.encoder.save(stream)
        self.decoder.save(stream)
        write_tensor(stream, self.src_embedding.weight)
        write_tensor(stream, self.tgt_embedding.weight)
        self.generator.save(stream)
        if self.classifier is not None:
            self.classifier.save(stream)

    def load_blobs(self, stream):
        self.encoder.load(stream)
        self.decoder.load(stream)
        read_tensor_into(stream, self.src_embedding.weight)
        read_tensor_into(stream, self.tgt_embedding.weight)
        self.generator.load(stream)
        if self.classifier is not None:
            self.classifier.load(stream)


@torch.no_grad()
def load_word_embedding(path, embedding, word_to_index):
    """
    Copy pretrained vectors into the rows of `embedding` for known words.

    The file holds one "word v1 v2 ... vn" entry per line; an optional
    "count dim" header line is skipped.

    Args:
        path: Text word-vector file
        embedding: nn.Embedding to fill
        word_to_index: Mapping from word to row index

    Returns:
        Number of rows that were overwritten

    Raises:
        ConfigurationError: If the vector size differs from the embedding size
    """
    dim = embedding.weight.size(1)
    loaded = 0
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f):
            items = line.rstrip().split(" ")
            if line_no == 0 and len(items) == 2:
                continue
            if len(items) < 2:
                continue

            word, values = items[0], items[1:]
            if len(values) != dim:
                raise ConfigurationError(
                    f"Inconsistent embedding size. Vector size in '{path}' = {len(values)}, "
                    f"embedding matrix column size = {dim}"
                )
            idx = word_to_index.get(word)
            if idx is None:
                continue
            embedding.weight[idx] = torch.tensor(
                [float(v) for v in values], dtype=embedding.weight.dtype
            )
            loaded += 1

    logger.info(f"Loaded {loaded} pretrained vectors from '{path}'")
    return loaded
