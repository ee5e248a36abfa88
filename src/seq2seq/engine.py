"""
Device-parallel training and inference for attention seq2seq models.

One macro-step of training:
    1. take one batch per device from the corpus
    2. copy canonical weights (device 0) into every other replica
    3. in parallel, per device: reset state, encode, decode with masked
       cross-entropy (plus the class label loss for classification models),
       backward
    4. sum replica gradients into the canonical copy
    5. one optimizer update with the summed target token count, clear gradients

Usage:
    with AttentionSeq2Seq.create(options, vocab) as s2s:
        s2s.status_update_watchers.append(print)
        s2s.train(max_epoch=10, corpus=corpus)
        s2s.predict(["hello", "world"], beam_size=4)
"""

import pickle
import threading
from concurrent.futures import ThreadPoolExecutor, wait

import torch
from loguru import logger

from src.seq2seq_data import BOS, BOS_ID, EOS, pad_sentences
from src.shared.loss import MaskedCrossEntropy
from src.shared.training import EvaluationEvent, ProgressEvent, TrainState
from .checkpoint import ModelMetaData, load_model, save_model
from .decoding import beam_search
from .errors import ConfigurationError
from .graph import ComputeGraph
from .model import Seq2SeqModel, load_word_embedding
from .replicas import ReplicaSet


class AttentionSeq2Seq:
    """
    Args:
        options: Seq2SeqOptions
        meta: ModelMetaData of `model`
        model: Canonical Seq2SeqModel; replicated to every device in options
    """

    def __init__(self, options, meta, model):
        self.options = options
        self.meta = meta
        self.vocab = meta.vocab

        self.replicas = ReplicaSet(model, options.device_ids)
        self.loss_fn = MaskedCrossEntropy(options.label_smoothing)
        self.optimizer = None

        self.status_update_watchers = []
        self.evaluation_watchers = []

        self.weights_update_count = options.weights_update_count
        self.avg_cost_per_word_in_last_epoch = 100000.0

        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=len(self.replicas))

    @classmethod
    def create(cls, options, vocab):
        """
        Build a new model from options, loading pretrained embeddings if configured.

        Raises:
            ConfigurationError: Shared embeddings over different vocabularies,
                                or pretrained vectors of the wrong size
        """
        if options.shared_embeddings:
            vocab.check_shared()

        meta = ModelMetaData.from_options(options, vocab)
        logger.info(
            f"Creating {meta.encoder_type} encoder and attention decoder: hidden = {meta.hidden_dim}, "
            f"embedding = {meta.embedding_dim}, devices = {list(options.device_ids)}"
        )
        model = Seq2SeqModel(meta, dropout=options.dropout)

        if options.src_embedding_file_path:
            logger.info(f"Loading external embedding from '{options.src_embedding_file_path}' for source side.")
            load_word_embedding(options.src_embedding_file_path, model.src_embedding, vocab.src.word_to_index)
        if options.tgt_embedding_file_path:
            logger.info(f"Loading external embedding from '{options.tgt_embedding_file_path}' for target side.")
            load_word_embedding(options.tgt_embedding_file_path, model.tgt_embedding, vocab.tgt.word_to_index)

        return cls(options, meta, model)

    @classmethod
    def load(cls, options):
        """
        Restore a model from options.model_file_path.

        Training resumes the learning rate schedule at options.weights_update_count.
        """
        model, meta = load_model(options.model_file_path, options.device_ids[0], dropout=options.dropout)
        return cls(options, meta, model)

    @property
    def model(self):
        return self.replicas.canonical

    # ===================== Batches to tensors =====================

    def _batch_tensors(self, batch, device):
        src_snts = batch.src_snts()
        pad_sentences(src_snts)
        tgt_snts = batch.tgt_snts()
        tgt_lengths = pad_sentences(tgt_snts)

        # (seq_len, batch)
        src_ids = torch.tensor(
            [[self.vocab.get_source_word_index(w, log_unk=True) for w in s] for s in src_snts],
            dtype=torch.long,
            device=device,
        ).t()
        tgt_ids = torch.tensor(
            [[self.vocab.get_target_word_index(w) for w in s] for s in tgt_snts],
            dtype=torch.long,
            device=device,
        ).t()
        lengths = torch.tensor(tgt_lengths, dtype=torch.long, device=device)
        return src_ids, tgt_ids, lengths

    def _run_batch(self, device_idx, batch, needs_backward):
        """
        Encode and decode one batch on replica `device_idx`.

        Returns:
            tuple: (summed NLL of targets and class labels, source words, target words)
        """
        model = self.replicas.models[device_idx]
        device = self.replicas.devices[device_idx]
        batch_size = batch.batch_size
        src_ids, tgt_ids, lengths = self._batch_tensors(batch, device)

        labels = batch.cls_labels() if model.classifier is not None else None

        cost = 0.0
        graph = ComputeGraph(device, needs_backward, name=f"Device{device_idx}")
        with graph.scope():
            model.reset(batch_size)
            with graph.create_sub_graph("Encoder").scope():
                encoded = model.encode(src_ids, batch_size)

            if labels is not None:
                with graph.create_sub_graph("Classifier").scope():
                    cls_ids = torch.tensor(
                        [self.vocab.get_class_index(l) for l in labels], dtype=torch.long, device=device
                    )
                    every_row = torch.ones(batch_size, dtype=torch.bool, device=device)
                    cls_cost, loss = self.loss_fn(model.classify(encoded), cls_ids, every_row)
                    graph.add_loss(loss)
                    cost += cls_cost

            with graph.create_sub_graph("Decoder").scope():
                pre = model.pre_process(encoded, batch_size)
                prev = torch.full((batch_size,), BOS_ID, dtype=torch.long, device=device)
                for t in range(tgt_ids.size(0)):
                    logits = model.decode_step(prev, pre, batch_size)
                    step_cost, loss = self.loss_fn(logits, tgt_ids[t], lengths > t)
                    graph.add_loss(loss)
                    cost += step_cost
                    prev = tgt_ids[t]

        if needs_backward:
            graph.backward()

        return cost, src_ids.numel(), int(lengths.sum().item())

    def _forward_backward(self, device_idx, batch, step_state):
        cost, src_words, tgt_words = self._run_batch(device_idx, batch, needs_backward=True)
        with self._lock:
            step_state.add(cost, batch.batch_size, src_words, tgt_words)

    # ===================== Training =====================

    def train(self, max_epoch, corpus, learning_rate=None, optimizer=None, valid_corpus=None):
        """
        Train for `max_epoch` passes over `corpus`.

        Args:
            max_epoch: Number of epochs
            corpus: Iterable of SntPairBatch with shuffle_all(); reshuffled every epoch
            learning_rate: Schedule with get_current_learning_rate()
                           (default: options.create_learning_rate())
            optimizer: WeightOptimizer (default: options.create_optimizer())
            valid_corpus: Evaluated after every epoch when given
        """
        logger.info("Start to train...")
        if learning_rate is None:
            learning_rate = self.options.create_learning_rate(self.weights_update_count)
        if optimizer is None:
            optimizer = self.options.create_optimizer(self.replicas.canonical_parameters())
        self.optimizer = optimizer

        for ep in range(max_epoch):
            corpus.shuffle_all(reuse_existing=(ep == 0))
            self.train_epoch(ep, corpus, learning_rate, optimizer)
            if valid_corpus is not None:
                self.valid(valid_corpus)

    def train_epoch(self, epoch, corpus, learning_rate, optimizer):
        """
        Run one pass over `corpus`.

        Returns:
            Average cost per target word of this epoch
        """
        state = TrainState(epoch)

        logger.info("Cleaning cache of weights optimization.")
        optimizer.clean_cache()
        for replica in self.replicas.models:
            replica.train()

        logger.info("Start to process training corpus.")
        num_devices = len(self.replicas)
        buffer = []
        for batch in corpus:
            buffer.append(batch)
            if len(buffer) == num_devices:
                self._macro_step(buffer, state, learning_rate, optimizer)
                buffer = []

        if buffer:
            logger.warning(
                f"Dropped {len(buffer)} trailing batch(es) ({sum(b.batch_size for b in buffer)} sentences): "
                f"fewer than the {num_devices} devices."
            )

        avg_cost = state.avg_cost_per_word
        message = (
            f"Epoch '{epoch}' took '{state.elapsed:.1f}s' to finish. AvgCost = {avg_cost:.6f}, "
            f"AvgCostInLastEpoch = {self.avg_cost_per_word_in_last_epoch:.6f}"
        )
        logger.info(message)
        self._notify_evaluation(EvaluationEvent(f"Epoch {epoch}", message))

        if state.tgt_words == 0:
            logger.warning(f"Epoch '{epoch}' made no weight updates, so the model is not saved.")
            return avg_cost

        if self.avg_cost_per_word_in_last_epoch > avg_cost:
            self.save()
        self.avg_cost_per_word_in_last_epoch = avg_cost
        return avg_cost

    def _macro_step(self, batches, state, learning_rate, optimizer):
        self.replicas.sync_weights()

        step_state = TrainState(state.epoch)
        futures = [
            self._pool.submit(self._forward_backward, i, batch, step_state)
            for i, batch in enumerate(batches)
        ]
        wait(futures)
        try:
            for f in futures:
                f.result()
        except Exception:
            self.replicas.clear_gradients()
            raise

        self.replicas.sync_gradients()
        lr = learning_rate.get_current_learning_rate()
        optimizer.update_weights(step_state.tgt_words, lr)
        self.replicas.clear_gradients()

        state.add(step_state.cost, step_state.sentences, step_state.src_words, step_state.tgt_words)
        self.weights_update_count += 1

        if self.weights_update_count % self.options.status_interval == 0:
            self._notify_status(
                ProgressEvent(
                    update=self.weights_update_count,
                    epoch=state.epoch,
                    learning_rate=lr,
                    cost_per_word=step_state.avg_cost_per_word,
                    avg_cost_in_total=state.avg_cost_per_word,
                    processed_sentences_in_total=state.sentences,
                    processed_words_in_total=state.words,
                    start_time=state.start_time,
                )
            )

        if (self.weights_update_count % self.options.save_interval == 0
                and self.avg_cost_per_word_in_last_epoch > state.avg_cost_per_word):
            self.save()

    def valid(self, corpus):
        """
        Average cost per target word over `corpus`, without updating weights.
        """
        model = self.model
        model.eval()

        state = TrainState()
        for batch in corpus:
            cost, src_words, tgt_words = self._run_batch(0, batch, needs_backward=False)
            state.add(cost, batch.batch_size, src_words, tgt_words)

        avg_cost = state.avg_cost_per_word
        message = f"Validation on {state.sentences} sentences: AvgCost = {avg_cost:.6f}"
        logger.info(message)
        self._notify_evaluation(EvaluationEvent("Validation", message))
        return avg_cost

    # ===================== Inference =====================

    def predict(self, tokens, beam_size=None, max_output_length=None):
        """
        Beam search on the default device.

        Args:
            tokens: Source tokens, without BOS/EOS
            beam_size: Defaults to options.beam_size
            max_output_length: Defaults to options.max_decode_length

        Returns:
            List of token lists, best first; each starts with BOS
        """
        beam_size = beam_size or self.options.beam_size
        max_output_length = max_output_length or self.options.max_decode_length

        model = self.model
        model.eval()
        src = [BOS] + list(tokens) + [EOS]
        src_ids = torch.tensor(
            [[self.vocab.get_source_word_index(w, log_unk=True)] for w in src],
            dtype=torch.long,
            device=self.replicas.devices[0],
        )

        hypotheses = beam_search(
            model, src_ids, beam_size, max_output_length, length_penalty=self.options.length_penalty
        )
        return [self.vocab.convert_target_ids_to_string(h.output_ids) for h in hypotheses]

    @torch.no_grad()
    def classify(self, tokens):
        """
        Class label of one tokenized source sentence.

        Raises:
            ConfigurationError: If the model was not trained with class labels
        """
        model = self.model
        if model.classifier is None:
            raise ConfigurationError("The model has no classifier; train it on a classification corpus.")

        model.eval()
        src = [BOS] + list(tokens) + [EOS]
        src_ids = torch.tensor(
            [[self.vocab.get_source_word_index(w, log_unk=True)] for w in src],
            dtype=torch.long,
            device=self.replicas.devices[0],
        )
        model.reset(1)
        logits = model.classify(model.encode(src_ids, 1))
        return self.vocab.convert_class_id_to_string(int(logits[0].argmax().item()))

    def test(self, inputs, beam_size=None):
        """
        Best hypothesis for each tokenized input sentence. Classification
        models return (label, hypothesis) pairs.
        """
        outputs = [self.predict(tokens, beam_size)[0] for tokens in inputs]
        if self.model.classifier is None:
            return outputs
        return [(self.classify(tokens), out) for tokens, out in zip(inputs, outputs)]

    # ===================== Persistence and events =====================

    def save(self):
        """
        Write the canonical model to options.model_file_path.

        Failures are logged and training goes on.

        Returns:
            True if the model was written
        """
        try:
            save_model(self.options.model_file_path, self.model, self.meta)
            return True
        except (OSError, pickle.PicklingError):
            logger.exception(f"Failed to save model to '{self.options.model_file_path}'")
            return False

    def _notify_status(self, event):
        for watcher in self.status_update_watchers:
            watcher(event)

    def _notify_evaluation(self, event):
        for watcher in self.evaluation_watchers:
            watcher(event)

    def close(self):
        self._pool.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
