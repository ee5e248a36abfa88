"""
Training / evaluation script for attention seq2seq models.

Usage:
    python src/train_seq2seq.py config/train_seq2seq.py

    # With overrides:
    python src/train_seq2seq.py config/train_seq2seq.py --task=test --beam_size=4
    python src/train_seq2seq.py config/train_seq2seq.py --device_ids="('cuda:0', 'cuda:1')"

Tasks:
    train  build (or resume) a model and train it on train_corpus_path
    valid  report the average cost per word on valid_corpus_path
    test   decode input_test_file line by line into output_test_file
           (classification models prefix each line with "label<TAB>")
"""

import os
import sys
import time
from dataclasses import fields
from os.path import exists

import torch
from loguru import logger

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.seq2seq import Seq2SeqOptions
from src.seq2seq.engine import AttentionSeq2Seq
from src.seq2seq_data import ClassificationCorpus, ParallelCorpus, SequenceLabelingCorpus, is_reserved_token

# -----------------------------------------------------------------------------
# Default configuration values
# -----------------------------------------------------------------------------

task = 'train'  # 'train', 'valid' or 'test'

# I/O
out_dir = 'out-seq2seq'
model_file_path = 'out-seq2seq/seq2seq.model'

# wandb logging
wandb_log = False
wandb_project = 'seq2seq'
wandb_run_name = 'attention-seq2seq'

# Data
corpus_format = 'parallel'  # 'parallel', 'sequence_labeling' or 'classification'
train_corpus_path = 'data/train'
valid_corpus_path = ''
src_lang = 'src'
tgt_lang = 'tgt'
input_test_file = ''
output_test_file = ''
shuffle_block_size = 1000000
max_src_length = 32
max_tgt_length = 32
vocab_size = 45000
src_embedding_file_path = ''
tgt_embedding_file_path = ''

# Model
encoder_type = 'BiLSTM'  # 'BiLSTM' or 'Transformer'
embedding_dim = 128
hidden_dim = 128
encoder_layer_depth = 1
decoder_layer_depth = 1
multi_head_num = 8
enable_coverage_model = False
shared_embeddings = False
dropout = 0.0

# Optimizer
optimizer = 'Adam'  # 'Adam' or 'RMSProp'
start_learning_rate = 0.001
warmup_steps = 8000
weights_update_count = 0  # updates already done by a resumed model
beta1 = 0.9
beta2 = 0.98
decay_rate = 0.999
grad_clip = 3.0
regc = 1e-10
label_smoothing = 0.0

# Training
batch_size = 1
max_epoch = 100
status_interval = 100
save_interval = 1000

# Decoding
beam_size = 1
max_decode_length = 100
length_penalty = 0.0

# System
device_ids = ('cuda:0',) if torch.cuda.is_available() else ('cpu',)
seed = 1337

# -----------------------------------------------------------------------------
# Load configuration
# -----------------------------------------------------------------------------

config_keys = [k for k, v in globals().items() if not k.startswith('_') and isinstance(v, (int, float, bool, str, tuple))]

# Load config file if provided
if len(sys.argv) > 1 and sys.argv[1].endswith('.py'):
    config_file = sys.argv[1]
    print(f"Loading config from {config_file}")
    with open(config_file) as f:
        exec(f.read())

# Override from command line (simple parsing)
for arg in sys.argv[1:]:
    if '=' in arg:
        key, val = arg.split('=', 1)
        key = key.lstrip('-')
        if key in config_keys:
            try:
                # Try to evaluate as Python literal
                globals()[key] = eval(val)
            except (NameError, SyntaxError):
                globals()[key] = val

config = {k: globals()[k] for k in config_keys}

# -----------------------------------------------------------------------------
# Setup
# -----------------------------------------------------------------------------

os.makedirs(out_dir, exist_ok=True)
torch.manual_seed(seed)

logger.add(os.path.join(out_dir, f"{task}_{time.strftime('%Y%m%d_%H%M%S')}.log"), level="INFO")


def build_options():
    option_names = {f.name for f in fields(Seq2SeqOptions)}
    values = {k: v for k, v in config.items() if k in option_names}
    values['src_embedding_file_path'] = src_embedding_file_path or None
    values['tgt_embedding_file_path'] = tgt_embedding_file_path or None
    return Seq2SeqOptions(**values)


def open_corpus(path):
    if corpus_format == 'sequence_labeling':
        return SequenceLabelingCorpus(
            path,
            batch_size=batch_size,
            shuffle_block_size=shuffle_block_size,
            max_sent_length=max_src_length,
            seed=seed,
        )
    corpus_cls = ClassificationCorpus if corpus_format == 'classification' else ParallelCorpus
    return corpus_cls(
        path,
        src_lang,
        tgt_lang,
        batch_size=batch_size,
        shuffle_block_size=shuffle_block_size,
        max_src_length=max_src_length,
        max_tgt_length=max_tgt_length,
        seed=seed,
    )


def attach_watchers(s2s):
    def on_status(event):
        logger.info(str(event))
        if wandb_log:
            wandb.log({
                'update': event.update,
                'epoch': event.epoch,
                'lr': event.learning_rate,
                'cost_per_word': event.cost_per_word,
                'avg_cost': event.avg_cost_in_total,
            })

    def on_evaluation(event):
        log = logger.warning if event.severity == 'warning' else logger.info
        log(f"[{event.title}] {event.message}")

    s2s.status_update_watchers.append(on_status)
    s2s.evaluation_watchers.append(on_evaluation)


def run_train(options):
    train_corpus = open_corpus(train_corpus_path)
    valid_corpus = open_corpus(valid_corpus_path) if valid_corpus_path else None
    try:
        if exists(options.model_file_path):
            logger.info(f"Continue training from '{options.model_file_path}'")
            s2s = AttentionSeq2Seq.load(options)
        else:
            vocab = train_corpus.build_vocab(vocab_size=vocab_size, shared=shared_embeddings)
            s2s = AttentionSeq2Seq.create(options, vocab)

        n_params = sum(p.numel() for p in s2s.replicas.canonical_parameters())
        logger.info(f"Number of parameters: {n_params:,}")

        with s2s:
            attach_watchers(s2s)
            s2s.train(max_epoch, train_corpus, valid_corpus=valid_corpus)
    finally:
        train_corpus.close()
        if valid_corpus is not None:
            valid_corpus.close()


def run_valid(options):
    with open_corpus(valid_corpus_path) as valid_corpus, AttentionSeq2Seq.load(options) as s2s:
        attach_watchers(s2s)
        s2s.valid(valid_corpus)


def run_test(options):
    with AttentionSeq2Seq.load(options) as s2s:
        with open(input_test_file, 'r', encoding='utf-8') as f_in, \
                open(output_test_file, 'w', encoding='utf-8') as f_out:
            for line in f_in:
                tokens = line.strip().lower().split()
                output = s2s.predict(tokens, beam_size=beam_size, max_output_length=max_decode_length)[0]
                decoded = " ".join(tok for tok in output if not is_reserved_token(tok))
                if s2s.model.classifier is not None:
                    decoded = s2s.classify(tokens) + "\t" + decoded
                f_out.write(decoded + "\n")
    logger.info(f"Wrote decoded sentences to '{output_test_file}'")


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

if __name__ == '__main__':
    try:
        options = build_options()
        logger.info(f"Task = {task}, options = {options.to_dict()}")

        # wandb logging
        if wandb_log and task == 'train':
            import wandb
            wandb.init(project=wandb_project, name=wandb_run_name, config=options.to_dict())

        {'train': run_train, 'valid': run_valid, 'test': run_test}[task](options)
    except Exception:
        logger.exception(f"Task '{task}' failed")
        sys.exit(1)
