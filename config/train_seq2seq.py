# Train a BiLSTM + attention seq2seq model on a parallel corpus
#
# Corpus layout: <train_corpus_path>/*.<src_lang>.snt with matching
# *.<tgt_lang>.snt files, one whitespace-tokenized sentence per line.
#
# Example usage:
#   python src/train_seq2seq.py config/train_seq2seq.py
#
# Two GPUs, data-parallel:
#   python src/train_seq2seq.py config/train_seq2seq.py --device_ids="('cuda:0', 'cuda:1')"
#
# Decode a test file with the trained model:
#   python src/train_seq2seq.py config/train_seq2seq.py --task=test --beam_size=4

out_dir = 'out-seq2seq-enu-chs'
model_file_path = 'out-seq2seq-enu-chs/seq2seq.model'

wandb_log = False
wandb_project = 'seq2seq'
wandb_run_name = 'bilstm-attention-enu-chs'

# Dataset
train_corpus_path = 'data/enu-chs/train'
valid_corpus_path = 'data/enu-chs/valid'
src_lang = 'enu'
tgt_lang = 'chs'
input_test_file = 'data/enu-chs/test.enu.snt'
output_test_file = 'out-seq2seq-enu-chs/test.chs.snt'
shuffle_block_size = 1000000
max_src_length = 100
max_tgt_length = 100

# Model architecture
encoder_type = 'BiLSTM'
embedding_dim = 512
hidden_dim = 512
encoder_layer_depth = 2
decoder_layer_depth = 2
multi_head_num = 8
enable_coverage_model = True
dropout = 0.1

# Optimizer (warm-up then inverse square root decay, peaks at start_learning_rate)
optimizer = 'Adam'
start_learning_rate = 0.001
warmup_steps = 8000
grad_clip = 5.0

# Training
batch_size = 64
max_epoch = 20

# Decoding
beam_size = 4
max_decode_length = 100


# =============================================================================
# Alternative: Transformer encoder
# =============================================================================
# hidden_dim must be divisible by multi_head_num

# encoder_type = 'Transformer'
# encoder_layer_depth = 6
# enable_coverage_model = False


# =============================================================================
# Alternative: classification + generation
# =============================================================================
# Every target line starts with a class label: "label<TAB>token token ..."
# Test output lines are "label<TAB>decoded sentence".

# corpus_format = 'classification'
