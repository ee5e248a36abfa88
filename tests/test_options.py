# pylint:disable=missing-function-docstring, missing-module-docstring

import pytest

from src.seq2seq import ConfigurationError, Seq2SeqOptions


@pytest.mark.parametrize("overrides", [
    dict(device_ids=()),
    dict(encoder_type="GRU"),
    dict(optimizer="SGD"),
    dict(hidden_dim=0),
    dict(beam_size=0),
    dict(encoder_type="Transformer", hidden_dim=10, multi_head_num=4),
    dict(dropout=1.0),
    dict(weights_update_count=-1),
])
def test_invalid_options(overrides):
    with pytest.raises(ConfigurationError):
        Seq2SeqOptions(**overrides)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        Seq2SeqOptions(optimizer="SGD")


def test_defaults_and_normalization():
    options = Seq2SeqOptions(optimizer="rmsprop", device_ids=["cpu", "cpu"])

    assert options.optimizer == "RMSProp"
    assert options.device_ids == ("cpu", "cpu")
    assert options.encoder_type == "BiLSTM"
    assert options.to_dict()["beam_size"] == 1


def test_create_learning_rate():
    options = Seq2SeqOptions(start_learning_rate=0.01, warmup_steps=4)
    schedule = options.create_learning_rate(weights_update_count=3)

    assert schedule.get_current_learning_rate() == pytest.approx(0.01)


def test_weights_update_count_defaults_to_a_fresh_run():
    assert Seq2SeqOptions().weights_update_count == 0
    assert Seq2SeqOptions(weights_update_count=7).to_dict()["weights_update_count"] == 7
