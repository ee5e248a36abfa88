# pylint:disable=missing-function-docstring, missing-module-docstring

import pytest

from src.shared.lr_scheduler import DecayLearningRate, rate


def test_peaks_at_start_learning_rate_after_warmup():
    schedule = DecayLearningRate(0.002, warmup_steps=100)
    rates = [schedule.get_current_learning_rate() for _ in range(400)]

    assert rates[99] == pytest.approx(0.002)
    assert max(rates) == pytest.approx(0.002)
    assert rates[0] < rates[50] < rates[99]
    assert rates[399] == pytest.approx(0.002 * (100 / 400) ** 0.5)


def test_resume_continues_from_update_count():
    fresh = DecayLearningRate(0.001, warmup_steps=10)
    for _ in range(25):
        fresh.get_current_learning_rate()

    resumed = DecayLearningRate(0.001, warmup_steps=10, weights_update_count=25)
    assert resumed.get_current_learning_rate() == fresh.get_current_learning_rate()
    assert resumed.weights_update_count == 26


def test_noam_rate_step_zero():
    assert rate(0, model_size=512, factor=1.0, warmup=4000) == rate(1, model_size=512, factor=1.0, warmup=4000)
