import pytest

from params import UpDownConfig
from staircase import UpDownStaircase
from utils import DESCENDING, Outcome

C, I, N = Outcome.CORRECT, Outcome.INCORRECT, Outcome.NO_RESPONSE


def run(staircase, outcomes):
    for outcome in outcomes:
        staircase.update(outcome)
    return staircase


def test_reversal_trace():
    staircase = UpDownStaircase(UpDownConfig(step_size_min=1, step_size_max=100, initial_step_size=60))
    run(staircase, [C, C, C])
    assert staircase.step_size == 59
    assert staircase.reversal_count == 0
    run(staircase, [I])
    assert staircase.step_size == 60
    assert staircase.reversal_count == 1
    run(staircase, [C, C, C])
    assert staircase.step_size == 59
    assert staircase.reversal_count == 2
    assert staircase.step_sizes == [60, 60, 60, 59, 60, 60, 60]
    assert [entry["reversal"] for entry in staircase.history] == [False] * 3 + [True] + [False] * 2 + [True]


def test_first_change_is_not_a_reversal():
    staircase = UpDownStaircase(UpDownConfig(step_size_max=100, initial_step_size=60))
    run(staircase, [I])
    assert staircase.step_size == 61
    assert staircase.reversal_count == 0
    run(staircase, [C, C, C])
    assert staircase.step_size == 60
    assert staircase.reversal_count == 1


def test_hit_counter_resets_at_minimum():
    staircase = UpDownStaircase(UpDownConfig(step_size_min=1, step_size_max=10, initial_step_size=1))
    run(staircase, [C, C, C])
    assert staircase.step_size == 1
    assert staircase.hit_count == 0
    run(staircase, [I])
    assert staircase.step_size == 2
    assert staircase.reversal_count == 0


def test_no_increase_above_maximum():
    staircase = UpDownStaircase(UpDownConfig(step_size_max=10, initial_step_size=10))
    run(staircase, [I, I])
    assert staircase.step_size == 10
    assert staircase.miss_count == 0


def test_initial_step_above_maximum_only_decreases():
    staircase = UpDownStaircase(UpDownConfig(step_size_max=10, initial_step_size=60))
    run(staircase, [I])
    assert staircase.step_size == 60
    run(staircase, [C, C, C])
    assert staircase.step_size == 59


def test_missing_response_keeps_counters():
    staircase = UpDownStaircase(UpDownConfig(step_size_max=100, initial_step_size=60))
    run(staircase, [C, C, N])
    assert staircase.trial_count == 3
    assert staircase.hit_count == 2
    assert staircase.step_size == 60
    run(staircase, [C])
    assert staircase.step_size == 59


def test_miss_resets_hit_run():
    staircase = UpDownStaircase(UpDownConfig(step_size_max=100, initial_step_size=60, miss_threshold=2))
    run(staircase, [C, C, I, C])
    assert staircase.step_size == 60
    assert staircase.hit_count == 1
    assert staircase.miss_count == 0


def test_recommend_step_size():
    staircase = UpDownStaircase(UpDownConfig(step_size_max=10, initial_step_size=5))
    assert staircase.recommend_step_size(DESCENDING) == -5
    assert staircase.recommend_step_size(1) == 5


@pytest.mark.parametrize("trials, done", [(7, False), (8, True)])
def test_done_needs_trials_and_reversals(trials, done):
    config = UpDownConfig(step_size_max=10, initial_step_size=5, min_trial_count=8, min_reversal_count=2)
    staircase = UpDownStaircase(config)
    run(staircase, ([C, C, C, I] * 2)[:trials])
    assert staircase.is_done is done


def test_not_done_without_reversals():
    config = UpDownConfig(step_size_max=10, initial_step_size=5, min_trial_count=4, min_reversal_count=1)
    staircase = run(UpDownStaircase(config), [C] * 12)
    assert staircase.step_size == 1
    assert not staircase.is_done
