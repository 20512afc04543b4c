import numpy as np
import pytest

from errors import DegenerateLikelihoodError, InvalidRangeError
from params import QuestConfig
from quest import QuestStaircase, QuestState, StaircaseStatus, sd_target_from_levels
from utils import Outcome


def make_state(**kwargs):
    settings = dict(prior_mean=0.0, prior_sd=2.0, p_threshold=0.75, beta=3.5, delta=0.02, gamma=0.5,
                    grain=0.01, range=5)
    settings.update(kwargs)
    return QuestState.create(**settings)


def test_create_grid_and_prior():
    state = make_state()
    assert state.dim % 2 == 0
    assert state.pdf.size == state.dim + 1
    assert state.x[0] == pytest.approx(-state.x[-1])
    assert state.pdf.sum() == pytest.approx(1.0)
    assert state.mean() == pytest.approx(0.0, abs=1e-9)


def test_odd_dim_rounded_up():
    state = make_state(grain=1.0, range=5)
    assert state.dim == 6


def test_wide_grid_recovers_prior_sd():
    state = make_state(prior_mean=-0.61, prior_sd=1.0, range=12)
    assert state.mean() == pytest.approx(-0.61, abs=1e-6)
    assert state.sd() == pytest.approx(1.0, abs=0.01)


@pytest.mark.parametrize("kwargs", [
    {"beta": 0},
    {"delta": 1.0},
    {"gamma": 1.0},
    {"gamma": -0.1},
    {"p_threshold": 0.4},
])
def test_degenerate_likelihood(kwargs):
    with pytest.raises(DegenerateLikelihoodError):
        make_state(**kwargs)


@pytest.mark.parametrize("kwargs", [{"grain": 0}, {"range": 0}, {"grain": -0.01}])
def test_grid_must_be_positive(kwargs):
    with pytest.raises(InvalidRangeError):
        make_state(**kwargs)


def test_threshold_at_zero_offset():
    state = make_state()
    centre = state.p2.size // 2
    assert state.p2[centre] == pytest.approx(0.75, abs=0.01)


def test_successes_lower_the_estimate():
    state = make_state()
    means = [state.mean()]
    for _ in range(30):
        state.update(state.mean(), True)
        means.append(state.mean())
    assert all(b <= a + 1e-12 for a, b in zip(means, means[1:]))
    assert means[-1] < means[0] - 1.0


def test_failures_raise_the_estimate():
    state = make_state()
    means = [state.mean()]
    for _ in range(30):
        state.update(state.mean(), False)
        means.append(state.mean())
    assert all(b >= a - 1e-12 for a, b in zip(means, means[1:]))
    assert means[-1] > means[0] + 1.0


def test_out_of_table_intensity_is_clipped():
    state = make_state()
    state.update(100.0, True)
    assert np.isfinite(state.mean())
    assert state.pdf.sum() == pytest.approx(1.0)


def test_state_round_trip_through_dict():
    state = make_state()
    for intensity, success in [(0.2, True), (-0.4, False), (0.1, True)]:
        state.update(intensity, success)
    restored = QuestState.from_dict(state.to_dict())
    np.testing.assert_allclose(restored.pdf, state.pdf)
    assert restored.mean() == pytest.approx(state.mean())


def test_sd_target_from_levels():
    assert sd_target_from_levels([0.0, 0.1, 0.3]) == pytest.approx(0.225)
    with pytest.raises(DegenerateLikelihoodError):
        sd_target_from_levels([0.0])


def make_staircase(sd_target=0.2, **kwargs):
    settings = dict(grain=0.01, range=5, ignore_trials=3, trial_max=5, trial_extra_max=3)
    settings.update(kwargs)
    return QuestStaircase.from_config(QuestConfig(**settings), sd_target)


def test_first_trials_are_ignored():
    staircase = make_staircase()
    assert staircase.status is StaircaseStatus.INITIALIZED
    prior = staircase.state.pdf.copy()
    for _ in range(3):
        staircase.update(staircase.recommend(), Outcome.CORRECT)
    np.testing.assert_array_equal(staircase.state.pdf, prior)
    assert staircase.trial_count == 3
    assert staircase.status is StaircaseStatus.UPDATING
    staircase.update(staircase.recommend(), Outcome.CORRECT)
    assert not np.array_equal(staircase.state.pdf, prior)
    assert [entry["applied"] for entry in staircase.history] == [False, False, False, True]


def test_no_response_uses_a_slot_only():
    staircase = make_staircase(ignore_trials=0)
    prior = staircase.state.pdf.copy()
    staircase.update(staircase.recommend(), Outcome.NO_RESPONSE)
    np.testing.assert_array_equal(staircase.state.pdf, prior)
    assert staircase.trial_count == 1


def test_converges_after_trial_max_with_small_sd():
    staircase = make_staircase(sd_target=100.0)
    for _ in range(4):
        staircase.update(staircase.recommend(), Outcome.CORRECT)
        assert not staircase.is_done
    staircase.update(staircase.recommend(), Outcome.CORRECT)
    assert staircase.is_converged
    assert staircase.is_done
    with pytest.raises(RuntimeError):
        staircase.update(staircase.recommend(), Outcome.CORRECT)


def test_budget_exhausted_when_sd_stays_large():
    staircase = make_staircase(sd_target=1e-9)
    for _ in range(7):
        staircase.update(staircase.recommend(), Outcome.INCORRECT)
        assert not staircase.is_done
    staircase.update(staircase.recommend(), Outcome.INCORRECT)
    assert staircase.status is StaircaseStatus.BUDGET_EXHAUSTED
    assert staircase.is_done
    assert not staircase.is_converged


def test_staircase_json_round_trip(tmp_path):
    staircase = make_staircase()
    for outcome in [Outcome.CORRECT, Outcome.INCORRECT, Outcome.CORRECT, Outcome.CORRECT, Outcome.NO_RESPONSE]:
        staircase.update(staircase.recommend(), outcome)
    path = staircase.save_json(tmp_path / "quest" / "state.json")
    restored = QuestStaircase.load_json(path)
    assert restored.trial_count == staircase.trial_count
    assert restored.posterior_mean == pytest.approx(staircase.posterior_mean)
    assert restored.posterior_sd == pytest.approx(staircase.posterior_sd)
    assert restored.status is staircase.status
    with pytest.raises(FileNotFoundError):
        QuestStaircase.load_json(tmp_path / "missing.json")
