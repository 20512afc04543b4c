import numpy as np
import pytest

from utils import ASCENDING, DESCENDING, Outcome, get_response, score_response


@pytest.mark.parametrize("detected, step, expected", [
    (ASCENDING, 3, Outcome.CORRECT),
    (DESCENDING, -3, Outcome.CORRECT),
    (ASCENDING, -3, Outcome.INCORRECT),
    (DESCENDING, 3, Outcome.INCORRECT),
    (None, 3, Outcome.NO_RESPONSE),
    (np.nan, -3, Outcome.NO_RESPONSE),
])
def test_score_response(detected, step, expected):
    assert score_response(detected, step) is expected


def test_outcome_accuracy():
    assert Outcome.CORRECT.accuracy == 1
    assert Outcome.INCORRECT.accuracy == 0
    assert np.isnan(Outcome.NO_RESPONSE.accuracy)


def test_get_response(monkeypatch):
    answers = iter(["x", " L ", "s", ""])
    monkeypatch.setattr("builtins.input", lambda prompt: next(answers))
    assert get_response(0, 10) == ASCENDING
    assert get_response() == DESCENDING
    assert get_response() is None
