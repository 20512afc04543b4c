from enum import Enum

import numpy as np

ASCENDING = 1
DESCENDING = -1


class Outcome(Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    NO_RESPONSE = "no_response"

    @property
    def accuracy(self):
        """1 / 0 for answered trials, NaN for a missing response."""
        if self is Outcome.NO_RESPONSE:
            return np.nan
        return int(self is Outcome.CORRECT)


def score_response(detected_direction, figure_step):
    """Compare the reported figure direction with the sign of the step size."""
    if detected_direction is None or (isinstance(detected_direction, float) and np.isnan(detected_direction)):
        return Outcome.NO_RESPONSE
    if (detected_direction == ASCENDING and figure_step > 0) or (detected_direction == DESCENDING and figure_step < 0):
        return Outcome.CORRECT
    return Outcome.INCORRECT


def get_response(trial_count=None, max_count=None, ascending_key="l", descending_key="s"):
    while True:
        if trial_count is not None and max_count is not None:
            response = input(f"Ascending figure? {ascending_key} | descending: {descending_key} "
                             f"(empty = no response) ({trial_count + 1}/{max_count})")
        else:
            response = input(f"Ascending figure? {ascending_key} | descending: {descending_key} "
                             f"(empty = no response)")
        response = response.strip().lower()
        if response == ascending_key:
            return ASCENDING
        elif response == descending_key:
            return DESCENDING
        elif response == "":
            return None
        else:
            continue
