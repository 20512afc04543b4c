import logging
from typing import Dict, List, Optional

from params import UpDownConfig
from utils import Outcome

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


class UpDownStaircase:
    """
    Weighted up-down staircase on the figure step size (lattice steps per
    chord, unsigned).

    `hit_threshold` correct answers in a row decrease the step size,
    `miss_threshold` errors in a row increase it. A run counter starts over
    whenever it reaches its threshold, also when the step size is already at
    its bound. A reversal is a step change in the opposite direction of the
    previous step change.
    """

    def __init__(self, config: Optional[UpDownConfig] = None):
        self.config = config or UpDownConfig()
        self.step_size = self.config.initial_step_size
        self.hit_count = 0
        self.miss_count = 0
        self.reversal_count = 0
        self.trial_count = 0
        self.history: List[Dict] = []
        self._last_change = 0

    def recommend_step_size(self, direction: int) -> int:
        """Signed figure step for the next trial (+1 ascending, -1 descending)."""
        return int(direction) * self.step_size

    def update(self, outcome: Outcome) -> int:
        cfg = self.config
        self.trial_count += 1
        step_before = self.step_size
        change = 0

        if outcome is Outcome.CORRECT:
            self.hit_count += 1
            self.miss_count = 0
            if self.hit_count >= cfg.hit_threshold:
                self.hit_count = 0
                if self.step_size > cfg.step_size_min:
                    self.step_size = max(self.step_size - cfg.step_size_step, cfg.step_size_min)
                    change = -1
        elif outcome is Outcome.INCORRECT:
            self.miss_count += 1
            self.hit_count = 0
            if self.miss_count >= cfg.miss_threshold:
                self.miss_count = 0
                if self.step_size < cfg.step_size_max:
                    self.step_size = min(self.step_size + cfg.step_size_step, cfg.step_size_max)
                    change = 1

        reversal = False
        if change:
            if self._last_change and change != self._last_change:
                self.reversal_count += 1
                reversal = True
                logger.info(f"Reversal {self.reversal_count} at trial {self.trial_count}")
            self._last_change = change
            logger.info(f"Step size changed from {step_before} to {self.step_size}")

        self.history.append({
            "trial": self.trial_count,
            "step_size": step_before,
            "outcome": outcome.value,
            "next_step_size": self.step_size,
            "reversal": reversal,
        })
        return self.step_size

    @property
    def step_sizes(self) -> List[int]:
        """Step size used on each trial so far."""
        return [entry["step_size"] for entry in self.history]

    @property
    def is_done(self) -> bool:
        return self.trial_count >= self.config.min_trial_count and \
            self.reversal_count >= self.config.min_reversal_count
