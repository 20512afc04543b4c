"""
quest.py

Quest adaptive threshold procedure (Watson & Pelli, 1983) for background
thresholding of SFG stimuli.

QuestState holds the discretised posterior over the threshold and does the
Bayesian bookkeeping. QuestStaircase wraps it with the run protocol: the
first trials are not used for the posterior, missing responses are never
used, and the run stops after `trial_max` trials once the posterior SD is
small enough, or after at most `trial_extra_max` extra trials.

Intensities are log-SNR values (see trial_mapper.SnrLevelMapper).
"""

from __future__ import annotations

import json
import logging
import math
from enum import Enum
from pathlib import Path
from typing import Dict, List, Sequence, Union

import numpy as np
from scipy.stats import norm

from errors import DegenerateLikelihoodError, InvalidRangeError
from params import QuestConfig
from utils import Outcome

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


def sd_target_from_levels(levels: Sequence[float], factor: float = 1.5) -> float:
    """Posterior SD at which the run may stop: factor * median level spacing."""
    levels = np.asarray(levels, dtype=float)
    if levels.size < 2:
        raise DegenerateLikelihoodError("Need at least two candidate levels to derive an SD target")
    return float(factor * np.median(np.abs(np.diff(levels))))


class QuestState:
    """
    Posterior over threshold offsets x (relative to the prior mean) on a
    grid of `dim + 1` points spaced by `grain`.
    """

    def __init__(self, t_guess, t_guess_sd, p_threshold, beta, delta, gamma, grain, dim):
        self.t_guess = float(t_guess)
        self.t_guess_sd = float(t_guess_sd)
        self.p_threshold = float(p_threshold)
        self.beta = float(beta)
        self.delta = float(delta)
        self.gamma = float(gamma)
        self.grain = float(grain)
        self.dim = int(dim)
        self.intensities: List[float] = []
        self.responses: List[int] = []
        self._recompute()

    @classmethod
    def create(cls, prior_mean, prior_sd, p_threshold, beta, delta, gamma, grain=0.01, range=5.0):
        if grain <= 0 or range <= 0:
            raise InvalidRangeError("grain and range must be positive")
        if prior_sd <= 0:
            raise DegenerateLikelihoodError(f"prior_sd must be positive, got {prior_sd}")
        dim = range / grain
        dim = 2 * math.ceil(dim / 2 - 1e-9)
        return cls(prior_mean, prior_sd, p_threshold, beta, delta, gamma, grain, dim)

    @classmethod
    def from_config(cls, config: QuestConfig) -> "QuestState":
        return cls.create(config.prior_mean, config.prior_sd, config.p_threshold, config.beta,
                          config.delta, config.gamma, config.grain, config.range)

    def _weibull(self, x):
        return self.delta * self.gamma + \
            (1 - self.delta) * (1 - (1 - self.gamma) * np.exp(-10 ** (self.beta * x)))

    def _recompute(self):
        if self.beta <= 0:
            raise DegenerateLikelihoodError(f"Weibull slope beta must be positive, got {self.beta}")
        if not 0 <= self.delta < 1 or not 0 <= self.gamma < 1:
            raise DegenerateLikelihoodError(
                f"delta and gamma must lie in [0, 1), got delta={self.delta}, gamma={self.gamma}"
            )
        if not 0 < self.p_threshold < 1:
            raise DegenerateLikelihoodError(f"p_threshold must lie in (0, 1), got {self.p_threshold}")

        self.i = np.arange(-self.dim // 2, self.dim // 2 + 1)
        self.x = self.i * self.grain
        self.pdf = norm.pdf(self.x, 0, self.t_guess_sd)
        self.pdf = self.pdf / self.pdf.sum()

        self.x2 = np.arange(-self.dim, self.dim + 1) * self.grain
        with np.errstate(over="ignore"):
            p2 = self._weibull(self.x2)
        if not np.all(np.isfinite(p2)):
            raise DegenerateLikelihoodError("Psychometric function has non-finite values")
        if np.any(np.diff(p2) < 0):
            raise DegenerateLikelihoodError("Psychometric function is not monotonic increasing")
        if p2[0] >= self.p_threshold or p2[-1] <= self.p_threshold:
            raise DegenerateLikelihoodError(
                f"Psychometric function range [{p2[0]:.2f} {p2[-1]:.2f}] omits {self.p_threshold:.2f} threshold"
            )
        # interpolate on the strictly increasing part only
        index = np.flatnonzero(np.diff(p2))
        self.x_threshold = float(np.interp(self.p_threshold, p2[index], self.x2[index]))
        with np.errstate(over="ignore"):
            self.p2 = self._weibull(self.x2 + self.x_threshold)
        # row 0: failure, row 1: success; reversed along x
        self.s2 = np.vstack([1 - self.p2, self.p2])[:, ::-1]

    def update(self, intensity: float, success: bool) -> "QuestState":
        """Multiply the posterior by the likelihood of `success` at `intensity`."""
        response = int(bool(success))
        inten = max(-1e10, min(1e10, float(intensity)))
        ii = self.pdf.size + self.i - 1 - int(round((inten - self.t_guess) / self.grain))
        if ii[0] < 0 or ii[-1] >= self.s2.shape[1]:
            logger.warning(
                f"Intensity {inten:.3f} out of the Quest table range, using the closest table entry"
            )
            if ii[0] < 0:
                ii = ii - ii[0]
            else:
                ii = ii + (self.s2.shape[1] - 1 - ii[-1])
        pdf = self.pdf * self.s2[response, ii]
        total = pdf.sum()
        if not total > 0:
            raise DegenerateLikelihoodError("Posterior vanished after update")
        self.pdf = pdf / total
        self.intensities.append(inten)
        self.responses.append(response)
        return self

    def mean(self) -> float:
        return self.t_guess + float(np.sum(self.pdf * self.x) / np.sum(self.pdf))

    def sd(self) -> float:
        p = np.sum(self.pdf)
        var = np.sum(self.pdf * self.x ** 2) / p - (np.sum(self.pdf * self.x) / p) ** 2
        return float(np.sqrt(max(var, 0.0)))

    @property
    def intensity_bounds(self):
        return self.t_guess + self.x[0], self.t_guess + self.x[-1]

    def to_dict(self) -> Dict:
        return {
            "t_guess": self.t_guess,
            "t_guess_sd": self.t_guess_sd,
            "p_threshold": self.p_threshold,
            "beta": self.beta,
            "delta": self.delta,
            "gamma": self.gamma,
            "grain": self.grain,
            "dim": self.dim,
            "intensities": list(self.intensities),
            "responses": list(self.responses),
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "QuestState":
        """Rebuild a state; the posterior is recomputed by replaying the history."""
        state = cls(d["t_guess"], d["t_guess_sd"], d["p_threshold"], d["beta"], d["delta"],
                    d["gamma"], d["grain"], d["dim"])
        for intensity, response in zip(d.get("intensities", []), d.get("responses", [])):
            state.update(intensity, response)
        return state


class StaircaseStatus(Enum):
    INITIALIZED = "initialized"
    UPDATING = "updating"
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"


class QuestStaircase:
    """
    Trial protocol around a QuestState.

    recommend() gives the next intensity (posterior mean). update() consumes
    one trial slot; the outcome changes the posterior only after the first
    `ignore_trials` trials and only when there was a response.
    """

    def __init__(self, state: QuestState, sd_target: float, ignore_trials: int = 3,
                 trial_max: int = 80, trial_extra_max: int = 20):
        self.state = state
        self.sd_target = float(sd_target)
        self.ignore_trials = int(ignore_trials)
        self.trial_max = int(trial_max)
        self.trial_extra_max = int(trial_extra_max)
        self.trial_count = 0
        self.history: List[Dict] = []

    @classmethod
    def from_config(cls, config: QuestConfig, sd_target: float) -> "QuestStaircase":
        return cls(QuestState.from_config(config), sd_target, ignore_trials=config.ignore_trials,
                   trial_max=config.trial_max, trial_extra_max=config.trial_extra_max)

    def recommend(self) -> float:
        return self.state.mean()

    def update(self, intensity: float, outcome: Outcome) -> StaircaseStatus:
        if self.is_done:
            raise RuntimeError(f"Quest run already finished ({self.status.value}) after {self.trial_count} trials")
        self.trial_count += 1
        applied = self.trial_count > self.ignore_trials and outcome is not Outcome.NO_RESPONSE
        if applied:
            self.state.update(intensity, outcome is Outcome.CORRECT)
        sd = self.posterior_sd
        self.history.append({
            "trial": self.trial_count,
            "intensity": float(intensity),
            "outcome": outcome.value,
            "applied": applied,
            "posterior_mean": self.posterior_mean,
            "posterior_sd": sd,
        })
        logger.info(
            f"Quest trial {self.trial_count}: {outcome.value} at {intensity:.3f}"
            f"{'' if applied else ' (not used for the estimate)'}; "
            f"SD of threshold estimate is {sd:.3f} (ideally < {self.sd_target:.3f})"
        )
        if self.trial_count == self.trial_max and not self.is_done:
            logger.info(
                f"Standard deviation of threshold estimate is too large, adding extra trials "
                f"(max {self.trial_extra_max})"
            )
        return self.status

    @property
    def posterior_mean(self) -> float:
        return self.state.mean()

    @property
    def posterior_sd(self) -> float:
        return self.state.sd()

    @property
    def status(self) -> StaircaseStatus:
        if self.trial_count == 0:
            return StaircaseStatus.INITIALIZED
        if self.trial_count >= self.trial_max and self.posterior_sd < self.sd_target:
            return StaircaseStatus.CONVERGED
        if self.trial_count >= self.trial_max + self.trial_extra_max:
            return StaircaseStatus.BUDGET_EXHAUSTED
        return StaircaseStatus.UPDATING

    @property
    def is_converged(self) -> bool:
        return self.status is StaircaseStatus.CONVERGED

    @property
    def is_done(self) -> bool:
        return self.status in (StaircaseStatus.CONVERGED, StaircaseStatus.BUDGET_EXHAUSTED)

    def to_dict(self) -> Dict:
        return {
            "state": self.state.to_dict(),
            "sd_target": self.sd_target,
            "ignore_trials": self.ignore_trials,
            "trial_max": self.trial_max,
            "trial_extra_max": self.trial_extra_max,
            "trial_count": self.trial_count,
            "history": self.history,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "QuestStaircase":
        staircase = cls(QuestState.from_dict(d["state"]), d["sd_target"], d["ignore_trials"],
                        d["trial_max"], d["trial_extra_max"])
        staircase.trial_count = int(d["trial_count"])
        staircase.history = list(d.get("history", []))
        return staircase

    def save_json(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f)
        return path

    @classmethod
    def load_json(cls, path: Union[str, Path]) -> "QuestStaircase":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Quest state not found at {path}")
        with open(path) as f:
            return cls.from_dict(json.load(f))
