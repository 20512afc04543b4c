"""
params.py

Configuration objects for SFG stimulus generation and the two staircases.

Every field is always present and carries a documented default. Objects are
frozen; per-trial variants are made with dataclasses.replace(), so each trial
owns its own snapshot of the stimulus parameters.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from errors import InvalidRangeError, ParameterConsistencyError

# tolerance for float -> whole-number conversions (durations / chord counts)
_EPS = 1e-9


def floor_ratio(a: float, b: float) -> int:
    return int(math.floor(a / b + _EPS))


def ceil_ratio(a: float, b: float) -> int:
    return int(math.ceil(a / b - _EPS))


def chord_count(total_duration: float, chord_duration: float) -> int:
    """Number of whole chords fitting into the stimulus."""
    return floor_ratio(total_duration, chord_duration)


@dataclass(frozen=True)
class StimulusParameters:
    """
    Parameters of one SFG stimulus.

    sample_rate           Hz
    chord_duration        s, length of one chord
    chord_onset           s, length of the sine onset (and offset) ramp
    total_duration        s
    tone_comp             tone components per chord (figure + background)
    tone_freq_min/max     Hz, bounds of the log-spaced frequency lattice
    tone_freq_set_length  number of lattice frequencies
    figure_coh            figure coherence, 0 means no figure
    figure_duration       figure length in chords
    figure_onset          first figure chord (1-based) or None for random
    figure_min_onset      s, minimal distance of the figure from both ends
    figure_step           signed lattice steps per chord (+ ascending, - descending)
    random_seed           seed for a fresh generator when none is passed in
    """
    sample_rate: int = 44100
    chord_duration: float = 0.05
    chord_onset: float = 0.01
    total_duration: float = 2.0
    tone_comp: int = 20
    tone_freq_min: float = 179.0
    tone_freq_max: float = 7246.0
    tone_freq_set_length: int = 1000
    figure_coh: int = 10
    figure_duration: int = 8
    figure_onset: Optional[int] = None
    figure_min_onset: float = 0.3
    figure_step: int = 0
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise InvalidRangeError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.chord_duration <= 0 or self.total_duration <= 0:
            raise InvalidRangeError("chord_duration and total_duration must be positive")
        if self.chord_onset < 0 or self.figure_min_onset < 0:
            raise InvalidRangeError("chord_onset and figure_min_onset cannot be negative")
        samples = self.sample_rate * self.chord_duration
        if abs(samples - round(samples)) > 1e-6:
            raise InvalidRangeError(
                f"A chord of {self.chord_duration} s does not hold a whole number of samples "
                f"at {self.sample_rate} Hz"
            )
        if 2 * self.onset_samples > self.chord_samples:
            raise InvalidRangeError(
                f"Onset ramp of {self.chord_onset} s does not fit twice into a {self.chord_duration} s chord"
            )
        if self.n_chords < 1:
            raise InvalidRangeError("total_duration is shorter than one chord")
        if self.tone_freq_min <= 0 or self.tone_freq_min >= self.tone_freq_max:
            raise InvalidRangeError(
                f"Invalid frequency range [{self.tone_freq_min}, {self.tone_freq_max}]"
            )
        if self.tone_freq_set_length < 2:
            raise InvalidRangeError("tone_freq_set_length must be at least 2")
        if self.figure_coh < 0:
            raise ParameterConsistencyError(f"figure_coh cannot be negative, got {self.figure_coh}")
        if self.tone_comp < 1:
            raise ParameterConsistencyError(f"tone_comp must be at least 1, got {self.tone_comp}")
        if self.tone_comp < self.figure_coh:
            raise ParameterConsistencyError(
                f"tone_comp ({self.tone_comp}) is smaller than figure_coh ({self.figure_coh})"
            )
        if self.tone_comp > self.tone_freq_set_length:
            raise ParameterConsistencyError(
                f"tone_comp ({self.tone_comp}) exceeds the lattice size ({self.tone_freq_set_length})"
            )
        if self.figure_coh > 0 and not 1 <= self.figure_duration <= self.n_chords:
            raise ParameterConsistencyError(
                f"figure_duration must be within [1, {self.n_chords}], got {self.figure_duration}"
            )

    @property
    def chord_samples(self) -> int:
        return int(round(self.sample_rate * self.chord_duration))

    @property
    def onset_samples(self) -> int:
        return int(round(self.sample_rate * self.chord_onset))

    @property
    def n_chords(self) -> int:
        return chord_count(self.total_duration, self.chord_duration)

    @property
    def n_samples(self) -> int:
        return int(round(self.sample_rate * self.total_duration))

    @property
    def background_count(self) -> int:
        """Background tones in a chord that carries the figure."""
        return self.tone_comp - self.figure_coh


@dataclass(frozen=True)
class QuestConfig:
    """
    Quest settings for background thresholding.

    prior_mean -0.61 is a log-SNR of ~0.54. The first `ignore_trials` trials
    are not used for the posterior. After `trial_max` trials the run goes on
    for at most `trial_extra_max` trials while the posterior SD is too large.
    """
    prior_mean: float = -0.61
    prior_sd: float = 5.0
    p_threshold: float = 0.75
    beta: float = 3.5
    delta: float = 0.02
    gamma: float = 0.5
    grain: float = 0.001
    range: float = 7.0
    ignore_trials: int = 3
    trial_max: int = 80
    trial_extra_max: int = 20
    step_size: int = 50
    levels_below: int = 3
    levels_above: int = 10

    def __post_init__(self):
        if self.ignore_trials < 0:
            raise ParameterConsistencyError("ignore_trials cannot be negative")
        if self.trial_max < 1 or self.trial_extra_max < 0:
            raise ParameterConsistencyError("trial_max must be positive and trial_extra_max non-negative")
        if self.grain <= 0 or self.range <= 0:
            raise InvalidRangeError("grain and range must be positive")


@dataclass(frozen=True)
class UpDownConfig:
    """
    Step-size staircase settings.

    hit_threshold correct answers in a row make the task harder (smaller
    |step|), miss_threshold errors in a row make it easier. A block ends when
    both min_trial_count and min_reversal_count are reached.
    """
    step_size_min: int = 1
    step_size_max: int = 10
    step_size_step: int = 1
    initial_step_size: int = 60
    hit_threshold: int = 3
    miss_threshold: int = 1
    min_trial_count: int = 100
    min_reversal_count: int = 9

    def __post_init__(self):
        if self.step_size_step <= 0:
            raise ParameterConsistencyError("step_size_step must be positive")
        if not 0 < self.step_size_min <= self.step_size_max:
            raise ParameterConsistencyError(
                f"Need 0 < step_size_min <= step_size_max, got {self.step_size_min}, {self.step_size_max}"
            )
        if self.initial_step_size < self.step_size_min:
            raise ParameterConsistencyError("initial_step_size is below step_size_min")
        if self.hit_threshold < 1 or self.miss_threshold < 1:
            raise ParameterConsistencyError("hit_threshold and miss_threshold must be at least 1")


@dataclass(frozen=True)
class ExperimentParams:
    figure_coh: int
    tone_comp_high: int
    tone_comp_low: int
    staircase: UpDownConfig = field(default_factory=UpDownConfig)

    @property
    def high_low_bg_comp_diff(self) -> int:
        return self.tone_comp_low - self.tone_comp_high


def _elderly() -> ExperimentParams:
    figure_coh = 11
    tone_comp_high = 20 - figure_coh
    return ExperimentParams(
        figure_coh=figure_coh,
        tone_comp_high=tone_comp_high,
        tone_comp_low=tone_comp_high + 5,
        staircase=UpDownConfig(
            step_size_min=1,
            step_size_max=10,
            step_size_step=1,
            initial_step_size=60,
            hit_threshold=3,
            miss_threshold=1,
            min_trial_count=100,
            min_reversal_count=9,
        ),
    )


_PRESETS = {
    "elderly": _elderly,
}


def experiment_params(group: str) -> ExperimentParams:
    """Lab presets per participant group."""
    key = group.strip().lower()
    if key not in _PRESETS:
        raise ValueError(f"Unknown group '{group}'. Known groups: {sorted(_PRESETS)}")
    return _PRESETS[key]()
