"""
trial_mapper.py

Translation between staircase intensities and concrete stimulus parameters.
For background thresholding the intensity is the log-SNR log(figure_coh /
background_count), and only whole background counts on a fixed grid of
levels are realizable.
"""

from __future__ import annotations

import dataclasses
from typing import Sequence, Tuple

import numpy as np

from errors import InvalidRangeError, ParameterConsistencyError
from params import StimulusParameters
from quest import sd_target_from_levels


def nearest_level(intensity: float, candidate_intensities: Sequence[float], candidate_values: Sequence):
    """Return (value, realized_intensity) of the candidate closest to `intensity`."""
    candidate_intensities = np.asarray(candidate_intensities, dtype=float)
    if candidate_intensities.size == 0:
        raise InvalidRangeError("No candidate levels to choose from")
    if len(candidate_values) != candidate_intensities.size:
        raise ParameterConsistencyError("Candidate intensities and values differ in length")
    idx = int(np.argmin(np.abs(candidate_intensities - intensity)))
    return candidate_values[idx], float(candidate_intensities[idx])


class SnrLevelMapper:
    """
    Background levels run from `tone_comp - figure_coh - levels_below` to
    `tone_comp + levels_above`.
    """

    def __init__(self, figure_coh: int, tone_comp: int, levels_below: int = 3, levels_above: int = 10):
        if figure_coh < 1:
            raise ParameterConsistencyError(f"SNR levels need a figure, got figure_coh={figure_coh}")
        lowest = tone_comp - figure_coh - levels_below
        highest = tone_comp + levels_above
        if lowest < 1 or highest < lowest:
            raise InvalidRangeError(f"Background levels [{lowest}, {highest}] are not all positive")
        self.figure_coh = figure_coh
        self.tone_comp = tone_comp
        self.background_levels = np.arange(lowest, highest + 1)
        self.intensities = np.log(figure_coh / self.background_levels)

    def to_intensity(self, background_count: int) -> float:
        return float(np.log(self.figure_coh / background_count))

    def to_stimulus_parameter(self, intensity: float) -> Tuple[int, float]:
        """Background count closest to `intensity` and the log-SNR it realizes."""
        background_count, realized = nearest_level(intensity, self.intensities, self.background_levels)
        return int(background_count), realized

    def apply(self, params: StimulusParameters, intensity: float, direction: int,
              step_size: int) -> Tuple[StimulusParameters, float]:
        background_count, realized = self.to_stimulus_parameter(intensity)
        trial_params = dataclasses.replace(
            params,
            figure_coh=self.figure_coh,
            tone_comp=self.figure_coh + background_count,
            figure_step=int(direction) * int(step_size),
        )
        return trial_params, realized

    @property
    def sd_target(self) -> float:
        return sd_target_from_levels(self.intensities)
