"""
figure_track.py

Placement of the SFG figure: when it starts (chord window) and which
lattice indices it follows from chord to chord.
"""

from __future__ import annotations

import math
import numbers
from typing import Optional, Tuple

import numpy as np

from errors import InvalidOnsetError, ParameterConsistencyError
from params import ceil_ratio, floor_ratio


def figure_onset_range(total_duration: float, chord_duration: float,
                       figure_min_onset: float, figure_duration: int) -> Tuple[int, int]:
    """First and last allowed figure onset chord (1-based, inclusive)."""
    first = ceil_ratio(figure_min_onset, chord_duration) + 1
    last = floor_ratio(total_duration - figure_min_onset, chord_duration) - figure_duration + 1
    return first, last


def select_figure_onset_window(
        total_duration: float,
        chord_duration: float,
        figure_min_onset: float,
        figure_duration: int,
        requested_onset: Optional[int] = None,
        figure_coh: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
) -> Tuple[int, int]:
    """
    Return (start_chord, end_chord) of the figure, both 1-based and inclusive.
    A random onset is drawn from `rng` when `requested_onset` is None.
    Without figure tones (figure_coh == 0) the window is (0, 0).
    """
    if figure_coh == 0:
        return 0, 0
    first, last = figure_onset_range(total_duration, chord_duration, figure_min_onset, figure_duration)
    if last < first:
        raise InvalidOnsetError(
            f"No room for a {figure_duration}-chord figure with a minimal onset of {figure_min_onset} s "
            f"in a {total_duration} s stimulus"
        )
    if requested_onset is None:
        if rng is None:
            rng = np.random.default_rng()
        start = int(rng.integers(first, last + 1))
    else:
        if not isinstance(requested_onset, numbers.Real) or not math.isfinite(requested_onset) \
                or requested_onset != int(requested_onset):
            raise InvalidOnsetError(f"Figure onset must be a whole chord number, got {requested_onset!r}")
        if not first <= requested_onset <= last:
            raise InvalidOnsetError(
                f"Figure onset {requested_onset} is outside the allowed chords [{first}, {last}]"
            )
        start = int(requested_onset)
    return start, start + figure_duration - 1


def build_track(figure_coh: int, figure_duration: int, step_size: int, lattice_size: int,
                rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Lattice indices of the figure, shape (figure_coh, figure_duration).

    Start indices are distinct and restricted so that the whole trajectory
    stays inside the lattice; every row then moves by `step_size` per chord.
    """
    if rng is None:
        rng = np.random.default_rng()
    span = abs(step_size) * (figure_duration - 1)
    n_valid = lattice_size - span
    if figure_coh > n_valid:
        raise ParameterConsistencyError(
            f"A lattice of {lattice_size} frequencies cannot hold {figure_coh} figure tones "
            f"moving {step_size} steps over {figure_duration} chords"
        )
    valid_starts = np.arange(max(n_valid, 0))
    if step_size < 0:
        valid_starts = valid_starts + span
    starts = rng.choice(valid_starts, size=figure_coh, replace=False)
    steps = step_size * np.arange(figure_duration)
    return (starts[:, np.newaxis] + steps[np.newaxis, :]).astype(int)
