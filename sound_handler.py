import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import slab

from figure_track import build_track, select_figure_onset_window
from lattice import FrequencyLattice
from params import StimulusParameters

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


@dataclass
class Stimulus:
    """
    One SFG stimulus.

    waveform          2 x samples, both channels identical, peak amplitude 1
    figure_freqs      figure_coh x chords, Hz, NaN outside the figure
    background_freqs  tone_comp x chords, Hz, NaN where fewer tones were used
    figure_idx        lattice indices behind figure_freqs, -1 for missing
    background_idx    lattice indices behind background_freqs, -1 for missing
    figure_start      first figure chord (1-based), 0 without a figure
    figure_end        last figure chord (1-based), 0 without a figure
    """
    waveform: np.ndarray
    figure_freqs: np.ndarray
    background_freqs: np.ndarray
    figure_idx: np.ndarray
    background_idx: np.ndarray
    figure_start: int
    figure_end: int
    params: StimulusParameters

    @property
    def has_figure(self):
        return self.figure_start > 0


def onset_offset_ramp(n_samples, n_ramp):
    # sine onset, flat middle, mirrored offset
    onset = np.sin(np.linspace(0, 1, n_ramp) * np.pi / 2)
    return np.concatenate([onset, np.ones(n_samples - 2 * n_ramp), onset[::-1]])


def render_chord(indices: Sequence[int], lattice: FrequencyLattice, sample_rate: int, duration: float,
                 onset_duration: float, gains: Optional[np.ndarray] = None,
                 ramp: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Sum of unit sines at the (rounded) lattice frequencies, shaped by the
    onset/offset ramp. Gains, if given, are indexed by lattice index and
    applied per tone before summing. The result is not normalised.
    """
    n_samples = int(round(sample_rate * duration))
    if ramp is None:
        ramp = onset_offset_ramp(n_samples, int(round(sample_rate * onset_duration)))
    indices = np.asarray(indices, dtype=int)
    if indices.size == 0:
        return np.zeros(n_samples)
    frequencies = lattice.resolve(indices)
    time_nodes = np.arange(1, n_samples + 1) / sample_rate
    tones = np.sin(2 * np.pi * np.outer(frequencies, time_nodes))
    if gains is not None:
        tones = tones * np.asarray(gains)[indices][:, np.newaxis]
    return tones.sum(axis=0) * ramp


def _resolve_or_nan(lattice, idx):
    out = np.full(idx.shape, np.nan)
    mask = idx >= 0
    out[mask] = lattice.resolve(idx[mask])
    return out


def synthesize_stimulus(params: StimulusParameters, loudness_eq: bool = False,
                        rng: Optional[np.random.Generator] = None) -> Stimulus:
    """
    Generate one SFG stimulus for `params`.

    Random draws (figure onset, figure tones, background tones) come from
    `rng`; without one, a generator seeded with params.random_seed is used,
    so equal parameters with a seed give identical stimuli.
    """
    if rng is None:
        rng = np.random.default_rng(params.random_seed)
    lattice = FrequencyLattice.from_params(params)
    gains = lattice.gains() if loudness_eq else None

    n_chords = params.n_chords
    chord_samples = params.chord_samples
    ramp = onset_offset_ramp(chord_samples, params.onset_samples)

    if params.figure_coh > 0:
        figure_start, figure_end = select_figure_onset_window(
            params.total_duration,
            params.chord_duration,
            params.figure_min_onset,
            params.figure_duration,
            requested_onset=params.figure_onset,
            rng=rng,
        )
        track = build_track(params.figure_coh, params.figure_duration, params.figure_step, len(lattice), rng)
    else:
        figure_start, figure_end = 0, 0
        track = np.empty((0, 0), dtype=int)

    mono = np.zeros(params.n_samples)
    figure_idx = np.full((params.figure_coh, n_chords), -1, dtype=int)
    background_idx = np.full((params.tone_comp, n_chords), -1, dtype=int)
    lattice_idx = np.arange(len(lattice))

    for chord_pos in range(1, n_chords + 1):
        col = chord_pos - 1
        in_figure = figure_start <= chord_pos <= figure_end
        if in_figure:
            figure_tones = track[:, chord_pos - figure_start]
            background_no = params.tone_comp - params.figure_coh
            # stable set difference keeps the draw below reproducible
            available = lattice_idx[~np.isin(lattice_idx, figure_tones)]
            figure_idx[:, col] = figure_tones
        else:
            background_no = params.tone_comp
            available = lattice_idx

        background_tones = rng.choice(available, size=background_no, replace=False)
        background_idx[:background_no, col] = background_tones

        chord = render_chord(background_tones, lattice, params.sample_rate, params.chord_duration,
                             params.chord_onset, gains=gains, ramp=ramp)
        if in_figure:
            chord = chord + render_chord(figure_tones, lattice, params.sample_rate, params.chord_duration,
                                         params.chord_onset, gains=gains, ramp=ramp)
        mono[col * chord_samples:(col + 1) * chord_samples] = chord

    peak = np.max(np.abs(mono))
    waveform = np.vstack([mono, mono]) / peak

    logger.debug(
        f"Synthesized SFG stimulus: {n_chords} chords, tone_comp={params.tone_comp}, "
        f"figure_coh={params.figure_coh}, step={params.figure_step}, window=({figure_start}, {figure_end})"
    )
    return Stimulus(
        waveform=waveform,
        figure_freqs=_resolve_or_nan(lattice, figure_idx),
        background_freqs=_resolve_or_nan(lattice, background_idx),
        figure_idx=figure_idx,
        background_idx=background_idx,
        figure_start=figure_start,
        figure_end=figure_end,
        params=params,
    )


def to_sound(stimulus):
    """Wrap the waveform into a slab.Binaural for playback."""
    return slab.Binaural(stimulus.waveform.T, samplerate=stimulus.params.sample_rate)
