"""
lattice.py

Log-spaced frequency lattice for SFG chords and equal-loudness gains.

Chord components are always referred to by their integer index in the
lattice (0 .. count-1). Hz values only appear when a chord is rendered or
stored as metadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

import numpy as np
from scipy.interpolate import CubicSpline

from errors import InvalidRangeError

DEFAULT_PHON_LEVEL = 60

# ISO 226:2003 table: frequencies (Hz), exponent of loudness perception (af),
# magnitude of the linear transfer function (Lu, dB), hearing threshold (Tf, dB)
_ISO226_F = np.array([
    20, 25, 31.5, 40, 50, 63, 80, 100, 125, 160, 200, 250, 315, 400, 500, 630,
    800, 1000, 1250, 1600, 2000, 2500, 3150, 4000, 5000, 6300, 8000, 10000, 12500,
])
_ISO226_AF = np.array([
    0.532, 0.506, 0.480, 0.455, 0.432, 0.409, 0.387, 0.367, 0.349, 0.330, 0.315,
    0.301, 0.288, 0.276, 0.267, 0.259, 0.253, 0.250, 0.246, 0.244, 0.243, 0.243,
    0.243, 0.242, 0.242, 0.245, 0.254, 0.271, 0.301,
])
_ISO226_LU = np.array([
    -31.6, -27.2, -23.0, -19.1, -15.9, -13.0, -10.3, -8.1, -6.2, -4.5, -3.1,
    -2.0, -1.1, -0.4, 0.0, 0.3, 0.5, 0.0, -2.7, -4.1, -1.0, 1.7,
    2.5, 1.2, -2.1, -7.1, -11.2, -10.7, -3.1,
])
_ISO226_TF = np.array([
    78.5, 68.7, 59.5, 51.1, 44.0, 37.5, 31.5, 26.5, 22.1, 17.9, 14.4,
    11.4, 8.6, 6.2, 4.4, 3.0, 2.2, 2.4, 3.5, 1.7, -1.3, -4.2,
    -6.0, -5.4, -1.5, 6.0, 12.6, 13.9, 12.3,
])


def build_lattice(freq_min: float, freq_max: float, count: int) -> np.ndarray:
    """`count` frequencies spaced uniformly on a log scale, both ends included."""
    if freq_min <= 0 or freq_min >= freq_max:
        raise InvalidRangeError(f"Need 0 < freq_min < freq_max, got [{freq_min}, {freq_max}]")
    if count < 2:
        raise InvalidRangeError(f"A lattice needs at least 2 frequencies, got {count}")
    log_freq = np.linspace(np.log(freq_min), np.log(freq_max), int(count))
    return np.exp(log_freq)


def iso226_spl(phon: float, frequencies: Sequence[float]) -> np.ndarray:
    """
    Sound pressure level (dB) of the `phon` equal-loudness contour at the
    given frequencies. Contour values are computed on the standard table and
    spline-interpolated on a log-frequency axis.
    """
    if not 0 <= phon <= 90:
        raise InvalidRangeError(f"ISO 226 contours are defined for 0-90 phon, got {phon}")
    freqs = np.atleast_1d(np.asarray(frequencies, dtype=float))
    lo, hi = _ISO226_F[0] * (1 - 1e-9), _ISO226_F[-1] * (1 + 1e-9)
    if freqs.size and (freqs.min() < lo or freqs.max() > hi):
        raise InvalidRangeError(
            f"ISO 226 contours cover {_ISO226_F[0]}-{_ISO226_F[-1]} Hz, "
            f"got {freqs.min():.1f}-{freqs.max():.1f} Hz"
        )
    a_f = 4.47e-3 * (10 ** (0.025 * phon) - 1.15) + \
        (0.4 * 10 ** ((_ISO226_TF + _ISO226_LU) / 10 - 9)) ** _ISO226_AF
    lp = (10 / _ISO226_AF) * np.log10(a_f) - _ISO226_LU + 94
    spline = CubicSpline(np.log10(_ISO226_F), lp)
    return spline(np.log10(freqs))


def loudness_gains(frequencies: Sequence[float], phon_level: float = DEFAULT_PHON_LEVEL) -> np.ndarray:
    """Per-frequency power gain derived from the equal-loudness contour."""
    spl = iso226_spl(phon_level, frequencies)
    spl_gains = 10 ** ((spl - phon_level) / 20)
    return spl_gains ** 0.5


@dataclass(frozen=True)
class FrequencyLattice:
    freq_min: float
    freq_max: float
    count: int

    def __post_init__(self):
        # validates the range
        build_lattice(self.freq_min, self.freq_max, self.count)

    @classmethod
    def from_params(cls, params) -> "FrequencyLattice":
        return cls(params.tone_freq_min, params.tone_freq_max, params.tone_freq_set_length)

    @property
    def frequencies(self) -> np.ndarray:
        return _cached_lattice(self.freq_min, self.freq_max, self.count)

    def __len__(self):
        return self.count

    def resolve(self, indices) -> np.ndarray:
        """Integer Hz values of the given lattice indices."""
        idx = np.asarray(indices, dtype=int)
        return np.round(self.frequencies[idx])

    def gains(self, phon_level: float = DEFAULT_PHON_LEVEL) -> np.ndarray:
        """Loudness gains for every lattice index."""
        return _cached_gains(self.freq_min, self.freq_max, self.count, phon_level)


@lru_cache(maxsize=32)
def _cached_lattice(freq_min, freq_max, count):
    freqs = build_lattice(freq_min, freq_max, count)
    freqs.setflags(write=False)
    return freqs


@lru_cache(maxsize=32)
def _cached_gains(freq_min, freq_max, count, phon_level):
    gains = loudness_gains(_cached_lattice(freq_min, freq_max, count), phon_level)
    gains.setflags(write=False)
    return gains
