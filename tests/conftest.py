"""Test configuration: project root on sys.path, non-interactive plotting."""
import sys
from pathlib import Path

import matplotlib
import pytest

matplotlib.use("Agg")

root_dir = str(Path(__file__).resolve().parent.parent)
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)

from params import StimulusParameters  # noqa: E402


@pytest.fixture
def small_params():
    """20 chords of 25 ms at 8 kHz on a 60-frequency lattice; onsets 5..13 are valid."""
    return StimulusParameters(
        sample_rate=8000,
        chord_duration=0.025,
        chord_onset=0.005,
        total_duration=0.5,
        tone_comp=10,
        tone_freq_set_length=60,
        figure_coh=4,
        figure_duration=4,
        figure_step=2,
        figure_min_onset=0.1,
        random_seed=1,
    )
