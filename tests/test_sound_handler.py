import dataclasses

import numpy as np
import pytest
import slab

from errors import InvalidOnsetError
from lattice import FrequencyLattice
from sound_handler import onset_offset_ramp, render_chord, synthesize_stimulus, to_sound


def test_ramp_shape():
    ramp = onset_offset_ramp(200, 40)
    assert ramp.shape == (200,)
    assert ramp[0] == 0
    assert ramp[-1] == pytest.approx(0)
    np.testing.assert_array_equal(ramp[40:160], 1)
    np.testing.assert_allclose(ramp[:40], ramp[::-1][:40])


def test_render_chord(small_params):
    lattice = FrequencyLattice.from_params(small_params)
    silent = render_chord([], lattice, 8000, 0.025, 0.005)
    np.testing.assert_array_equal(silent, np.zeros(200))
    chord = render_chord([0, 30], lattice, 8000, 0.025, 0.005)
    assert chord.shape == (200,)
    assert chord[0] == 0
    assert np.max(np.abs(chord)) <= 2


def test_waveform_is_normalised_and_diotic(small_params):
    stim = synthesize_stimulus(small_params)
    assert stim.waveform.shape == (2, 4000)
    assert np.max(np.abs(stim.waveform)) == pytest.approx(1.0)
    np.testing.assert_array_equal(stim.waveform[0], stim.waveform[1])


def test_figure_and_background_are_disjoint(small_params):
    for seed in range(5):
        stim = synthesize_stimulus(dataclasses.replace(small_params, random_seed=seed))
        assert 5 <= stim.figure_start <= 13
        assert stim.figure_end == stim.figure_start + 3
        for chord in range(small_params.n_chords):
            chord_nr = chord + 1
            background = stim.background_idx[:, chord]
            figure = stim.figure_idx[:, chord]
            if stim.figure_start <= chord_nr <= stim.figure_end:
                assert np.all(figure >= 0)
                assert np.sum(background >= 0) == small_params.background_count
                assert not set(figure) & set(background[background >= 0])
                assert not np.any(np.isnan(stim.figure_freqs[:, chord]))
            else:
                assert np.all(figure == -1)
                assert np.sum(background >= 0) == small_params.tone_comp
                assert np.all(np.isnan(stim.figure_freqs[:, chord]))
            assert len(set(background[background >= 0])) == np.sum(background >= 0)


def test_figure_follows_step(small_params):
    stim = synthesize_stimulus(dataclasses.replace(small_params, figure_step=-2))
    window = stim.figure_idx[:, stim.figure_start - 1:stim.figure_end]
    np.testing.assert_array_equal(np.diff(window, axis=1), -2)


def test_no_figure(small_params):
    stim = synthesize_stimulus(dataclasses.replace(small_params, figure_coh=0))
    assert (stim.figure_start, stim.figure_end) == (0, 0)
    assert not stim.has_figure
    assert stim.figure_freqs.shape == (0, 20)
    assert np.all(stim.background_idx >= 0)
    assert np.max(np.abs(stim.waveform)) == pytest.approx(1.0)


def test_reproducible_with_seed(small_params):
    first = synthesize_stimulus(small_params)
    second = synthesize_stimulus(small_params)
    np.testing.assert_array_equal(first.waveform, second.waveform)
    np.testing.assert_array_equal(first.background_idx, second.background_idx)
    other = synthesize_stimulus(dataclasses.replace(small_params, random_seed=2))
    assert not np.array_equal(first.waveform, other.waveform)


def test_explicit_generator_takes_precedence(small_params):
    first = synthesize_stimulus(small_params, rng=np.random.default_rng(7))
    second = synthesize_stimulus(dataclasses.replace(small_params, random_seed=99), rng=np.random.default_rng(7))
    np.testing.assert_array_equal(first.waveform, second.waveform)


def test_requested_onset(small_params):
    stim = synthesize_stimulus(dataclasses.replace(small_params, figure_onset=6))
    assert (stim.figure_start, stim.figure_end) == (6, 9)
    with pytest.raises(InvalidOnsetError):
        synthesize_stimulus(dataclasses.replace(small_params, figure_onset=2))


def test_loudness_equalisation(small_params):
    plain = synthesize_stimulus(small_params)
    equalised = synthesize_stimulus(small_params, loudness_eq=True)
    np.testing.assert_array_equal(plain.background_idx, equalised.background_idx)
    assert np.max(np.abs(equalised.waveform)) == pytest.approx(1.0)
    assert not np.allclose(plain.waveform, equalised.waveform)


def test_to_sound(small_params):
    sound = to_sound(synthesize_stimulus(small_params))
    assert isinstance(sound, slab.Binaural)
    assert sound.n_samples == 4000
    assert sound.n_channels == 2
    assert sound.samplerate == 8000
