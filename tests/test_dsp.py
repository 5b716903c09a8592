import numpy as np
import pytest

from audiopreview import dsp


def _sine(freq: float, sample_rate: int, duration: float, amplitude: float = 1.0) -> np.ndarray:
    time = np.arange(int(sample_rate * duration)) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq * time)


def test_frame_signal_zero_pads_past_end():
    samples = np.arange(10, dtype=np.float64)
    frames = dsp.frame_signal(samples, 4, 10, window_size=4, hop_size=3)

    assert frames.shape == (2, 4)
    np.testing.assert_array_equal(frames[0], [4, 5, 6, 7])
    np.testing.assert_array_equal(frames[1], [7, 8, 9, 0])


def test_frame_signal_empty_range():
    frames = dsp.frame_signal(np.ones(16), 8, 8, window_size=4, hop_size=2)
    assert frames.shape == (0, 4)


def test_full_scale_sine_peaks_near_unity():
    sample_rate = 8000
    window_size = 1024
    # Centre the tone on a bin
    freq = 64 * sample_rate / window_size
    samples = _sine(freq, sample_rate, 0.5)

    window = dsp.hann_window(window_size)
    frames = dsp.frame_signal(samples, 0, 1024, window_size, 512)
    magnitudes = dsp.magnitude_spectrum(frames, window)

    peak_bin = int(np.argmax(magnitudes[0]))
    assert peak_bin == 64
    assert magnitudes[0, peak_bin] == pytest.approx(1.0, rel=0.02)


def test_amplitude_to_db_floors_silence():
    db = dsp.amplitude_to_db(np.array([1.0, 0.1, 0.0]))
    assert db[0] == pytest.approx(0.0)
    assert db[1] == pytest.approx(-20.0)
    assert db[2] == pytest.approx(-240.0)


def test_normalize_db_maps_floor_to_zero_and_clips():
    normalized = dsp.normalize_db(np.array([-120.0, -90.0, -45.0, 0.0, 6.0]), -90.0)
    np.testing.assert_allclose(normalized, [0.0, 0.0, 0.5, 1.0, 1.0])
    assert normalized.dtype == np.float32


def test_normalize_db_rejects_non_negative_floor():
    with pytest.raises(ValueError):
        dsp.normalize_db(np.zeros(3), 0.0)


def test_linear_bin_range_respects_frequency_bounds():
    lo, hi = dsp.linear_bin_range(8000, 1024, 1000.0, 2000.0)
    frequencies = dsp.fft_frequencies(8000, 1024)[lo:hi]
    assert frequencies[0] >= 1000.0
    assert frequencies[-1] <= 2000.0
    assert hi - lo == 129


def test_log_frequencies_start_above_zero():
    frequencies = dsp.log_frequencies(8000, 1024, 0.0, 4000.0, 50)
    assert frequencies[0] == pytest.approx(8000 / 1024)
    assert frequencies[-1] == pytest.approx(4000.0)
    steps = np.diff(np.log(frequencies))
    np.testing.assert_allclose(steps, steps[0])


def test_mel_round_trip_and_filterbank_shape():
    assert dsp.mel_to_hz(dsp.hz_to_mel(1000.0)) == pytest.approx(1000.0)

    weights, centres = dsp.mel_filterbank(16000, 512, 40, 0.0, 8000.0)
    assert weights.shape == (40, 257)
    assert centres.shape == (40,)
    assert np.all(np.diff(centres) > 0)
    assert weights.max() <= 1.0 + 1e-9
    assert weights.min() >= 0.0


@pytest.mark.parametrize("scale", [0, 1, 2])
def test_spectrogram_frames_shapes_and_range(scale: int):
    sample_rate = 16000
    samples = _sine(1000.0, sample_rate, 1.0, amplitude=0.5)
    frames, frequencies = dsp.spectrogram_frames(
        samples,
        sample_rate,
        0,
        8000,
        window_size=512,
        hop_size=256,
        min_frequency=0.0,
        max_frequency=8000.0,
        db_floor=-90.0,
        frequency_scale=scale,
        mel_filter_count=40,
    )

    assert frames.dtype == np.float32
    assert frames.shape[0] == 8000 // 256 + (1 if 8000 % 256 else 0)
    assert frames.shape[1] == frequencies.shape[0]
    assert frames.min() >= 0.0
    assert frames.max() <= 1.0

    peak = frequencies[int(np.argmax(frames[5]))]
    assert peak == pytest.approx(1000.0, rel=0.1)


def test_spectrogram_frames_mel_uses_filter_count():
    frames, frequencies = dsp.spectrogram_frames(
        np.zeros(4096),
        8000,
        0,
        4096,
        window_size=1024,
        hop_size=1024,
        min_frequency=0.0,
        max_frequency=4000.0,
        db_floor=-60.0,
        frequency_scale=2,
        mel_filter_count=64,
    )
    assert frames.shape == (4, 64)
    assert frequencies.shape == (64,)
    assert np.all(frames == 0.0)


def test_linear_bin_range_narrower_than_one_bin_keeps_nearest_bin():
    # 31.25 Hz bins; 100-110 Hz holds no bin centre
    lo, hi = dsp.linear_bin_range(8000, 256, 100.0, 110.0)
    assert hi - lo == 1
    assert dsp.fft_frequencies(8000, 256)[lo] == pytest.approx(93.75)


@pytest.mark.parametrize("scale", [0, 1, 2])
def test_spectrogram_frames_narrow_range_keeps_at_least_one_bin(scale: int):
    frames, frequencies = dsp.spectrogram_frames(
        _sine(105.0, 8000, 0.5),
        8000,
        0,
        2048,
        window_size=256,
        hop_size=256,
        min_frequency=100.0,
        max_frequency=110.0,
        db_floor=-90.0,
        frequency_scale=scale,
        mel_filter_count=8,
    )

    assert frames.shape[0] == 8
    assert frames.shape[1] >= 1
    assert frequencies.shape[0] == frames.shape[1]
    assert frames.max() > 0.0
