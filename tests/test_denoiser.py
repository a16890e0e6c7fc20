import io
import sys
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

# Ensure local src/ is importable when running tests directly from the repo
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from noise_remover import (
    AudioDenoiser,
    AudioFormatError,
    DegenerateParameterError,
    DenoiseMethod,
    InvalidSampleError,
    OutOfRangeOptionError,
    ProcessingOptions,
    ShapeMismatchError,
    UnknownMethodError,
    apply_noise_gate,
    apply_spectral_subtraction,
    process_audio_file,
    process_channels,
)


def _sine_with_noise(duration=0.5, sr=22050, seed=0):
    rng = np.random.default_rng(seed)
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    tone = 0.2 * np.sin(2 * np.pi * 440 * t)
    noise = 0.02 * rng.standard_normal(len(t))
    return tone + noise, sr


def _stereo(sr=22050):
    left, _ = _sine_with_noise(sr=sr, seed=1)
    right, _ = _sine_with_noise(sr=sr, seed=2)
    return np.vstack([left, 0.5 * right])


def test_both_equals_gate_then_spectral_per_channel():
    stereo = _stereo()
    options = ProcessingOptions(noise_gate_threshold=0.05, noise_reduction_amount=0.7)
    processed = process_channels(stereo, options, sample_rate=22050)

    assert processed.shape == stereo.shape
    for channel, result in zip(stereo, processed):
        expected = apply_spectral_subtraction(apply_noise_gate(channel, 0.05, 22050), 0.7)
        np.testing.assert_array_equal(result, expected)


@pytest.mark.parametrize("method", list(DenoiseMethod))
def test_channels_processed_independently(method):
    """A silent channel next to a loud one behaves exactly as if processed alone."""
    sr = 22050
    tone, _ = _sine_with_noise(sr=sr)
    silence = np.zeros_like(tone)
    options = ProcessingOptions(method=method)

    together = process_channels(np.vstack([silence, tone]), options, sample_rate=sr)

    np.testing.assert_array_equal(together[0], process_channels(silence, options, sample_rate=sr))
    np.testing.assert_array_equal(together[1], process_channels(tone, options, sample_rate=sr))
    assert not np.any(together[0])


def test_single_methods_apply_only_their_filter():
    audio, sr = _sine_with_noise()
    gate_only = process_channels(audio, ProcessingOptions(method="gate"), sample_rate=sr)
    spectral_only = process_channels(audio, {"method": "spectral"}, sample_rate=sr)

    np.testing.assert_array_equal(gate_only, apply_noise_gate(audio, 0.01, sr))
    np.testing.assert_array_equal(spectral_only, apply_spectral_subtraction(audio, 0.5))


def test_mono_and_sequence_shapes():
    audio, sr = _sine_with_noise(duration=0.1)
    mono = process_channels(audio, sample_rate=sr)
    assert mono.ndim == 1 and len(mono) == len(audio)

    nested = process_channels([audio.tolist(), audio.tolist()], sample_rate=sr)
    assert nested.shape == (2, len(audio))
    np.testing.assert_array_equal(nested[0], mono)


def test_input_not_modified():
    stereo = _stereo()
    before = stereo.copy()
    process_channels(stereo, sample_rate=22050)
    np.testing.assert_array_equal(stereo, before)


def test_camel_case_option_keys():
    options = ProcessingOptions.from_dict(
        {"noiseGateThreshold": 0.02, "noiseReductionAmount": 0.8, "method": "Spectral"}
    )
    assert options == ProcessingOptions(0.02, 0.8, DenoiseMethod.SPECTRAL)


@pytest.mark.parametrize("method", ["", "gates", "none", None, 3])
def test_unknown_method_rejected(method):
    with pytest.raises(UnknownMethodError):
        process_channels(np.ones(100), {"method": method})


def test_out_of_range_options_rejected():
    with pytest.raises(OutOfRangeOptionError):
        process_channels(np.ones(100), ProcessingOptions(noise_gate_threshold=2.0))
    with pytest.raises(OutOfRangeOptionError):
        process_channels(np.ones(100), {"amount": -0.1})


@pytest.mark.parametrize("channels", [
    [],
    [[]],
    np.zeros((2, 0)),
    np.zeros((0, 10)),
    [[0.1, 0.2, 0.3], [0.1, 0.2]],
    np.zeros((2, 2, 2)),
])
def test_bad_shapes_rejected(channels):
    with pytest.raises(ShapeMismatchError):
        process_channels(channels)


def test_non_finite_samples_rejected():
    audio = np.ones(100)
    audio[50] = np.nan
    with pytest.raises(InvalidSampleError):
        process_channels(audio)


def test_gate_needs_usable_sample_rate_but_spectral_does_not():
    audio = np.full(100, 0.5)
    with pytest.raises(DegenerateParameterError):
        process_channels(audio, {"method": "both"}, sample_rate=800)

    out = process_channels(audio, {"method": "spectral"}, sample_rate=800)
    assert len(out) == 100


def test_session_round_trip_preserves_format(tmp_path):
    """Processing a file keeps sample rate, channel count, bit depth and length."""
    stereo = _stereo()
    wav_path = tmp_path / "input.wav"
    sf.write(wav_path, stereo.T, 22050, subtype="PCM_24")

    denoiser = AudioDenoiser(noise_gate_threshold=0.02, noise_reduction_amount=0.9)
    original, loaded_sr = denoiser.load_audio(str(wav_path))
    assert loaded_sr == 22050
    assert original.shape == stereo.shape

    processed = denoiser.process()
    assert processed.shape == original.shape
    assert not np.allclose(processed, original)

    out_path = tmp_path / "output.wav"
    denoiser.save(str(out_path))

    info = sf.info(str(out_path))
    assert info.samplerate == 22050
    assert info.channels == 2
    assert info.subtype == "PCM_24"
    assert info.frames == stereo.shape[1]


def test_session_process_array_directly():
    audio, sr = _sine_with_noise()
    denoiser = AudioDenoiser(method="gate")
    processed = denoiser.process(audio, sr)

    assert processed.shape == audio.shape
    assert denoiser.get_sample_rate() == sr
    assert denoiser.get_duration() == pytest.approx(len(audio) / sr)
    np.testing.assert_array_equal(denoiser.get_original(), audio)


def test_session_rejects_three_dimensional_input():
    denoiser = AudioDenoiser()
    with pytest.raises(ShapeMismatchError):
        denoiser.process(np.zeros((2, 2, 50)), 22050)
    assert denoiser.get_original() is None


@pytest.mark.parametrize("audio, sr, error", [
    (np.array([0.1, np.nan, 0.2] * 100), 8000, InvalidSampleError),
    (np.full(300, 0.5), 800, DegenerateParameterError),
])
def test_failed_process_keeps_previous_session(audio, sr, error):
    stereo = _stereo()
    denoiser = AudioDenoiser()
    processed = denoiser.process(stereo, 22050)

    with pytest.raises(error):
        denoiser.process(audio, sr)

    np.testing.assert_array_equal(denoiser.get_original(), stereo)
    np.testing.assert_array_equal(denoiser.get_processed(), processed)
    assert denoiser.get_sample_rate() == 22050
    assert denoiser.get_duration() == pytest.approx(stereo.shape[1] / 22050)


def test_save_format_must_match_suffix(tmp_path):
    audio, sr = _sine_with_noise()
    denoiser = AudioDenoiser()
    denoiser.process(audio, sr)

    with pytest.raises(AudioFormatError, match="does not match"):
        denoiser.save(str(tmp_path / "x.wav"), format="FLAC")
    assert not (tmp_path / "x.wav").exists()

    out = denoiser.save(str(tmp_path / "x.flac"), format="flac")
    assert sf.info(out).format == "FLAC"


def test_session_requires_audio():
    with pytest.raises(ValueError):
        AudioDenoiser().process()
    with pytest.raises(ValueError):
        AudioDenoiser().encode()


def test_update_parameters_validates():
    denoiser = AudioDenoiser()
    denoiser.update_parameters(noise_gate_threshold=0.2)
    assert denoiser.options.noise_gate_threshold == 0.2

    with pytest.raises(UnknownMethodError):
        denoiser.set_method("median")
    assert denoiser.get_method() is DenoiseMethod.BOTH

    denoiser.set_method("spectral")
    assert denoiser.get_method() is DenoiseMethod.SPECTRAL
    assert AudioDenoiser.get_available_methods() == [
        DenoiseMethod.GATE, DenoiseMethod.SPECTRAL, DenoiseMethod.BOTH,
    ]


def test_process_audio_file_reports_duration(tmp_path):
    audio, sr = _sine_with_noise(duration=0.25, sr=16000)
    wav_path = tmp_path / "mono.wav"
    sf.write(wav_path, audio, sr, subtype="PCM_16")

    result = process_audio_file(str(wav_path), {"method": "both"})

    assert result.sample_rate == sr
    assert result.channels == 1
    assert result.duration == pytest.approx(len(audio) / sr)
    assert result.metadata.bit_depth == 16

    decoded, decoded_sr = sf.read(io.BytesIO(result.data))
    assert decoded_sr == sr
    assert decoded.shape == (len(audio),)


def test_package_imports():
    """Top-level package exports remain available."""
    from noise_remover import AudioMetadata, ProcessResult, __version__  # noqa: F401

    assert AudioDenoiser is not None
