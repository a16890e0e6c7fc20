"""
Per-channel sample filters.

Implements:
- Envelope-following noise gate with asymmetric attack/release smoothing
- One-pole high-pass filter blended with the dry signal ("spectral subtraction")

Both filters are sequential scans over a single channel: every output depends
on the filter state carried from the previous sample, so they can only be run
in parallel across channels, never across the sample axis.
"""

import math

import numpy as np
from scipy import signal
from typing import Tuple

from .exceptions import (
    DegenerateParameterError,
    OutOfRangeOptionError,
    ShapeMismatchError,
)

# Envelope follower time constants (seconds)
ATTACK_TIME = 0.001
RELEASE_TIME = 0.1

# High-pass pole coefficient
ALPHA = 0.95
# Largest share of dry signal mixed back in, reached at amount = 1.0
MAX_BLEND = 0.3

DEFAULT_THRESHOLD = 0.01
DEFAULT_AMOUNT = 0.5
DEFAULT_SAMPLE_RATE = 44100


def as_sample_buffer(samples) -> np.ndarray:
    """Return ``samples`` as a 1-D float array without touching the caller's data."""
    audio = np.asarray(samples)
    if audio.ndim != 1:
        raise ShapeMismatchError(
            f"Expected a one-dimensional sample buffer, got shape {audio.shape}."
        )
    if not np.issubdtype(audio.dtype, np.floating):
        audio = audio.astype(np.float64)
    return audio


def check_unit_range(name: str, value: float) -> float:
    """Reject values outside [0, 1] rather than clamping them."""
    if isinstance(value, bool):
        raise OutOfRangeOptionError(f"{name} must be a number, got {value!r}.")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise OutOfRangeOptionError(f"{name} must be a number, got {value!r}.") from None
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise OutOfRangeOptionError(f"{name} must be within [0, 1], got {value}.")
    return value


def envelope_windows(sample_rate: int) -> Tuple[int, int]:
    """
    Convert the attack and release times to whole sample counts.

    Raises:
        DegenerateParameterError: If either window rounds down to zero samples.
    """
    if sample_rate <= 0:
        raise DegenerateParameterError(
            f"Sample rate must be positive, got {sample_rate}."
        )

    attack_samples = math.floor(ATTACK_TIME * sample_rate)
    release_samples = math.floor(RELEASE_TIME * sample_rate)

    if attack_samples < 1 or release_samples < 1:
        raise DegenerateParameterError(
            f"Attack/release window rounds to zero samples at {sample_rate} Hz "
            f"(need at least {math.ceil(1 / ATTACK_TIME)} Hz)."
        )
    return attack_samples, release_samples


def apply_noise_gate(
    samples,
    threshold: float = DEFAULT_THRESHOLD,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
) -> np.ndarray:
    """
    Mute samples whose tracked amplitude envelope is at or below ``threshold``.

    The envelope rises toward each sample's magnitude at a rate of
    1/attack_samples and falls at 1/release_samples. Gain is binary.

    Args:
        samples: One channel of audio (1D)
        threshold: Gate threshold in linear amplitude (0-1, default: 0.01)
        sample_rate: Sample rate in Hz, sets the attack/release windows

    Returns:
        New array of the same length and dtype as ``samples``
    """
    audio = as_sample_buffer(samples)
    threshold = check_unit_range("threshold", threshold)
    attack_samples, release_samples = envelope_windows(sample_rate)

    gains = np.empty(len(audio), dtype=np.float64)
    envelope = 0.0

    for idx, sample in enumerate(audio.tolist()):
        magnitude = abs(sample)
        if magnitude > envelope:
            envelope += (magnitude - envelope) / attack_samples
        else:
            envelope += (magnitude - envelope) / release_samples
        gains[idx] = 1.0 if envelope > threshold else 0.0

    return (audio * gains).astype(audio.dtype, copy=False)


def apply_spectral_subtraction(samples, amount: float = DEFAULT_AMOUNT) -> np.ndarray:
    """
    Approximate noise reduction by blending a one-pole high-pass with the input.

    filtered[n] = ALPHA * (filtered[n-1] + x[n] - x[n-1]) starting from zero
    state, and the output is ``filtered * (1 - b) + x * b`` with
    ``b = amount * MAX_BLEND``. No clipping is applied.

    Args:
        samples: One channel of audio (1D)
        amount: Noise reduction amount (0-1, default: 0.5)

    Returns:
        New array of the same length and dtype as ``samples``
    """
    audio = as_sample_buffer(samples)
    amount = check_unit_range("amount", amount)

    if audio.size == 0:
        return audio.copy()

    # Same difference equation as the per-sample scan, zero initial state
    filtered = signal.lfilter([ALPHA, -ALPHA], [1.0, -ALPHA], audio.astype(np.float64))

    blend = amount * MAX_BLEND
    output = filtered * (1.0 - blend) + audio * blend

    return output.astype(audio.dtype, copy=False)
