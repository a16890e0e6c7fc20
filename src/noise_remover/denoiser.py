"""
Multi-channel noise removal built on the per-channel filters.

Implements:
- Method selection (gate, spectral, or both in the order gate -> spectral)
- Independent processing of each channel with fresh filter state
- Up-front validation of options and channel shapes, so a bad request never
  yields partially processed audio
- A session object that loads a file, processes it and saves the result with
  its original sample rate, channel count and bit depth
"""

import logging
import numpy as np
import librosa
from typing import Tuple, Optional, List, Union
from pathlib import Path
from dataclasses import dataclass
from enum import Enum

from . import audio_io
from .audio_io import AudioMetadata
from .exceptions import (
    AudioFormatError,
    InvalidSampleError,
    ShapeMismatchError,
    UnknownMethodError,
)
from .filters import (
    DEFAULT_AMOUNT,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_THRESHOLD,
    apply_noise_gate,
    apply_spectral_subtraction,
    check_unit_range,
    envelope_windows,
)

logger = logging.getLogger(__name__)


class DenoiseMethod(Enum):
    """Available denoising methods."""
    GATE = "gate"            # Envelope noise gate only
    SPECTRAL = "spectral"    # High-pass blend only
    BOTH = "both"            # Gate, then high-pass blend

    @classmethod
    def parse(cls, value: Union["DenoiseMethod", str]) -> "DenoiseMethod":
        """Accept a member or its (case-insensitive) string value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        choices = ", ".join(m.value for m in cls)
        raise UnknownMethodError(f"Unknown denoising method {value!r}; expected one of: {choices}.")

    @property
    def uses_gate(self) -> bool:
        return self in (DenoiseMethod.GATE, DenoiseMethod.BOTH)

    @property
    def uses_spectral(self) -> bool:
        return self in (DenoiseMethod.SPECTRAL, DenoiseMethod.BOTH)


# Accepted spellings for ProcessingOptions.from_dict
_OPTION_KEYS = {
    "noise_gate_threshold": "noise_gate_threshold",
    "noiseGateThreshold": "noise_gate_threshold",
    "threshold": "noise_gate_threshold",
    "noise_reduction_amount": "noise_reduction_amount",
    "noiseReductionAmount": "noise_reduction_amount",
    "amount": "noise_reduction_amount",
    "method": "method",
}


@dataclass
class ProcessingOptions:
    """Parameters for one processing run."""
    # Gate threshold in linear amplitude (0-1)
    noise_gate_threshold: float = DEFAULT_THRESHOLD
    # Strength of the high-pass blend (0-1)
    noise_reduction_amount: float = DEFAULT_AMOUNT
    method: DenoiseMethod = DenoiseMethod.BOTH

    def validate(self) -> "ProcessingOptions":
        """
        Return a checked copy with ``method`` parsed into a DenoiseMethod.

        Raises:
            OutOfRangeOptionError: If threshold or amount is outside [0, 1].
            UnknownMethodError: If method is not gate, spectral or both.
        """
        return ProcessingOptions(
            noise_gate_threshold=check_unit_range("noise_gate_threshold", self.noise_gate_threshold),
            noise_reduction_amount=check_unit_range("noise_reduction_amount", self.noise_reduction_amount),
            method=DenoiseMethod.parse(self.method),
        )

    @classmethod
    def from_dict(cls, values: dict, **overrides) -> "ProcessingOptions":
        """
        Build validated options from snake_case or camelCase keys; missing keys use defaults.

        ``overrides`` (field names, ``None`` meaning "not given") replace stored
        values before anything is validated.
        """
        kwargs = {}
        for key, value in values.items():
            name = _OPTION_KEYS.get(key)
            if name is None:
                logger.debug("Ignoring unknown option %r", key)
                continue
            kwargs[name] = value
        kwargs.update((name, value) for name, value in overrides.items() if value is not None)
        return cls(**kwargs).validate()

    def to_dict(self) -> dict:
        return {
            "noise_gate_threshold": self.noise_gate_threshold,
            "noise_reduction_amount": self.noise_reduction_amount,
            "method": DenoiseMethod.parse(self.method).value,
        }


def _as_channel_block(channels) -> Tuple[np.ndarray, bool]:
    """Normalize input to a (channels, samples) float array; flag mono input."""
    if isinstance(channels, np.ndarray):
        audio = channels
    else:
        items = list(channels)
        if items and all(np.ndim(item) == 1 for item in items):
            lengths = sorted({len(item) for item in items})
            if len(lengths) > 1:
                raise ShapeMismatchError(f"Channels have unequal lengths: {lengths}.")
        try:
            audio = np.asarray(items)
        except ValueError as e:
            raise ShapeMismatchError(f"Channels cannot be combined: {e}") from e

    if audio.ndim == 1:
        mono = True
        audio = audio.reshape(1, -1)
    elif audio.ndim == 2:
        mono = False
    else:
        raise ShapeMismatchError(
            f"Expected samples or (channels, samples), got array of shape {audio.shape}."
        )

    if audio.shape[0] == 0:
        raise ShapeMismatchError("No channels to process.")
    if audio.shape[1] == 0:
        raise ShapeMismatchError("Channels contain no samples.")

    if not np.issubdtype(audio.dtype, np.floating):
        try:
            audio = audio.astype(np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidSampleError(f"Samples are not numeric: {e}") from e
    if not np.all(np.isfinite(audio)):
        raise InvalidSampleError("Samples contain NaN or infinite values.")

    return audio, mono


def process_channel(channel: np.ndarray, options: ProcessingOptions, sample_rate: int) -> np.ndarray:
    """Run one channel through the selected filters, gate first."""
    processed = channel
    if options.method.uses_gate:
        processed = apply_noise_gate(processed, options.noise_gate_threshold, sample_rate)
    if options.method.uses_spectral:
        processed = apply_spectral_subtraction(processed, options.noise_reduction_amount)
    return processed


def process_channels(
    channels,
    options: Optional[Union[ProcessingOptions, dict]] = None,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
) -> np.ndarray:
    """
    Apply the selected filters to every channel independently.

    Args:
        channels: 1D samples (mono), a (channels, samples) array, or a
            sequence of equal-length channel sequences
        options: ProcessingOptions or a dict accepted by ProcessingOptions.from_dict
            (default: gate then spectral with default parameters)
        sample_rate: Sample rate in Hz, used by the gate

    Returns:
        New array shaped like the input (1D for mono input)
    """
    if options is None:
        options = ProcessingOptions()
    elif isinstance(options, dict):
        options = ProcessingOptions.from_dict(options)
    options = options.validate()

    audio, mono = _as_channel_block(channels)
    if options.method.uses_gate:
        envelope_windows(sample_rate)

    processed = np.empty_like(audio)
    for idx, channel in enumerate(audio):
        logger.debug(
            "Processing channel %d/%d (%d samples, method=%s)",
            idx + 1, audio.shape[0], audio.shape[1], options.method.value,
        )
        processed[idx] = process_channel(channel, options, sample_rate)

    if mono:
        return processed[0]
    return processed


@dataclass
class ProcessResult:
    """Encoded output of process_audio_file."""
    data: bytes
    sample_rate: int
    channels: int
    duration: float
    metadata: AudioMetadata


class AudioDenoiser:
    """
    Processing session for one audio file.

    Holds the options, the loaded audio and its metadata, and the processed
    result. The filters it calls keep no state between calls.
    """

    def __init__(
        self,
        noise_gate_threshold: float = DEFAULT_THRESHOLD,
        noise_reduction_amount: float = DEFAULT_AMOUNT,
        method: Union[DenoiseMethod, str] = DenoiseMethod.BOTH,
    ):
        """
        Initialize the denoiser with parameters.

        Args:
            noise_gate_threshold: Gate threshold in linear amplitude (0-1, default: 0.01)
            noise_reduction_amount: High-pass blend strength (0-1, default: 0.5)
            method: Denoising method to use (default: BOTH)
        """
        self.options = ProcessingOptions(
            noise_gate_threshold=noise_gate_threshold,
            noise_reduction_amount=noise_reduction_amount,
            method=method,
        ).validate()

        # Internal state
        self._audio: Optional[np.ndarray] = None
        self._metadata: Optional[AudioMetadata] = None
        self._processed: Optional[np.ndarray] = None
        self._file_path: Optional[Path] = None

    @classmethod
    def from_options(cls, options: Optional[Union[ProcessingOptions, dict]] = None) -> "AudioDenoiser":
        if options is None:
            return cls()
        if isinstance(options, dict):
            options = ProcessingOptions.from_dict(options)
        return cls(
            noise_gate_threshold=options.noise_gate_threshold,
            noise_reduction_amount=options.noise_reduction_amount,
            method=options.method,
        )

    def load_audio(self, file_path: str) -> Tuple[np.ndarray, int]:
        """Load an audio file, transcoding non-native formats with ffmpeg."""
        self._audio, self._metadata = audio_io.load_audio(file_path)
        self._file_path = Path(file_path)
        self._processed = None
        return self._audio, self._metadata.sample_rate

    def get_duration(self) -> float:
        """Get duration of loaded audio in seconds."""
        if self._audio is None or self._metadata is None:
            return 0.0
        return float(librosa.get_duration(y=self._audio, sr=self._metadata.sample_rate))

    def process(self, audio: Optional[np.ndarray] = None, sr: Optional[int] = None) -> np.ndarray:
        """
        Process the loaded audio (or ``audio`` at ``sr``) to remove noise.

        Session state is only replaced once processing succeeds.
        """
        if audio is not None:
            if sr is None and self._metadata is None:
                raise ValueError("Sample rate required when passing audio directly.")
            block, _ = _as_channel_block(audio)
            rate = sr if sr is not None else self._metadata.sample_rate
            metadata = AudioMetadata(
                sample_rate=int(rate),
                channels=block.shape[0],
                bit_depth=audio_io.DEFAULT_BIT_DEPTH,
                subtype="PCM_16",
                frames=block.shape[1],
            )
            file_path = None
        else:
            block, metadata, file_path = self._audio, self._metadata, self._file_path

        if block is None or metadata is None:
            raise ValueError("No audio loaded.")

        processed = process_channels(block, self.options, sample_rate=metadata.sample_rate)

        self._audio, self._metadata, self._file_path = block, metadata, file_path
        self._processed = processed

        if self._processed.shape[0] == 1:
            return self._processed.squeeze(axis=0)

        return self._processed

    def get_original(self) -> Optional[np.ndarray]:
        if self._audio is None:
            return None
        if self._audio.shape[0] == 1:
            return self._audio.squeeze(axis=0)
        return self._audio

    def get_processed(self) -> Optional[np.ndarray]:
        if self._processed is None:
            return None
        if self._processed.shape[0] == 1:
            return self._processed.squeeze(axis=0)
        return self._processed

    def get_sample_rate(self) -> Optional[int]:
        if self._metadata is None:
            return None
        return self._metadata.sample_rate

    def get_metadata(self) -> Optional[AudioMetadata]:
        return self._metadata

    def encode(self, format: str = "WAV") -> bytes:
        """Encode the processed audio at the source sample rate and bit depth."""
        if self._processed is None or self._metadata is None:
            raise ValueError("No processed audio to encode.")
        return audio_io.encode_audio(self._processed, self._metadata, format=format)

    def save(self, output_path: str, format: Optional[str] = None) -> str:
        """
        Save processed audio to file, copying tags from the original file.

        Args:
            output_path: Path to save the output file; ``.mp3`` and other
                non-native suffixes are converted with ffmpeg
            format: Expected container ('WAV', 'FLAC', 'OGG', 'AIFF'); must agree
                with the suffix, non-native suffixes take WAV (default: from the suffix)
        """
        output_path = Path(output_path)
        expected = audio_io.format_for_path(output_path)
        if format is not None and format.upper() != expected:
            raise AudioFormatError(
                f"Format {format.upper()} does not match {output_path.name} (expected {expected})."
            )
        data = self.encode(expected)
        audio_io.save_audio(output_path, data, source_path=self._file_path)
        return str(output_path)

    def update_parameters(
        self,
        noise_gate_threshold: Optional[float] = None,
        noise_reduction_amount: Optional[float] = None,
        method: Optional[Union[DenoiseMethod, str]] = None,
    ):
        """Update denoiser parameters; invalid values leave the current ones untouched."""
        updated = ProcessingOptions(
            noise_gate_threshold=self.options.noise_gate_threshold
            if noise_gate_threshold is None else noise_gate_threshold,
            noise_reduction_amount=self.options.noise_reduction_amount
            if noise_reduction_amount is None else noise_reduction_amount,
            method=self.options.method if method is None else method,
        )
        self.options = updated.validate()

    def set_method(self, method: Union[DenoiseMethod, str]):
        """Set the denoising method."""
        self.update_parameters(method=method)

    def get_method(self) -> DenoiseMethod:
        """Get the current denoising method."""
        return self.options.method

    @staticmethod
    def get_available_methods() -> List[DenoiseMethod]:
        """Get list of available denoising methods."""
        return list(DenoiseMethod)


def process_audio_file(
    input_path: str,
    options: Optional[Union[ProcessingOptions, dict]] = None,
) -> ProcessResult:
    """
    Decode a file, denoise every channel and re-encode it as WAV in memory.

    The returned duration is samples per channel divided by the sample rate.
    """
    denoiser = AudioDenoiser.from_options(options)
    denoiser.load_audio(input_path)
    denoiser.process()

    metadata = denoiser.get_metadata()
    return ProcessResult(
        data=denoiser.encode("WAV"),
        sample_rate=metadata.sample_rate,
        channels=metadata.channels,
        duration=denoiser.get_duration(),
        metadata=metadata,
    )
