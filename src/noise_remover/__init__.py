"""
Noise Remover - clean background noise out of recorded audio files.

Each channel is processed independently by up to two filters:
- an envelope-following noise gate
- an approximate spectral subtraction (one-pole high-pass blended with the input)

Files are decoded with soundfile/librosa (other formats through ffmpeg) and
re-encoded with their original sample rate, channel count and bit depth.
"""

__version__ = "0.1.0"

from .filters import apply_noise_gate, apply_spectral_subtraction
from .denoiser import (
    AudioDenoiser,
    DenoiseMethod,
    ProcessingOptions,
    ProcessResult,
    process_audio_file,
    process_channels,
)
from .audio_io import AudioMetadata
from .exceptions import (
    NoiseRemoverError,
    DegenerateParameterError,
    OutOfRangeOptionError,
    UnknownMethodError,
    ShapeMismatchError,
    InvalidSampleError,
    AudioFormatError,
)

__all__ = [
	"apply_noise_gate",
	"apply_spectral_subtraction",
	"process_channels",
	"process_audio_file",
	"AudioDenoiser",
	"DenoiseMethod",
	"ProcessingOptions",
	"ProcessResult",
	"AudioMetadata",
	"NoiseRemoverError",
	"DegenerateParameterError",
	"OutOfRangeOptionError",
	"UnknownMethodError",
	"ShapeMismatchError",
	"InvalidSampleError",
	"AudioFormatError",
	"__version__",
]
