"""
Decoding, encoding and transcoding of audio files.

Formats libsndfile reads natively are loaded directly; anything else (MP3,
M4A, ...) is converted to a 16-bit WAV with ffmpeg in a temporary directory
first. Temporary files never outlive the call that created them.
"""

import io
import shutil
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import librosa
import soundfile as sf
from mutagen import File as MutagenFile, MutagenError

from .exceptions import AudioFormatError, ShapeMismatchError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Suffix -> soundfile container name
NATIVE_FORMATS = {
    ".wav": "WAV",
    ".flac": "FLAC",
    ".ogg": "OGG",
    ".aiff": "AIFF",
    ".aif": "AIFF",
}

SUBTYPE_BIT_DEPTHS = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
    "FLOAT": 32,
    "DOUBLE": 64,
}

BIT_DEPTH_SUBTYPES = {
    8: "PCM_U8",
    16: "PCM_16",
    24: "PCM_24",
    32: "PCM_32",
    64: "DOUBLE",
}

DEFAULT_BIT_DEPTH = 16

# Text tags carried over from the source file after saving
TAG_FIELDS = ("title", "artist", "album", "date", "genre", "tracknumber")
# Destinations whose mutagen "easy" interface accepts the fields above
TAGGABLE_SUFFIXES = {".flac", ".ogg", ".mp3"}

# Seconds an ffmpeg conversion may run before it is abandoned
TRANSCODE_TIMEOUT = 600


@dataclass(frozen=True)
class AudioMetadata:
    """Format details captured at decode time and reused when encoding."""
    sample_rate: int
    channels: int
    bit_depth: int
    # soundfile subtype of the decoded source, e.g. "PCM_16"
    subtype: str
    # Samples per channel
    frames: int
    format: str = "WAV"

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate


def is_native(path: PathLike) -> bool:
    return Path(path).suffix.lower() in NATIVE_FORMATS


def format_for_path(path: PathLike) -> str:
    """Container to encode for ``path``; non-native targets are encoded as WAV first."""
    return NATIVE_FORMATS.get(Path(path).suffix.lower(), "WAV")


def require_ffmpeg() -> str:
    ffmpeg = shutil.which("ffmpeg")
    if not ffmpeg:
        raise AudioFormatError(
            "ffmpeg not found on PATH. Install ffmpeg or use WAV/FLAC/OGG/AIFF files."
        )
    return ffmpeg


def transcode(input_path: PathLike, output_path: PathLike, extra_args: Sequence[str] = ()) -> None:
    """Convert ``input_path`` to ``output_path`` with ffmpeg, raising on failure."""
    cmd: List[str] = [
        require_ffmpeg(), "-y",
        "-loglevel", "error",
        "-i", str(input_path),
        "-vn",
        *extra_args,
        str(output_path),
    ]
    logger.debug("Running: %s", " ".join(cmd))
    try:
        p = subprocess.run(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
            timeout=TRANSCODE_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        raise AudioFormatError(
            f"ffmpeg timed out after {e.timeout:g}s converting {input_path}"
        ) from e
    if p.returncode != 0:
        raise AudioFormatError(
            f"ffmpeg failed ({p.returncode}) converting {input_path}: {p.stderr.strip()}"
        )


def _read_native(path: Path, source: Path) -> Tuple[np.ndarray, AudioMetadata]:
    try:
        info = sf.info(str(path))
    except RuntimeError as e:
        raise AudioFormatError(f"Could not decode {source}: {e}") from e

    audio, sr = librosa.load(str(path), sr=None, mono=False)
    if audio.ndim == 1:
        audio = audio.reshape(1, -1)

    metadata = AudioMetadata(
        sample_rate=int(sr),
        channels=audio.shape[0],
        bit_depth=SUBTYPE_BIT_DEPTHS.get(info.subtype, DEFAULT_BIT_DEPTH),
        subtype=info.subtype,
        frames=audio.shape[1],
        format=info.format,
    )
    return audio, metadata


def load_audio(file_path: PathLike) -> Tuple[np.ndarray, AudioMetadata]:
    """
    Decode an audio file into per-channel float samples.

    Args:
        file_path: Path to any file ffmpeg or libsndfile can read

    Returns:
        Tuple of (audio shaped (channels, samples), AudioMetadata)

    Raises:
        AudioFormatError: If the file is missing or cannot be decoded.
    """
    path = Path(file_path)
    if not path.is_file():
        raise AudioFormatError(f"File not found: {path}")

    if is_native(path):
        audio, metadata = _read_native(path, path)
    else:
        with tempfile.TemporaryDirectory() as td:
            tmp_wav = Path(td) / "decoded.wav"
            transcode(path, tmp_wav, ["-acodec", "pcm_s16le"])
            audio, metadata = _read_native(tmp_wav, path)

    logger.info(
        "Loaded %s: %d Hz, %d channel(s), %d-bit, %.2fs",
        path.name, metadata.sample_rate, metadata.channels,
        metadata.bit_depth, metadata.duration,
    )
    return audio, metadata


def output_subtype(metadata: AudioMetadata, format: str) -> str:
    """Pick the subtype closest to the source bit depth that ``format`` supports."""
    format_upper = format.upper()
    if format_upper == "OGG":
        return "VORBIS"
    if sf.check_format(format_upper, metadata.subtype):
        return metadata.subtype
    for subtype in (BIT_DEPTH_SUBTYPES.get(metadata.bit_depth), "PCM_24", "PCM_16"):
        if subtype and sf.check_format(format_upper, subtype):
            return subtype
    return "PCM_16"


def encode_audio(channels: np.ndarray, metadata: AudioMetadata, format: str = "WAV") -> bytes:
    """
    Encode processed channels into an in-memory file.

    Samples are clipped to [-1, 1] unless the subtype is floating point; the
    filters themselves never clip.
    """
    audio = np.asarray(channels)
    if audio.ndim == 1:
        audio = audio.reshape(1, -1)
    if audio.ndim != 2 or audio.shape[0] != metadata.channels:
        raise ShapeMismatchError(
            f"Expected {metadata.channels} channel(s), got array of shape {audio.shape}."
        )

    subtype = output_subtype(metadata, format)
    if subtype not in ("FLOAT", "DOUBLE"):
        clipped = int(np.count_nonzero(np.abs(audio) > 1.0))
        if clipped:
            logger.warning("Clipping %d sample(s) outside [-1, 1] while encoding", clipped)
            audio = np.clip(audio, -1.0, 1.0)

    buffer = io.BytesIO()
    try:
        sf.write(buffer, audio.T, metadata.sample_rate, subtype=subtype, format=format.upper())
    except (RuntimeError, TypeError, ValueError) as e:
        raise AudioFormatError(f"Could not encode audio as {format}/{subtype}: {e}") from e

    return buffer.getvalue()


def copy_tags(source_path: PathLike, dest_path: PathLike) -> bool:
    """
    Copy common text tags (title, artist, ...) from source to destination.

    Returns:
        True if any tag was written, False otherwise
    """
    source_path = Path(source_path)
    dest_path = Path(dest_path)
    if dest_path.suffix.lower() not in TAGGABLE_SUFFIXES:
        return False

    try:
        source = MutagenFile(str(source_path), easy=True)
        if source is None or not source.tags:
            return False

        tags = {field: source.tags[field] for field in TAG_FIELDS if field in source.tags}
        if not tags:
            return False

        dest = MutagenFile(str(dest_path), easy=True)
        if dest is None:
            return False
        if dest.tags is None:
            dest.add_tags()
        for field, value in tags.items():
            dest.tags[field] = value
        dest.save()
    except (MutagenError, KeyError, TypeError, ValueError) as e:
        logger.warning("Could not copy tags from %s: %s", source_path.name, e)
        return False

    logger.debug("Copied tags %s to %s", sorted(tags), dest_path.name)
    return True


def save_audio(output_path: PathLike, data: bytes, source_path: Optional[PathLike] = None) -> Path:
    """
    Write encoded bytes to ``output_path``.

    ``data`` must already be in the container ``format_for_path`` names; for
    non-native destinations that is WAV, which ffmpeg then converts.
    """
    path = Path(output_path)

    if is_native(path):
        path.write_bytes(data)
    else:
        with tempfile.TemporaryDirectory() as td:
            tmp_wav = Path(td) / "encoded.wav"
            tmp_wav.write_bytes(data)
            transcode(tmp_wav, path)

    if source_path is not None and Path(source_path).is_file():
        copy_tags(source_path, path)

    logger.info("Saved %s", path)
    return path
