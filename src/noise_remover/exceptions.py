"""Exception types raised by the noise remover."""


class NoiseRemoverError(ValueError):
    """Base class for every failure reported by the noise remover."""


class DegenerateParameterError(NoiseRemoverError):
    """A sample rate makes a filter time constant collapse to zero samples."""


class OutOfRangeOptionError(NoiseRemoverError):
    """A processing option lies outside its documented range."""


class UnknownMethodError(NoiseRemoverError):
    """The requested denoising method is not one of gate, spectral or both."""


class ShapeMismatchError(NoiseRemoverError):
    """Channel buffers are empty, ragged or have the wrong dimensionality."""


class InvalidSampleError(NoiseRemoverError):
    """Sample buffers contain NaN or infinite values."""


class AudioFormatError(NoiseRemoverError):
    """An audio file could not be decoded, encoded or transcoded."""
