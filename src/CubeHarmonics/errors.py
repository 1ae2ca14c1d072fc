"""
Error kinds raised by the cube map / spherical harmonic engine and its I/O adapters.
"""


class CubeHarmonicsError(Exception):
    """Base class for every error raised by CubeHarmonics."""


class IndexOutOfRange(CubeHarmonicsError, IndexError):
    """Pixel row/column access outside of a buffer."""


class ImageLoadError(CubeHarmonicsError, RuntimeError):
    """An image could not be decoded from disk."""


class ImageWriteError(CubeHarmonicsError, RuntimeError):
    """An image could not be written to disk."""


class UnknownEnumValue(CubeHarmonicsError, ValueError):
    """A method / filtering / format name that is not recognised."""


class MalformedCoefficientFile(CubeHarmonicsError, ValueError):
    """A coefficient file without a valid "channels" object."""
