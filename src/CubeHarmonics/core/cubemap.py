"""
Cube maps: six square pixel buffers, one per principal axis direction.
"""

from enum import IntEnum
from functools import cached_property
from typing import Callable, Iterator

import torch
from einops import rearrange

from .pixels import PixelBuffer, PixelFormat
from ..utils.transforms import face_grid, normalize


class CubeMapFace(IntEnum):
    POSITIVE_X = 0
    NEGATIVE_X = 1
    POSITIVE_Y = 2
    NEGATIVE_Y = 3
    POSITIVE_Z = 4
    NEGATIVE_Z = 5

    @property
    def file_stem(self) -> str:
        return FACE_FILE_STEMS[self]


FACE_FILE_STEMS = {
    CubeMapFace.POSITIVE_X: "posx",
    CubeMapFace.NEGATIVE_X: "negx",
    CubeMapFace.POSITIVE_Y: "posy",
    CubeMapFace.NEGATIVE_Y: "negy",
    CubeMapFace.POSITIVE_Z: "posz",
    CubeMapFace.NEGATIVE_Z: "negz",
}

# Per face (forward, right, up), indexed by CubeMapFace.
# A face-local point (s, t) in [-1, 1]^2 lies in direction forward + s * right + t * up,
# texture coordinates are u = (s + 1) / 2 along the columns and v = (t + 1) / 2 along the rows.
# The sampler projects with the same table, so sampling and rasterization are exact inverses.
FACE_AXES = (
    ((1.0, 0.0, 0.0), (0.0, 0.0, -1.0), (0.0, 1.0, 0.0)),    # +X
    ((-1.0, 0.0, 0.0), (0.0, 0.0, 1.0), (0.0, 1.0, 0.0)),    # -X
    ((0.0, 1.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, -1.0)),    # +Y
    ((0.0, -1.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 1.0)),    # -Y
    ((0.0, 0.0, 1.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)),     # +Z
    ((0.0, 0.0, -1.0), (-1.0, 0.0, 0.0), (0.0, 1.0, 0.0)),   # -Z
)


def face_axes(device: torch.device = None) -> torch.Tensor:
    """
    :returns axes (6, 3, 3): axes[face] = [forward, right, up]
    """
    return torch.tensor(FACE_AXES, dtype=torch.float64, device=device)


def face_directions(size: int, device: torch.device = None) -> torch.Tensor:
    """
    Unit direction through the center of every texel of every face.

    :params size: face resolution
    :returns directions (6, size, size, 3), indexed [face, row, col]
    """
    s, t = face_grid(size, device)  # (size, size)
    axes = face_axes(device)
    forward = rearrange(axes[:, 0], "f c -> f 1 1 c")
    right = rearrange(axes[:, 1], "f c -> f 1 1 c")
    up = rearrange(axes[:, 2], "f c -> f 1 1 c")

    directions = forward + s[None, ..., None] * right + t[None, ..., None] * up
    return normalize(directions)


class CubeMap:
    """
    Immutable association of the six faces to pixel buffers of identical square size.

    Buffers may be shared with other owners, the cube map never writes into them.
    """

    def __init__(self, px: PixelBuffer, nx: PixelBuffer, py: PixelBuffer,
                 ny: PixelBuffer, pz: PixelBuffer, nz: PixelBuffer):
        self._faces = {
            CubeMapFace.POSITIVE_X: px,
            CubeMapFace.NEGATIVE_X: nx,
            CubeMapFace.POSITIVE_Y: py,
            CubeMapFace.NEGATIVE_Y: ny,
            CubeMapFace.POSITIVE_Z: pz,
            CubeMapFace.NEGATIVE_Z: nz,
        }

        size = px.width
        for face, buffer in self._faces.items():
            assert buffer.width == size and buffer.height == size, \
                f'Face {face.name} is {buffer.width}x{buffer.height}, expected {size}x{size}'
            assert buffer.pixel_format == px.pixel_format, \
                f'Face {face.name} is {buffer.pixel_format.name}, expected {px.pixel_format.name}'
        assert size > 0, 'Cube map faces must not be empty'

    @classmethod
    def from_faces(cls, faces: dict) -> "CubeMap":
        return cls(*(faces[face] for face in CubeMapFace))

    @classmethod
    def filled(cls, size: int, value, pixel_format: PixelFormat, device: torch.device = None) -> "CubeMap":
        """Cube map where every texel holds the same value."""
        return cls(*(PixelBuffer.filled(size, size, value, pixel_format, device) for _ in CubeMapFace))

    @classmethod
    def from_tensor(cls, data: torch.Tensor, pixel_format: PixelFormat) -> "CubeMap":
        """
        :params data (6, size, size, channels) in CubeMapFace order
        """
        assert data.shape[0] == 6, f'Expected 6 faces, got {data.shape[0]}'
        return cls(*(PixelBuffer(pixel_format.convert(data[face]), pixel_format) for face in CubeMapFace))

    @classmethod
    def from_function(cls, size: int, function: Callable[[torch.Tensor], torch.Tensor],
                      pixel_format: PixelFormat = PixelFormat.RGB_FLOAT,
                      device: torch.device = None) -> "CubeMap":
        """
        Rasterize a direction valued function into a cube map.

        :params function: maps unit directions (..., 3) to values (..., channels)
        """
        values = function(face_directions(size, device))
        return cls.from_tensor(values, pixel_format)

    def __getitem__(self, face: CubeMapFace) -> PixelBuffer:
        return self._faces[face]

    def faces(self) -> Iterator[tuple[CubeMapFace, PixelBuffer]]:
        for face in CubeMapFace:
            yield face, self._faces[face]

    @property
    def size(self) -> int:
        return self._faces[CubeMapFace.POSITIVE_X].width

    @property
    def width(self) -> int:
        return self.size

    @property
    def height(self) -> int:
        return self.size

    @property
    def pixel_format(self) -> PixelFormat:
        return self._faces[CubeMapFace.POSITIVE_X].pixel_format

    @property
    def channels(self) -> int:
        return self.pixel_format.channels

    @property
    def device(self) -> torch.device:
        return self._faces[CubeMapFace.POSITIVE_X].data.device

    @cached_property
    def stacked(self) -> torch.Tensor:
        """
        All faces as one float64 tensor, for read-only use by the sampler and integrators.

        :returns (6, size, size, channels)
        """
        return torch.stack([self._faces[face].data.to(torch.float64) for face in CubeMapFace], dim=0)

    def __repr__(self) -> str:
        return f'CubeMap({self.size}x{self.size}, {self.pixel_format.name})'
