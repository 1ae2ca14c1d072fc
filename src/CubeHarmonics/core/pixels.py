"""
Pixel formats and pixel buffers.

A pixel value is a 1-D tensor of `channels` entries, so componentwise
add / subtract / multiply / divide by another pixel or by a scalar is plain torch arithmetic.
Only four channel layouts are ever instantiated (rgb / rgba, byte / float storage),
they are enumerated by PixelFormat.
"""

from enum import Enum
from typing import Union

import numpy as np
import torch

from ..errors import IndexOutOfRange


class PixelFormat(Enum):
    RGB = ("rgb", 3, torch.uint8)
    RGBA = ("rgba", 4, torch.uint8)
    RGB_FLOAT = ("rgb_float", 3, torch.float32)
    RGBA_FLOAT = ("rgba_float", 4, torch.float32)

    def __init__(self, label: str, channels: int, dtype: torch.dtype):
        self.label = label
        self.channels = channels
        self.dtype = dtype

    @property
    def is_float(self) -> bool:
        return self.dtype.is_floating_point

    @classmethod
    def from_channels(cls, channels: int, is_float: bool = True) -> "PixelFormat":
        for pixel_format in cls:
            if pixel_format.channels == channels and pixel_format.is_float == is_float:
                return pixel_format
        raise ValueError(f'No pixel format with {channels} channels (float storage: {is_float})')

    def with_float_storage(self) -> "PixelFormat":
        return PixelFormat.from_channels(self.channels, is_float=True)

    def convert(self, values: torch.Tensor) -> torch.Tensor:
        """
        Convert pixel values (..., channels) into this format's channel representation.

        float -> byte rounds and clamps to [0, 255], byte -> float is a plain cast.
        The channel arity is never changed.
        """
        assert values.shape[-1] == self.channels, f'Expected {self.channels} channels, got {values.shape[-1]}'
        if self.is_float:
            return values.to(self.dtype)
        if values.dtype.is_floating_point:
            values = torch.clamp(torch.round(values), 0, 255)
        return values.to(self.dtype)


class PixelRow:
    """Bounds-checked view of a single row of a PixelBuffer."""

    def __init__(self, data: torch.Tensor, row: int):
        self._data = data
        self._row = row

    def __len__(self) -> int:
        return self._data.shape[0]

    def _check(self, col: int):
        if col < 0 or col >= self._data.shape[0]:
            raise IndexOutOfRange(f'PixelRow {self._row}: column index out of range {col}')

    def __getitem__(self, col: int) -> torch.Tensor:
        self._check(col)
        return self._data[col]

    def __setitem__(self, col: int, value: Union[torch.Tensor, float, list]):
        self._check(col)
        self._data[col] = torch.as_tensor(value, dtype=self._data.dtype, device=self._data.device)


class PixelBuffer:
    """
    width x height pixels stored row-major as a (height, width, channels) tensor.

    Row 0 is the bottom of the image (v = 0 in texture space), the image io flips on load / write.
    """

    def __init__(self, data: torch.Tensor, pixel_format: PixelFormat):
        assert data.dim() == 3, f'Pixel data must be (H, W, C), got shape {tuple(data.shape)}'
        assert data.shape[-1] == pixel_format.channels, \
            f'{pixel_format.name} needs {pixel_format.channels} channels, got {data.shape[-1]}'
        self.pixel_format = pixel_format
        self.data = data.to(pixel_format.dtype)

    @classmethod
    def filled(cls, width: int, height: int, value, pixel_format: PixelFormat,
               device: torch.device = None) -> "PixelBuffer":
        value = torch.as_tensor(value, device=device)
        data = torch.empty((height, width, pixel_format.channels), dtype=pixel_format.dtype, device=device)
        data[...] = pixel_format.convert(value.expand(pixel_format.channels))
        return cls(data, pixel_format)

    @classmethod
    def from_numpy(cls, array: np.ndarray, pixel_format: PixelFormat) -> "PixelBuffer":
        return cls(pixel_format.convert(torch.from_numpy(array.copy())), pixel_format)

    def to_numpy(self) -> np.ndarray:
        return self.data.cpu().numpy()

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def channels(self) -> int:
        return self.pixel_format.channels

    def __getitem__(self, row: int) -> PixelRow:
        if row < 0 or row >= self.height:
            raise IndexOutOfRange(f'PixelBuffer: row index out of range {row}')
        return PixelRow(self.data[row], row)

    def pixel(self, row: int, col: int) -> torch.Tensor:
        return self[row][col]

    def set_pixel(self, row: int, col: int, value):
        self[row][col] = value

    def __repr__(self) -> str:
        return f'PixelBuffer({self.width}x{self.height}, {self.pixel_format.name})'
