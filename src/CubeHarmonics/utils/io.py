import os

os.environ['OPENCV_IO_ENABLE_OPENEXR'] = '1'

import json
import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np
import torch
from PIL import Image

from .enums import NamedEnum
from ..core.cubemap import CubeMap
from ..core.pixels import PixelBuffer, PixelFormat
from ..datatypes import ShCoefficientsCPU
from ..errors import ImageLoadError, ImageWriteError, MalformedCoefficientFile

logger = logging.getLogger(__name__)


class FileFormat(NamedEnum):
    PNG = "png"
    BMP = "bmp"
    TGA = "tga"
    JPG = "jpg"
    HDR = "hdr"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def is_hdr(self) -> bool:
        return self == FileFormat.HDR

    @property
    def supports_alpha(self) -> bool:
        return self in (FileFormat.PNG, FileFormat.BMP, FileFormat.TGA)


# -----------------------------
# Images
# -----------------------------

def _read_image(path: Path) -> np.ndarray:
    """
    Read an image as rgb / rgba / gray, channels last, in its stored dtype.
    """
    if path.suffix.lower() == ".tga":
        # OpenCV has no TGA codec
        try:
            with Image.open(path) as image:
                return np.array(image.convert("RGBA" if "A" in image.getbands() else "RGB"))
        except (OSError, ValueError) as e:
            raise ImageLoadError(f"Failed to load image '{path}' due to reason: {e}") from e

    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED | cv2.IMREAD_ANYDEPTH)
    if image is None:
        reason = "file not found" if not path.exists() else "unsupported or corrupt image"
        raise ImageLoadError(f"Failed to load image '{path}' due to reason: {reason}")

    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    return image


def _to_unit_float(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image.astype(np.float32) / 255.0
    if image.dtype == np.uint16:
        return image.astype(np.float32) / 65535.0
    return image.astype(np.float32)


def _match_channels(image: np.ndarray, channels: int, opaque) -> np.ndarray:
    if image.ndim == 2:
        image = image[..., None]
    if image.shape[2] == 1:
        image = np.repeat(image, 3, axis=2)
    if image.shape[2] == 2:  # gray + alpha
        image = np.concatenate([np.repeat(image[..., :1], 3, axis=2), image[..., 1:]], axis=2)
    if channels == 3:
        return image[..., :3]
    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), opaque, dtype=image.dtype)
        image = np.concatenate([image, alpha], axis=2)
    return image


def load_pixel_buffer(path: Union[str, Path], pixel_format: PixelFormat = PixelFormat.RGB_FLOAT) -> PixelBuffer:
    """
    Load an image file into a pixel buffer.

    Float formats map byte images to [0, 1] (scale 1/255, gamma 1) and keep HDR radiance as is,
    byte formats keep bytes and scale float images by 255.
    The image is flipped vertically so row 0 is the bottom of the picture.

    :param path: any image OpenCV can decode (png, bmp, jpg, hdr, exr, ...) or a tga
    :param pixel_format: channel layout of the returned buffer
    """
    path = Path(path)
    image = _read_image(path)

    image = _to_unit_float(image)
    image = _match_channels(image, pixel_format.channels, opaque=1.0)
    if not pixel_format.is_float:
        image = image * 255.0

    image = np.flipud(image).copy()
    logger.debug(f"Loaded {path.name} ({image.shape[1]}x{image.shape[0]}) as {pixel_format.name}")
    return PixelBuffer.from_numpy(image, pixel_format)


def load_cubemap(px: Union[str, Path], nx: Union[str, Path],
                 py: Union[str, Path], ny: Union[str, Path],
                 pz: Union[str, Path], nz: Union[str, Path],
                 pixel_format: PixelFormat = PixelFormat.RGB_FLOAT) -> CubeMap:
    """
    Load six face images into a cube map. Faces must be square and of equal size.
    """
    return CubeMap(*(load_pixel_buffer(path, pixel_format) for path in (px, nx, py, ny, pz, nz)))


def write_pixel_buffer(buffer: PixelBuffer, path: Union[str, Path], file_format: FileFormat) -> Path:
    """
    Write a pixel buffer to an image file.

    LDR formats store clamp(value * 255) bytes for float buffers (gamma 1), HDR stores float radiance.
    Alpha is dropped for formats that cannot hold it.

    :return path: the written file
    """
    path = Path(path)
    file_format = FileFormat.from_name(file_format)
    image = np.flipud(buffer.to_numpy())

    if file_format.is_hdr:
        image = image.astype(np.float32)
        if not buffer.pixel_format.is_float:
            image = image / 255.0
    elif buffer.pixel_format.is_float:
        image = np.clip(np.round(image * 255.0), 0, 255).astype(np.uint8)
    else:
        image = image.astype(np.uint8)

    if image.shape[2] == 4 and not file_format.supports_alpha:
        image = image[..., :3]
    image = image.copy()

    if file_format == FileFormat.TGA:
        try:
            Image.fromarray(image).save(path, format="TGA")
        except (OSError, ValueError) as e:
            raise ImageWriteError(f"Failed to write to file: '{path}' due to reason: {e}") from e
        return path

    conversion = cv2.COLOR_RGBA2BGRA if image.shape[2] == 4 else cv2.COLOR_RGB2BGR
    params = [cv2.IMWRITE_JPEG_QUALITY, 95] if file_format == FileFormat.JPG else []
    try:
        written = cv2.imwrite(str(path), cv2.cvtColor(image, conversion), params)
    except cv2.error as e:
        raise ImageWriteError(f"Failed to write to file: '{path}' due to reason: {e}") from e
    if not written:
        raise ImageWriteError(f"Failed to write to file: '{path}'")
    return path


def write_cubemap(cubemap: CubeMap, directory: Union[str, Path], file_format: FileFormat,
                  prefix: str = "") -> list[Path]:
    """
    Write the six faces as {prefix}{posx,negx,posy,negy,posz,negz}.{ext} into directory.

    :return paths: written files in CubeMapFace order
    """
    directory = Path(directory)
    file_format = FileFormat.from_name(file_format)

    paths = []
    for face, buffer in cubemap.faces():
        path = directory / f"{prefix}{face.file_stem}{file_format.extension}"
        paths.append(write_pixel_buffer(buffer, path, file_format))
        logger.debug(f"Wrote {face.name} to {path}")
    return paths


# -----------------------------
# Coefficients
# -----------------------------

def write_coefficients(path: Union[str, Path], coefficients: Union[torch.Tensor, ShCoefficientsCPU]) -> Path:
    """
    Write coefficients as {"order": N, "channels": {"red": [...], "green": [...], "blue": [...]}}.

    :param coefficients: (n_terms, 3 | 4) tensor or its serializable form
    """
    path = Path(path)
    if isinstance(coefficients, torch.Tensor):
        coefficients = ShCoefficientsCPU.from_tensor(coefficients)
    with open(path, "w") as f:
        json.dump(coefficients.to_dict(), f, indent=2)
    return path


def read_coefficients_cpu(path: Union[str, Path]) -> ShCoefficientsCPU:
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedCoefficientFile(f"Failed to parse coefficient file '{path}': {e}") from e
    return ShCoefficientsCPU.from_dict(data)


def read_coefficients(path: Union[str, Path], channels: int = 3) -> torch.Tensor:
    """
    Read a coefficient file, channels missing from the file are zero filled.

    :param channels: 3 (rgb) or 4 (rgba)
    :return coefficients: (n_terms, channels) float64
    """
    return read_coefficients_cpu(path).to_tensor(channels)
