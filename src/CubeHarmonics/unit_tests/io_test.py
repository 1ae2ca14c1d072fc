"""
Image files, coefficient files and the command line tools.
"""

import json
import math

import cv2
import numpy as np
import pytest
import torch

from CubeHarmonics.core.coefficients import encode
from CubeHarmonics.core.cubemap import CubeMap, CubeMapFace
from CubeHarmonics.core.pixels import PixelBuffer, PixelFormat
from CubeHarmonics.datatypes import ShCoefficientsCPU
from CubeHarmonics.errors import ImageLoadError, ImageWriteError, MalformedCoefficientFile, UnknownEnumValue
from CubeHarmonics.spherical_harmonic import decode_coefficients, encode_cubemap
from CubeHarmonics.utils.io import (
    FileFormat,
    load_cubemap,
    load_pixel_buffer,
    read_coefficients,
    write_coefficients,
    write_cubemap,
    write_pixel_buffer,
)

FACE_COLOR = (128, 64, 32)


def _random_bytes(height: int, width: int, channels: int, seed: int = 0) -> torch.Tensor:
    generator = torch.Generator().manual_seed(seed)
    return torch.randint(0, 256, (height, width, channels), generator=generator, dtype=torch.uint8)


@pytest.fixture
def face_files(tmp_path):
    """Six constant colored png faces."""
    cubemap = CubeMap.filled(4, torch.tensor(FACE_COLOR), PixelFormat.RGB)
    return write_cubemap(cubemap, tmp_path, FileFormat.PNG)


# -----------------------------
# Images
# -----------------------------

@pytest.mark.parametrize("file_format", [FileFormat.PNG, FileFormat.BMP, FileFormat.TGA])
def test_lossless_roundtrip(tmp_path, file_format):
    data = _random_bytes(3, 5, 3)
    path = write_pixel_buffer(PixelBuffer(data, PixelFormat.RGB), tmp_path / f"face{file_format.extension}", file_format)

    assert torch.equal(load_pixel_buffer(path, PixelFormat.RGB).data, data)
    as_float = load_pixel_buffer(path, PixelFormat.RGB_FLOAT)
    assert torch.allclose(as_float.data, data.to(torch.float32) / 255.0)


def test_rgba_roundtrip(tmp_path):
    data = _random_bytes(4, 4, 4, seed=1)
    for file_format in (FileFormat.PNG, FileFormat.TGA):
        path = write_pixel_buffer(PixelBuffer(data, PixelFormat.RGBA), tmp_path / f"face{file_format.extension}", file_format)
        assert torch.equal(load_pixel_buffer(path, PixelFormat.RGBA).data, data)


def test_rows_are_stored_bottom_up(tmp_path):
    data = torch.zeros((2, 2, 3), dtype=torch.uint8)
    data[0, :, 0] = 255  # bottom row red
    path = write_pixel_buffer(PixelBuffer(data, PixelFormat.RGB), tmp_path / "face.png", "png")

    image = cv2.imread(str(path))  # top row first, BGR
    assert image[1, 0].tolist() == [0, 0, 255]
    assert image[0, 0].tolist() == [0, 0, 0]


def test_float_buffers_are_clamped_for_ldr(tmp_path):
    data = torch.tensor([[[-1.0, 0.5, 3.0]]])
    path = write_pixel_buffer(PixelBuffer(data, PixelFormat.RGB_FLOAT), tmp_path / "face.png", FileFormat.PNG)
    assert load_pixel_buffer(path, PixelFormat.RGB).data[0, 0].tolist() == [0, 128, 255]


def test_hdr_roundtrip(tmp_path):
    generator = torch.Generator().manual_seed(2)
    data = 0.5 + 1.5 * torch.rand((4, 6, 3), generator=generator)
    path = write_pixel_buffer(PixelBuffer(data, PixelFormat.RGB_FLOAT), tmp_path / "face.hdr", FileFormat.HDR)
    assert torch.allclose(load_pixel_buffer(path, PixelFormat.RGB_FLOAT).data, data, atol=3e-2)


def test_alpha_dropped_and_restored(tmp_path):
    data = torch.full((4, 4, 4), 0.5)
    path = write_pixel_buffer(PixelBuffer(data, PixelFormat.RGBA_FLOAT), tmp_path / "face.jpg", FileFormat.JPG)
    loaded = load_pixel_buffer(path, PixelFormat.RGBA_FLOAT)
    assert loaded.channels == 4
    assert torch.all(loaded.data[..., 3] == 1.0)


def test_missing_image(tmp_path):
    with pytest.raises(ImageLoadError, match="missing.png"):
        load_pixel_buffer(tmp_path / "missing.png")


def test_unwritable_image(tmp_path):
    buffer = PixelBuffer.filled(2, 2, 0.5, PixelFormat.RGB_FLOAT)
    with pytest.raises(ImageWriteError):
        write_pixel_buffer(buffer, tmp_path / "missing_dir" / "face.png", FileFormat.PNG)


def test_unknown_file_format():
    with pytest.raises(UnknownEnumValue):
        FileFormat.from_name("gif")


def test_cubemap_files(tmp_path, face_values):
    cubemap = CubeMap.from_tensor(face_values, PixelFormat.RGB_FLOAT)
    paths = write_cubemap(cubemap, tmp_path, "png", prefix="sky_")
    assert [path.name for path in paths] == [f"sky_{face.file_stem}.png" for face in CubeMapFace]

    loaded = load_cubemap(*paths)
    assert loaded.size == 5
    assert torch.allclose(loaded.stacked, cubemap.stacked, atol=0.5 / 255.0 + 1e-6)



def test_one_texel_cubemap_from_files(tmp_path):
    value = torch.tensor(FACE_COLOR, dtype=torch.float64) / 255.0
    paths = write_cubemap(CubeMap.filled(1, torch.tensor(FACE_COLOR), PixelFormat.RGB), tmp_path, FileFormat.PNG)

    cubemap = load_cubemap(*paths)
    assert cubemap.size == 1
    assert torch.allclose(cubemap.stacked, value.expand(6, 1, 1, 3), atol=1e-6)

    coefficients = encode(cubemap, 1, method="cubemap")
    assert torch.allclose(coefficients[0], value * math.sqrt(4.0 * math.pi), rtol=1e-5)


def test_single_row_array_to_buffer():
    flipped = np.flipud(np.arange(6, dtype=np.float32).reshape(1, 2, 3))
    buffer = PixelBuffer.from_numpy(flipped, PixelFormat.RGB_FLOAT)
    assert buffer.pixel(0, 1).tolist() == [3.0, 4.0, 5.0]


# -----------------------------
# Coefficient files
# -----------------------------

def test_coefficients_roundtrip(tmp_path):
    generator = torch.Generator().manual_seed(4)
    coefficients = torch.randn((9, 3), generator=generator, dtype=torch.float64)
    path = write_coefficients(tmp_path / "coefficients.json", coefficients)

    with open(path) as f:
        data = json.load(f)
    assert data["order"] == 2
    assert sorted(data["channels"]) == ["blue", "green", "red"]

    assert torch.max(torch.abs(read_coefficients(path) - coefficients)).item() <= 1e-6


def test_missing_channels_are_zero_filled(tmp_path):
    path = tmp_path / "coefficients.json"
    path.write_text(json.dumps({"order": 1, "channels": {"red": [1, 2, 3, 4], "infrared": [5]}}))

    coefficients = read_coefficients(path, channels=4)
    assert coefficients.shape == (4, 4)
    assert coefficients[:, 0].tolist() == [1.0, 2.0, 3.0, 4.0]
    assert torch.all(coefficients[:, 1:] == 0)


def test_empty_channels(tmp_path):
    path = tmp_path / "coefficients.json"
    path.write_text(json.dumps({"channels": {}}))
    assert read_coefficients(path).shape == (0, 3)


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps([1, 2, 3]),
    json.dumps({"order": 1}),
    json.dumps({"channels": [1.0]}),
    json.dumps({"channels": {"red": ["a", "b"]}}),
    json.dumps({"channels": {"red": [1.0], "green": [1.0, 2.0]}}),
])
def test_malformed_coefficient_file(tmp_path, content):
    path = tmp_path / "coefficients.json"
    path.write_text(content)
    with pytest.raises(MalformedCoefficientFile):
        read_coefficients(path)


def test_coefficients_cpu_dict():
    cpu = ShCoefficientsCPU.from_dict({"channels": {"red": [1.0], "green": [2.0], "blue": [3.0]}})
    assert cpu.order == 0 and cpu.n_terms == 1
    assert ShCoefficientsCPU.from_dict(cpu.to_dict()) == cpu


# -----------------------------
# Command line tools
# -----------------------------

def _face_arguments(paths):
    arguments = []
    for flag, path in zip(("--px", "--nx", "--py", "--ny", "--pz", "--nz"), paths):
        arguments += [flag, str(path)]
    return arguments


def test_encode_then_decode_cli(tmp_path, face_files):
    coefficient_path = tmp_path / "coefficients.json"
    status = encode_cubemap.main(_face_arguments(face_files) + [
        "-o", str(coefficient_path), "--method", "cubemap", "--order", "1",
    ])
    assert status == 0

    coefficients = read_coefficients(coefficient_path)
    expected_dc = torch.tensor(FACE_COLOR, dtype=torch.float64) / 255.0 * math.sqrt(4.0 * math.pi)
    assert coefficients.shape == (4, 3)
    assert torch.allclose(coefficients[0], expected_dc, rtol=1e-5)

    output_dir = tmp_path / "decoded"
    status = decode_coefficients.main(["-i", str(coefficient_path), "-o", str(output_dir), "--size", "4"])
    assert status == 0

    for face in CubeMapFace:
        buffer = load_pixel_buffer(output_dir / f"{face.file_stem}.png", PixelFormat.RGB)
        assert np.all(buffer.to_numpy() == np.array(FACE_COLOR, dtype=np.uint8))


def test_cli_default_output_names(tmp_path, face_files, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert encode_cubemap.main(_face_arguments(face_files) + ["--samples", "128", "--alpha"]) == 0

    written = list((tmp_path / encode_cubemap.OUTPUT_DIR).glob("*.json"))
    assert len(written) == 1
    assert read_coefficients(written[0], channels=4).shape == (9, 4)

    assert decode_coefficients.main(["-i", str(written[0]), "--format", "hdr", "--prefix", "env_", "--alpha"]) == 0
    decoded_dirs = [path for path in (tmp_path / decode_coefficients.OUTPUT_DIR).iterdir() if path.is_dir()]
    assert len(decoded_dirs) == 1
    assert sorted(path.name for path in decoded_dirs[0].iterdir()) == sorted(
        f"env_{face.file_stem}.hdr" for face in CubeMapFace)


def test_cli_errors(tmp_path, face_files):
    missing = list(face_files[:5]) + [tmp_path / "missing.png"]
    assert encode_cubemap.main(_face_arguments(missing) + ["-o", str(tmp_path / "out.json")]) == 1

    malformed = tmp_path / "malformed.json"
    malformed.write_text("{}")
    assert decode_coefficients.main(["-i", str(malformed), "-o", str(tmp_path / "out")]) == 1

    with pytest.raises(SystemExit):
        encode_cubemap.main(_face_arguments(face_files) + ["--method", "stratified"])


def test_cli_spherical_with_one_sample(tmp_path, face_files):
    coefficient_path = tmp_path / "coefficients.json"
    status = encode_cubemap.main(_face_arguments(face_files) + [
        "-o", str(coefficient_path), "--method", "spherical", "--samples", "1",
    ])
    assert status == 0
    assert read_coefficients(coefficient_path).shape == (9, 3)


def test_cli_output_is_a_directory(tmp_path, face_files):
    assert encode_cubemap.main(_face_arguments(face_files) + ["-o", str(tmp_path)]) == 1
