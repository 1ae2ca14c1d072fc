import pytest
import torch

from CubeHarmonics.core.cubemap import CubeMap
from CubeHarmonics.core.pixels import PixelFormat

CONSTANT_VALUE = (0.5, 1.0, 2.0)


@pytest.fixture
def constant_value() -> torch.Tensor:
    return torch.tensor(CONSTANT_VALUE, dtype=torch.float64)


@pytest.fixture
def constant_cubemap(constant_value) -> CubeMap:
    return CubeMap.filled(16, constant_value, PixelFormat.RGB_FLOAT)


@pytest.fixture
def smooth_cubemap() -> CubeMap:
    """exp(d . a) replicated over rgb, a smooth signal with energy in every band."""
    axis = torch.tensor([0.3, 0.8, -0.5], dtype=torch.float64)

    def lobe(directions: torch.Tensor) -> torch.Tensor:
        value = torch.exp(torch.sum(directions * axis, dim=-1))
        return torch.stack([value, 0.5 * value, 2.0 * value], dim=-1)

    return CubeMap.from_function(32, lobe, PixelFormat.RGB_FLOAT)


@pytest.fixture
def face_values() -> torch.Tensor:
    """(6, 5, 5, 3) random texels, odd size so every face has a center texel."""
    generator = torch.Generator().manual_seed(7)
    return torch.rand((6, 5, 5, 3), generator=generator, dtype=torch.float64)
