"""
Encoding cube maps into spherical harmonic coefficients and decoding them back.

Coefficients are a (n_terms, C) tensor: row l * (l + 1) + m holds the pixel valued
coefficient of y_lm, with n_terms = (order + 1)^2.

Source:
    Robin Green, "Spherical Harmonic Lighting: The Gritty Details", projection and reconstruction.
"""

import logging
from typing import Optional, Union

import torch
from einops import einsum, rearrange

from .cubemap import CubeMap, face_directions
from .integrators import (
    CubemapWeighted,
    MonteCarlo,
    PolarFunction,
    SphericalQuadrature,
    divisions_from_samples,
)
from .pixels import PixelFormat
from .sampling import CubeMapPolarFunction, InterpolationMethod, SamplingMethod
from .sph import cartesian_to_sph_basis, spherical_to_sph_basis_vectorized, sph_indices_total, sph_l_max_from_indices_total

logger = logging.getLogger(__name__)


def order(coefficients: torch.Tensor) -> int:
    """
    SH order recovered from the number of coefficients, floor(sqrt(n_terms)) - 1.
    """
    return sph_l_max_from_indices_total(coefficients.shape[0])


def encode(source: Union[CubeMap, PolarFunction],
           order: int,
           method: Union[SamplingMethod, str] = SamplingMethod.MONTE_CARLO,
           samples: int = 64,
           filtering: Union[InterpolationMethod, str] = InterpolationMethod.BILINEAR) -> torch.Tensor:
    """
    Project a cube map (or any polar function) onto the SH basis up to `order`.

    :params source: CubeMap, or f(phi, theta) -> (..., C) for the spherical and monte-carlo methods
    :params order: highest band, >= 0
    :params method: spherical | monte-carlo | cubemap
    :params samples: sample budget of the spherical / monte-carlo integrators
    :params filtering: how the cube map is sampled by the spherical / monte-carlo integrators
    :returns coefficients (n_terms, C) float64
    """
    assert order >= 0, f'order must be non negative, got {order}'
    method = SamplingMethod.from_name(method)
    filtering = InterpolationMethod.from_name(filtering)

    if method == SamplingMethod.CUBEMAP:
        if not isinstance(source, CubeMap):
            raise TypeError(f'The cubemap sampling method needs a CubeMap source, got {type(source).__name__}')
        integrator = CubemapWeighted(source)
    else:
        device = None
        if isinstance(source, CubeMap):
            device = source.device
            source = CubeMapPolarFunction(source, filtering)
        if method == SamplingMethod.MONTE_CARLO:
            integrator = MonteCarlo(source, samples, device=device)
        else:
            integrator = SphericalQuadrature(source, divisions_from_samples(samples), device=device)

    logger.debug(f"Encoding order {order} ({sph_indices_total(order)} coefficients) "
                 f"with {method.value} over {integrator.n_nodes} nodes")
    return integrator.project(order)


def decode(coefficients: torch.Tensor, phi: torch.Tensor, theta: torch.Tensor) -> torch.Tensor:
    """
    Reconstruct the signal at (phi, theta): sum over (l, m) of c_lm * y_lm(phi, theta).

    :params coefficients (n_terms, C)
    :params phi (...), theta (...)
    :returns values (..., C)
    """
    coefficients = torch.as_tensor(coefficients, dtype=torch.float64)
    basis = spherical_to_sph_basis_vectorized(phi, theta, order(coefficients))  # (..., n_terms)
    return einsum(basis.to(coefficients.device), coefficients, "... n_terms, n_terms c -> ... c")


def decode_direction(coefficients: torch.Tensor, directions: torch.Tensor) -> torch.Tensor:
    """
    :params directions (..., 3)
    :returns values (..., C)
    """
    coefficients = torch.as_tensor(coefficients, dtype=torch.float64)
    basis = cartesian_to_sph_basis(directions, order(coefficients))
    return einsum(basis.to(coefficients.device), coefficients, "... n_terms, n_terms c -> ... c")


def decode_to_cubemap(coefficients: torch.Tensor, size: int,
                      pixel_format: Optional[PixelFormat] = None) -> CubeMap:
    """
    Rasterize the reconstruction into a size x size cube map.
    Each texel center is mapped to a direction through the same face table the sampler uses.

    :params coefficients (n_terms, C)
    :params size: face resolution
    :params pixel_format: defaults to float storage with C channels
    """
    assert size > 0, f'size must be positive, got {size}'
    coefficients = torch.as_tensor(coefficients, dtype=torch.float64)
    if pixel_format is None:
        pixel_format = PixelFormat.from_channels(coefficients.shape[-1], is_float=True)

    directions = face_directions(size, coefficients.device)  # (6, size, size, 3)
    values = decode_direction(coefficients, rearrange(directions, "f h w c -> (f h w) c"))
    values = rearrange(values, "(f h w) c -> f h w c", f=6, h=size, w=size)

    logger.debug(f"Decoded order {order(coefficients)} into a {size}x{size} cube map")
    return CubeMap.from_tensor(values, pixel_format)


def product(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """
    Inner product of two coefficient vectors of equal length, sum over i of a[i] * b[i].
    For SH projected functions this is the integral of their product over the sphere.

    :returns (C)
    """
    assert a.shape[0] == b.shape[0], f'Coefficient vectors differ in length: {a.shape[0]} vs {b.shape[0]}'
    return torch.sum(a * b, dim=0)
