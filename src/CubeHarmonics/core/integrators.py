"""
Estimators of the projection integral

    c_lm = ∫ f(ω) y_lm(ω) dω

over the sphere. Every integrator is a fixed set of nodes (phi, theta) with weights; the source
is evaluated once at construction and reused for every (l, m).

    SphericalQuadrature : uniform (phi, theta) grid, weight sin(theta) dphi dtheta
    MonteCarlo          : Hammersley points mapped uniformly on the sphere, weight 4π / N
    CubemapWeighted     : every texel of a cube map, weight = texel solid angle
"""

import logging
import math
from typing import Callable

import torch
from einops import einsum, rearrange, repeat

from .cubemap import CubeMap, face_directions
from .sph import sph_eval, spherical_to_sph_basis_vectorized, sph_indices_total
from ..utils.transforms import cartesian_to_spherical, hammersley_2d, sample_sphere, texel_solid_angles

logger = logging.getLogger(__name__)

# f(phi (N), theta (N)) -> values (N, C)
PolarFunction = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]

# nodes per basis evaluation batch in project()
CHUNK_SIZE = 65536


def divisions_from_samples(samples: int) -> int:
    # the coarsest grid is 2 steps in phi and 1 in theta
    return max(2, int(math.sqrt(2.0 * samples)))


class Integrator:
    """
    Weighted node set. Subclasses fill phi, theta, weights (N) and values (N, C).
    """

    phi: torch.Tensor
    theta: torch.Tensor
    weights: torch.Tensor
    values: torch.Tensor

    def _evaluate(self, function: PolarFunction):
        values = torch.as_tensor(function(self.phi, self.theta), dtype=torch.float64)
        if values.dim() == 1:
            values = values[:, None]
        self.values = values

    @property
    def n_nodes(self) -> int:
        return self.phi.shape[0]

    def estimate(self, l: int, m: int) -> torch.Tensor:  # noqa: E741
        """
        :returns coefficient (C)
        """
        y = sph_eval(l, m, self.phi, self.theta)  # (N)
        return einsum(self.values, y * self.weights, "n c, n -> c")

    def project(self, l_max: int) -> torch.Tensor:
        """
        Every coefficient up to l_max.

        :returns coefficients (n_terms, C)
        """
        coefficients = torch.zeros((sph_indices_total(l_max), self.values.shape[-1]),
                                   dtype=torch.float64, device=self.values.device)
        for start in range(0, self.n_nodes, CHUNK_SIZE):
            stop = start + CHUNK_SIZE
            basis = spherical_to_sph_basis_vectorized(self.phi[start:stop], self.theta[start:stop], l_max)
            weighted_basis = basis * self.weights[start:stop, None]
            coefficients += einsum(weighted_basis, self.values[start:stop], "n t, n c -> t c")
        return coefficients


class SphericalQuadrature(Integrator):
    """
    Riemann sum over a uniform grid of `divisions` steps in phi and `divisions // 2` steps in theta,
    sampled at the cell centers. The theta step is π / (divisions // 2) so the grid covers [0, π].
    """

    def __init__(self, function: PolarFunction, divisions: int = 64, device: torch.device = None):
        assert divisions >= 2, f'divisions must be at least 2, got {divisions}'
        n_phi, n_theta = divisions, divisions // 2
        d_phi = 2.0 * math.pi / n_phi
        d_theta = math.pi / n_theta

        phi_s = (torch.arange(n_phi, dtype=torch.float64, device=device) + 0.5) * d_phi
        theta_s = (torch.arange(n_theta, dtype=torch.float64, device=device) + 0.5) * d_theta

        self.phi = repeat(phi_s, "p -> (p t)", t=n_theta)
        self.theta = repeat(theta_s, "t -> (p t)", p=n_phi)
        self.weights = torch.sin(self.theta) * d_phi * d_theta
        self._evaluate(function)

        logger.debug(f"Spherical quadrature with {n_phi}x{n_theta} cells")


class MonteCarlo(Integrator):
    """
    Quasi Monte Carlo estimate over `samples` Hammersley points, scaled by 4π / samples.
    """

    def __init__(self, function: PolarFunction, samples: int = 512, device: torch.device = None):
        assert samples > 0, f'samples must be positive, got {samples}'
        e = hammersley_2d(samples, device)
        spherical_coordinates = sample_sphere(e[:, 0], e[:, 1])

        self.phi = spherical_coordinates[:, 0]
        self.theta = spherical_coordinates[:, 1]
        self.weights = torch.full((samples,), 4.0 * math.pi / samples, dtype=torch.float64, device=device)
        self._evaluate(function)

        logger.debug(f"Monte Carlo estimation with {samples} Hammersley samples")


class CubemapWeighted(Integrator):
    """
    Sum over every texel of every face, weighted by the exact texel solid angle.
    Texel values are read directly (nearest lookup at the texel center).
    """

    def __init__(self, cubemap: CubeMap):
        size = cubemap.size
        device = cubemap.device

        directions = rearrange(face_directions(size, device), "f h w c -> (f h w) c")
        spherical_coordinates = cartesian_to_spherical(directions)

        self.phi = spherical_coordinates[:, 0]
        self.theta = spherical_coordinates[:, 1]
        self.weights = repeat(texel_solid_angles(size, device), "h w -> (f h w)", f=6)
        self.values = rearrange(cubemap.stacked, "f h w c -> (f h w) c")

        logger.debug(f"Cubemap weighted estimation over 6x{size}x{size} texels")


def estimate_spherical(function: PolarFunction, l: int, m: int, divisions: int = 64) -> torch.Tensor:  # noqa: E741
    return SphericalQuadrature(function, divisions).estimate(l, m)


def estimate_monte_carlo(function: PolarFunction, l: int, m: int, samples: int = 512) -> torch.Tensor:  # noqa: E741
    return MonteCarlo(function, samples).estimate(l, m)


def estimate_cubemap(cubemap: CubeMap, l: int, m: int) -> torch.Tensor:  # noqa: E741
    return CubemapWeighted(cubemap).estimate(l, m)
