"""
Numerical tests of the real spherical harmonic basis and its indexing.
"""

import math

import pytest
import torch

from CubeHarmonics.core.sph import (
    lm_from_index,
    sph_eval,
    sph_index_from_lm,
    sph_indices_total,
    sph_l_max_from_indices_total,
    sph_normalization,
    spherical_to_sph_basis,
    spherical_to_sph_basis_vectorized,
    cartesian_to_sph_basis,
)
from CubeHarmonics.utils.transforms import spherical_to_cartesian


def _grid(n_phi: int = 65, n_theta: int = 33):
    """Angle grid including both poles and phi = 0 / 2π."""
    phi = torch.linspace(0.0, 2.0 * math.pi, n_phi, dtype=torch.float64)
    theta = torch.linspace(0.0, math.pi, n_theta, dtype=torch.float64)
    return torch.meshgrid(phi, theta, indexing="ij")


def test_basis_is_finite_everywhere():
    phi, theta = _grid()
    Ylm = spherical_to_sph_basis_vectorized(phi, theta, l_max=12)
    assert Ylm.shape == (*phi.shape, sph_indices_total(12))
    assert torch.all(torch.isfinite(Ylm))


def test_vectorized_vs_looping():
    phi, theta = _grid()
    original = spherical_to_sph_basis(phi, theta, l_max=6)
    vectorized = spherical_to_sph_basis_vectorized(phi, theta, l_max=6)
    assert torch.allclose(original, vectorized, rtol=1e-10, atol=1e-12)


def test_low_order_analytic_values():
    phi, theta = _grid(17, 9)
    directions = spherical_to_cartesian(torch.stack([phi, theta], dim=-1))
    x, y, z = directions[..., 0], directions[..., 1], directions[..., 2]

    c1 = math.sqrt(3.0 / (4.0 * math.pi))
    expected = {
        (0, 0): torch.full_like(x, 0.5 / math.sqrt(math.pi)),
        (1, -1): -c1 * x,
        (1, 0): c1 * y,
        (1, 1): -c1 * z,
        (2, 0): math.sqrt(5.0 / (16.0 * math.pi)) * (3.0 * y * y - 1.0),
    }
    Ylm = spherical_to_sph_basis_vectorized(phi, theta, l_max=2)
    for (l, m), values in expected.items():  # noqa: E741
        assert torch.allclose(Ylm[..., sph_index_from_lm(l, m)], values, atol=1e-12), f"Y_{l}^{m}"


def test_cartesian_basis_matches_spherical():
    phi, theta = _grid(17, 9)
    directions = spherical_to_cartesian(torch.stack([phi, theta], dim=-1))
    from_directions = cartesian_to_sph_basis(directions, l_max=4)
    from_angles = spherical_to_sph_basis_vectorized(phi, theta, l_max=4)
    # phi is undefined at the poles, only m = 0 terms are non zero there
    assert torch.allclose(from_directions, from_angles, atol=1e-10)


def test_sph_eval_scalar():
    value = sph_eval(0, 0, 0.3, 1.2)
    assert isinstance(value, float)
    assert value == pytest.approx(0.28209479177387814)
    assert sph_eval(3, -2, 1.0, 0.0) == 0.0


def test_sph_eval_high_band_at_poles_is_finite():
    theta = torch.tensor([0.0, math.pi], dtype=torch.float64)
    phi = torch.zeros_like(theta)
    for m in range(-20, 21):
        assert torch.all(torch.isfinite(sph_eval(20, m, phi, theta)))


def test_normalization_constant():
    assert sph_normalization(0, 0) == pytest.approx(1.0 / math.sqrt(4.0 * math.pi))
    assert sph_normalization(2, -1) == sph_normalization(2, 1)


@pytest.mark.parametrize("l_max", range(0, 11))
def test_order_from_terms_is_left_inverse(l_max):
    assert sph_l_max_from_indices_total(sph_indices_total(l_max)) == l_max


def test_index_layout():
    indices = [sph_index_from_lm(l, m) for l in range(5) for m in range(-l, l + 1)]  # noqa: E741
    assert indices == list(range(sph_indices_total(4)))
    for i in indices:
        assert sph_index_from_lm(*lm_from_index(i)) == i
