import math
from typing import Union

import torch

from ..utils.transforms import cartesian_to_spherical

Angle = Union[float, torch.Tensor]


# -----------------------------
# Normalization
# -----------------------------

def fact(n: int) -> int:
    """Factorial of a non-negative integer, arguments never exceed 2 * l_max."""
    return math.factorial(n)


def sph_normalization(l: int, m: int) -> float:  # noqa: E741
    """
    Renormalisation constant K(l, m) = sqrt((2l + 1) (l - |m|)! / (4π (l + |m|)!))
    """
    m_abs = abs(m)
    return math.sqrt((2.0 * l + 1.0) * fact(l - m_abs) / (4.0 * math.pi * fact(l + m_abs)))


# -----------------------------
# Associated Legendre Polynomials
# -----------------------------

def legendre_p(l: int, m: int, x: torch.Tensor) -> torch.Tensor:  # noqa: E741
    """
    Associated Legendre polynomial P(l, m, x) with Condon–Shortley phase, 0 <= m <= l.

    Seed P(m, m, x) = (-1)^m (2m - 1)!! (1 - x^2)^(m/2), then step P(m+1, m) = x (2m + 1) P(m, m)
    and the upward recurrence
        (l - m) P(l, m) = (2l - 1) x P(l-1, m) - (l + m - 1) P(l-2, m)

    :params x (...): float64 tensor, cos(theta)
    :returns P (...)
    """
    s = torch.sqrt(torch.clamp((1.0 - x) * (1.0 + x), min=0.0))  # sin(theta)
    pmm = torch.ones_like(x)
    for k in range(1, m + 1):
        pmm = -pmm * (2.0 * k - 1.0) * s

    if l == m:
        return pmm

    pmmp1 = x * (2.0 * m + 1.0) * pmm
    if l == m + 1:
        return pmmp1

    p_lm_2, p_lm_1 = pmm, pmmp1
    for ll in range(m + 2, l + 1):
        pll = ((2.0 * ll - 1.0) * x * p_lm_1 - (ll + m - 1.0) * p_lm_2) / (ll - m)
        p_lm_2, p_lm_1 = p_lm_1, pll
    return p_lm_1


# -----------------------------
# Spherical to Spherical Harmonic Basis
# -----------------------------

def _finite_or_zero(values: torch.Tensor) -> torch.Tensor:
    return torch.where(torch.isfinite(values), values, torch.zeros_like(values))


def sph_eval(l: int, m: int, phi: Angle, theta: Angle) -> Angle:  # noqa: E741
    """
    Real spherical harmonic y(l, m, phi, theta).

      y_l^0     =      K(l,0)   P(l,0,cosθ)
      y_l^m     = √2 K(l,m)   cos(mφ)   P(l,m,cosθ),     m > 0
      y_l^{-m}  = √2 K(l,|m|) sin(|m|φ) P(l,|m|,cosθ),   m < 0

    Never raises, non-finite results (possible at the poles for high bands) become 0.

    :params l: band, [0, N]
    :params m: index inside the band, [-l, l]
    :params phi: azimuth in [0, 2π), float or tensor
    :params theta: polar angle in [0, π], float or tensor
    :returns y: same shape as the broadcast angles, float when both angles are floats
    """
    scalar = not isinstance(phi, torch.Tensor) and not isinstance(theta, torch.Tensor)
    phi = torch.as_tensor(phi, dtype=torch.float64)
    theta = torch.as_tensor(theta, dtype=torch.float64, device=phi.device)

    m_abs = abs(m)
    P_lm = legendre_p(l, m_abs, torch.cos(theta))
    K = sph_normalization(l, m_abs)

    sqrt2 = math.sqrt(2.0)
    if m == 0:
        Y = K * P_lm
    elif m > 0:
        Y = sqrt2 * K * torch.cos(m * phi) * P_lm
    else:
        Y = sqrt2 * K * torch.sin(m_abs * phi) * P_lm

    Y = _finite_or_zero(Y)
    return Y.item() if scalar else Y


def spherical_to_sph_basis(phi: torch.Tensor, theta: torch.Tensor, l_max: int) -> torch.Tensor:
    """
    Looping version (clear & reliable), one sph_eval call per (l, m).

    :params phi (...), theta (...)
    :params l_max: the order of the basis to compute.
    :returns Ylm (..., n_terms) float64
    """
    phi, theta = torch.broadcast_tensors(torch.as_tensor(phi, dtype=torch.float64),
                                         torch.as_tensor(theta, dtype=torch.float64))
    Ylm = torch.empty((*phi.shape, sph_indices_total(l_max)), dtype=torch.float64, device=phi.device)
    for l in range(l_max + 1):  # noqa: E741
        for m in range(-l, l + 1):
            Ylm[..., sph_index_from_lm(l, m)] = sph_eval(l, m, phi, theta)
    return Ylm


def spherical_to_sph_basis_vectorized(phi: torch.Tensor, theta: torch.Tensor, l_max: int) -> torch.Tensor:
    """
    All real spherical harmonics up to l_max at once: every P(l, m) is built with a single pass
    of the diagonal seed + upward recurrence, instead of restarting the recurrence per (l, m).

    :params phi (...), theta (...)
    :returns Ylm (..., n_terms) float64, identical to spherical_to_sph_basis
    """
    phi, theta = torch.broadcast_tensors(torch.as_tensor(phi, dtype=torch.float64),
                                         torch.as_tensor(theta, dtype=torch.float64))
    x = torch.cos(theta)
    s = torch.sqrt(torch.clamp((1.0 - x) * (1.0 + x), min=0.0))
    n_terms = sph_indices_total(l_max)

    # ---- P(l, m) for m >= 0, stored in the (l, m) slot ----
    P = torch.zeros((*x.shape, n_terms), dtype=torch.float64, device=x.device)
    pmm = torch.ones_like(x)
    for m in range(0, l_max + 1):
        if m > 0:
            pmm = -pmm * (2.0 * m - 1.0) * s
        P[..., sph_index_from_lm(m, m)] = pmm
        if m < l_max:
            P[..., sph_index_from_lm(m + 1, m)] = x * (2.0 * m + 1.0) * pmm
        for l in range(m + 2, l_max + 1):  # noqa: E741
            P[..., sph_index_from_lm(l, m)] = (
                (2.0 * l - 1.0) * x * P[..., sph_index_from_lm(l - 1, m)]
                - (l + m - 1.0) * P[..., sph_index_from_lm(l - 2, m)]
            ) / (l - m)

    # ---- assemble real Y ----
    Y = torch.zeros_like(P)
    sqrt2 = math.sqrt(2.0)
    for l in range(l_max + 1):  # noqa: E741
        Y[..., sph_index_from_lm(l, 0)] = sph_normalization(l, 0) * P[..., sph_index_from_lm(l, 0)]
        for m in range(1, l + 1):
            common = sqrt2 * sph_normalization(l, m) * P[..., sph_index_from_lm(l, m)]
            Y[..., sph_index_from_lm(l, m)] = common * torch.cos(m * phi)
            Y[..., sph_index_from_lm(l, -m)] = common * torch.sin(m * phi)

    return _finite_or_zero(Y)


def cartesian_to_sph_basis(cartesian_coordinates: torch.Tensor, l_max: int) -> torch.Tensor:
    """
    Basis evaluated at directions (..., 3), through the package wide spherical convention.

    :returns Ylm (..., n_terms)
    """
    spherical_coordinates = cartesian_to_spherical(torch.as_tensor(cartesian_coordinates, dtype=torch.float64))
    return spherical_to_sph_basis_vectorized(spherical_coordinates[..., 0], spherical_coordinates[..., 1], l_max)


# -----------------------------
# Spherical Harmonic Indexing
# -----------------------------
def sph_indices_total(l_max: int) -> int:  # (l_max + 1)^2
    return (l_max + 1) * (l_max + 1)


def sph_index_from_lm(l: int, m: int) -> int:  # noqa: E741
    # band l occupies indices [l*l, (l+1)^2 - 1], with m mapped as (l + m)
    return l * (l + 1) + m


def l_from_index(idx: int) -> int:
    # largest l with l*l <= idx
    return math.isqrt(idx)


def sph_l_max_from_indices_total(n_terms: int) -> int:
    # inverse of (l_max + 1)^2, meaningless when n_terms is not a perfect square
    return math.isqrt(n_terms) - 1


def lm_from_index(idx: int) -> tuple[int, int]:
    l = l_from_index(idx)  # noqa: E741
    return l, idx - (l * l + l)
