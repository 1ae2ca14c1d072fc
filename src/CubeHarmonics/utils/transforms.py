import math
import torch
from einops import repeat


def spherical_to_cartesian(spherical_coordinates: torch.Tensor) -> torch.Tensor:
    """
    Convert from spherical coordinates to cartesian coordinates (y up).

    Convention used everywhere in the package:
        phi   (azimuth) in [0, 2π), measured from +Z towards +X
        theta (polar)   in [0, π],  measured from +Y

        x = sin(theta) * sin(phi)
        y = cos(theta)
        z = sin(theta) * cos(phi)

    :params spherical_coordinates (..., 2): [..., 0] = phi, [..., 1] = theta
    :returns cartesian_coordinates (..., 3)
    """
    phi, theta = spherical_coordinates[..., 0], spherical_coordinates[..., 1]
    sin_theta = torch.sin(theta)

    x = sin_theta * torch.sin(phi)
    y = torch.cos(theta)
    z = sin_theta * torch.cos(phi)

    return torch.stack([x, y, z], dim=-1)


def cartesian_to_spherical(cartesian_coordinates: torch.Tensor) -> torch.Tensor:
    """
    Convert from cartesian coordinates to spherical coordinates, inverse of spherical_to_cartesian.
    Directions do not need to be normalized.

    :params cartesian_coordinates (..., 3)
    :returns spherical_coordinates (..., 2): [..., 0] = phi in [0, 2π), [..., 1] = theta in [0, π]
    """
    x, y, z = cartesian_coordinates[..., 0], cartesian_coordinates[..., 1], cartesian_coordinates[..., 2]
    radial_length = torch.sqrt(x**2 + y**2 + z**2)

    phi = torch.remainder(torch.atan2(x, z), 2.0 * math.pi)
    theta = torch.acos(torch.clamp(y / radial_length, -1.0, 1.0))  # acos is nan outside [-1, 1]

    return torch.stack([phi, theta], dim=-1)


def normalize(directions: torch.Tensor) -> torch.Tensor:
    return directions / torch.linalg.norm(directions, dim=-1, keepdim=True)


# -----------------------------
# Low discrepancy sequences
# -----------------------------

def radical_inverse_vdc(indices: torch.Tensor) -> torch.Tensor:
    """
    Van der Corput radical inverse in base 2 (32 bit reversal).

    :params indices (N): integer sample indices
    :returns (N): float64 values in [0, 1)
    """
    bits = indices.to(torch.int64) & 0xFFFFFFFF
    bits = ((bits << 16) | (bits >> 16)) & 0xFFFFFFFF
    bits = ((bits & 0x55555555) << 1) | ((bits & 0xAAAAAAAA) >> 1)
    bits = ((bits & 0x33333333) << 2) | ((bits & 0xCCCCCCCC) >> 2)
    bits = ((bits & 0x0F0F0F0F) << 4) | ((bits & 0xF0F0F0F0) >> 4)
    bits = ((bits & 0x00FF00FF) << 8) | ((bits & 0xFF00FF00) >> 8)
    return bits.to(torch.float64) * 2.3283064365386963e-10  # / 0x100000000


def hammersley_2d(n: int, device: torch.device = None) -> torch.Tensor:
    """
    The 2D Hammersley point set of size n.

    :returns points (n, 2): [:, 0] = radical inverse of i, [:, 1] = i / n
    """
    indices = torch.arange(n, device=device, dtype=torch.int64)
    return torch.stack([radical_inverse_vdc(indices), indices.to(torch.float64) / n], dim=-1)


def sample_sphere(ex: torch.Tensor, ey: torch.Tensor) -> torch.Tensor:
    """
    Map uniform [0, 1)^2 samples to uniformly distributed sphere directions (inverse cdf).

    :returns spherical_coordinates (..., 2): phi = 2π ey, theta = 2 acos(sqrt(1 - ex))
    """
    phi = 2.0 * math.pi * ey
    theta = 2.0 * torch.acos(torch.sqrt(1.0 - ex))
    return torch.stack([phi, theta], dim=-1)


# -----------------------------
# Cube face texel geometry
# -----------------------------

def texel_centers(size: int, device: torch.device = None) -> torch.Tensor:
    """
    Face-local coordinates of texel centers along one axis of a size x size face.

    :returns (size): values in (-1, 1), offset by half a texel from the edges.
    """
    return (2.0 * (torch.arange(size, device=device, dtype=torch.float64) + 0.5) / size) - 1.0


def face_grid(size: int, device: torch.device = None) -> tuple[torch.Tensor, torch.Tensor]:
    """
    Face-local (s, t) coordinates of every texel center, s grows with the column and t with the row.

    :returns s, t: (size, size) each, indexed [row, col]
    """
    centers = texel_centers(size, device)
    s = repeat(centers, "w -> h w", h=size)
    t = repeat(centers, "h -> h w", w=size)
    return s, t


def area_element(s: torch.Tensor, t: torch.Tensor) -> torch.Tensor:
    """
    Solid angle subtended by the rectangle [0, s] x [0, t] on the face plane at distance 1.
    """
    return torch.atan2(s * t, torch.sqrt(s * s + t * t + 1.0))


def texel_solid_angles(size: int, device: torch.device = None) -> torch.Tensor:
    """
    Exact solid angle of each texel of a size x size cube face.
    Summed over the six faces this gives 4π.

    :returns solid_angles (size, size)
    """
    s, t = face_grid(size, device)
    half = 1.0 / size
    s0, s1 = s - half, s + half
    t0, t1 = t - half, t + half
    return area_element(s0, t0) - area_element(s0, t1) - area_element(s1, t0) + area_element(s1, t1)
