"""
Directional sampling of cube maps.

    1. find the cube map face (dominant axis, ties resolved X > Y > Z)
    2. project the direction onto that face (perspective divide by the dominant component)
    3. map the face-local point to normalized texture coordinates using FACE_AXES
    4. sample the face bitmap with nearest or bilinear filtering
"""

import torch

from .cubemap import CubeMap, CubeMapFace, face_axes
from .pixels import PixelBuffer
from ..utils.enums import NamedEnum
from ..utils.transforms import normalize, spherical_to_cartesian

# Span used instead of zero when a buffer has a single texel along an axis.
EPSILON = 1e-6


class InterpolationMethod(NamedEnum):
    NEAREST = "nearest"
    BILINEAR = "linear"


class SamplingMethod(NamedEnum):
    SPHERICAL = "spherical"
    MONTE_CARLO = "monte-carlo"
    CUBEMAP = "cubemap"


def select_face(directions: torch.Tensor) -> torch.Tensor:
    """
    Pick the cube face hit by each direction.

    :params directions (..., 3)
    :returns faces (...): CubeMapFace values as int64
    """
    x, y, z = directions[..., 0], directions[..., 1], directions[..., 2]
    ax, ay, az = torch.abs(x), torch.abs(y), torch.abs(z)

    # ties on the face boundaries go to X, then Y
    is_x = (ax >= ay) & (ax >= az)
    is_y = ~is_x & (ay >= az)

    face_x = torch.where(x >= 0, int(CubeMapFace.POSITIVE_X), int(CubeMapFace.NEGATIVE_X))
    face_y = torch.where(y >= 0, int(CubeMapFace.POSITIVE_Y), int(CubeMapFace.NEGATIVE_Y))
    face_z = torch.where(z >= 0, int(CubeMapFace.POSITIVE_Z), int(CubeMapFace.NEGATIVE_Z))

    return torch.where(is_x, face_x, torch.where(is_y, face_y, face_z)).to(torch.int64)


def direction_to_face_uv(directions: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
    """
    Project directions onto the cube and return the face and normalized texture coordinates.

    :params directions (..., 3): need not be normalized
    :returns faces (...), uv (..., 2) in [0, 1]
    """
    faces = select_face(directions)
    axes = face_axes(directions.device)[faces]  # (..., 3, 3)
    forward, right, up = axes[..., 0, :], axes[..., 1, :], axes[..., 2, :]

    # dominant component, always positive for the selected face
    depth = torch.sum(directions * forward, dim=-1)
    projection_u = 0.5 * torch.sum(directions * right, dim=-1) / depth  # [-0.5, 0.5]
    projection_v = 0.5 * torch.sum(directions * up, dim=-1) / depth

    uv = torch.stack([projection_u + 0.5, projection_v + 0.5], dim=-1)
    return faces, uv


def _corners(coordinate: torch.Tensor, size: int) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    The two texel indices around a texel-space coordinate (clamped to the edge)
    and the fractional position between them.
    """
    c1 = torch.clamp(torch.floor(coordinate), 0, size - 1)
    c2 = torch.clamp(c1 + 1, max=size - 1)
    span = torch.clamp(c2 - c1, min=EPSILON)
    fraction = torch.clamp((coordinate - c1) / span, 0.0, 1.0)
    return c1.to(torch.int64), c2.to(torch.int64), fraction


def sample_faces(faces_data: torch.Tensor, faces: torch.Tensor, uv: torch.Tensor,
                 filtering: InterpolationMethod) -> torch.Tensor:
    """
    Sample a stack of equally sized bitmaps.

    :params faces_data (F, H, W, C)
    :params faces (...): which bitmap each sample reads from
    :params uv (..., 2): normalized texture coordinates, u along columns and v along rows
    :params filtering: nearest or bilinear
    :returns values (..., C)
    """
    filtering = InterpolationMethod.from_name(filtering)
    _, H, W, _ = faces_data.shape

    # texel centers sit at integer coordinates
    x = uv[..., 0] * W - 0.5
    y = uv[..., 1] * H - 0.5
    x1, x2, tx = _corners(x, W)
    y1, y2, ty = _corners(y, H)

    q11 = faces_data[faces, y1, x1]
    q12 = faces_data[faces, y2, x1]
    q21 = faces_data[faces, y1, x2]
    q22 = faces_data[faces, y2, x2]

    weights = torch.stack([
        (1.0 - tx) * (1.0 - ty),
        (1.0 - tx) * ty,
        tx * (1.0 - ty),
        tx * ty,
    ], dim=-1)  # (..., 4)
    corners = torch.stack([q11, q12, q21, q22], dim=-2).to(weights.dtype)  # (..., 4, C)

    if filtering == InterpolationMethod.NEAREST:
        # the corner with the largest area weight is the closest one, ties go to q11
        closest = torch.argmax(weights, dim=-1)
        index = closest[..., None, None].expand(*closest.shape, 1, corners.shape[-1])
        return torch.gather(corners, -2, index).squeeze(-2)

    return torch.sum(corners * weights[..., None], dim=-2)


def sample_bitmap(bitmap: PixelBuffer, uv: torch.Tensor,
                  filtering: InterpolationMethod = InterpolationMethod.BILINEAR) -> torch.Tensor:
    """
    Sample a single 2D pixel buffer at normalized texture coordinates.

    :params uv (..., 2) in [0, 1]
    :returns values (..., C) float64
    """
    uv = torch.as_tensor(uv, dtype=torch.float64, device=bitmap.data.device)
    faces = torch.zeros(uv.shape[:-1], dtype=torch.int64, device=uv.device)
    return sample_faces(bitmap.data[None].to(torch.float64), faces, uv, filtering)


def sample_cubemap(cubemap: CubeMap, directions: torch.Tensor,
                   filtering: InterpolationMethod = InterpolationMethod.BILINEAR) -> torch.Tensor:
    """
    Value of the cube map seen along each direction.

    :params directions (..., 3)
    :returns values (..., C) float64
    """
    directions = torch.as_tensor(directions, dtype=torch.float64, device=cubemap.device)
    faces, uv = direction_to_face_uv(normalize(directions))
    return sample_faces(cubemap.stacked, faces, uv, filtering)


class CubeMapPolarFunction:
    """
    A cube map seen as a function of spherical angles, f(phi, theta) -> value.
    """

    def __init__(self, cubemap: CubeMap, filtering: InterpolationMethod = InterpolationMethod.BILINEAR):
        self.cubemap = cubemap
        self.filtering = InterpolationMethod.from_name(filtering)

    @property
    def channels(self) -> int:
        return self.cubemap.channels

    def __call__(self, phi: torch.Tensor, theta: torch.Tensor) -> torch.Tensor:
        directions = spherical_to_cartesian(torch.stack([phi, theta], dim=-1))
        return sample_cubemap(self.cubemap, directions, self.filtering)
