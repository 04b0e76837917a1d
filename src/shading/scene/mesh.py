"""Indexed triangle meshes and primitive builders.

A Mesh holds object-space vertex attributes as NumPy arrays plus a triangle
index list. Tangents are generated from the UV layout when not supplied:
each triangle contributes its UV-aligned tangent to its three vertices and
the per-vertex sums are normalized.

Example:
    >>> from src.shading.scene.mesh import make_uv_sphere
    >>> sphere = make_uv_sphere(radius=1.0, segments=32, rings=16)
    >>> sphere.vertex_count, sphere.triangle_count
    (561, 1024)
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

# UV-space determinant below which a triangle has no usable tangent
_UV_DET_EPSILON = 1e-12


@dataclass
class Mesh:
    """Object-space indexed triangle mesh.

    Attributes:
        positions: (N, 3) vertex positions.
        normals: (N, 3) vertex normals.
        uvs: (N, 2) texture coordinates.
        indices: (M, 3) triangle vertex indices.
        tangents: (N, 3) vertex tangents, generated when None.
        colors: (N, 4) vertex colors, or None for opaque white.
    """

    positions: npt.NDArray[np.float32]
    normals: npt.NDArray[np.float32]
    uvs: npt.NDArray[np.float32]
    indices: npt.NDArray[np.int32]
    tangents: npt.NDArray[np.float32] | None = None
    colors: npt.NDArray[np.float32] | None = None

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float32).reshape(-1, 3)
        self.normals = np.asarray(self.normals, dtype=np.float32).reshape(-1, 3)
        self.uvs = np.asarray(self.uvs, dtype=np.float32).reshape(-1, 2)
        self.indices = np.asarray(self.indices, dtype=np.int32).reshape(-1, 3)

        n = self.positions.shape[0]
        if self.normals.shape[0] != n or self.uvs.shape[0] != n:
            raise ValueError(
                f"Vertex attribute counts disagree: positions={n}, "
                f"normals={self.normals.shape[0]}, uvs={self.uvs.shape[0]}"
            )
        if self.indices.size and (self.indices.min() < 0 or self.indices.max() >= n):
            raise ValueError(f"Triangle indices reference vertices outside [0, {n})")

        if self.tangents is None:
            self.tangents = compute_tangents(self.positions, self.normals, self.uvs, self.indices)
        else:
            self.tangents = np.asarray(self.tangents, dtype=np.float32).reshape(-1, 3)
            if self.tangents.shape[0] != n:
                raise ValueError(f"Expected {n} tangents, got {self.tangents.shape[0]}")
        if self.colors is not None:
            self.colors = np.asarray(self.colors, dtype=np.float32).reshape(-1, 4)
            if self.colors.shape[0] != n:
                raise ValueError(f"Expected {n} colors, got {self.colors.shape[0]}")

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.indices.shape[0])


def _any_perpendicular(n: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Unit vectors perpendicular to each row of n."""
    # Cross with whichever axis is least aligned with the normal
    axis = np.zeros_like(n)
    use_x = np.abs(n[:, 0]) < 0.9
    axis[use_x, 0] = 1.0
    axis[~use_x, 1] = 1.0
    t = np.cross(axis, n)
    length = np.linalg.norm(t, axis=1, keepdims=True)
    return t / np.maximum(length, 1e-12)


def compute_tangents(
    positions: npt.ArrayLike,
    normals: npt.ArrayLike,
    uvs: npt.ArrayLike,
    indices: npt.ArrayLike,
) -> npt.NDArray[np.float32]:
    """Generate per-vertex tangents from the UV layout.

    For a triangle with edges dp1, dp2 and UV deltas duv1, duv2 the tangent
    is ``(dp1 * duv2.v - dp2 * duv1.v) / det`` where
    ``det = duv1.u * duv2.v - duv1.v * duv2.u``. Triangles with a degenerate
    UV mapping are skipped. Vertices that receive no contribution get an
    arbitrary unit vector perpendicular to their normal.

    Args:
        positions: (N, 3) vertex positions.
        normals: (N, 3) vertex normals.
        uvs: (N, 2) texture coordinates.
        indices: (M, 3) triangle indices.

    Returns:
        (N, 3) unit tangents.
    """
    pos = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    nrm = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
    uv = np.asarray(uvs, dtype=np.float64).reshape(-1, 2)
    tri = np.asarray(indices, dtype=np.int64).reshape(-1, 3)

    accum = np.zeros_like(pos)
    if tri.size:
        i0, i1, i2 = tri[:, 0], tri[:, 1], tri[:, 2]
        dp1 = pos[i1] - pos[i0]
        dp2 = pos[i2] - pos[i0]
        duv1 = uv[i1] - uv[i0]
        duv2 = uv[i2] - uv[i0]

        det = duv1[:, 0] * duv2[:, 1] - duv1[:, 1] * duv2[:, 0]
        usable = np.abs(det) > _UV_DET_EPSILON
        r = np.zeros_like(det)
        r[usable] = 1.0 / det[usable]
        tangent = (dp1 * duv2[:, 1:2] - dp2 * duv1[:, 1:2]) * r[:, None]

        for corner in (i0, i1, i2):
            np.add.at(accum, corner, tangent)

    length = np.linalg.norm(accum, axis=1, keepdims=True)
    result = np.where(length > 1e-12, accum / np.maximum(length, 1e-12), 0.0)

    missing = length[:, 0] <= 1e-12
    if np.any(missing):
        result[missing] = _any_perpendicular(nrm[missing])
    return result.astype(np.float32)


# =============================================================================
# Primitive Builders
# =============================================================================


def make_quad(size: float = 1.0, *, uv_repeat: float = 1.0) -> Mesh:
    """Create a square in the XZ plane facing +Y.

    Args:
        size: Edge length.
        uv_repeat: UV range across the quad (1.0 maps the texture once).

    Returns:
        A 4-vertex, 2-triangle mesh centered at the origin.
    """
    h = 0.5 * size
    positions = np.array(
        [[-h, 0.0, -h], [h, 0.0, -h], [h, 0.0, h], [-h, 0.0, h]],
        dtype=np.float32,
    )
    normals = np.tile(np.array([0.0, 1.0, 0.0], dtype=np.float32), (4, 1))
    uvs = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]], dtype=np.float32) * uv_repeat
    indices = np.array([[0, 2, 1], [0, 3, 2]], dtype=np.int32)
    return Mesh(positions=positions, normals=normals, uvs=uvs, indices=indices)


def make_uv_sphere(radius: float = 1.0, segments: int = 32, rings: int = 16) -> Mesh:
    """Create a latitude/longitude sphere.

    u runs around the equator from 0 to 1 and v from the north pole (0) to
    the south pole (1). The seam column is duplicated so UVs do not wrap
    inside a triangle.

    Args:
        radius: Sphere radius. Must be positive.
        segments: Number of longitudinal slices (>= 3).
        rings: Number of latitudinal bands (>= 2).

    Raises:
        ValueError: If any argument is out of range.
    """
    if radius <= 0.0:
        raise ValueError(f"Sphere radius must be positive, got {radius}")
    if segments < 3 or rings < 2:
        raise ValueError(f"Sphere needs segments >= 3 and rings >= 2, got {segments}, {rings}")

    u = np.linspace(0.0, 1.0, segments + 1)
    v = np.linspace(0.0, 1.0, rings + 1)
    uu, vv = np.meshgrid(u, v)
    phi = uu * 2.0 * math.pi
    theta = vv * math.pi

    normals = np.stack(
        [np.sin(theta) * np.cos(phi), np.cos(theta), -np.sin(theta) * np.sin(phi)],
        axis=-1,
    ).reshape(-1, 3)
    positions = normals * radius
    uvs = np.stack([uu, vv], axis=-1).reshape(-1, 2)

    stride = segments + 1
    faces = []
    for ring in range(rings):
        for seg in range(segments):
            a = ring * stride + seg
            b = a + stride
            faces.append((a, b, a + 1))
            faces.append((a + 1, b, b + 1))

    return Mesh(
        positions=positions.astype(np.float32),
        normals=normals.astype(np.float32),
        uvs=uvs.astype(np.float32),
        indices=np.asarray(faces, dtype=np.int32),
    )


def make_cube(size: float = 1.0) -> Mesh:
    """Create an axis-aligned cube with one UV square per face."""
    h = 0.5 * size
    # (normal, u axis, v axis) per face; v runs down the face like image rows
    faces = [
        ((1, 0, 0), (0, 0, -1), (0, -1, 0)),
        ((-1, 0, 0), (0, 0, 1), (0, -1, 0)),
        ((0, 1, 0), (1, 0, 0), (0, 0, 1)),
        ((0, -1, 0), (1, 0, 0), (0, 0, -1)),
        ((0, 0, 1), (1, 0, 0), (0, -1, 0)),
        ((0, 0, -1), (-1, 0, 0), (0, -1, 0)),
    ]
    positions, normals, uvs, indices = [], [], [], []
    for f, (n, du, dv) in enumerate(faces):
        n_, du_, dv_ = (np.asarray(x, dtype=np.float32) for x in (n, du, dv))
        for cu, cv in ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)):
            positions.append((n_ + du_ * (2.0 * cu - 1.0) + dv_ * (2.0 * cv - 1.0)) * h)
            normals.append(n_)
            uvs.append((cu, cv))
        base = 4 * f
        indices.append((base, base + 2, base + 1))
        indices.append((base, base + 3, base + 2))

    return Mesh(
        positions=np.asarray(positions, dtype=np.float32),
        normals=np.asarray(normals, dtype=np.float32),
        uvs=np.asarray(uvs, dtype=np.float32),
        indices=np.asarray(indices, dtype=np.int32),
    )
