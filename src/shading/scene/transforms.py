"""Per-instance world transforms.

Each drawable instance owns one 4x4 world matrix, stored in a dense sequence
indexed by the instance index carried on every vertex. The sequence is
rewritten once per frame from Python scope and read-only to kernels.

``Transform`` builds matrices from translation, rotation and scale, in the
scale-then-rotate-then-translate order. Normals are transformed with the
model matrix directly, so non-uniform scale skews them.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.scene.transforms import Transform, add_instance_transform
    >>> idx = add_instance_transform(Transform.from_translation((0.0, 1.0, 0.0)).matrix())
"""

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.shading.camera.perspective import look_at_rh

mat4 = tm.mat4

# Maximum number of instances per frame
MAX_INSTANCES = 1024


def quat_from_axis_angle(
    axis: tuple[float, float, float],
    angle_degrees: float,
) -> tuple[float, float, float, float]:
    """Build a unit quaternion (x, y, z, w) from an axis and an angle.

    Raises:
        ValueError: If the axis has zero length.
    """
    a = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(a)
    if norm < 1e-12:
        raise ValueError("Rotation axis must have non-zero length")
    a /= norm
    half = math.radians(angle_degrees) / 2.0
    s = math.sin(half)
    return (float(a[0] * s), float(a[1] * s), float(a[2] * s), math.cos(half))


def quat_to_matrix(q: tuple[float, float, float, float]) -> npt.NDArray[np.float64]:
    """Convert a quaternion (x, y, z, w) to a 3x3 rotation matrix."""
    x, y, z, w = q
    n = math.sqrt(x * x + y * y + z * z + w * w)
    if n < 1e-12:
        raise ValueError("Rotation quaternion must have non-zero length")
    x, y, z, w = x / n, y / n, z / n, w / n
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ],
        dtype=np.float64,
    )


def look_at(
    position: tuple[float, float, float],
    target: tuple[float, float, float],
    up: tuple[float, float, float] = (0.0, 1.0, 0.0),
) -> npt.NDArray[np.float32]:
    """World matrix placing an object at position with its -Z axis facing target.

    This is the inverse of the camera view matrix built by look_at_rh.

    Raises:
        ValueError: If position and target coincide or up is parallel to the
            facing direction.
    """
    view = look_at_rh(position, target, up).astype(np.float64)
    return np.linalg.inv(view).astype(np.float32)


@dataclass
class Transform:
    """Translation, rotation and scale of an instance.

    Attributes:
        translation: World-space offset (x, y, z).
        rotation: Unit quaternion (x, y, z, w).
        scale: Per-axis scale. Keep uniform for correct normals.
    """

    translation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)

    @classmethod
    def from_translation(cls, translation: tuple[float, float, float]) -> "Transform":
        return cls(translation=translation)

    @classmethod
    def from_axis_angle(
        cls,
        axis: tuple[float, float, float],
        angle_degrees: float,
    ) -> "Transform":
        return cls(rotation=quat_from_axis_angle(axis, angle_degrees))

    @classmethod
    def from_scale(cls, scale: float | tuple[float, float, float]) -> "Transform":
        if isinstance(scale, (int, float)):
            scale = (float(scale), float(scale), float(scale))
        return cls(scale=scale)

    @property
    def is_uniform_scale(self) -> bool:
        sx, sy, sz = self.scale
        return math.isclose(sx, sy) and math.isclose(sy, sz)

    def matrix(self) -> npt.NDArray[np.float32]:
        """Compose the 4x4 world matrix (T @ R @ S)."""
        m = np.identity(4, dtype=np.float64)
        m[:3, :3] = quat_to_matrix(self.rotation) @ np.diag(np.asarray(self.scale, np.float64))
        m[:3, 3] = self.translation
        return m.astype(np.float32)


# =============================================================================
# Instance Transform Storage
# =============================================================================

_instance_transforms = ti.Matrix.field(4, 4, dtype=ti.f32, shape=MAX_INSTANCES)
_num_instances = ti.field(dtype=ti.i32, shape=())


def clear_instance_transforms() -> None:
    """Reset the instance count to zero."""
    _num_instances[None] = 0


def add_instance_transform(matrix: npt.ArrayLike) -> int:
    """Append a world matrix to the instance sequence.

    Args:
        matrix: 4x4 world matrix (row-major, column-vector convention).

    Returns:
        The instance index to store on the instance's vertices.

    Raises:
        ValueError: If the matrix is not 4x4 or contains non-finite values.
        RuntimeError: If the maximum number of instances is exceeded.
    """
    m = np.asarray(matrix, dtype=np.float32)
    if m.shape != (4, 4):
        raise ValueError(f"Instance transform must be 4x4, got shape {m.shape}")
    if not np.all(np.isfinite(m)):
        raise ValueError("Instance transform contains non-finite values")

    idx = _num_instances[None]
    if idx >= MAX_INSTANCES:
        raise RuntimeError(f"Maximum number of instances ({MAX_INSTANCES}) exceeded")

    _instance_transforms[idx] = ti.Matrix(m.tolist())
    _num_instances[None] = idx + 1
    return idx


def set_instance_transform(index: int, matrix: npt.ArrayLike) -> None:
    """Overwrite the world matrix of an existing instance (between frames)."""
    if not 0 <= index < _num_instances[None]:
        raise ValueError(f"Invalid instance index: {index}")
    m = np.asarray(matrix, dtype=np.float32)
    if m.shape != (4, 4):
        raise ValueError(f"Instance transform must be 4x4, got shape {m.shape}")
    _instance_transforms[index] = ti.Matrix(m.tolist())


def get_instance_count() -> int:
    return int(_num_instances[None])


@ti.func
def get_instance_transform(instance_index: ti.i32) -> mat4:
    """Get the world matrix for an instance index."""
    return _instance_transforms[instance_index]
