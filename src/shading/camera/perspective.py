"""Perspective camera and per-frame camera state.

This module builds the view and projection matrices consumed by the vertex
stage and uploads the per-frame camera state into Taichi fields:
- Look-at positioning (lookfrom, lookat, vup)
- Right-handed view space, camera looking down -z
- Perspective projection with depth mapped to [0, 1]
- World-space eye position for the shading evaluator's view vector

Matrices are stored row-major in NumPy and act on column vectors, i.e. a
world-space point p maps to clip space as ``projection @ view @ (p, 1)``.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.camera.perspective import PerspectiveCamera, setup_camera
    >>>
    >>> camera = PerspectiveCamera(
    ...     lookfrom=(0.0, 0.0, 5.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=1.0,
    ... )
    >>> setup_camera(camera.to_state())
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

logger = logging.getLogger(__name__)

vec3 = tm.vec3
mat4 = tm.mat4

# =============================================================================
# Matrix Construction (Python-side)
# =============================================================================


def look_at_rh(
    eye: tuple[float, float, float],
    target: tuple[float, float, float],
    up: tuple[float, float, float],
) -> npt.NDArray[np.float32]:
    """Build a right-handed view matrix.

    Args:
        eye: Camera position in world space.
        target: Point the camera looks at.
        up: Approximate up direction.

    Returns:
        4x4 view matrix mapping world space to view space.

    Raises:
        ValueError: If eye and target coincide or up is parallel to the
            view direction.
    """
    eye_v = np.asarray(eye, dtype=np.float64)
    forward = np.asarray(target, dtype=np.float64) - eye_v
    norm = np.linalg.norm(forward)
    if norm < 1e-12:
        raise ValueError("Camera eye and target must be distinct points")
    forward /= norm

    side = np.cross(forward, np.asarray(up, dtype=np.float64))
    side_norm = np.linalg.norm(side)
    if side_norm < 1e-12:
        raise ValueError("Camera up vector must not be parallel to the view direction")
    side /= side_norm
    true_up = np.cross(side, forward)

    view = np.identity(4, dtype=np.float64)
    view[0, :3] = side
    view[1, :3] = true_up
    view[2, :3] = -forward
    view[0, 3] = -np.dot(side, eye_v)
    view[1, 3] = -np.dot(true_up, eye_v)
    view[2, 3] = np.dot(forward, eye_v)
    return view.astype(np.float32)


def perspective_rh(
    vfov: float,
    aspect_ratio: float,
    near: float,
    far: float,
) -> npt.NDArray[np.float32]:
    """Build a right-handed perspective projection with depth in [0, 1].

    Args:
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height.
        near: Distance to the near plane (positive).
        far: Distance to the far plane (greater than near).

    Returns:
        4x4 projection matrix mapping view space to clip space.

    Raises:
        ValueError: If any parameter is out of range.
    """
    if not 0.0 < vfov < 180.0:
        raise ValueError(f"Vertical FOV must be in (0, 180) degrees, got {vfov}")
    if aspect_ratio <= 0.0:
        raise ValueError(f"Aspect ratio must be positive, got {aspect_ratio}")
    if near <= 0.0 or far <= near:
        raise ValueError(f"Clip planes must satisfy 0 < near < far, got near={near}, far={far}")

    f = 1.0 / math.tan(math.radians(vfov) / 2.0)
    r = far / (near - far)

    proj = np.zeros((4, 4), dtype=np.float64)
    proj[0, 0] = f / aspect_ratio
    proj[1, 1] = f
    proj[2, 2] = r
    proj[2, 3] = r * near
    proj[3, 2] = -1.0
    return proj.astype(np.float32)


def eye_from_view(view: npt.NDArray[np.float32]) -> tuple[float, float, float]:
    """Recover the world-space eye position from a view matrix.

    The eye is the translation column of the inverse view matrix.
    """
    inv_view = np.linalg.inv(np.asarray(view, dtype=np.float64))
    return (float(inv_view[0, 3]), float(inv_view[1, 3]), float(inv_view[2, 3]))


# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass
class CameraState:
    """Per-frame camera data read by the pipeline.

    Immutable for the duration of a frame. Owned by the caller; the pipeline
    only reads the copy uploaded by ``setup_camera``.

    Attributes:
        view: 4x4 view matrix.
        projection: 4x4 projection matrix.
        eye_position: Camera position in world space.
    """

    view: npt.NDArray[np.float32]
    projection: npt.NDArray[np.float32]
    eye_position: tuple[float, float, float]

    @classmethod
    def from_matrices(
        cls,
        view: npt.ArrayLike,
        projection: npt.ArrayLike,
    ) -> "CameraState":
        """Create a camera state, deriving the eye position from the view matrix."""
        view_arr = np.asarray(view, dtype=np.float32).reshape(4, 4)
        proj_arr = np.asarray(projection, dtype=np.float32).reshape(4, 4)
        return cls(view=view_arr, projection=proj_arr, eye_position=eye_from_view(view_arr))

    @property
    def view_projection(self) -> npt.NDArray[np.float32]:
        """The combined projection @ view matrix."""
        return (self.projection.astype(np.float64) @ self.view.astype(np.float64)).astype(
            np.float32
        )


@dataclass
class PerspectiveCamera:
    """Configuration for a look-at perspective camera.

    Attributes:
        lookfrom: Camera position in world space (x, y, z).
        lookat: Point the camera is looking at in world space (x, y, z).
        vup: Up direction vector for camera orientation (typically (0, 1, 0)).
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height of the output image.
        near: Near clip plane distance.
        far: Far clip plane distance.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = 60.0
    aspect_ratio: float = 1.0
    near: float = 0.1
    far: float = 100.0

    def view_matrix(self) -> npt.NDArray[np.float32]:
        return look_at_rh(self.lookfrom, self.lookat, self.vup)

    def projection_matrix(self) -> npt.NDArray[np.float32]:
        return perspective_rh(self.vfov, self.aspect_ratio, self.near, self.far)

    def to_state(self) -> CameraState:
        """Build the per-frame camera state for this configuration."""
        return CameraState(
            view=self.view_matrix(),
            projection=self.projection_matrix(),
            eye_position=(
                float(self.lookfrom[0]),
                float(self.lookfrom[1]),
                float(self.lookfrom[2]),
            ),
        )


# =============================================================================
# Taichi Fields for Camera State (GPU-accessible)
# =============================================================================

_view = ti.Matrix.field(4, 4, dtype=ti.f32, shape=())
_projection = ti.Matrix.field(4, 4, dtype=ti.f32, shape=())
_view_projection = ti.Matrix.field(4, 4, dtype=ti.f32, shape=())
_eye_position = ti.Vector.field(3, dtype=ti.f32, shape=())


def setup_camera(state: CameraState) -> None:
    """Upload the camera state for the next frame.

    Must be called from Python scope, between kernel launches.

    Args:
        state: The camera state to upload.
    """
    view = np.asarray(state.view, dtype=np.float32)
    projection = np.asarray(state.projection, dtype=np.float32)
    if view.shape != (4, 4) or projection.shape != (4, 4):
        raise ValueError(
            f"Camera matrices must be 4x4, got view={view.shape}, projection={projection.shape}"
        )

    _view[None] = ti.Matrix(view.tolist())
    _projection[None] = ti.Matrix(projection.tolist())
    _view_projection[None] = ti.Matrix(state.view_projection.tolist())
    _eye_position[None] = [float(c) for c in state.eye_position]
    logger.debug(f"Camera uploaded: eye={tuple(state.eye_position)}")


# =============================================================================
# Camera Access (Taichi-compatible)
# =============================================================================


@ti.func
def get_view() -> mat4:
    return _view[None]


@ti.func
def get_projection() -> mat4:
    return _projection[None]


@ti.func
def get_view_projection() -> mat4:
    return _view_projection[None]


@ti.func
def get_eye_position() -> vec3:
    """Get the camera position in world space."""
    return _eye_position[None]


def get_camera_info() -> dict[str, object]:
    """Get the uploaded camera state for debugging.

    Returns:
        Dictionary with "eye" (tuple) and "view", "projection",
        "view_projection" (4x4 NumPy arrays).
    """
    eye = _eye_position[None]
    return {
        "eye": (float(eye[0]), float(eye[1]), float(eye[2])),
        "view": _view.to_numpy(),
        "projection": _projection.to_numpy(),
        "view_projection": _view_projection.to_numpy(),
    }
