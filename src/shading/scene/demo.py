"""Material grid demo scene.

A grid of spheres sweeping roughness (columns) against metallic (rows) over a
checkered floor, lit by four point lights, with a small unlit panel showing
the floor texture unshaded. The standard test scene for eyeballing the BRDF:

- Left to right: roughness from ROUGHNESS_MIN to 1.0
- Bottom to top: metallic from 0.0 to 1.0
- Floor: checker albedo map, tiled with uv_scale
- Unlit panel behind the grid: raw texture samples

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.scene.demo import create_material_grid_scene
    >>>
    >>> scene, camera = create_material_grid_scene()
    >>> scene.upload(camera)
"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from src.shading.camera.perspective import PerspectiveCamera
from src.shading.pipeline.attributes import ShadingModel
from src.shading.scene.manager import SceneManager
from src.shading.scene.transforms import Transform, quat_from_axis_angle

# =============================================================================
# Material Grid Parameters
# =============================================================================


@dataclass
class MaterialGridParams:
    """Parameters for the material grid scene.

    Attributes:
        rows: Number of metallic steps.
        cols: Number of roughness steps.
        base_color: Linear RGBA base color of every sphere.
        light_intensity: Intensity of each of the four lights.
        light_radius: Falloff radius of each light.
        aspect_ratio: Camera aspect ratio (width / height).
        sphere_segments: Longitudinal slices per sphere.
        sphere_rings: Latitudinal bands per sphere.

    Example:
        >>> params = MaterialGridParams(rows=2, cols=4)
        >>> scene, camera = create_material_grid_scene(params)
    """

    rows: int = 3
    cols: int = 4
    base_color: tuple[float, float, float, float] = (0.9, 0.6, 0.3, 1.0)
    light_intensity: float = 12.0
    light_radius: float = 3.0
    aspect_ratio: float = 1.0
    sphere_segments: int = 24
    sphere_rings: int = 12


# =============================================================================
# Material Grid Constants
# =============================================================================

SPHERE_RADIUS = 0.45
SPHERE_SPACING = 1.2

# Lowest roughness in the sweep; GGX turns into a pinpoint highlight below this
ROUGHNESS_MIN = 0.1

FLOOR_SIZE = 12.0
FLOOR_Y = -0.6
FLOOR_TILING = 6.0

# Gap kept between the camera and the near edge of the floor; the rasterizer
# drops triangles with a vertex behind the eye
FLOOR_NEAR_MARGIN = 1.0

CHECKER_LIGHT = (0.8, 0.8, 0.8)
CHECKER_DARK = (0.25, 0.25, 0.3)

LIGHT_COLORS = (
    (1.0, 0.95, 0.9),
    (0.9, 0.95, 1.0),
    (1.0, 1.0, 1.0),
    (1.0, 0.9, 0.8),
)


def make_checker_texture(
    size: int = 64,
    squares: int = 8,
    color_a: tuple[float, float, float] = CHECKER_LIGHT,
    color_b: tuple[float, float, float] = CHECKER_DARK,
) -> npt.NDArray[np.float32]:
    """Create a checkerboard image of shape (size, size, 4)."""
    cell = max(size // squares, 1)
    ys, xs = np.mgrid[0:size, 0:size]
    mask = ((xs // cell + ys // cell) % 2 == 0)[:, :, None]
    a = np.asarray([*color_a, 1.0], dtype=np.float32)
    b = np.asarray([*color_b, 1.0], dtype=np.float32)
    return np.where(mask, a, b).astype(np.float32)


def grid_value(index: int, count: int, low: float, high: float) -> float:
    """Evenly spaced value in [low, high] for step index of count."""
    if count <= 1:
        return high
    return low + (high - low) * index / (count - 1)


# =============================================================================
# Material Grid Factory
# =============================================================================


def create_material_grid_scene(
    params: MaterialGridParams | None = None,
) -> tuple[SceneManager, PerspectiveCamera]:
    """Create the roughness x metallic sphere grid.

    Args:
        params: Optional MaterialGridParams. Defaults to MaterialGridParams().

    Returns:
        A tuple of (SceneManager, PerspectiveCamera). The camera is also set
        on the scene, so ``scene.upload()`` works without arguments.

    Raises:
        ValueError: If rows or cols is less than 1.
    """
    if params is None:
        params = MaterialGridParams()
    if params.rows < 1 or params.cols < 1:
        raise ValueError(f"Grid needs at least one row and column, got {params.rows}x{params.cols}")

    scene = SceneManager()

    # =========================================================================
    # Textures and Materials
    # =========================================================================

    checker = scene.add_texture_array(make_checker_texture())
    floor_mat = scene.add_material(
        roughness=0.8,
        uv_scale=FLOOR_TILING,
        albedo_texture=checker,
    )
    panel_mat = scene.add_material(albedo_texture=checker)

    sphere_mats = []
    for row in range(params.rows):
        metallic = grid_value(row, params.rows, 0.0, 1.0)
        for col in range(params.cols):
            roughness = grid_value(col, params.cols, ROUGHNESS_MIN, 1.0)
            sphere_mats.append(
                scene.add_material(
                    base_color=params.base_color,
                    metallic=metallic,
                    roughness=roughness,
                )
            )

    # =========================================================================
    # Geometry
    # =========================================================================

    sphere = scene.add_sphere_mesh(
        radius=SPHERE_RADIUS,
        segments=params.sphere_segments,
        rings=params.sphere_rings,
    )
    quad = scene.add_quad_mesh(size=1.0)

    x0 = -0.5 * SPHERE_SPACING * (params.cols - 1)
    height = SPHERE_SPACING * (params.rows - 1)
    center_y = 0.5 * height
    distance = 2.0 + 1.2 * max(params.cols * SPHERE_SPACING / params.aspect_ratio, height + 1.0)
    floor_z = min(0.0, distance - FLOOR_NEAR_MARGIN - 0.5 * FLOOR_SIZE)
    for row in range(params.rows):
        for col in range(params.cols):
            position = (x0 + col * SPHERE_SPACING, row * SPHERE_SPACING, 0.0)
            scene.add_draw(
                sphere,
                sphere_mats[row * params.cols + col],
                Transform.from_translation(position),
            )

    scene.add_draw(
        quad,
        floor_mat,
        Transform(translation=(0.0, FLOOR_Y, floor_z), scale=(FLOOR_SIZE, FLOOR_SIZE, FLOOR_SIZE)),
    )

    # Upright panel behind the grid, facing the camera
    panel_height = SPHERE_SPACING * params.rows
    scene.add_draw(
        quad,
        panel_mat,
        Transform(
            translation=(0.0, FLOOR_Y + 0.5 * panel_height, -1.5),
            rotation=quat_from_axis_angle((1.0, 0.0, 0.0), 90.0),
            scale=(panel_height, panel_height, panel_height),
        ),
        shading_model=ShadingModel.UNLIT,
    )

    # =========================================================================
    # Lights and Camera
    # =========================================================================

    half_width = -x0 + SPHERE_SPACING
    corners = (
        (-half_width, height + 1.5, 2.5),
        (half_width, height + 1.5, 2.5),
        (-half_width, 0.5, 3.5),
        (half_width, 0.5, 3.5),
    )
    for position, color in zip(corners, LIGHT_COLORS):
        scene.add_point_light(
            position=position,
            color=color,
            intensity=params.light_intensity,
            radius=params.light_radius,
        )

    camera = PerspectiveCamera(
        lookfrom=(0.0, center_y + 0.6, distance),
        lookat=(0.0, center_y, 0.0),
        vfov=45.0,
        aspect_ratio=params.aspect_ratio,
        near=0.1,
        far=100.0,
    )
    scene.set_camera(camera)

    return scene, camera
