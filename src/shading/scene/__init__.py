"""Scene description: lights, instance transforms and meshes.

Components:
    lights: Point lights, the fixed-capacity light set and its attenuation
    transforms: Instance world matrices
    mesh: Indexed triangle meshes, tangent generation, primitive builders
    manager: SceneManager owning a whole scene (upload, dict/JSON round trip)
    demo: Material grid demo scene

The manager and demo are not imported here because they depend on the
rasterizer; import them from src.shading.scene.manager and
src.shading.scene.demo.
"""

from .lights import (
    MAX_LIGHTS,
    PointLight,
    PointLightBuffer,
    clear_lights,
    get_light_count,
    upload_lights,
)
from .mesh import Mesh, compute_tangents, make_cube, make_quad, make_uv_sphere
from .transforms import (
    MAX_INSTANCES,
    Transform,
    add_instance_transform,
    clear_instance_transforms,
    get_instance_count,
    look_at,
)

__all__ = [
    "MAX_LIGHTS",
    "PointLight",
    "PointLightBuffer",
    "clear_lights",
    "upload_lights",
    "get_light_count",
    "MAX_INSTANCES",
    "Transform",
    "look_at",
    "add_instance_transform",
    "clear_instance_transforms",
    "get_instance_count",
    "Mesh",
    "compute_tangents",
    "make_quad",
    "make_uv_sphere",
    "make_cube",
]
