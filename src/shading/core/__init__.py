"""Core rendering module.

Components:
    vecmath: Vector aliases, homogeneous transforms, gamma helpers
    rasterizer: Reference triangle rasterizer and frame buffers
    renderer: Renderer class running one complete frame per call

Only vecmath is re-exported here. The rasterizer and renderer pull in the
whole pipeline, so import them directly from src.shading.core.rasterizer or
src.shading.core.renderer to avoid circular imports.
"""

from .vecmath import (
    GAMMA,
    clamped_dot,
    gamma_decode,
    gamma_encode,
    mat4,
    saturate,
    tbn_to_world,
    transform_direction,
    transform_point,
    vec2,
    vec3,
    vec4,
)

__all__ = [
    "GAMMA",
    "vec2",
    "vec3",
    "vec4",
    "mat4",
    "saturate",
    "clamped_dot",
    "transform_point",
    "transform_direction",
    "gamma_encode",
    "gamma_decode",
    "tbn_to_world",
]
