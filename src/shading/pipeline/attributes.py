"""Records passed between pipeline stages.

VertexAttributes is the per-vertex input of the transform stage. ShadedFragment
is what the transform stage produces per vertex and what the rasterizer
interpolates across a triangle before handing it to the shading evaluator.
UnlitFragment is the reduced record of the unlit textured path.
"""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4


class ShadingModel(IntEnum):
    """Shading path selected per draw."""

    PBR = 0
    UNLIT = 1


# Plain ints for comparisons inside kernels
SHADING_MODEL_PBR = int(ShadingModel.PBR)
SHADING_MODEL_UNLIT = int(ShadingModel.UNLIT)


@ti.dataclass
class VertexAttributes:
    """Object-space vertex input.

    Attributes:
        position: Object-space position.
        normal: Object-space normal.
        tangent: Object-space tangent (u direction of the UV mapping).
        uv: Texture coordinate.
        color: Vertex color (used by the unlit path only).
        instance: Index into the instance transform sequence.
    """

    position: vec3
    normal: vec3
    tangent: vec3
    uv: vec2
    color: vec4
    instance: ti.i32


@ti.dataclass
class ShadedFragment:
    """World-space surface state carried from transform to shading.

    Attributes:
        world_position: World-space position.
        world_normal: World-space normal (normalized per vertex).
        world_tangent: World-space tangent (normalized per vertex).
        world_binormal: normalize(cross(normal, tangent)).
        uv: Texture coordinate.
        clip_position: Homogeneous clip-space position.
    """

    world_position: vec3
    world_normal: vec3
    world_tangent: vec3
    world_binormal: vec3
    uv: vec2
    clip_position: vec4


@ti.dataclass
class UnlitFragment:
    """Output of the unlit vertex transform.

    Attributes:
        clip_position: Homogeneous clip-space position.
        uv: Texture coordinate, passed through.
        color: Vertex color, passed through.
    """

    clip_position: vec4
    uv: vec2
    color: vec4
