"""Unlit textured shading path.

The vertex transform uses the combined ``view_projection @ model`` matrix and
passes UV and vertex color through unchanged. The fragment stage returns one
raw texture sample: no lighting, no tone mapping and no gamma adjustment.
"""

import taichi as ti
import taichi.math as tm

from src.shading.core.vecmath import transform_point
from src.shading.materials.texture import sample_texture
from src.shading.pipeline.attributes import UnlitFragment, VertexAttributes

vec2 = tm.vec2
vec4 = tm.vec4
mat4 = tm.mat4


@ti.func
def transform_vertex_unlit(vertex: VertexAttributes, model: mat4, view_projection: mat4):
    """Transform a vertex for the unlit path.

    Args:
        vertex: Object-space vertex.
        model: Instance world matrix.
        view_projection: Camera projection @ view.

    Returns:
        The UnlitFragment for this vertex.
    """
    clip = transform_point(view_projection @ model, vertex.position)
    return UnlitFragment(clip_position=clip, uv=vertex.uv, color=vertex.color)


@ti.func
def shade_unlit(uv: vec2, texture_id: ti.i32) -> vec4:
    """Return the raw texture sample at uv."""
    return sample_texture(texture_id, uv)
