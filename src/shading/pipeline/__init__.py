"""Shading pipeline stages.

    vertex:  object space -> world/clip space, tangent basis
    shading: interpolated fragment + material + lights -> linear radiance
    display: linear radiance -> Reinhard -> gamma 2.2 -> RGBA
    unlit:   raw texture sample, no lighting or display mapping

Each stage is a pure function over its inputs, mapped in parallel over
vertices or fragments by a Taichi kernel.
"""

from .attributes import ShadedFragment, ShadingModel, UnlitFragment, VertexAttributes
from .display import tone_map_and_encode, tone_map_reinhard
from .shading import shade, shade_fragment_batch, shade_single_fragment
from .unlit import shade_unlit, transform_vertex_unlit
from .vertex import (
    MAX_VERTICES,
    clear_vertices,
    get_vertex_count,
    get_vertex_outputs_numpy,
    run_vertex_stage,
    transform_vertex,
    upload_vertices,
)

__all__ = [
    "ShadingModel",
    "VertexAttributes",
    "ShadedFragment",
    "UnlitFragment",
    "MAX_VERTICES",
    "transform_vertex",
    "upload_vertices",
    "clear_vertices",
    "get_vertex_count",
    "run_vertex_stage",
    "get_vertex_outputs_numpy",
    "shade",
    "shade_fragment_batch",
    "shade_single_fragment",
    "tone_map_reinhard",
    "tone_map_and_encode",
    "transform_vertex_unlit",
    "shade_unlit",
]
