"""Geometry transform stage.

Maps object-space vertex attributes to world and clip space and derives the
world-space tangent basis used by normal mapping:

    world position = model @ (p, 1)
    clip position  = projection @ view @ world position
    world normal   = normalize(model @ (n, 0))
    world tangent  = normalize(model @ (t, 0))
    world binormal = normalize(cross(world normal, world tangent))

The model matrix is used for normals directly, which is only exact for
uniform scale. The tangent is not re-orthogonalized against the normal.
Zero-length normals or tangents produce NaN, which propagates to shading.

The stage runs as one parallel kernel over the vertex buffer. Each vertex
selects its world matrix by instance index; results land in per-vertex
output fields that the rasterizer reads.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.pipeline.vertex import upload_vertices, run_vertex_stage
    >>> # upload_vertices(positions, normals, tangents, uvs)
    >>> # run_vertex_stage()
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.shading.camera.perspective import get_projection, get_view, get_view_projection
from src.shading.core.vecmath import transform_direction, transform_point
from src.shading.pipeline.attributes import (
    SHADING_MODEL_UNLIT,
    ShadedFragment,
    ShadingModel,
    VertexAttributes,
)
from src.shading.pipeline.unlit import transform_vertex_unlit
from src.shading.scene.transforms import get_instance_count, get_instance_transform

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4
mat4 = tm.mat4

# Maximum number of vertices per frame (all instances expanded)
MAX_VERTICES = 1 << 16


@ti.func
def transform_vertex(vertex: VertexAttributes, model: mat4, view: mat4, projection: mat4):
    """Transform one vertex into a ShadedFragment.

    Args:
        vertex: Object-space vertex attributes.
        model: World matrix of the vertex's instance.
        view: Camera view matrix.
        projection: Camera projection matrix.

    Returns:
        The ShadedFragment for this vertex.
    """
    world = transform_point(model, vertex.position)
    clip = projection @ (view @ world)
    world_normal = tm.normalize(transform_direction(model, vertex.normal))
    world_tangent = tm.normalize(transform_direction(model, vertex.tangent))
    world_binormal = tm.normalize(tm.cross(world_normal, world_tangent))
    return ShadedFragment(
        world_position=vec3(world.x, world.y, world.z),
        world_normal=world_normal,
        world_tangent=world_tangent,
        world_binormal=world_binormal,
        uv=vertex.uv,
        clip_position=clip,
    )


# =============================================================================
# Vertex Buffer Storage
# =============================================================================

_vertex_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
_vertex_normals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
_vertex_tangents = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
_vertex_uvs = ti.Vector.field(2, dtype=ti.f32, shape=MAX_VERTICES)
_vertex_colors = ti.Vector.field(4, dtype=ti.f32, shape=MAX_VERTICES)
_vertex_instances = ti.field(dtype=ti.i32, shape=MAX_VERTICES)
_vertex_shading_models = ti.field(dtype=ti.i32, shape=MAX_VERTICES)
_num_vertices = ti.field(dtype=ti.i32, shape=())

# Transform stage outputs, one slot per vertex
out_world_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
out_world_normals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
out_world_tangents = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
out_world_binormals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
out_uvs = ti.Vector.field(2, dtype=ti.f32, shape=MAX_VERTICES)
out_colors = ti.Vector.field(4, dtype=ti.f32, shape=MAX_VERTICES)
out_clip_positions = ti.Vector.field(4, dtype=ti.f32, shape=MAX_VERTICES)


@ti.kernel
def _upload_vertex_range(
    offset: ti.i32,
    count: ti.i32,
    positions: ti.types.ndarray(),
    normals: ti.types.ndarray(),
    tangents: ti.types.ndarray(),
    uvs: ti.types.ndarray(),
    colors: ti.types.ndarray(),
    instances: ti.types.ndarray(),
    shading_model: ti.i32,
):
    for i in range(count):
        k = offset + i
        _vertex_positions[k] = vec3(positions[i, 0], positions[i, 1], positions[i, 2])
        _vertex_normals[k] = vec3(normals[i, 0], normals[i, 1], normals[i, 2])
        _vertex_tangents[k] = vec3(tangents[i, 0], tangents[i, 1], tangents[i, 2])
        _vertex_uvs[k] = vec2(uvs[i, 0], uvs[i, 1])
        _vertex_colors[k] = vec4(colors[i, 0], colors[i, 1], colors[i, 2], colors[i, 3])
        _vertex_instances[k] = instances[i]
        _vertex_shading_models[k] = shading_model


def clear_vertices() -> None:
    """Reset the vertex count to zero."""
    _num_vertices[None] = 0


def _as_columns(name: str, data: npt.ArrayLike, count: int, width: int) -> npt.NDArray[np.float32]:
    arr = np.ascontiguousarray(np.asarray(data, dtype=np.float32))
    if arr.shape != (count, width):
        raise ValueError(f"Vertex {name} must have shape ({count}, {width}), got {arr.shape}")
    return arr


def upload_vertices(
    positions: npt.ArrayLike,
    normals: npt.ArrayLike,
    tangents: npt.ArrayLike,
    uvs: npt.ArrayLike,
    *,
    colors: npt.ArrayLike | None = None,
    instance: int | npt.ArrayLike = 0,
    shading_model: ShadingModel = ShadingModel.PBR,
) -> int:
    """Append vertices to the vertex buffer.

    Args:
        positions: (N, 3) object-space positions.
        normals: (N, 3) object-space normals.
        tangents: (N, 3) object-space tangents.
        uvs: (N, 2) texture coordinates.
        colors: (N, 4) vertex colors, default opaque white.
        instance: Instance index for all vertices, or an (N,) array.
        shading_model: Shading path for these vertices.

    Returns:
        Index of the first uploaded vertex (base for triangle indices).

    Raises:
        ValueError: If an array has the wrong shape or an instance index is
            not a registered instance.
        RuntimeError: If the maximum number of vertices is exceeded.
    """
    pos = np.asarray(positions, dtype=np.float32)
    count = pos.shape[0] if pos.ndim == 2 else -1
    if count <= 0:
        raise ValueError(f"Vertex positions must have shape (N, 3), got {pos.shape}")

    pos = _as_columns("positions", pos, count, 3)
    nrm = _as_columns("normals", normals, count, 3)
    tan = _as_columns("tangents", tangents, count, 3)
    uv = _as_columns("uvs", uvs, count, 2)
    if colors is None:
        col = np.ones((count, 4), dtype=np.float32)
    else:
        col = _as_columns("colors", colors, count, 4)

    inst = np.ascontiguousarray(np.broadcast_to(np.asarray(instance, dtype=np.int32), (count,)))
    num_instances = get_instance_count()
    if inst.min() < 0 or inst.max() >= num_instances:
        raise ValueError(
            f"Instance indices must be in [0, {num_instances}), got range "
            f"[{inst.min()}, {inst.max()}]"
        )

    offset = _num_vertices[None]
    if offset + count > MAX_VERTICES:
        raise RuntimeError(f"Maximum number of vertices ({MAX_VERTICES}) exceeded")

    _upload_vertex_range(offset, count, pos, nrm, tan, uv, col, inst, int(shading_model))
    _num_vertices[None] = offset + count
    return offset


def get_vertex_count() -> int:
    return int(_num_vertices[None])


@ti.func
def load_vertex(index: ti.i32) -> VertexAttributes:
    return VertexAttributes(
        position=_vertex_positions[index],
        normal=_vertex_normals[index],
        tangent=_vertex_tangents[index],
        uv=_vertex_uvs[index],
        color=_vertex_colors[index],
        instance=_vertex_instances[index],
    )


@ti.kernel
def _vertex_stage(count: ti.i32):
    for i in range(count):
        vertex = load_vertex(i)
        model = get_instance_transform(vertex.instance)
        if _vertex_shading_models[i] == SHADING_MODEL_UNLIT:
            unlit = transform_vertex_unlit(vertex, model, get_view_projection())
            out_clip_positions[i] = unlit.clip_position
            out_uvs[i] = unlit.uv
            out_colors[i] = unlit.color
        else:
            frag = transform_vertex(vertex, model, get_view(), get_projection())
            out_world_positions[i] = frag.world_position
            out_world_normals[i] = frag.world_normal
            out_world_tangents[i] = frag.world_tangent
            out_world_binormals[i] = frag.world_binormal
            out_uvs[i] = frag.uv
            out_clip_positions[i] = frag.clip_position
            out_colors[i] = vertex.color


def run_vertex_stage() -> None:
    """Transform every uploaded vertex (one parallel task per vertex)."""
    count = get_vertex_count()
    if count > 0:
        _vertex_stage(count)
    logger.debug(f"Vertex stage transformed {count} vertices")


def get_vertex_outputs_numpy() -> dict[str, npt.NDArray[np.float32]]:
    """Read back the transform stage outputs for the active vertices.

    Returns:
        Dictionary with "world_position", "world_normal", "world_tangent",
        "world_binormal", "uv", "color" and "clip_position" arrays.
    """
    count = get_vertex_count()
    return {
        "world_position": out_world_positions.to_numpy()[:count],
        "world_normal": out_world_normals.to_numpy()[:count],
        "world_tangent": out_world_tangents.to_numpy()[:count],
        "world_binormal": out_world_binormals.to_numpy()[:count],
        "uv": out_uvs.to_numpy()[:count],
        "color": out_colors.to_numpy()[:count],
        "clip_position": out_clip_positions.to_numpy()[:count],
    }
