"""Reference software rasterizer driving the shading pipeline.

The rasterizer connects the transform stage to the shading evaluator so the
pipeline can produce complete images on any Taichi backend:

    vertex stage -> triangle setup -> per-pixel coverage + depth test
                 -> perspective-correct interpolation -> shade -> display map

Key properties:
    - Triangle setup is one parallel task per triangle (clip -> screen space,
      bounding box). Triangles with a vertex at or behind the eye plane are
      rejected whole; there is no near-plane clipping.
    - Coverage is one parallel task per pixel: each pixel walks the triangle
      list, keeps the nearest covering triangle and shades exactly once. Every
      task writes only its own pixel, so no atomics or locks are needed.
    - No back-face culling; both windings are rasterized.
    - Depth is NDC z in [0, 1]; fragments outside that range are discarded.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.core.rasterizer import setup_render_target, rasterize
    >>> setup_render_target(256, 256)
    >>> # upload vertices and triangles, run_vertex_stage(), then:
    >>> rasterize()
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.shading.materials.pbr import get_material, get_material_count
from src.shading.pipeline.attributes import SHADING_MODEL_UNLIT, ShadedFragment, ShadingModel
from src.shading.pipeline.display import tone_map_and_encode
from src.shading.pipeline.shading import shade
from src.shading.pipeline.unlit import shade_unlit
from src.shading.pipeline.vertex import (
    get_vertex_count,
    out_clip_positions,
    out_uvs,
    out_world_binormals,
    out_world_normals,
    out_world_positions,
    out_world_tangents,
)

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4
ivec3 = ti.types.vector(3, ti.i32)

# =============================================================================
# Rasterization Constants
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 1024
MAX_IMAGE_HEIGHT = 1024

# Maximum number of triangles per frame
MAX_TRIANGLES = 1 << 16

# Clip-space w below which a vertex counts as behind the eye
W_EPSILON = 1e-6

# Screen-space area below which a triangle is degenerate
AREA_EPSILON = 1e-12

# Depth written where no triangle covers the pixel
CLEAR_DEPTH = 1.0

# =============================================================================
# Triangle Storage
# =============================================================================

_triangle_indices = ti.Vector.field(3, dtype=ti.i32, shape=MAX_TRIANGLES)
_triangle_materials = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
_triangle_shading_models = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
_num_triangles = ti.field(dtype=ti.i32, shape=())

# Triangle setup results
_tri_screen_0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
_tri_screen_1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
_tri_screen_2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
_tri_inv_w = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TRIANGLES)
_tri_bbox = ti.Vector.field(4, dtype=ti.f32, shape=MAX_TRIANGLES)
_tri_area = ti.field(dtype=ti.f32, shape=MAX_TRIANGLES)
_tri_valid = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)


@ti.kernel
def _upload_triangle_range(
    offset: ti.i32,
    count: ti.i32,
    indices: ti.types.ndarray(),
    base_vertex: ti.i32,
    material_id: ti.i32,
    shading_model: ti.i32,
):
    for i in range(count):
        k = offset + i
        _triangle_indices[k] = ivec3(
            indices[i, 0] + base_vertex,
            indices[i, 1] + base_vertex,
            indices[i, 2] + base_vertex,
        )
        _triangle_materials[k] = material_id
        _triangle_shading_models[k] = shading_model


def clear_triangles() -> None:
    """Reset the triangle count to zero."""
    _num_triangles[None] = 0


def upload_triangles(
    indices: npt.ArrayLike,
    *,
    base_vertex: int,
    material_id: int,
    shading_model: ShadingModel = ShadingModel.PBR,
) -> int:
    """Append indexed triangles drawn with one material.

    Args:
        indices: (M, 3) vertex indices relative to base_vertex.
        base_vertex: Offset returned by upload_vertices for this draw.
        material_id: Material for all triangles of the draw.
        shading_model: Shading path for these triangles.

    Returns:
        Index of the first uploaded triangle.

    Raises:
        ValueError: If indices are malformed or out of range, or the
            material id is invalid.
        RuntimeError: If the maximum number of triangles is exceeded.
    """
    idx = np.ascontiguousarray(np.asarray(indices, dtype=np.int32))
    if idx.ndim != 2 or idx.shape[1] != 3:
        raise ValueError(f"Triangle indices must have shape (M, 3), got {idx.shape}")
    if not 0 <= material_id < get_material_count():
        raise ValueError(f"Invalid material_id: {material_id}")
    count = idx.shape[0]
    if count == 0:
        return int(_num_triangles[None])

    num_vertices = get_vertex_count()
    if idx.min() < 0 or base_vertex < 0 or base_vertex + idx.max() >= num_vertices:
        raise ValueError(
            f"Triangle indices reference vertices outside [0, {num_vertices}) "
            f"(base_vertex={base_vertex})"
        )

    offset = _num_triangles[None]
    if offset + count > MAX_TRIANGLES:
        raise RuntimeError(f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded")

    _upload_triangle_range(offset, count, idx, base_vertex, material_id, int(shading_model))
    _num_triangles[None] = offset + count
    return offset


def get_triangle_count() -> int:
    return int(_num_triangles[None])


# =============================================================================
# Render Target (Frame Buffers)
# =============================================================================

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())
_background = ti.Vector.field(3, dtype=ti.f32, shape=())

_color_buffer = ti.Vector.field(4, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_radiance_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_depth_buffer = ti.field(dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Initialize the render target buffers.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If dimensions are not positive or exceed the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()
    logger.info(f"Render target set up: {width}x{height}")


def clear_render_target() -> None:
    """Clear the frame buffers to the background color and far depth."""
    bg = _background[None]
    _color_buffer.fill([bg[0], bg[1], bg[2], 1.0])
    _radiance_buffer.fill(0.0)
    _depth_buffer.fill(CLEAR_DEPTH)


def set_background(color: tuple[float, float, float]) -> None:
    """Set the display-space color written to uncovered pixels."""
    _background[None] = [float(color[0]), float(color[1]), float(color[2])]


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


# =============================================================================
# Triangle Setup and Coverage
# =============================================================================


@ti.func
def _edge(a: vec2, b: vec2, p: vec2) -> ti.f32:
    return (p.x - a.x) * (b.y - a.y) - (p.y - a.y) * (b.x - a.x)


@ti.func
def _to_screen(clip: vec4, width: ti.f32, height: ti.f32) -> vec3:
    ndc = vec3(clip.x, clip.y, clip.z) / clip.w
    return vec3((ndc.x * 0.5 + 0.5) * width, (ndc.y * 0.5 + 0.5) * height, ndc.z)


@ti.kernel
def _setup_triangles(count: ti.i32, width: ti.i32, height: ti.i32):
    for t in range(count):
        idx = _triangle_indices[t]
        c0 = out_clip_positions[idx[0]]
        c1 = out_clip_positions[idx[1]]
        c2 = out_clip_positions[idx[2]]
        valid = 1
        if c0.w <= W_EPSILON or c1.w <= W_EPSILON or c2.w <= W_EPSILON:
            valid = 0
        if valid == 1:
            w = ti.cast(width, ti.f32)
            h = ti.cast(height, ti.f32)
            s0 = _to_screen(c0, w, h)
            s1 = _to_screen(c1, w, h)
            s2 = _to_screen(c2, w, h)
            area = _edge(s0.xy, s1.xy, s2.xy)
            if ti.abs(area) < AREA_EPSILON:
                valid = 0
            else:
                _tri_screen_0[t] = s0
                _tri_screen_1[t] = s1
                _tri_screen_2[t] = s2
                _tri_inv_w[t] = vec3(1.0 / c0.w, 1.0 / c1.w, 1.0 / c2.w)
                _tri_area[t] = area
                _tri_bbox[t] = vec4(
                    ti.max(ti.min(s0.x, s1.x, s2.x), 0.0),
                    ti.max(ti.min(s0.y, s1.y, s2.y), 0.0),
                    ti.min(ti.max(s0.x, s1.x, s2.x), w),
                    ti.min(ti.max(s0.y, s1.y, s2.y), h),
                )
        _tri_valid[t] = valid


@ti.func
def _interpolate3(field: ti.template(), idx: ivec3, weights: vec3) -> vec3:
    return field[idx[0]] * weights[0] + field[idx[1]] * weights[1] + field[idx[2]] * weights[2]


@ti.func
def _interpolate2(field: ti.template(), idx: ivec3, weights: vec3) -> vec2:
    return field[idx[0]] * weights[0] + field[idx[1]] * weights[1] + field[idx[2]] * weights[2]


@ti.func
def _interpolate_fragment(t: ti.i32, bary: vec3) -> ShadedFragment:
    """Build the perspective-correct ShadedFragment for a covered pixel."""
    idx = _triangle_indices[t]
    weights = bary * _tri_inv_w[t]
    weights /= weights.sum()
    clip = (
        out_clip_positions[idx[0]] * weights[0]
        + out_clip_positions[idx[1]] * weights[1]
        + out_clip_positions[idx[2]] * weights[2]
    )
    return ShadedFragment(
        world_position=_interpolate3(out_world_positions, idx, weights),
        world_normal=_interpolate3(out_world_normals, idx, weights),
        world_tangent=_interpolate3(out_world_tangents, idx, weights),
        world_binormal=_interpolate3(out_world_binormals, idx, weights),
        uv=_interpolate2(out_uvs, idx, weights),
        clip_position=clip,
    )


@ti.kernel
def _rasterize_pixels(count: ti.i32, width: ti.i32, height: ti.i32):
    for i, j in ti.ndrange(width, height):
        p = vec2(ti.cast(i, ti.f32) + 0.5, ti.cast(j, ti.f32) + 0.5)
        best_depth = CLEAR_DEPTH
        best_t = -1
        best_bary = vec3(0.0)

        for t in range(count):
            if _tri_valid[t] == 1:
                bb = _tri_bbox[t]
                if p.x >= bb[0] and p.x <= bb[2] and p.y >= bb[1] and p.y <= bb[3]:
                    s0 = _tri_screen_0[t]
                    s1 = _tri_screen_1[t]
                    s2 = _tri_screen_2[t]
                    area = _tri_area[t]
                    b0 = _edge(s1.xy, s2.xy, p) / area
                    b1 = _edge(s2.xy, s0.xy, p) / area
                    b2 = _edge(s0.xy, s1.xy, p) / area
                    if b0 >= 0.0 and b1 >= 0.0 and b2 >= 0.0:
                        z = b0 * s0.z + b1 * s1.z + b2 * s2.z
                        if z >= 0.0 and z < best_depth:
                            best_depth = z
                            best_t = t
                            best_bary = vec3(b0, b1, b2)

        if best_t >= 0:
            material_id = _triangle_materials[best_t]
            if _triangle_shading_models[best_t] == SHADING_MODEL_UNLIT:
                idx = _triangle_indices[best_t]
                weights = best_bary * _tri_inv_w[best_t]
                weights /= weights.sum()
                uv = _interpolate2(out_uvs, idx, weights)
                texture_id = get_material(material_id).textures[0]
                color = shade_unlit(uv, texture_id)
                _color_buffer[i, j] = color
                _radiance_buffer[i, j] = vec3(color.x, color.y, color.z)
            else:
                fragment = _interpolate_fragment(best_t, best_bary)
                radiance = shade(fragment, material_id)
                _radiance_buffer[i, j] = radiance
                _color_buffer[i, j] = tone_map_and_encode(radiance)
            _depth_buffer[i, j] = best_depth


def rasterize() -> None:
    """Rasterize and shade every uploaded triangle into the render target.

    The vertex stage must have run for the current frame. Pixels not covered
    by any triangle keep the values written by clear_render_target().

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    count = get_triangle_count()
    if count > 0:
        _setup_triangles(count, width, height)
        _rasterize_pixels(count, width, height)
    logger.debug(f"Rasterized {count} triangles at {width}x{height}")


# =============================================================================
# Frame Buffer Read-back
# =============================================================================


def _active_region(buffer: np.ndarray) -> np.ndarray:
    width, height = get_image_dimensions()
    image = buffer[:width, :height]
    # (width, height, ...) -> (height, width, ...), then flip to top-left origin
    axes = (1, 0) + tuple(range(2, image.ndim))
    return np.flipud(np.transpose(image, axes))


def get_color_image_numpy() -> npt.NDArray[np.float32]:
    """Get the display-mapped RGBA image, shape (height, width, 4)."""
    _check_render_target_initialized()
    return np.ascontiguousarray(_active_region(_color_buffer.to_numpy()), dtype=np.float32)


def get_radiance_image_numpy() -> npt.NDArray[np.float32]:
    """Get the linear HDR radiance image, shape (height, width, 3)."""
    _check_render_target_initialized()
    return np.ascontiguousarray(_active_region(_radiance_buffer.to_numpy()), dtype=np.float32)


def get_depth_image_numpy() -> npt.NDArray[np.float32]:
    """Get the depth buffer, shape (height, width), CLEAR_DEPTH where empty."""
    _check_render_target_initialized()
    return np.ascontiguousarray(_active_region(_depth_buffer.to_numpy()), dtype=np.float32)
