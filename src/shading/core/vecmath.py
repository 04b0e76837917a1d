"""Vector and color utilities shared by the shading pipeline stages.

All helpers are Taichi functions so they can be inlined into vertex and
fragment kernels. Matrices follow the column-vector convention used by the
camera module: a point is transformed as ``M @ vec4(p, 1)``.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.core.vecmath import transform_point, saturate
    >>> # Use within a Taichi kernel:
    >>> # world = transform_point(model, position)
"""

import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4
mat4 = tm.mat4

# Display gamma used for both decoding texels and encoding output
GAMMA = 2.2


@ti.func
def saturate(x: ti.f32) -> ti.f32:
    """Clamp a scalar to [0, 1]."""
    return tm.clamp(x, 0.0, 1.0)


@ti.func
def clamped_dot(a: vec3, b: vec3) -> ti.f32:
    """Dot product clamped to [0, 1].

    Negative values mean the two directions face away from each other and
    contribute nothing to lighting.
    """
    return saturate(tm.dot(a, b))


@ti.func
def to_homogeneous_point(p: vec3) -> vec4:
    return vec4(p.x, p.y, p.z, 1.0)


@ti.func
def to_homogeneous_direction(d: vec3) -> vec4:
    return vec4(d.x, d.y, d.z, 0.0)


@ti.func
def transform_point(m: mat4, p: vec3) -> vec4:
    """Transform a point (w = 1) by a 4x4 matrix.

    Args:
        m: The transform matrix.
        p: The point to transform.

    Returns:
        The transformed homogeneous point. No perspective divide is applied.
    """
    return m @ to_homogeneous_point(p)


@ti.func
def transform_direction(m: mat4, d: vec3) -> vec3:
    """Transform a direction (w = 0) by a 4x4 matrix.

    Translation is ignored. The result is not normalized.
    """
    r = m @ to_homogeneous_direction(d)
    return vec3(r.x, r.y, r.z)


@ti.func
def gamma_decode(c: vec3) -> vec3:
    """Convert display-encoded color to linear: ``pow(c, 2.2)``."""
    return c ** GAMMA


@ti.func
def gamma_encode(c: vec3) -> vec3:
    """Convert linear color to display encoding: ``pow(c, 1/2.2)``."""
    return c ** (1.0 / GAMMA)


@ti.func
def tbn_to_world(local: vec3, tangent: vec3, binormal: vec3, normal: vec3) -> vec3:
    """Transform a tangent-space vector into world space.

    Args:
        local: Vector in tangent space (x along tangent, z along normal).
        tangent: World-space tangent.
        binormal: World-space binormal.
        normal: World-space normal.

    Returns:
        The world-space vector (not normalized).
    """
    return local.x * tangent + local.y * binormal + local.z * normal
