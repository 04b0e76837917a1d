"""Display mapping: Reinhard tone mapping followed by gamma encoding.

    tone mapped = c / (c + 1)          componentwise, [0, inf) -> [0, 1)
    encoded     = tone mapped^(1/2.2)  componentwise
    alpha       = 1.0                  surfaces are opaque

Reinhard is monotonic per channel and never clips, but it is applied to each
channel independently, so saturated colors desaturate as they brighten.
"""

import taichi as ti
import taichi.math as tm

from src.shading.core.vecmath import gamma_encode

vec3 = tm.vec3
vec4 = tm.vec4


@ti.func
def tone_map_reinhard(c: vec3) -> vec3:
    """Reinhard operator c / (c + 1)."""
    return c / (c + 1.0)


@ti.func
def tone_map_and_encode(linear: vec3) -> vec4:
    """Map unbounded linear radiance to an opaque display color.

    Args:
        linear: Linear RGB radiance, finite and non-negative.

    Returns:
        Display-encoded RGBA with alpha 1.0.
    """
    encoded = gamma_encode(tone_map_reinhard(linear))
    return vec4(encoded.x, encoded.y, encoded.z, 1.0)
