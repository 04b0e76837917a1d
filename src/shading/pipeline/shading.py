"""PBR shading evaluator.

Turns an interpolated ShadedFragment plus its material into linear radiance:

1. Albedo: albedo map at ``uv * uv_scale`` times base color, decoded with
   ``pow(x, 2.2)``.
2. Normal: normal map texel, ``pow(x, 1/2.2)``, remapped to [-1, 1],
   normalized, taken through the (tangent, binormal, normal) basis into world
   space and normalized again. The inverse-gamma step matches how the source
   assets were encoded.
3. Roughness = G channel x roughness factor, metallic = B channel x metallic
   factor. No clamping.
4. View vector: normalize(eye - world position).
5. For each of the first ``min(count, MAX_LIGHTS)`` point lights, the
   Cook-Torrance BRDF scaled by the light's attenuation is accumulated.
6. The sum is multiplied once by ambient occlusion (R channel x AO factor).

Every function here is pure. The fragment batch kernel maps the evaluator
over arrays of fragments, one independent task per fragment, each writing
only its own output row.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.pipeline.shading import shade_fragment_batch
    >>> # colors = shade_fragment_batch(positions, normals, tangents, binormals, uvs, material_id)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.shading.camera.perspective import get_eye_position
from src.shading.core.vecmath import GAMMA, gamma_decode, tbn_to_world
from src.shading.materials.brdf import evaluate_brdf
from src.shading.materials.pbr import MaterialParameters, get_material, get_material_count
from src.shading.materials.texture import sample_texture
from src.shading.pipeline.attributes import ShadedFragment
from src.shading.pipeline.display import tone_map_and_encode
from src.shading.scene.lights import (
    get_active_light_count,
    get_light,
    point_light_attenuation,
)

vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4

# Texture id slots in MaterialParameters.textures
ALBEDO_SLOT = 0
NORMAL_SLOT = 1
ROUGHNESS_METALLIC_SLOT = 2
AO_SLOT = 3


@ti.func
def material_uv(fragment: ShadedFragment, material: MaterialParameters) -> vec2:
    """Texture coordinate scaled by the material's tiling factor."""
    return fragment.uv * material.factors[3]


@ti.func
def decode_albedo(material: MaterialParameters, uv: vec2) -> vec3:
    """Sample the albedo map, tint by base color and convert to linear."""
    texel = sample_texture(material.textures[ALBEDO_SLOT], uv)
    tinted = texel * material.base_color
    return gamma_decode(vec3(tinted.x, tinted.y, tinted.z))


@ti.func
def decode_normal_texel(texel: vec3) -> vec3:
    """Convert a normal-map texel to a unit tangent-space normal."""
    encoded = texel ** (1.0 / GAMMA)
    return tm.normalize(encoded * 2.0 - 1.0)


@ti.func
def reconstruct_normal(fragment: ShadedFragment, material: MaterialParameters, uv: vec2) -> vec3:
    """Perturb the interpolated normal with the material's normal map."""
    texel = sample_texture(material.textures[NORMAL_SLOT], uv)
    local = decode_normal_texel(vec3(texel.x, texel.y, texel.z))
    world = tbn_to_world(
        local, fragment.world_tangent, fragment.world_binormal, fragment.world_normal
    )
    return tm.normalize(world)


@ti.func
def sample_roughness_metallic(material: MaterialParameters, uv: vec2):
    """Read roughness (G) and metallic (B), scaled by the material factors.

    Returns:
        A tuple (roughness, metallic).
    """
    texel = sample_texture(material.textures[ROUGHNESS_METALLIC_SLOT], uv)
    roughness = texel.y * material.factors[1]
    metallic = texel.z * material.factors[0]
    return roughness, metallic


@ti.func
def sample_ambient_occlusion(material: MaterialParameters, uv: vec2) -> ti.f32:
    texel = sample_texture(material.textures[AO_SLOT], uv)
    return texel.x * material.factors[2]


@ti.func
def accumulate_lights(
    world_position: vec3,
    normal: vec3,
    view_dir: vec3,
    albedo: vec3,
    roughness: ti.f32,
    metallic: ti.f32,
) -> vec3:
    """Sum the attenuated BRDF response of every active point light.

    The loop bound is clamped to MAX_LIGHTS, so entries past the active
    count (or past the array) are never read.
    """
    radiance = vec3(0.0)
    for i in range(get_active_light_count()):
        light = get_light(i)
        to_light = vec3(light.position.x, light.position.y, light.position.z) - world_position
        distance = tm.length(to_light)
        light_dir = tm.normalize(to_light)
        attenuation = point_light_attenuation(light.intensity, light.radius, distance)
        radiance += (
            evaluate_brdf(normal, light_dir, view_dir, albedo, roughness, metallic, light.color)
            * attenuation
        )
    return radiance


@ti.func
def shade(fragment: ShadedFragment, material_id: ti.i32) -> vec3:
    """Evaluate the linear radiance leaving a fragment toward the camera.

    Args:
        fragment: Interpolated world-space surface state.
        material_id: Id of the fragment's material.

    Returns:
        Linear RGB radiance, unbounded (before tone mapping).
    """
    material = get_material(material_id)
    uv = material_uv(fragment, material)

    albedo = decode_albedo(material, uv)
    normal = reconstruct_normal(fragment, material, uv)
    roughness, metallic = sample_roughness_metallic(material, uv)
    view_dir = tm.normalize(get_eye_position() - fragment.world_position)

    radiance = accumulate_lights(
        fragment.world_position, normal, view_dir, albedo, roughness, metallic
    )
    return radiance * sample_ambient_occlusion(material, uv)


# =============================================================================
# Fragment Batch Evaluation
# =============================================================================


@ti.kernel
def _shade_batch(
    count: ti.i32,
    material_id: ti.i32,
    positions: ti.types.ndarray(),
    normals: ti.types.ndarray(),
    tangents: ti.types.ndarray(),
    binormals: ti.types.ndarray(),
    uvs: ti.types.ndarray(),
    radiance_out: ti.types.ndarray(),
    color_out: ti.types.ndarray(),
):
    for i in range(count):
        fragment = ShadedFragment(
            world_position=vec3(positions[i, 0], positions[i, 1], positions[i, 2]),
            world_normal=vec3(normals[i, 0], normals[i, 1], normals[i, 2]),
            world_tangent=vec3(tangents[i, 0], tangents[i, 1], tangents[i, 2]),
            world_binormal=vec3(binormals[i, 0], binormals[i, 1], binormals[i, 2]),
            uv=vec2(uvs[i, 0], uvs[i, 1]),
            clip_position=vec4(0.0),
        )
        radiance = shade(fragment, material_id)
        color = tone_map_and_encode(radiance)
        for c in ti.static(range(3)):
            radiance_out[i, c] = radiance[c]
        for c in ti.static(range(4)):
            color_out[i, c] = color[c]


def _fragment_array(name: str, data: npt.ArrayLike, width: int) -> npt.NDArray[np.float32]:
    arr = np.asarray(data, dtype=np.float32)
    if arr.ndim == 1:
        # A flat empty sequence is an empty batch, not one zero-width row
        arr = arr.reshape(-1, width) if arr.size == 0 else arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] != width:
        raise ValueError(f"Fragment {name} must have shape (N, {width}), got {arr.shape}")
    return np.ascontiguousarray(arr)


def shade_fragment_batch(
    world_positions: npt.ArrayLike,
    world_normals: npt.ArrayLike,
    world_tangents: npt.ArrayLike,
    world_binormals: npt.ArrayLike,
    uvs: npt.ArrayLike,
    material_id: int,
    *,
    return_radiance: bool = False,
) -> npt.NDArray[np.float32] | tuple[npt.NDArray[np.float32], npt.NDArray[np.float32]]:
    """Shade already-interpolated fragments with one material.

    This is the entry point for callers that rasterize on their own: every
    row is one fragment, shaded independently with the current camera and
    light set.

    Args:
        world_positions: (N, 3) world positions.
        world_normals: (N, 3) world normals.
        world_tangents: (N, 3) world tangents.
        world_binormals: (N, 3) world binormals.
        uvs: (N, 2) texture coordinates.
        material_id: Material used for all fragments.
        return_radiance: Also return the linear radiance before display mapping.

    Returns:
        (N, 4) display colors with alpha 1.0, or a tuple (colors, radiance)
        with (N, 3) linear radiance when return_radiance is True.

    Raises:
        ValueError: If shapes disagree or the material id is invalid.
    """
    if not 0 <= material_id < get_material_count():
        raise ValueError(f"Invalid material_id: {material_id}")

    pos = _fragment_array("positions", world_positions, 3)
    count = pos.shape[0]
    nrm = _fragment_array("normals", world_normals, 3)
    tan = _fragment_array("tangents", world_tangents, 3)
    bin_ = _fragment_array("binormals", world_binormals, 3)
    uv = _fragment_array("uvs", uvs, 2)
    for name, arr in (("normals", nrm), ("tangents", tan), ("binormals", bin_), ("uvs", uv)):
        if arr.shape[0] != count:
            raise ValueError(f"Fragment {name} has {arr.shape[0]} rows, expected {count}")

    radiance = np.zeros((count, 3), dtype=np.float32)
    colors = np.zeros((count, 4), dtype=np.float32)
    if count > 0:
        _shade_batch(count, material_id, pos, nrm, tan, bin_, uv, radiance, colors)

    if return_radiance:
        return colors, radiance
    return colors


def shade_single_fragment(
    world_position: tuple[float, float, float],
    world_normal: tuple[float, float, float],
    world_tangent: tuple[float, float, float],
    world_binormal: tuple[float, float, float],
    uv: tuple[float, float],
    material_id: int,
) -> tuple[float, float, float, float]:
    """Shade one fragment and return its display color (for debugging)."""
    colors = shade_fragment_batch(
        [world_position], [world_normal], [world_tangent], [world_binormal], [uv], material_id
    )
    return (
        float(colors[0, 0]),
        float(colors[0, 1]),
        float(colors[0, 2]),
        float(colors[0, 3]),
    )
