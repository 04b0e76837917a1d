"""Material models for physically based shading.

Components:
    texture: Texture pool, image loading and filtered sampling
    pbr: PBR material parameters and the material table
    brdf: Cook-Torrance BRDF (GGX distribution, Smith geometry, Schlick
        Fresnel) with a Lambertian diffuse lobe

Materials follow the metallic/roughness workflow: a base color (tinting the
albedo map), metallic and roughness factors (scaling the B and G channels of
the roughness/metallic map), an ambient occlusion factor (scaling the R
channel of the AO map) and a normal map in tangent space.
"""

from .brdf import (
    DIELECTRIC_F0,
    distribution_ggx,
    evaluate_brdf,
    fresnel_schlick,
    geometry_schlick_ggx,
    geometry_smith,
)
from .pbr import (
    MAX_MATERIALS,
    MaterialParameters,
    PbrMaterial,
    add_material,
    clear_materials,
    get_material,
    get_material_count,
)
from .texture import (
    MAX_TEXTURE_SIZE,
    MAX_TEXTURES,
    add_texture,
    add_texture_constant,
    clear_textures,
    get_default_texture,
    get_texture_count,
    load_texture,
    sample_texture,
    set_texture_filter,
)

__all__ = [
    # BRDF
    "DIELECTRIC_F0",
    "distribution_ggx",
    "fresnel_schlick",
    "geometry_schlick_ggx",
    "geometry_smith",
    "evaluate_brdf",
    # Materials
    "MAX_MATERIALS",
    "MaterialParameters",
    "PbrMaterial",
    "add_material",
    "clear_materials",
    "get_material",
    "get_material_count",
    # Textures
    "MAX_TEXTURES",
    "MAX_TEXTURE_SIZE",
    "add_texture",
    "add_texture_constant",
    "load_texture",
    "clear_textures",
    "get_default_texture",
    "get_texture_count",
    "sample_texture",
    "set_texture_filter",
]
