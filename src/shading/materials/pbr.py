"""Metallic/roughness PBR material parameters.

A material combines a linear base color, a packed factor vector and four
texture maps:

    factors = (metallic, roughness, ao, uv_scale)

    albedo             = texture(albedo_map, uv * uv_scale) * base_color
    roughness          = texture(roughness_metallic_map).g * roughness factor
    metallic           = texture(roughness_metallic_map).b * metallic factor
    ambient occlusion  = texture(ao_map).r * ao factor

Material data is validated here, at authoring time. The shading kernels do
not clamp: roughness must stay in (0, 1] (the GGX distribution divides by a
value that vanishes as roughness approaches 0) and metallic/AO in [0, 1].

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.materials.pbr import PbrMaterial, add_material
    >>> mat_id = add_material(PbrMaterial(base_color=(0.8, 0.2, 0.2, 1.0), roughness=0.4))
"""

from dataclasses import dataclass
from typing import Any

import taichi as ti
import taichi.math as tm

from src.shading.materials.texture import get_default_texture, get_texture_count

vec4 = tm.vec4
ivec4 = ti.types.vector(4, ti.i32)

# Maximum number of materials in the scene
MAX_MATERIALS = 256

# Smallest roughness accepted at authoring time
MIN_ROUGHNESS = 1e-3

# Texture map slots, in the order stored in the texture id vector
TEXTURE_KINDS = ("albedo", "normal", "roughness_metallic", "ao")


@ti.dataclass
class MaterialParameters:
    """Kernel-side material record.

    Attributes:
        base_color: Linear RGBA base color.
        factors: Packed (metallic, roughness, ao, uv_scale).
        textures: Texture ids (albedo, normal, roughness_metallic, ao).
    """

    base_color: vec4
    factors: vec4
    textures: ivec4


@dataclass
class PbrMaterial:
    """Host-side PBR material description.

    Attributes:
        base_color: Linear RGBA base color, each component in [0, 1].
        metallic: Metallic factor in [0, 1].
        roughness: Roughness factor in (0, 1].
        ao: Ambient occlusion factor in [0, 1].
        uv_scale: UV tiling scale applied before every texture lookup.
        albedo_texture: Texture id, or None for the white default.
        normal_texture: Texture id, or None for the flat-normal default.
        roughness_metallic_texture: Texture id (G = roughness, B = metallic),
            or None for the white default.
        ao_texture: Texture id (R = occlusion), or None for the white default.
    """

    base_color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    metallic: float = 0.0
    roughness: float = 0.5
    ao: float = 1.0
    uv_scale: float = 1.0
    albedo_texture: int | None = None
    normal_texture: int | None = None
    roughness_metallic_texture: int | None = None
    ao_texture: int | None = None

    def validate(self) -> None:
        """Check the authoring-time invariants.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if len(self.base_color) != 4:
            raise ValueError(f"Base color must be RGBA, got {len(self.base_color)} components")
        for i, component in enumerate(self.base_color):
            if component < 0.0 or component > 1.0:
                raise ValueError(f"Base color component {i} = {component} is outside [0, 1].")
        if self.metallic < 0.0 or self.metallic > 1.0:
            raise ValueError(f"Metallic = {self.metallic} is outside [0, 1].")
        if self.roughness < MIN_ROUGHNESS or self.roughness > 1.0:
            raise ValueError(
                f"Roughness = {self.roughness} is outside [{MIN_ROUGHNESS}, 1]. "
                "The GGX distribution degenerates as roughness approaches 0."
            )
        if self.ao < 0.0 or self.ao > 1.0:
            raise ValueError(f"AO factor = {self.ao} is outside [0, 1].")
        if self.uv_scale <= 0.0:
            raise ValueError(f"UV scale = {self.uv_scale} must be positive.")

    def texture_ids(self) -> tuple[int, int, int, int]:
        """Resolve texture ids, substituting defaults for missing maps.

        Raises:
            ValueError: If a texture id does not exist.
        """
        given = (
            self.albedo_texture,
            self.normal_texture,
            self.roughness_metallic_texture,
            self.ao_texture,
        )
        ids = []
        for kind, tex_id in zip(TEXTURE_KINDS, given):
            if tex_id is None:
                tex_id = get_default_texture(kind)
            elif not 0 <= tex_id < get_texture_count():
                raise ValueError(f"Invalid {kind} texture id: {tex_id}")
            ids.append(int(tex_id))
        return ids[0], ids[1], ids[2], ids[3]

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_color": list(self.base_color),
            "metallic": self.metallic,
            "roughness": self.roughness,
            "ao": self.ao,
            "uv_scale": self.uv_scale,
            "albedo_texture": self.albedo_texture,
            "normal_texture": self.normal_texture,
            "roughness_metallic_texture": self.roughness_metallic_texture,
            "ao_texture": self.ao_texture,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PbrMaterial":
        base_color = data.get("base_color", [1.0, 1.0, 1.0, 1.0])
        if len(base_color) == 3:
            base_color = [*base_color, 1.0]
        return cls(
            base_color=(
                float(base_color[0]),
                float(base_color[1]),
                float(base_color[2]),
                float(base_color[3]),
            ),
            metallic=float(data.get("metallic", 0.0)),
            roughness=float(data.get("roughness", 0.5)),
            ao=float(data.get("ao", 1.0)),
            uv_scale=float(data.get("uv_scale", 1.0)),
            albedo_texture=data.get("albedo_texture"),
            normal_texture=data.get("normal_texture"),
            roughness_metallic_texture=data.get("roughness_metallic_texture"),
            ao_texture=data.get("ao_texture"),
        )


# =============================================================================
# Material Field Storage
# =============================================================================

_material_base_colors = ti.Vector.field(4, dtype=ti.f32, shape=MAX_MATERIALS)
_material_factors = ti.Vector.field(4, dtype=ti.f32, shape=MAX_MATERIALS)
_material_textures = ti.Vector.field(4, dtype=ti.i32, shape=MAX_MATERIALS)
_num_materials = ti.field(dtype=ti.i32, shape=())


def clear_materials() -> None:
    """Clear all materials.

    Resets the material count to zero. Existing data in the fields will be
    overwritten when new materials are added.
    """
    _num_materials[None] = 0


def add_material(material: PbrMaterial) -> int:
    """Add a PBR material to the material registry.

    Args:
        material: The material description.

    Returns:
        The material id.

    Raises:
        ValueError: If any parameter is out of range or a texture id is invalid.
        RuntimeError: If the maximum number of materials is exceeded.
    """
    material.validate()

    idx = _num_materials[None]
    if idx >= MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    textures = material.texture_ids()
    _material_base_colors[idx] = list(material.base_color)
    _material_factors[idx] = [material.metallic, material.roughness, material.ao, material.uv_scale]
    _material_textures[idx] = list(textures)
    _num_materials[None] = idx + 1
    return idx


def get_material_count() -> int:
    """Get the number of materials in the registry."""
    return int(_num_materials[None])


@ti.func
def get_material(material_id: ti.i32) -> MaterialParameters:
    """Get the parameters of a material by id."""
    return MaterialParameters(
        base_color=_material_base_colors[material_id],
        factors=_material_factors[material_id],
        textures=_material_textures[material_id],
    )
