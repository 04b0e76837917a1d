"""Scene manager coordinating textures, materials, lights, meshes and camera.

The shading pipeline reads its inputs from module-level registries (texture
pool, material table, light snapshot, instance transforms, vertex and
triangle buffers, camera fields). The SceneManager is the host-side owner of
a scene description: it records everything added to it, uploads the
per-frame buffers in one call and round-trips the scene through plain
dictionaries (and JSON files).

Texture and material registration happens immediately, so ids returned by
the add_* methods can be used right away. Geometry, lights and camera are
recorded and sent to the pipeline by ``upload()``, which rebuilds the
instance, vertex and triangle buffers from scratch.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.scene.manager import SceneManager
    >>> from src.shading.camera.perspective import PerspectiveCamera
    >>> scene = SceneManager()
    >>> gold = scene.add_material(base_color=(1.0, 0.8, 0.4, 1.0), metallic=1.0, roughness=0.3)
    >>> sphere = scene.add_sphere_mesh(radius=1.0)
    >>> scene.add_draw(sphere, gold)
    >>> scene.add_point_light((0.0, 3.0, 3.0), intensity=10.0, radius=2.0)
    >>> scene.set_camera(PerspectiveCamera(lookfrom=(0, 0, 4), lookat=(0, 0, 0)))
    >>> scene.upload()
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt

from src.shading.camera.perspective import PerspectiveCamera, setup_camera
from src.shading.core.rasterizer import clear_triangles, upload_triangles
from src.shading.materials.pbr import (
    MAX_MATERIALS,
    TEXTURE_KINDS,
    PbrMaterial,
    add_material,
    clear_materials,
)
from src.shading.materials.texture import (
    MAX_TEXTURES,
    add_texture,
    add_texture_constant,
    clear_textures,
    get_default_texture,
    load_texture,
)
from src.shading.pipeline.attributes import ShadingModel
from src.shading.pipeline.vertex import clear_vertices, upload_vertices
from src.shading.scene.lights import (
    MAX_LIGHTS,
    PointLight,
    PointLightBuffer,
    clear_lights,
    upload_lights,
)
from src.shading.scene.mesh import Mesh, make_cube, make_quad, make_uv_sphere
from src.shading.scene.transforms import (
    Transform,
    add_instance_transform,
    clear_instance_transforms,
)

logger = logging.getLogger(__name__)

_MESH_BUILDERS = {
    "quad": make_quad,
    "uv_sphere": make_uv_sphere,
    "cube": make_cube,
}


@dataclass
class TextureInfo:
    """Information about a registered texture.

    Attributes:
        texture_id: The id in the texture pool.
        source: "file", "constant" or "array".
        params: What is needed to recreate the texture.
    """

    texture_id: int
    source: str
    params: dict[str, Any]


@dataclass
class MeshInfo:
    """A mesh known to the scene.

    Attributes:
        mesh: The mesh data.
        builder: Name of the primitive builder, or "arrays" for raw data.
        params: Builder keyword arguments.
    """

    mesh: Mesh
    builder: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class DrawInfo:
    """One mesh drawn with one material at one or more instance transforms.

    Attributes:
        mesh_id: Index into SceneManager.meshes.
        material_id: Material for the whole draw.
        transforms: One Transform per instance.
        shading_model: PBR or UNLIT.
    """

    mesh_id: int
    material_id: int
    transforms: list[Transform]
    shading_model: ShadingModel = ShadingModel.PBR


def _transform_to_dict(t: Transform) -> dict[str, Any]:
    return {
        "translation": list(t.translation),
        "rotation": list(t.rotation),
        "scale": list(t.scale),
    }


def _transform_from_dict(data: dict[str, Any]) -> Transform:
    translation = data.get("translation", [0.0, 0.0, 0.0])
    rotation = data.get("rotation", [0.0, 0.0, 0.0, 1.0])
    scale = data.get("scale", [1.0, 1.0, 1.0])
    if isinstance(scale, (int, float)):
        scale = [scale, scale, scale]
    return Transform(
        translation=(float(translation[0]), float(translation[1]), float(translation[2])),
        rotation=(float(rotation[0]), float(rotation[1]), float(rotation[2]), float(rotation[3])),
        scale=(float(scale[0]), float(scale[1]), float(scale[2])),
    )


def _vec3(values: Any) -> tuple[float, float, float]:
    return (float(values[0]), float(values[1]), float(values[2]))


class SceneManager:
    """Host-side owner of a PBR scene.

    Default fallback textures (white albedo, flat normal, white
    roughness/metallic and AO) are created first on every clear, so texture
    ids are reproducible when a scene is rebuilt from a dictionary.

    Attributes:
        textures: TextureInfo for every user texture.
        materials: The registered materials, indexed by material id.
        meshes: MeshInfo for every mesh.
        draws: DrawInfo for every draw.
        lights: The point light set uploaded each frame.
        camera: The scene camera, or None.
    """

    def __init__(self) -> None:
        """Initialize an empty scene."""
        self.textures: list[TextureInfo] = []
        self.materials: list[PbrMaterial] = []
        self.meshes: list[MeshInfo] = []
        self.draws: list[DrawInfo] = []
        self.lights = PointLightBuffer()
        self.camera: PerspectiveCamera | None = None
        self._clear_all()

    def _clear_all(self) -> None:
        clear_textures()
        clear_materials()
        clear_lights()
        clear_instance_transforms()
        clear_vertices()
        clear_triangles()
        for kind in TEXTURE_KINDS:
            get_default_texture(kind)

        self.textures.clear()
        self.materials.clear()
        self.meshes.clear()
        self.draws.clear()
        self.lights.clear()
        self.camera = None

    def clear(self) -> None:
        """Clear the entire scene and every pipeline registry."""
        self._clear_all()

    # =========================================================================
    # Textures and Materials
    # =========================================================================

    def add_texture_file(self, path: str | Path) -> int:
        """Load an image file into the texture pool.

        Raises:
            RuntimeError: If the maximum number of textures is exceeded.
        """
        texture_id = load_texture(path)
        self.textures.append(TextureInfo(texture_id, "file", {"path": str(path)}))
        return texture_id

    def add_texture_constant(self, rgba: tuple[float, float, float, float]) -> int:
        """Add a 1x1 texture holding a single texel value."""
        texture_id = add_texture_constant(rgba)
        self.textures.append(TextureInfo(texture_id, "constant", {"rgba": list(rgba)}))
        return texture_id

    def add_texture_array(self, image: npt.ArrayLike) -> int:
        """Add a texture from an image array (see materials.texture.add_texture)."""
        data = np.asarray(image)
        texture_id = add_texture(data)
        self.textures.append(
            TextureInfo(texture_id, "array", {"data": data.tolist(), "dtype": str(data.dtype)})
        )
        return texture_id

    def add_material(self, material: PbrMaterial | None = None, **params: Any) -> int:
        """Register a PBR material.

        Args:
            material: A material description. If omitted, one is built from
                the keyword arguments (see PbrMaterial).

        Returns:
            The material id.

        Raises:
            ValueError: If a parameter is out of range or a texture id is invalid.
            RuntimeError: If the maximum number of materials is exceeded.
        """
        if material is None:
            material = PbrMaterial(**params)
        material_id = add_material(material)
        self.materials.append(material)
        return material_id

    def get_material_count(self) -> int:
        return len(self.materials)

    # =========================================================================
    # Geometry
    # =========================================================================

    def add_mesh(self, mesh: Mesh) -> int:
        """Add a mesh given as raw arrays.

        Returns:
            The mesh id used by add_draw.
        """
        self.meshes.append(MeshInfo(mesh=mesh, builder="arrays"))
        return len(self.meshes) - 1

    def _add_built_mesh(self, builder: str, **params: Any) -> int:
        mesh = _MESH_BUILDERS[builder](**params)
        self.meshes.append(MeshInfo(mesh=mesh, builder=builder, params=params))
        return len(self.meshes) - 1

    def add_quad_mesh(self, size: float = 1.0, uv_repeat: float = 1.0) -> int:
        """Add a square in the XZ plane facing +Y."""
        return self._add_built_mesh("quad", size=size, uv_repeat=uv_repeat)

    def add_sphere_mesh(self, radius: float = 1.0, segments: int = 32, rings: int = 16) -> int:
        """Add a UV sphere centered at the origin."""
        return self._add_built_mesh("uv_sphere", radius=radius, segments=segments, rings=rings)

    def add_cube_mesh(self, size: float = 1.0) -> int:
        """Add an axis-aligned cube centered at the origin."""
        return self._add_built_mesh("cube", size=size)

    def add_draw(
        self,
        mesh_id: int,
        material_id: int,
        transforms: Transform | list[Transform] | None = None,
        shading_model: ShadingModel = ShadingModel.PBR,
    ) -> int:
        """Draw a mesh with a material at one or more instance transforms.

        Args:
            mesh_id: Id returned by an add_*mesh method.
            material_id: Id returned by add_material.
            transforms: One Transform or a list (one per instance). Defaults
                to a single identity instance.
            shading_model: PBR or UNLIT. The unlit path samples the
                material's albedo texture only.

        Returns:
            The draw index.

        Raises:
            ValueError: If the mesh or material id is invalid.
        """
        if not 0 <= mesh_id < len(self.meshes):
            raise ValueError(f"Invalid mesh_id: {mesh_id}")
        if not 0 <= material_id < len(self.materials):
            raise ValueError(f"Invalid material_id: {material_id}")
        if transforms is None:
            transforms = [Transform()]
        elif isinstance(transforms, Transform):
            transforms = [transforms]
        for t in transforms:
            if not t.is_uniform_scale:
                logger.warning(
                    f"Draw of mesh {mesh_id} uses non-uniform scale {t.scale}; "
                    "normals are transformed by the model matrix and will be skewed"
                )
        self.draws.append(
            DrawInfo(
                mesh_id=mesh_id,
                material_id=material_id,
                transforms=list(transforms),
                shading_model=ShadingModel(shading_model),
            )
        )
        return len(self.draws) - 1

    # =========================================================================
    # Lights and Camera
    # =========================================================================

    def add_point_light(
        self,
        position: tuple[float, float, float],
        color: tuple[float, float, float] = (1.0, 1.0, 1.0),
        intensity: float = 1.0,
        radius: float = 1.0,
    ) -> int:
        """Add a point light.

        Returns:
            The light index.

        Raises:
            ValueError: If radius is not positive or intensity/color is negative.
            RuntimeError: If the scene already has MAX_LIGHTS lights.
        """
        light = PointLight(position=position, color=color, intensity=intensity, radius=radius)
        return self.lights.push(light)

    def set_camera(self, camera: PerspectiveCamera) -> None:
        self.camera = camera

    # =========================================================================
    # Upload
    # =========================================================================

    def upload(self, camera: PerspectiveCamera | None = None) -> None:
        """Send lights, camera and expanded geometry to the pipeline.

        Every instance of every draw gets its own instance transform and its
        own copy of the mesh vertices, tagged with that instance index.

        Args:
            camera: Overrides (and replaces) the scene camera.

        Raises:
            RuntimeError: If no camera is set, or a buffer capacity is exceeded.
        """
        if camera is not None:
            self.camera = camera
        if self.camera is None:
            raise RuntimeError("Scene has no camera. Call set_camera() first.")

        clear_instance_transforms()
        clear_vertices()
        clear_triangles()

        for draw in self.draws:
            mesh = self.meshes[draw.mesh_id].mesh
            for transform in draw.transforms:
                instance = add_instance_transform(transform.matrix())
                base = upload_vertices(
                    mesh.positions,
                    mesh.normals,
                    mesh.tangents,
                    mesh.uvs,
                    colors=mesh.colors,
                    instance=instance,
                    shading_model=draw.shading_model,
                )
                upload_triangles(
                    mesh.indices,
                    base_vertex=base,
                    material_id=draw.material_id,
                    shading_model=draw.shading_model,
                )

        upload_lights(self.lights)
        setup_camera(self.camera.to_state())
        logger.info(
            f"Scene uploaded: {len(self.draws)} draws, {self.get_instance_count()} instances, "
            f"{self.lights.count} lights"
        )

    # =========================================================================
    # Scene Queries
    # =========================================================================

    def get_instance_count(self) -> int:
        return sum(len(d.transforms) for d in self.draws)

    def get_vertex_count(self) -> int:
        """Vertices after instance expansion."""
        return sum(self.meshes[d.mesh_id].mesh.vertex_count * len(d.transforms) for d in self.draws)

    def get_triangle_count(self) -> int:
        """Triangles after instance expansion."""
        return sum(
            self.meshes[d.mesh_id].mesh.triangle_count * len(d.transforms) for d in self.draws
        )

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        meshes = []
        for info in self.meshes:
            if info.builder == "arrays":
                mesh = info.mesh
                entry: dict[str, Any] = {
                    "type": "arrays",
                    "positions": mesh.positions.tolist(),
                    "normals": mesh.normals.tolist(),
                    "uvs": mesh.uvs.tolist(),
                    "indices": mesh.indices.tolist(),
                    "tangents": mesh.tangents.tolist() if mesh.tangents is not None else None,
                }
                if mesh.colors is not None:
                    entry["colors"] = mesh.colors.tolist()
            else:
                entry = {"type": info.builder, **info.params}
            meshes.append(entry)

        camera = None
        if self.camera is not None:
            c = self.camera
            camera = {
                "lookfrom": list(c.lookfrom),
                "lookat": list(c.lookat),
                "vup": list(c.vup),
                "vfov": c.vfov,
                "aspect_ratio": c.aspect_ratio,
                "near": c.near,
                "far": c.far,
            }

        return {
            "textures": [{"source": t.source, **t.params} for t in self.textures],
            "materials": [m.to_dict() for m in self.materials],
            "meshes": meshes,
            "draws": [
                {
                    "mesh_id": d.mesh_id,
                    "material_id": d.material_id,
                    "shading_model": d.shading_model.name.lower(),
                    "transforms": [_transform_to_dict(t) for t in d.transforms],
                }
                for d in self.draws
            ],
            "lights": [
                {
                    "position": list(light.position),
                    "color": list(light.color),
                    "intensity": light.intensity,
                    "radius": light.radius,
                }
                for light in self.lights.lights
            ],
            "camera": camera,
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary, replacing the current one.

        Raises:
            ValueError: If the dictionary contains invalid data.
        """
        self.clear()

        for tex in data.get("textures", []):
            source = tex.get("source", "")
            if source == "file":
                self.add_texture_file(tex["path"])
            elif source == "constant":
                rgba = tex.get("rgba", [1.0, 1.0, 1.0, 1.0])
                self.add_texture_constant(
                    (float(rgba[0]), float(rgba[1]), float(rgba[2]), float(rgba[3]))
                )
            elif source == "array":
                self.add_texture_array(np.asarray(tex["data"], dtype=tex.get("dtype", "float32")))
            else:
                raise ValueError(f"Unknown texture source: {source}")

        for mat in data.get("materials", []):
            self.add_material(PbrMaterial.from_dict(mat))

        for mesh_data in data.get("meshes", []):
            builder = mesh_data.get("type", "")
            if builder == "arrays":
                self.add_mesh(
                    Mesh(
                        positions=mesh_data["positions"],
                        normals=mesh_data["normals"],
                        uvs=mesh_data["uvs"],
                        indices=mesh_data["indices"],
                        tangents=mesh_data.get("tangents"),
                        colors=mesh_data.get("colors"),
                    )
                )
            elif builder in _MESH_BUILDERS:
                params = {k: v for k, v in mesh_data.items() if k != "type"}
                self._add_built_mesh(builder, **params)
            else:
                raise ValueError(f"Unknown mesh type: {builder}")

        for draw in data.get("draws", []):
            model_name = str(draw.get("shading_model", "pbr")).upper()
            if model_name not in ShadingModel.__members__:
                raise ValueError(f"Unknown shading model: {model_name.lower()}")
            transforms = [_transform_from_dict(t) for t in draw.get("transforms", [{}])]
            self.add_draw(
                int(draw["mesh_id"]),
                int(draw["material_id"]),
                transforms,
                ShadingModel[model_name],
            )

        for light in data.get("lights", []):
            self.add_point_light(
                position=_vec3(light["position"]),
                color=_vec3(light.get("color", [1.0, 1.0, 1.0])),
                intensity=float(light.get("intensity", 1.0)),
                radius=float(light.get("radius", 1.0)),
            )

        camera = data.get("camera")
        if camera is not None:
            self.set_camera(
                PerspectiveCamera(
                    lookfrom=_vec3(camera["lookfrom"]),
                    lookat=_vec3(camera["lookat"]),
                    vup=_vec3(camera.get("vup", [0.0, 1.0, 0.0])),
                    vfov=float(camera.get("vfov", 60.0)),
                    aspect_ratio=float(camera.get("aspect_ratio", 1.0)),
                    near=float(camera.get("near", 0.1)),
                    far=float(camera.get("far", 100.0)),
                )
            )

    def save_json(self, path: str | Path) -> None:
        """Write the scene description to a JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved scene to {path}")

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_lights() -> int:
        return MAX_LIGHTS

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS

    @staticmethod
    def get_max_textures() -> int:
        return MAX_TEXTURES


def load_scene_json(path: str | Path) -> SceneManager:
    """Build a SceneManager from a JSON scene file.

    Relative texture paths are resolved against the JSON file's directory.

    Raises:
        ValueError: If the file contains invalid scene data.
    """
    path = Path(path)
    with open(path) as f:
        data = json.load(f)

    for tex in data.get("textures", []):
        if tex.get("source") == "file" and not Path(tex["path"]).is_absolute():
            tex["path"] = str(path.parent / tex["path"])

    scene = SceneManager()
    scene.from_dict(data)
    logger.info(f"Loaded scene from {path}")
    return scene
