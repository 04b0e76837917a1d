"""Taichi implementation of a physically-based rasterization shading pipeline.

This package provides data-parallel PBR shading using Taichi, with support for:
- Cook-Torrance microfacet BRDF (GGX distribution, Smith geometry, Schlick Fresnel)
- Up to 16 point lights with radius-bounded inverse-square falloff
- Tangent-space normal mapping and metallic/roughness/AO texture maps
- Reinhard tone mapping and gamma encoding
- A reference software rasterizer to drive the pipeline end to end

Subpackages:
    core: Vector utilities, rasterizer kernels and the renderer wrapper
    camera: Perspective camera and per-frame camera state
    scene: Lights, instance transforms, meshes and the scene manager
    materials: Textures, material parameters and the Cook-Torrance BRDF
    pipeline: Vertex stage, shading evaluator, display mapper, unlit path
    preview: Output conversion, PNG export and preview utilities
"""

__version__ = "0.1.0"
