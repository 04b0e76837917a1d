"""Pytest configuration for shading pipeline tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts. Fast math stays off
    so degenerate inputs produce IEEE NaN/Inf.
    """
    ti.init(arch=ti.cpu, random_seed=42, fast_math=False)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear every pipeline registry before and after each test.

    This ensures tests are isolated from each other.
    """
    # Import here so Taichi is initialized before fields are declared
    from src.shading.core.rasterizer import clear_render_target, clear_triangles, set_background
    from src.shading.materials.pbr import clear_materials
    from src.shading.materials.texture import clear_textures, set_texture_filter
    from src.shading.pipeline.vertex import clear_vertices
    from src.shading.scene.lights import clear_lights
    from src.shading.scene.transforms import clear_instance_transforms

    def _clear_all():
        clear_textures()
        clear_materials()
        clear_lights()
        clear_instance_transforms()
        clear_vertices()
        clear_triangles()
        set_texture_filter("bilinear")
        set_background((0.0, 0.0, 0.0))
        clear_render_target()

    _clear_all()

    yield

    _clear_all()
