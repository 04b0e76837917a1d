"""Tests for triangle rasterization and the render target.

Scenes here are built directly from the pipeline registries: a camera at
(0, 0, 5) looking down -Z and axis-aligned rectangles in z = const planes.
"""

import numpy as np
import pytest

ENCODED_HALF = 0.5 ** (1.0 / 2.2)


def _setup_camera():
    from src.shading.camera.perspective import PerspectiveCamera, setup_camera
    from src.shading.scene.transforms import add_instance_transform

    setup_camera(PerspectiveCamera(lookfrom=(0.0, 0.0, 5.0), lookat=(0.0, 0.0, 0.0)).to_state())
    add_instance_transform(np.identity(4))


def _rect(x0, x1, y0, y1, z, material_id, shading_model=None):
    """Upload a rectangle in the plane z facing +Z as two triangles."""
    from src.shading.core.rasterizer import upload_triangles
    from src.shading.pipeline.attributes import ShadingModel
    from src.shading.pipeline.vertex import upload_vertices

    model = ShadingModel.PBR if shading_model is None else shading_model
    base = upload_vertices(
        [(x0, y0, z), (x1, y0, z), (x1, y1, z), (x0, y1, z)],
        [(0.0, 0.0, 1.0)] * 4,
        [(1.0, 0.0, 0.0)] * 4,
        [(0.0, 1.0), (1.0, 1.0), (1.0, 0.0), (0.0, 0.0)],
        shading_model=model,
    )
    upload_triangles([(0, 1, 2), (0, 2, 3)], base_vertex=base, material_id=material_id, shading_model=model)


def _unlit_material(rgba):
    from src.shading.materials.pbr import PbrMaterial, add_material
    from src.shading.materials.texture import add_texture_constant

    return add_material(PbrMaterial(albedo_texture=add_texture_constant(rgba)))


def _render(width, height):
    from src.shading.core.rasterizer import (
        get_color_image_numpy,
        get_depth_image_numpy,
        get_radiance_image_numpy,
        rasterize,
        setup_render_target,
    )
    from src.shading.pipeline.vertex import run_vertex_stage

    setup_render_target(width, height)
    run_vertex_stage()
    rasterize()
    return get_color_image_numpy(), get_radiance_image_numpy(), get_depth_image_numpy()


class TestRenderTarget:
    """Tests for render target setup and clearing."""

    def test_background_when_empty(self):
        from src.shading.core.rasterizer import CLEAR_DEPTH, set_background

        set_background((0.1, 0.2, 0.3))
        color, radiance, depth = _render(4, 3)
        assert color.shape == (3, 4, 4)
        np.testing.assert_allclose(color[..., :3], np.broadcast_to([0.1, 0.2, 0.3], (3, 4, 3)), atol=1e-6)
        np.testing.assert_allclose(color[..., 3], 1.0)
        np.testing.assert_allclose(radiance, 0.0)
        np.testing.assert_allclose(depth, CLEAR_DEPTH)

    def test_dimensions(self):
        from src.shading.core.rasterizer import get_image_dimensions, setup_render_target

        setup_render_target(16, 9)
        assert get_image_dimensions() == (16, 9)

    @pytest.mark.parametrize("size", [(0, 4), (4, -1), (2048, 4), (4, 2048)])
    def test_invalid_dimensions(self, size):
        from src.shading.core.rasterizer import setup_render_target

        with pytest.raises(ValueError):
            setup_render_target(*size)

    def test_requires_setup(self):
        from src.shading.core import rasterizer

        previous = rasterizer._render_target_initialized[None]
        rasterizer._render_target_initialized[None] = 0
        try:
            with pytest.raises(RuntimeError, match="setup_render_target"):
                rasterizer.rasterize()
            with pytest.raises(RuntimeError):
                rasterizer.get_color_image_numpy()
        finally:
            rasterizer._render_target_initialized[None] = previous


class TestTriangleUpload:
    """Tests for upload_triangles validation."""

    def test_counts_and_offsets(self):
        from src.shading.core.rasterizer import get_triangle_count

        _setup_camera()
        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        _rect(-1.0, 1.0, -1.0, 1.0, 0.0, mat)
        _rect(-1.0, 1.0, -1.0, 1.0, 0.5, mat)
        assert get_triangle_count() == 4

    def test_invalid_material(self):
        from src.shading.core.rasterizer import upload_triangles
        from src.shading.pipeline.vertex import upload_vertices

        _setup_camera()
        base = upload_vertices([(0.0, 0.0, 0.0)] * 3, [(0.0, 0.0, 1.0)] * 3, [(1.0, 0.0, 0.0)] * 3, [(0.0, 0.0)] * 3)
        with pytest.raises(ValueError, match="material_id"):
            upload_triangles([(0, 1, 2)], base_vertex=base, material_id=0)

    def test_index_out_of_range(self):
        from src.shading.core.rasterizer import upload_triangles
        from src.shading.pipeline.vertex import upload_vertices

        _setup_camera()
        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        base = upload_vertices([(0.0, 0.0, 0.0)] * 3, [(0.0, 0.0, 1.0)] * 3, [(1.0, 0.0, 0.0)] * 3, [(0.0, 0.0)] * 3)
        with pytest.raises(ValueError, match="outside"):
            upload_triangles([(0, 1, 3)], base_vertex=base, material_id=mat)

    def test_bad_shape(self):
        from src.shading.core.rasterizer import upload_triangles

        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        with pytest.raises(ValueError, match="shape"):
            upload_triangles([(0, 1)], base_vertex=0, material_id=mat)


class TestCoverage:
    """Tests for pixel coverage, orientation and depth testing."""

    def test_full_screen_unlit(self):
        from src.shading.pipeline.attributes import ShadingModel

        _setup_camera()
        mat = _unlit_material((0.2, 0.4, 0.6, 0.8))
        _rect(-20.0, 20.0, -20.0, 20.0, 0.0, mat, ShadingModel.UNLIT)
        color, _, depth = _render(6, 6)

        np.testing.assert_allclose(
            color.reshape(-1, 4), np.broadcast_to([0.2, 0.4, 0.6, 0.8], (36, 4)), atol=1e-6
        )
        assert (depth > 0.0).all()
        assert (depth < 1.0).all()

    def test_left_half(self):
        from src.shading.pipeline.attributes import ShadingModel

        _setup_camera()
        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        _rect(-20.0, 0.0, -20.0, 20.0, 0.0, mat, ShadingModel.UNLIT)
        color, _, _ = _render(8, 8)

        np.testing.assert_allclose(color[:, :4, 0], 1.0)
        np.testing.assert_allclose(color[:, 4:, 0], 0.0)

    def test_top_half(self):
        from src.shading.pipeline.attributes import ShadingModel

        _setup_camera()
        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        _rect(-20.0, 20.0, 0.0, 20.0, 0.0, mat, ShadingModel.UNLIT)
        color, _, _ = _render(8, 8)

        # Row 0 is the top of the image
        np.testing.assert_allclose(color[:4, :, 0], 1.0)
        np.testing.assert_allclose(color[4:, :, 0], 0.0)

    def test_nearest_surface_wins(self):
        from src.shading.pipeline.attributes import ShadingModel

        _setup_camera()
        red = _unlit_material((1.0, 0.0, 0.0, 1.0))
        green = _unlit_material((0.0, 1.0, 0.0, 1.0))
        # Far surface drawn last must still lose
        _rect(-20.0, 20.0, -20.0, 20.0, 1.0, green, ShadingModel.UNLIT)
        _rect(-20.0, 20.0, -20.0, 20.0, 0.0, red, ShadingModel.UNLIT)
        color, _, _ = _render(4, 4)
        np.testing.assert_allclose(color[..., 1], 1.0)
        np.testing.assert_allclose(color[..., 0], 0.0)

    def test_nearer_surface_has_smaller_depth(self):
        from src.shading.pipeline.attributes import ShadingModel

        _setup_camera()
        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        _rect(-20.0, 20.0, -20.0, 20.0, 0.0, mat, ShadingModel.UNLIT)
        _, _, far_depth = _render(2, 2)

        from src.shading.core.rasterizer import clear_triangles
        from src.shading.pipeline.vertex import clear_vertices

        clear_vertices()
        clear_triangles()
        _rect(-20.0, 20.0, -20.0, 20.0, 2.0, mat, ShadingModel.UNLIT)
        _, _, near_depth = _render(2, 2)
        assert (near_depth < far_depth).all()

    def test_vertex_behind_camera_is_dropped(self):
        from src.shading.core.rasterizer import upload_triangles
        from src.shading.pipeline.attributes import ShadingModel
        from src.shading.pipeline.vertex import upload_vertices

        _setup_camera()
        mat = _unlit_material((1.0, 1.0, 1.0, 1.0))
        base = upload_vertices(
            [(-5.0, -5.0, 0.0), (5.0, -5.0, 0.0), (0.0, 0.0, 10.0)],
            [(0.0, 0.0, 1.0)] * 3,
            [(1.0, 0.0, 0.0)] * 3,
            [(0.0, 0.0)] * 3,
            shading_model=ShadingModel.UNLIT,
        )
        upload_triangles(
            [(0, 1, 2)], base_vertex=base, material_id=mat, shading_model=ShadingModel.UNLIT
        )
        color, _, _ = _render(4, 4)
        np.testing.assert_allclose(color[..., :3], 0.0)


class TestPbrRaster:
    """Tests for shaded PBR surfaces through the rasterizer."""

    def test_center_pixel_matches_reference(self):
        from src.shading.materials.pbr import PbrMaterial, add_material
        from src.shading.scene.lights import PointLight, PointLightBuffer, upload_lights

        _setup_camera()
        upload_lights(
            PointLightBuffer.from_lights(
                [PointLight(position=(0.0, 0.0, 5.0), intensity=10.0, radius=5.0)]
            )
        )
        mat = add_material(
            PbrMaterial(base_color=(ENCODED_HALF, ENCODED_HALF, ENCODED_HALF, 1.0), roughness=0.5)
        )
        _rect(-20.0, 20.0, -20.0, 20.0, 0.0, mat)
        color, radiance, _ = _render(9, 9)

        # The center pixel of an odd-sized image sees the world origin
        np.testing.assert_allclose(radiance[4, 4], [1.018587] * 3, rtol=1e-3)
        np.testing.assert_allclose(color[4, 4, :3], [0.7325] * 3, atol=1e-3)
        assert color[4, 4, 3] == 1.0

    def test_falloff_toward_edges(self):
        from src.shading.materials.pbr import PbrMaterial, add_material
        from src.shading.scene.lights import PointLight, PointLightBuffer, upload_lights

        _setup_camera()
        upload_lights(
            PointLightBuffer.from_lights(
                [PointLight(position=(0.0, 0.0, 2.0), intensity=10.0, radius=1.0)]
            )
        )
        mat = add_material(PbrMaterial(roughness=0.6))
        _rect(-20.0, 20.0, -20.0, 20.0, 0.0, mat)
        _, radiance, _ = _render(9, 9)

        assert radiance[4, 4, 0] > radiance[4, 0, 0]
        assert radiance[4, 4, 0] > radiance[0, 4, 0]
        # Symmetric scene gives a symmetric image
        np.testing.assert_allclose(radiance[4, 0], radiance[4, 8], rtol=1e-4)
        np.testing.assert_allclose(radiance[0, 4], radiance[8, 4], rtol=1e-4)
