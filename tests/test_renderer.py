"""Tests for the Renderer class and full-frame rendering."""

import numpy as np
import pytest


def _sphere_scene(aspect_ratio=1.0):
    from src.shading.camera.perspective import PerspectiveCamera
    from src.shading.scene.manager import SceneManager

    scene = SceneManager()
    mat = scene.add_material(base_color=(0.8, 0.3, 0.2, 1.0), roughness=0.5)
    sphere = scene.add_sphere_mesh(radius=1.0, segments=16, rings=8)
    scene.add_draw(sphere, mat)
    scene.add_point_light((2.0, 2.0, 3.0), intensity=10.0, radius=2.0)
    scene.set_camera(
        PerspectiveCamera(lookfrom=(0.0, 0.0, 4.0), lookat=(0.0, 0.0, 0.0), aspect_ratio=aspect_ratio)
    )
    scene.upload()
    return scene


class TestRendererSetup:
    """Tests for construction, resizing and configuration."""

    def test_dimensions(self):
        from src.shading.core.renderer import Renderer

        renderer = Renderer(32, 16)
        assert renderer.width == 32
        assert renderer.height == 16
        assert renderer.frame_count == 0
        assert "32" in repr(renderer)

    def test_too_large(self):
        from src.shading.core.renderer import Renderer

        with pytest.raises(ValueError, match="exceed"):
            Renderer(4096, 16)

    def test_from_config_applies_background(self):
        from src.shading.config import RenderConfig
        from src.shading.core.renderer import Renderer

        renderer = Renderer.from_config(
            RenderConfig(width=6, height=4, background=(0.2, 0.3, 0.4))
        )
        renderer.render()
        image = renderer.get_image_numpy()
        assert image.shape == (4, 6, 3)
        np.testing.assert_allclose(image.reshape(-1, 3), np.broadcast_to([0.2, 0.3, 0.4], (24, 3)), atol=1e-6)

    def test_resize(self):
        from src.shading.core.renderer import Renderer

        renderer = Renderer(8, 8)
        renderer.render()
        renderer.resize(10, 5)
        assert (renderer.width, renderer.height) == (10, 5)
        assert renderer.frame_count == 0
        renderer.render()
        assert renderer.get_image_numpy().shape == (5, 10, 3)


class TestRendering:
    """Tests for rendering a real scene."""

    def test_render_counts_frames_and_returns_time(self):
        from src.shading.core.renderer import Renderer

        _sphere_scene()
        renderer = Renderer(16, 16)
        elapsed = renderer.render()
        assert elapsed >= 0.0
        renderer.render()
        assert renderer.frame_count == 2
        renderer.reset()
        assert renderer.frame_count == 0

    def test_sphere_covers_center_not_corners(self):
        from src.shading.core.renderer import Renderer

        _sphere_scene()
        renderer = Renderer(16, 16)
        renderer.render()
        depth = renderer.get_depth_numpy()

        assert depth[8, 8] < 1.0
        for corner in (depth[0, 0], depth[0, -1], depth[-1, 0], depth[-1, -1]):
            assert corner == 1.0

    def test_outputs_are_finite_and_in_range(self):
        from src.shading.core.renderer import Renderer

        _sphere_scene()
        renderer = Renderer(16, 16)
        renderer.render()

        image = renderer.get_image_numpy()
        hdr = renderer.get_hdr_image_numpy()
        assert np.isfinite(image).all()
        assert np.isfinite(hdr).all()
        assert (image >= 0.0).all() and (image < 1.0).all()
        assert (hdr >= 0.0).all()
        np.testing.assert_allclose(renderer.get_rgba_numpy()[..., 3], 1.0)

    def test_lit_side_is_brighter(self):
        from src.shading.core.renderer import Renderer

        # Light sits up and to the right of the camera
        _sphere_scene()
        renderer = Renderer(32, 32)
        renderer.render()
        hdr = renderer.get_hdr_image_numpy()
        upper_right = hdr[8:16, 16:24].sum()
        lower_left = hdr[16:24, 8:16].sum()
        assert upper_right > lower_left

    def test_rendering_is_deterministic(self):
        from src.shading.core.renderer import Renderer

        _sphere_scene()
        renderer = Renderer(16, 16)
        renderer.render()
        first = renderer.get_image_numpy().copy()
        renderer.render()
        np.testing.assert_array_equal(first, renderer.get_image_numpy())

    def test_uint8_and_save(self, tmp_path):
        from PIL import Image as PILImage

        from src.shading.core.renderer import Renderer

        _sphere_scene(aspect_ratio=2.0)
        renderer = Renderer(20, 10)
        renderer.render()

        image = renderer.get_image_uint8()
        assert image.dtype == np.uint8
        assert image.shape == (10, 20, 3)

        path = tmp_path / "frame.png"
        renderer.save_image(str(path))
        with PILImage.open(path) as img:
            assert img.size == (20, 10)
            np.testing.assert_array_equal(np.asarray(img), image)


class TestMaterialGrid:
    """Smoke test for the demo scene."""

    def test_demo_scene_renders(self):
        from src.shading.core.renderer import Renderer
        from src.shading.scene.demo import MaterialGridParams, create_material_grid_scene

        scene, camera = create_material_grid_scene(
            MaterialGridParams(rows=2, cols=2, sphere_segments=8, sphere_rings=4)
        )
        scene.upload(camera)
        renderer = Renderer(24, 24)
        renderer.render()

        image = renderer.get_image_numpy()
        assert np.isfinite(image).all()
        depth = renderer.get_depth_numpy()
        assert (depth < 1.0).mean() > 0.4
        # Floor fills the bottom of the frame
        assert (depth[-1] < 1.0).all()
