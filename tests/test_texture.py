"""Unit tests for texture storage and sampling.

Tests cover:
- Uploading arrays (uint8 / float, 1 / 3 / 4 channels) and constants
- Size and capacity limits
- Loading image files through Pillow
- Default fallback textures
- Nearest and bilinear sampling with repeat addressing
"""

import numpy as np
import pytest
import taichi as ti


def _sample(texture_id, uvs):
    """Sample a texture at a list of UVs inside a kernel."""
    from src.shading.materials.texture import sample_texture

    n = len(uvs)
    uv_field = ti.Vector.field(2, dtype=ti.f32, shape=n)
    result = ti.Vector.field(4, dtype=ti.f32, shape=n)
    uv_field.from_numpy(np.asarray(uvs, dtype=np.float32))

    @ti.kernel
    def test_kernel(tex: ti.i32):
        for i in range(n):
            result[i] = sample_texture(tex, uv_field[i])

    test_kernel(texture_id)
    return result.to_numpy()


def _two_by_two():
    # Row 0: red, green; row 1: blue, white
    return np.array(
        [
            [[1.0, 0.0, 0.0, 1.0], [0.0, 1.0, 0.0, 1.0]],
            [[0.0, 0.0, 1.0, 1.0], [1.0, 1.0, 1.0, 1.0]],
        ],
        dtype=np.float32,
    )


class TestTextureUpload:
    """Tests for adding textures to the pool."""

    def test_add_texture_returns_sequential_ids(self):
        from src.shading.materials.texture import add_texture, get_texture_count

        a = add_texture(np.zeros((4, 4, 4), dtype=np.float32))
        b = add_texture(np.zeros((2, 8, 3), dtype=np.float32))
        assert (a, b) == (0, 1)
        assert get_texture_count() == 2

    def test_texture_size_is_width_height(self):
        from src.shading.materials.texture import add_texture, get_texture_size

        tex = add_texture(np.zeros((2, 8, 3), dtype=np.float32))
        assert get_texture_size(tex) == (8, 2)

    def test_uint8_is_scaled(self):
        from src.shading.materials.texture import add_texture, set_texture_filter

        set_texture_filter("nearest")
        image = np.full((1, 1, 3), 255, dtype=np.uint8)
        tex = add_texture(image)
        value = _sample(tex, [(0.5, 0.5)])[0]
        np.testing.assert_allclose(value, [1.0, 1.0, 1.0, 1.0], atol=1e-6)

    def test_grayscale_expands_to_rgba(self):
        from src.shading.materials.texture import add_texture, set_texture_filter

        set_texture_filter("nearest")
        tex = add_texture(np.full((2, 2), 0.25, dtype=np.float32))
        value = _sample(tex, [(0.25, 0.25)])[0]
        np.testing.assert_allclose(value, [0.25, 0.25, 0.25, 1.0], atol=1e-6)

    def test_constant_texture(self):
        from src.shading.materials.texture import add_texture_constant

        tex = add_texture_constant((0.1, 0.2, 0.3, 0.4))
        values = _sample(tex, [(0.0, 0.0), (0.7, 0.2), (3.5, -1.25)])
        for v in values:
            np.testing.assert_allclose(v, [0.1, 0.2, 0.3, 0.4], atol=1e-6)

    def test_too_large_rejected(self):
        from src.shading.materials.texture import MAX_TEXTURE_SIZE, add_texture

        with pytest.raises(ValueError, match="exceed"):
            add_texture(np.zeros((MAX_TEXTURE_SIZE + 1, 4, 4), dtype=np.float32))

    def test_bad_channel_count_rejected(self):
        from src.shading.materials.texture import add_texture

        with pytest.raises(ValueError, match="channels"):
            add_texture(np.zeros((2, 2, 2), dtype=np.float32))

    def test_non_finite_rejected(self):
        from src.shading.materials.texture import add_texture

        image = np.zeros((2, 2, 4), dtype=np.float32)
        image[0, 0, 0] = np.nan
        with pytest.raises(ValueError, match="non-finite"):
            add_texture(image)

    def test_capacity(self):
        from src.shading.materials.texture import MAX_TEXTURES, add_texture_constant

        for _ in range(MAX_TEXTURES):
            add_texture_constant((0.0, 0.0, 0.0, 1.0))
        with pytest.raises(RuntimeError, match="Maximum number of textures"):
            add_texture_constant((0.0, 0.0, 0.0, 1.0))

    def test_invalid_texture_id(self):
        from src.shading.materials.texture import get_texture_size

        with pytest.raises(ValueError):
            get_texture_size(0)


class TestLoadTexture:
    """Tests for loading image files."""

    def test_load_png(self, tmp_path):
        from PIL import Image as PILImage

        from src.shading.materials.texture import get_texture_size, load_texture, set_texture_filter

        image = np.zeros((4, 6, 3), dtype=np.uint8)
        image[:, :, 1] = 255
        path = tmp_path / "green.png"
        PILImage.fromarray(image, mode="RGB").save(path)

        tex = load_texture(path)
        assert get_texture_size(tex) == (6, 4)

        set_texture_filter("nearest")
        value = _sample(tex, [(0.5, 0.5)])[0]
        np.testing.assert_allclose(value, [0.0, 1.0, 0.0, 1.0], atol=1e-6)

    def test_large_image_downscaled(self, tmp_path):
        from PIL import Image as PILImage

        from src.shading.materials.texture import (
            MAX_TEXTURE_SIZE,
            get_texture_size,
            load_texture,
        )

        path = tmp_path / "large.png"
        PILImage.new("RGB", (MAX_TEXTURE_SIZE * 2, MAX_TEXTURE_SIZE)).save(path)

        tex = load_texture(path)
        width, height = get_texture_size(tex)
        assert width == MAX_TEXTURE_SIZE
        assert height == MAX_TEXTURE_SIZE // 2


class TestDefaultTextures:
    """Tests for fallback textures used by materials without maps."""

    def test_default_created_once(self):
        from src.shading.materials.texture import get_default_texture, get_texture_count

        first = get_default_texture("albedo")
        second = get_default_texture("albedo")
        assert first == second
        assert get_texture_count() == 1

    def test_unknown_kind(self):
        from src.shading.materials.texture import get_default_texture

        with pytest.raises(ValueError, match="Unknown texture kind"):
            get_default_texture("emissive")

    def test_flat_normal_texel(self):
        from src.shading.materials.texture import DEFAULT_TEXELS

        r, g, b, a = DEFAULT_TEXELS["normal"]
        assert (r ** (1.0 / 2.2)) * 2.0 - 1.0 == pytest.approx(0.0, abs=1e-9)
        assert (g ** (1.0 / 2.2)) * 2.0 - 1.0 == pytest.approx(0.0, abs=1e-9)
        assert b == 1.0


class TestSampling:
    """Tests for filtered texture lookups."""

    def test_nearest_texel_centers(self):
        from src.shading.materials.texture import add_texture, set_texture_filter

        set_texture_filter("nearest")
        tex = add_texture(_two_by_two())
        values = _sample(tex, [(0.25, 0.25), (0.75, 0.25), (0.25, 0.75), (0.75, 0.75)])
        np.testing.assert_allclose(values[0], [1.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(values[1], [0.0, 1.0, 0.0, 1.0])
        np.testing.assert_allclose(values[2], [0.0, 0.0, 1.0, 1.0])
        np.testing.assert_allclose(values[3], [1.0, 1.0, 1.0, 1.0])

    def test_bilinear_texel_centers_are_exact(self):
        from src.shading.materials.texture import add_texture

        tex = add_texture(_two_by_two())
        values = _sample(tex, [(0.25, 0.25), (0.75, 0.75)])
        np.testing.assert_allclose(values[0], [1.0, 0.0, 0.0, 1.0], atol=1e-6)
        np.testing.assert_allclose(values[1], [1.0, 1.0, 1.0, 1.0], atol=1e-6)

    def test_bilinear_midpoint_averages(self):
        from src.shading.materials.texture import add_texture

        tex = add_texture(_two_by_two())
        value = _sample(tex, [(0.5, 0.25)])[0]
        np.testing.assert_allclose(value, [0.5, 0.5, 0.0, 1.0], atol=1e-6)

    def test_repeat_addressing(self):
        from src.shading.materials.texture import add_texture, set_texture_filter

        set_texture_filter("nearest")
        tex = add_texture(_two_by_two())
        values = _sample(tex, [(0.25, 0.25), (1.25, 0.25), (-0.75, 2.25), (5.75, -0.25)])
        np.testing.assert_allclose(values[1], values[0])
        np.testing.assert_allclose(values[2], values[0])
        # (5.75, -0.25) wraps to (0.75, 0.75)
        np.testing.assert_allclose(values[3], [1.0, 1.0, 1.0, 1.0])

    def test_bilinear_wraps_across_edge(self):
        from src.shading.materials.texture import add_texture

        tex = add_texture(_two_by_two())
        # u = 0 sits halfway between the last and first columns
        value = _sample(tex, [(0.0, 0.25)])[0]
        np.testing.assert_allclose(value, [0.5, 0.5, 0.0, 1.0], atol=1e-6)

    def test_unknown_filter_rejected(self):
        from src.shading.materials.texture import set_texture_filter

        with pytest.raises(ValueError):
            set_texture_filter("trilinear")
