"""Unit tests for instance transforms."""

import math

import numpy as np
import pytest
import taichi as ti


class TestTransform:
    """Tests for host-side Transform composition."""

    def test_identity(self):
        from src.shading.scene.transforms import Transform

        np.testing.assert_allclose(Transform().matrix(), np.identity(4))

    def test_translation(self):
        from src.shading.scene.transforms import Transform

        m = Transform.from_translation((1.0, -2.0, 3.0)).matrix()
        np.testing.assert_allclose(m[:3, 3], [1.0, -2.0, 3.0])

    def test_rotation_about_y(self):
        from src.shading.scene.transforms import Transform

        m = Transform.from_axis_angle((0.0, 1.0, 0.0), 90.0).matrix()
        # +X rotates to -Z about +Y
        p = m.astype(np.float64) @ np.array([1.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(p[:3], [0.0, 0.0, -1.0], atol=1e-6)

    def test_scale_then_rotate_then_translate(self):
        from src.shading.scene.transforms import Transform, quat_from_axis_angle

        t = Transform(
            translation=(0.0, 0.0, 5.0),
            rotation=quat_from_axis_angle((0.0, 0.0, 1.0), 90.0),
            scale=(2.0, 2.0, 2.0),
        )
        p = t.matrix().astype(np.float64) @ np.array([1.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(p[:3], [0.0, 2.0, 5.0], atol=1e-6)

    def test_uniform_scale_detection(self):
        from src.shading.scene.transforms import Transform

        assert Transform.from_scale(3.0).is_uniform_scale
        assert not Transform.from_scale((1.0, 2.0, 1.0)).is_uniform_scale

    def test_quaternion_is_unit(self):
        from src.shading.scene.transforms import quat_from_axis_angle

        q = quat_from_axis_angle((1.0, 2.0, 3.0), 37.0)
        assert math.sqrt(sum(c * c for c in q)) == pytest.approx(1.0)

    def test_zero_axis_rejected(self):
        from src.shading.scene.transforms import quat_from_axis_angle

        with pytest.raises(ValueError, match="axis"):
            quat_from_axis_angle((0.0, 0.0, 0.0), 45.0)

    def test_look_at_faces_target(self):
        from src.shading.scene.transforms import look_at

        m = look_at((0.0, 0.0, 0.0), (5.0, 0.0, 0.0)).astype(np.float64)
        forward = m @ np.array([0.0, 0.0, -1.0, 0.0])
        np.testing.assert_allclose(forward[:3], [1.0, 0.0, 0.0], atol=1e-6)


class TestInstanceTransforms:
    """Tests for the kernel-side instance sequence."""

    def test_add_and_read(self):
        from src.shading.scene.transforms import (
            Transform,
            add_instance_transform,
            get_instance_count,
            get_instance_transform,
        )

        a = add_instance_transform(np.identity(4))
        b = add_instance_transform(Transform.from_translation((1.0, 2.0, 3.0)).matrix())
        assert (a, b) == (0, 1)
        assert get_instance_count() == 2

        result = ti.Vector.field(4, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = get_instance_transform(1) @ ti.math.vec4(0.0, 0.0, 0.0, 1.0)

        test_kernel()
        np.testing.assert_allclose(result[None].to_numpy(), [1.0, 2.0, 3.0, 1.0])

    def test_set_instance_transform(self):
        from src.shading.scene.transforms import (
            add_instance_transform,
            get_instance_transform,
            set_instance_transform,
        )

        idx = add_instance_transform(np.identity(4))
        moved = np.identity(4)
        moved[:3, 3] = (0.0, 4.0, 0.0)
        set_instance_transform(idx, moved)

        result = ti.Vector.field(4, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = get_instance_transform(0) @ ti.math.vec4(0.0, 0.0, 0.0, 1.0)

        test_kernel()
        np.testing.assert_allclose(result[None].to_numpy(), [0.0, 4.0, 0.0, 1.0])

    def test_set_invalid_index(self):
        from src.shading.scene.transforms import set_instance_transform

        with pytest.raises(ValueError, match="index"):
            set_instance_transform(0, np.identity(4))

    def test_bad_shape_rejected(self):
        from src.shading.scene.transforms import add_instance_transform

        with pytest.raises(ValueError, match="4x4"):
            add_instance_transform(np.identity(3))

    def test_non_finite_rejected(self):
        from src.shading.scene.transforms import add_instance_transform

        m = np.identity(4)
        m[0, 3] = np.inf
        with pytest.raises(ValueError, match="non-finite"):
            add_instance_transform(m)

    def test_capacity(self):
        from src.shading.scene.transforms import MAX_INSTANCES, add_instance_transform

        for _ in range(MAX_INSTANCES):
            add_instance_transform(np.identity(4))
        with pytest.raises(RuntimeError, match="Maximum number of instances"):
            add_instance_transform(np.identity(4))
