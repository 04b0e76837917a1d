"""Point lights and the fixed-capacity per-frame light set.

The shading evaluator reads a snapshot of at most ``MAX_LIGHTS`` point lights
plus an active count. Only the first ``count`` entries are meaningful; the
evaluator bounds its loop by ``min(count, MAX_LIGHTS)`` so stale entries are
never read and no index past the array end is ever touched.

Validation happens here, on the host side, before the snapshot is uploaded:
radius must be positive (it is a divisor in the attenuation), intensity must
be non-negative, and no more than ``MAX_LIGHTS`` lights can be pushed.

The attenuation is:
    attenuation = intensity / (1 + distance^2 / radius^2)

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.scene.lights import PointLight, PointLightBuffer, upload_lights
    >>> buffer = PointLightBuffer()
    >>> buffer.push(PointLight(position=(0, 0, 5), color=(1, 1, 1), intensity=10, radius=5))
    >>> upload_lights(buffer)
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import taichi as ti
import taichi.math as tm

logger = logging.getLogger(__name__)

vec3 = tm.vec3
vec4 = tm.vec4

# Capacity of the per-frame light set
MAX_LIGHTS = 16


@ti.dataclass
class PointLightData:
    """Kernel-side point light record.

    Attributes:
        position: World position (w is padding and unused).
        color: Linear RGB color.
        intensity: Scalar intensity (>= 0).
        radius: Influence radius (> 0), used as a divisor in the falloff.
    """

    position: vec4
    color: vec3
    intensity: ti.f32
    radius: ti.f32


@dataclass
class PointLight:
    """Host-side point light description.

    Attributes:
        position: World position (x, y, z).
        color: Linear RGB color.
        intensity: Scalar intensity. Must be non-negative.
        radius: Influence radius. Must be positive.
    """

    position: tuple[float, float, float]
    color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    intensity: float = 1.0
    radius: float = 1.0

    def __post_init__(self) -> None:
        if self.radius <= 0.0:
            raise ValueError(
                f"Light radius = {self.radius} must be positive "
                "(it is a divisor in the attenuation)."
            )
        if self.intensity < 0.0:
            raise ValueError(f"Light intensity = {self.intensity} must be non-negative.")
        for i, component in enumerate(self.color):
            if component < 0.0:
                raise ValueError(f"Light color component {i} = {component} is negative.")


@dataclass
class PointLightBuffer:
    """Fixed-capacity light set snapshot built by the caller each frame.

    Attributes:
        lights: The active lights, in upload order.
    """

    lights: list[PointLight] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.lights) > MAX_LIGHTS:
            raise RuntimeError(f"Maximum number of point lights ({MAX_LIGHTS}) exceeded")

    @property
    def count(self) -> int:
        return len(self.lights)

    def push(self, light: PointLight) -> int:
        """Append a light to the set.

        Returns:
            The index of the added light.

        Raises:
            RuntimeError: If the set already holds MAX_LIGHTS lights.
        """
        if len(self.lights) >= MAX_LIGHTS:
            raise RuntimeError(f"Maximum number of point lights ({MAX_LIGHTS}) exceeded")
        self.lights.append(light)
        return len(self.lights) - 1

    def clear(self) -> None:
        self.lights.clear()

    @classmethod
    def from_lights(cls, lights: Iterable[PointLight]) -> "PointLightBuffer":
        buffer = cls()
        for light in lights:
            buffer.push(light)
        return buffer


# =============================================================================
# Light Set Storage (kernel-side snapshot)
# =============================================================================

_light_positions = ti.Vector.field(4, dtype=ti.f32, shape=MAX_LIGHTS)
_light_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
_light_intensities = ti.field(dtype=ti.f32, shape=MAX_LIGHTS)
_light_radii = ti.field(dtype=ti.f32, shape=MAX_LIGHTS)
_light_count = ti.field(dtype=ti.i32, shape=())


def clear_lights() -> None:
    """Reset the active light count to zero.

    Stale entries stay in the arrays and are ignored by the evaluator.
    """
    _light_count[None] = 0


def upload_lights(buffer: PointLightBuffer) -> None:
    """Upload a light set snapshot for the next frame.

    Args:
        buffer: The validated light set.
    """
    if buffer.count > MAX_LIGHTS:
        raise RuntimeError(f"Maximum number of point lights ({MAX_LIGHTS}) exceeded")

    for i, light in enumerate(buffer.lights):
        _light_positions[i] = [light.position[0], light.position[1], light.position[2], 1.0]
        _light_colors[i] = [light.color[0], light.color[1], light.color[2]]
        _light_intensities[i] = light.intensity
        _light_radii[i] = light.radius
    _light_count[None] = buffer.count
    logger.debug(f"Uploaded {buffer.count} point lights")


def get_light_count() -> int:
    """Get the number of active lights in the uploaded snapshot."""
    return int(_light_count[None])


@ti.func
def get_active_light_count() -> ti.i32:
    """Number of lights to evaluate, never more than MAX_LIGHTS."""
    return ti.max(0, ti.min(_light_count[None], MAX_LIGHTS))


@ti.func
def get_light(index: ti.i32) -> PointLightData:
    """Read a light from the snapshot.

    Args:
        index: Light index, must be below get_active_light_count().

    Returns:
        The kernel-side light record.
    """
    return PointLightData(
        position=_light_positions[index],
        color=_light_colors[index],
        intensity=_light_intensities[index],
        radius=_light_radii[index],
    )


@ti.func
def point_light_attenuation(intensity: ti.f32, radius: ti.f32, distance: ti.f32) -> ti.f32:
    """Radius-bounded inverse-square falloff.

    Equals ``intensity`` at distance 0 and decreases strictly toward zero
    without ever reaching it at a finite distance.

    Args:
        intensity: Light intensity (>= 0).
        radius: Influence radius (> 0).
        distance: Distance from the light to the shaded point.

    Returns:
        The attenuated intensity.
    """
    assert radius > 0.0, "point light radius must be positive"
    return intensity / (1.0 + (distance * distance) / (radius * radius))
