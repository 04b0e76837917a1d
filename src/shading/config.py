"""Runtime configuration and Taichi backend initialization.

The shading kernels read their inputs from module-level Taichi fields, so
Taichi must be initialized once, before any module that declares fields is
imported. ``init_taichi`` selects the backend and always disables fast math:
the BRDF relies on IEEE behaviour for its documented degenerate cases
(zero-length normals produce NaN, roughness 0 produces Inf).

Environment overrides:
    SHADING_ARCH: Backend name ("cpu", "gpu", "cuda", "vulkan", "metal", "auto").
    SHADING_DEBUG: "1" enables Taichi debug mode (kernel invariant asserts).

Example:
    >>> from src.shading.config import RenderConfig, init_taichi
    >>> config = RenderConfig(width=256, height=256)
    >>> backend = init_taichi(config.arch, debug=config.debug)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Literal

import taichi as ti

logger = logging.getLogger(__name__)

TextureFilter = Literal["bilinear", "nearest"]

_ARCHES = {
    "cpu": "cpu",
    "gpu": "gpu",
    "cuda": "cuda",
    "vulkan": "vulkan",
    "metal": "metal",
}


@dataclass
class RenderConfig:
    """Configuration for a render session.

    Attributes:
        width: Output image width in pixels.
        height: Output image height in pixels.
        background: Display-space RGB written where no triangle covers a pixel.
        texture_filter: Texture filtering policy ("bilinear" or "nearest").
        arch: Taichi backend name, or "auto" to prefer a GPU.
        debug: Enable Taichi debug mode (activates kernel asserts).
    """

    width: int = 512
    height: int = 512
    background: tuple[float, float, float] = (0.0, 0.0, 0.0)
    texture_filter: TextureFilter = "bilinear"
    arch: str = field(default_factory=lambda: os.environ.get("SHADING_ARCH", "cpu"))
    debug: bool = field(default_factory=lambda: os.environ.get("SHADING_DEBUG", "0") == "1")

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {self.width}x{self.height}")
        if self.texture_filter not in ("bilinear", "nearest"):
            raise ValueError(f"Unknown texture filter: {self.texture_filter}")

    def to_dict(self) -> dict[str, Any]:
        """Export the configuration to a JSON-serializable dictionary."""
        return {
            "width": self.width,
            "height": self.height,
            "background": list(self.background),
            "texture_filter": self.texture_filter,
            "arch": self.arch,
            "debug": self.debug,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RenderConfig:
        """Create a configuration from a dictionary, using defaults for missing keys."""
        defaults = cls()
        background = data.get("background", list(defaults.background))
        return cls(
            width=int(data.get("width", defaults.width)),
            height=int(data.get("height", defaults.height)),
            background=(float(background[0]), float(background[1]), float(background[2])),
            texture_filter=data.get("texture_filter", defaults.texture_filter),
            arch=data.get("arch", defaults.arch),
            debug=bool(data.get("debug", defaults.debug)),
        )


def init_taichi(arch: str = "cpu", *, debug: bool = False, random_seed: int = 0) -> str:
    """Initialize Taichi with the requested backend.

    With ``arch="auto"`` a GPU backend is tried first and the CPU backend is
    used if no GPU is available.

    Args:
        arch: Backend name (see module docstring).
        debug: Enable Taichi debug mode. Kernel asserts on shading invariants
            (light radius, roughness and metallic ranges) only run in this mode.
        random_seed: Seed for Taichi's random generator.

    Returns:
        Name of the backend that was initialized.

    Raises:
        ValueError: If the backend name is unknown.
    """
    arch = arch.lower()
    if arch == "auto":
        try:
            ti.init(arch=ti.gpu, debug=debug, fast_math=False, random_seed=random_seed)
            logger.info("Taichi initialized on GPU backend")
            return "gpu"
        except Exception as e:
            logger.warning(f"GPU backend unavailable ({e}), falling back to CPU")
            arch = "cpu"

    if arch not in _ARCHES:
        raise ValueError(f"Unknown Taichi backend: {arch}")

    ti.init(
        arch=getattr(ti, _ARCHES[arch]),
        debug=debug,
        fast_math=False,
        random_seed=random_seed,
    )
    logger.info(f"Taichi initialized on {arch} backend (debug={debug})")
    return arch
