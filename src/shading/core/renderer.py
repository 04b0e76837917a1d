"""Frame renderer wrapping the transform stage and the rasterizer.

The Renderer class owns the render target dimensions and runs one complete
frame per call: clear, transform every vertex, rasterize and shade. Scene
content (textures, materials, lights, camera, geometry) lives in the module
registries and is normally uploaded through a SceneManager.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.core.renderer import Renderer
    >>> from src.shading.scene.demo import create_material_grid_scene
    >>>
    >>> scene, camera = create_material_grid_scene()
    >>> scene.upload(camera)
    >>>
    >>> renderer = Renderer(512, 512)
    >>> renderer.render()
    >>> renderer.save_image("grid.png")
"""

from __future__ import annotations

import logging
import time

import numpy as np
import numpy.typing as npt

from src.shading.config import RenderConfig
from src.shading.core.rasterizer import (
    clear_render_target,
    get_color_image_numpy,
    get_depth_image_numpy,
    get_radiance_image_numpy,
    get_triangle_count,
    rasterize,
    set_background,
    setup_render_target,
)
from src.shading.materials.texture import set_texture_filter
from src.shading.pipeline.vertex import run_vertex_stage

logger = logging.getLogger(__name__)


class Renderer:
    """Renders complete frames of the current scene.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
    """

    def __init__(self, width: int, height: int, config: RenderConfig | None = None) -> None:
        """Initialize the renderer.

        Args:
            width: Image width in pixels (max 1024).
            height: Image height in pixels (max 1024).
            config: Optional render settings. Its background color and
                texture filter are applied; its width and height are not.

        Raises:
            ValueError: If dimensions exceed maximum supported size.
        """
        self._config = config if config is not None else RenderConfig(width=width, height=height)
        self._frame_count = 0
        self._width = width
        self._height = height
        set_background(self._config.background)
        set_texture_filter(self._config.texture_filter)
        setup_render_target(width, height)

    @classmethod
    def from_config(cls, config: RenderConfig) -> Renderer:
        """Create a renderer sized by a RenderConfig."""
        return cls(config.width, config.height, config)

    @property
    def width(self) -> int:
        """Get the image width."""
        return self._width

    @property
    def height(self) -> int:
        """Get the image height."""
        return self._height

    @property
    def frame_count(self) -> int:
        """Number of frames rendered since creation or the last reset."""
        return self._frame_count

    def reset(self) -> None:
        """Clear the frame buffers to the background color."""
        clear_render_target()
        self._frame_count = 0

    def resize(self, width: int, height: int) -> None:
        """Resize the render target.

        Raises:
            ValueError: If dimensions exceed maximum supported size.
        """
        setup_render_target(width, height)
        self._width = width
        self._height = height
        self._frame_count = 0

    def render(self) -> float:
        """Render one frame of the current scene.

        Returns:
            Wall-clock time of the frame in seconds.
        """
        start = time.perf_counter()
        clear_render_target()
        run_vertex_stage()
        rasterize()
        elapsed = time.perf_counter() - start
        self._frame_count += 1
        logger.info(
            f"Frame {self._frame_count}: {get_triangle_count()} triangles, "
            f"{self.width}x{self.height} in {elapsed:.3f}s"
        )
        return elapsed

    def get_image_numpy(self) -> npt.NDArray[np.float32]:
        """Get the display-mapped image as RGB, shape (height, width, 3).

        Values are already tone mapped and gamma encoded for PBR surfaces;
        unlit surfaces hold raw texture samples.
        """
        return get_color_image_numpy()[:, :, :3]

    def get_rgba_numpy(self) -> npt.NDArray[np.float32]:
        """Get the display-mapped image as RGBA, shape (height, width, 4)."""
        return get_color_image_numpy()

    def get_hdr_image_numpy(self) -> npt.NDArray[np.float32]:
        """Get linear radiance before display mapping, shape (height, width, 3)."""
        return get_radiance_image_numpy()

    def get_depth_numpy(self) -> npt.NDArray[np.float32]:
        """Get the depth buffer, shape (height, width)."""
        return get_depth_image_numpy()

    def get_image_uint8(self) -> npt.NDArray[np.uint8]:
        """Get the display image as 8-bit RGB."""
        image = np.clip(self.get_image_numpy(), 0.0, 1.0)
        return (image * 255.0 + 0.5).astype(np.uint8)

    def save_image(self, filepath: str) -> None:
        """Save the display image as an 8-bit PNG.

        Args:
            filepath: Path to save the image (e.g., "output.png").
        """
        from src.shading.preview.export import save_png_from_array

        save_png_from_array(self.get_image_numpy(), filepath)
        logger.info(f"Saved {self.width}x{self.height} image to {filepath}")

    def __repr__(self) -> str:
        """Return a string representation of the renderer state."""
        return (
            f"Renderer(width={self.width}, height={self.height}, "
            f"frames={self.frame_count})"
        )
