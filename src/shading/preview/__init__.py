"""Preview module for output and visualization.

Components:
    display: Host-side display mapping and Matplotlib preview
    export: PNG and NPY export, image comparison

Example:
    >>> from src.shading.preview import save_png, show_preview
    >>> from src.shading.core.renderer import Renderer
    >>>
    >>> renderer = Renderer(512, 512)
    >>> renderer.render()
    >>> show_preview(renderer)
    >>> save_png(renderer, "output.png")
"""

from src.shading.preview.display import (
    ToneMapMethod,
    display_map,
    gamma_decode,
    gamma_encode,
    process_image_for_display,
    show_comparison,
    show_preview,
    tone_map_reinhard,
)
from src.shading.preview.export import (
    compute_rmse,
    image_to_uint8,
    load_png,
    save_hdr_npy,
    save_png,
    save_png_from_array,
)

__all__ = [
    # Display functions
    "show_preview",
    "show_comparison",
    # Display mapping
    "tone_map_reinhard",
    "gamma_encode",
    "gamma_decode",
    "display_map",
    "process_image_for_display",
    "ToneMapMethod",
    # Export functions
    "save_png",
    "save_png_from_array",
    "save_hdr_npy",
    "load_png",
    "image_to_uint8",
    "compute_rmse",
]
