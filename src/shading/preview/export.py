"""Image export utilities.

Supported formats:
    - PNG (8-bit via Pillow), from the display image or from HDR radiance
    - NPY (float32 HDR radiance via NumPy)

Example:
    >>> from src.shading.preview.export import save_png
    >>> from src.shading.core.renderer import Renderer
    >>>
    >>> renderer = Renderer(512, 512)
    >>> renderer.render()
    >>> save_png(renderer, "output.png")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from src.shading.preview.display import ToneMapMethod, process_image_for_display

if TYPE_CHECKING:
    from src.shading.core.renderer import Renderer


def image_to_uint8(image: npt.NDArray[np.float32]) -> npt.NDArray[np.uint8]:
    """Quantize a [0, 1] float image to uint8 (rounding, values clamped)."""
    return (np.clip(image, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def save_png_from_array(image: npt.NDArray[np.float32], filepath: str | Path) -> None:
    """Save a display-space float image as an 8-bit PNG.

    Args:
        image: Array of shape (H, W), (H, W, 3) or (H, W, 4) in [0, 1].
        filepath: Output file path (should end in .png).

    Raises:
        ValueError: If the array shape is unsupported.
    """
    if image.ndim == 3 and image.shape[2] == 3:
        mode = "RGB"
    elif image.ndim == 3 and image.shape[2] == 4:
        mode = "RGBA"
    elif image.ndim == 2:
        mode = "L"
    else:
        raise ValueError(f"Cannot save image of shape {image.shape} as PNG")
    PILImage.fromarray(image_to_uint8(image), mode=mode).save(filepath)


def save_png(
    renderer: Renderer,
    filepath: str | Path,
    *,
    exposure: float | None = None,
    tone_map: ToneMapMethod = "reinhard",
) -> None:
    """Save the current frame as a PNG file.

    By default the pipeline's display image is written unchanged. With an
    exposure the HDR radiance is re-mapped on the host first.

    Args:
        renderer: The Renderer holding the frame.
        filepath: Output file path (should end in .png).
        exposure: Optional exposure for host-side re-mapping.
        tone_map: Tone mapping used with exposure ("reinhard" or "none").
    """
    if exposure is None:
        image = renderer.get_image_numpy()
    else:
        image = process_image_for_display(
            renderer.get_hdr_image_numpy(), tone_map=tone_map, exposure=exposure
        )
    save_png_from_array(image, filepath)


def save_hdr_npy(renderer: Renderer, filepath: str | Path) -> None:
    """Save the linear radiance of the current frame as a float32 .npy file."""
    np.save(filepath, renderer.get_hdr_image_numpy().astype(np.float32))


def load_png(filepath: str | Path) -> npt.NDArray[np.float32]:
    """Load a PNG as a float RGB image in [0, 1]."""
    with PILImage.open(filepath) as img:
        return np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0


def compute_rmse(
    image_a: npt.NDArray[np.floating],
    image_b: npt.NDArray[np.floating],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
