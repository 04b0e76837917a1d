"""Host-side display mapping and Matplotlib preview.

NumPy versions of the pipeline's display mapper, for post-processing the
linear HDR read-back (re-exposing, comparing against references) and for
viewing renders:

    display = (c / (c + 1)) ** (1 / 2.2)

Matplotlib is optional and only imported by the show_* functions.

Example:
    >>> from src.shading.preview.display import show_preview
    >>> from src.shading.core.renderer import Renderer
    >>>
    >>> renderer = Renderer(512, 512)
    >>> renderer.render()
    >>> show_preview(renderer)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import numpy as np
import numpy.typing as npt

from src.shading.core.vecmath import GAMMA

if TYPE_CHECKING:
    from src.shading.core.renderer import Renderer


# Type alias for tone mapping options
ToneMapMethod = Literal["none", "reinhard"]


def tone_map_reinhard(
    image: npt.NDArray[np.float32],
) -> npt.NDArray[np.float32]:
    """Apply Reinhard tone mapping: c / (1 + c), per channel.

    Args:
        image: Linear HDR image, any shape, non-negative.

    Returns:
        Tone mapped image in [0, 1).
    """
    image = np.maximum(image, 0.0)
    return (image / (1.0 + image)).astype(np.float32)


def gamma_encode(
    image: npt.NDArray[np.float32],
    gamma: float = GAMMA,
) -> npt.NDArray[np.float32]:
    """Linear to display: x ** (1 / gamma). Negative values clamp to 0."""
    if gamma == 1.0:
        return image.astype(np.float32)
    return np.power(np.maximum(image, 0.0), 1.0 / gamma).astype(np.float32)


def gamma_decode(
    image: npt.NDArray[np.float32],
    gamma: float = GAMMA,
) -> npt.NDArray[np.float32]:
    """Display to linear: x ** gamma. Negative values clamp to 0."""
    return np.power(np.maximum(image, 0.0), gamma).astype(np.float32)


def display_map(radiance: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Reinhard then gamma 2.2, exactly as the pipeline's display stage."""
    return gamma_encode(tone_map_reinhard(radiance))


def process_image_for_display(
    image: npt.NDArray[np.float32],
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = GAMMA,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Map a linear HDR image to displayable [0, 1] values.

    Applies exposure scaling, optional tone mapping, gamma encoding and a
    final clamp.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        tone_map: "reinhard" (pipeline default) or "none".
        gamma: Gamma value (default 2.2).
        exposure: Linear scale applied before tone mapping.

    Returns:
        Processed image in [0, 1].

    Raises:
        ValueError: If the tone mapping method is unknown.
    """
    result = np.asarray(image, dtype=np.float32) * exposure

    if tone_map == "reinhard":
        result = tone_map_reinhard(result)
    elif tone_map != "none":
        raise ValueError(f"Unknown tone mapping method: {tone_map}")

    result = gamma_encode(result, gamma)
    return np.clip(result, 0.0, 1.0).astype(np.float32)


def show_preview(
    renderer: Renderer,
    *,
    exposure: float | None = None,
    show_depth: bool = False,
    title: str | None = None,
    figsize: tuple[float, float] = (8, 8),
    block: bool = True,
) -> None:
    """Display the current frame in a Matplotlib figure.

    Args:
        renderer: The Renderer holding the frame.
        exposure: If given, re-map the HDR read-back with this exposure
            instead of showing the pipeline's display image.
        show_depth: Add a second panel with the depth buffer.
        title: Custom title (default shows size and frame number).
        figsize: Figure size in inches (width, height).
        block: Whether to block execution until the figure is closed.
    """
    import matplotlib.pyplot as plt

    if exposure is None:
        image = renderer.get_image_numpy()
    else:
        image = process_image_for_display(renderer.get_hdr_image_numpy(), exposure=exposure)

    panels = 2 if show_depth else 1
    fig, axes = plt.subplots(1, panels, figsize=(figsize[0] * panels, figsize[1]))
    axes = np.atleast_1d(axes)

    axes[0].imshow(np.clip(image, 0.0, 1.0))
    axes[0].axis("off")
    if show_depth:
        axes[1].imshow(renderer.get_depth_numpy(), cmap="gray")
        axes[1].set_title("Depth")
        axes[1].axis("off")

    if title is None:
        title = f"Frame {renderer.frame_count} - {renderer.width}x{renderer.height}"
        if exposure is not None:
            title += f" (exposure {exposure})"
    axes[0].set_title(title)

    plt.tight_layout()
    plt.show(block=block)


def show_comparison(
    image_a: npt.NDArray[np.float32],
    image_b: npt.NDArray[np.float32],
    *,
    labels: tuple[str, str] = ("A", "B"),
    diff_scale: float = 10.0,
    figsize: tuple[float, float] = (16, 6),
    block: bool = True,
) -> float:
    """Show two display images side by side with their amplified difference.

    Returns:
        RMSE between the two images.
    """
    import matplotlib.pyplot as plt

    from src.shading.preview.export import compute_rmse

    rmse = compute_rmse(image_a, image_b)
    diff = np.abs(image_a.astype(np.float64) - image_b.astype(np.float64))

    fig, axes = plt.subplots(1, 3, figsize=figsize)
    axes[0].imshow(np.clip(image_a, 0.0, 1.0))
    axes[0].set_title(labels[0])
    axes[1].imshow(np.clip(image_b, 0.0, 1.0))
    axes[1].set_title(labels[1])
    axes[2].imshow(np.clip(diff * diff_scale, 0.0, 1.0))
    axes[2].set_title(f"|{labels[0]} - {labels[1]}| x{diff_scale:g} (RMSE {rmse:.4f})")
    for ax in axes:
        ax.axis("off")

    plt.tight_layout()
    plt.show(block=block)
    return rmse
