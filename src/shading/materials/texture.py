"""Texture storage and sampling.

Textures hold raw texel values in [0, 1] exactly as authored: no color-space
conversion happens on upload or on sampling. Decoding (gamma for albedo,
the normal-map remap) is the shading evaluator's job.

Storage is a fixed pool of ``MAX_TEXTURES`` slots of up to
``MAX_TEXTURE_SIZE`` x ``MAX_TEXTURE_SIZE`` RGBA texels, preallocated to
avoid kernel recompilation. Texel (x, y) is column x and image row y, so
uv = (0, 0) addresses the top-left corner of the source image.

Sampling is a pure lookup with repeat (wrap) addressing and either bilinear
or nearest filtering, selected globally with ``set_texture_filter``.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.materials.texture import add_texture_constant, sample_texture
    >>> white = add_texture_constant((1.0, 1.0, 1.0, 1.0))
    >>> # Use within a Taichi kernel:
    >>> # texel = sample_texture(white, uv)
"""

import logging
from pathlib import Path

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm
from PIL import Image as PILImage

from src.shading.config import TextureFilter

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec4 = tm.vec4

# Texture pool capacity
MAX_TEXTURES = 32
MAX_TEXTURE_SIZE = 256

FILTER_BILINEAR = 0
FILTER_NEAREST = 1

# Texel values for the fallback textures used when a material has no map.
# The flat normal decodes to (0, 0, 1) through pow(x, 1/2.2) * 2 - 1.
_FLAT_NORMAL_XY = 0.5**2.2
DEFAULT_TEXELS: dict[str, tuple[float, float, float, float]] = {
    "albedo": (1.0, 1.0, 1.0, 1.0),
    "normal": (_FLAT_NORMAL_XY, _FLAT_NORMAL_XY, 1.0, 1.0),
    "roughness_metallic": (1.0, 1.0, 1.0, 1.0),
    "ao": (1.0, 1.0, 1.0, 1.0),
}

# =============================================================================
# Texture Field Storage
# =============================================================================

_texels = ti.Vector.field(
    4, dtype=ti.f32, shape=(MAX_TEXTURES, MAX_TEXTURE_SIZE, MAX_TEXTURE_SIZE)
)
_texture_sizes = ti.Vector.field(2, dtype=ti.i32, shape=MAX_TEXTURES)
_num_textures = ti.field(dtype=ti.i32, shape=())
_texture_filter = ti.field(dtype=ti.i32, shape=())

# Default texture slots, created lazily per registry generation
_default_textures: dict[str, int] = {}


@ti.kernel
def _upload_texels(slot: ti.i32, data: ti.types.ndarray(), width: ti.i32, height: ti.i32):
    for x, y in ti.ndrange(width, height):
        _texels[slot, x, y] = vec4(data[y, x, 0], data[y, x, 1], data[y, x, 2], data[y, x, 3])


def clear_textures() -> None:
    """Clear all textures, including the default fallback textures."""
    _num_textures[None] = 0
    _default_textures.clear()


def set_texture_filter(mode: TextureFilter) -> None:
    """Select the filtering policy for all texture lookups.

    Raises:
        ValueError: If the mode is unknown.
    """
    if mode == "bilinear":
        _texture_filter[None] = FILTER_BILINEAR
    elif mode == "nearest":
        _texture_filter[None] = FILTER_NEAREST
    else:
        raise ValueError(f"Unknown texture filter: {mode}")


def _to_rgba_float(image: npt.ArrayLike) -> npt.NDArray[np.float32]:
    """Normalize an image array to contiguous float32 RGBA in [0, 1]."""
    arr = np.asarray(image)
    if arr.ndim == 2:
        arr = arr[:, :, None]
    if arr.ndim != 3:
        raise ValueError(f"Texture must have shape (H, W) or (H, W, C), got {arr.shape}")

    if arr.dtype == np.uint8:
        arr = arr.astype(np.float32) / 255.0
    else:
        arr = arr.astype(np.float32)

    height, width, channels = arr.shape
    if channels == 1:
        rgb = np.repeat(arr, 3, axis=2)
        alpha = np.ones((height, width, 1), dtype=np.float32)
        arr = np.concatenate([rgb, alpha], axis=2)
    elif channels == 3:
        alpha = np.ones((height, width, 1), dtype=np.float32)
        arr = np.concatenate([arr, alpha], axis=2)
    elif channels != 4:
        raise ValueError(f"Texture must have 1, 3 or 4 channels, got {channels}")

    if not np.all(np.isfinite(arr)):
        raise ValueError("Texture contains non-finite values")
    return np.ascontiguousarray(arr, dtype=np.float32)


def add_texture(image: npt.ArrayLike) -> int:
    """Add a texture from an image array.

    Args:
        image: Array of shape (H, W), (H, W, 1), (H, W, 3) or (H, W, 4).
            uint8 data is scaled to [0, 1]; float data is stored as given.

    Returns:
        The texture id.

    Raises:
        ValueError: If the shape is unsupported or exceeds MAX_TEXTURE_SIZE.
        RuntimeError: If the maximum number of textures is exceeded.
    """
    data = _to_rgba_float(image)
    height, width = data.shape[:2]
    if width == 0 or height == 0:
        raise ValueError("Texture must not be empty")
    if width > MAX_TEXTURE_SIZE or height > MAX_TEXTURE_SIZE:
        raise ValueError(
            f"Texture dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_TEXTURE_SIZE}x{MAX_TEXTURE_SIZE})"
        )

    idx = _num_textures[None]
    if idx >= MAX_TEXTURES:
        raise RuntimeError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")

    _upload_texels(idx, data, width, height)
    _texture_sizes[idx] = [width, height]
    _num_textures[None] = idx + 1
    return idx


def add_texture_constant(rgba: tuple[float, float, float, float]) -> int:
    """Add a 1x1 texture holding a single texel value."""
    return add_texture(np.asarray(rgba, dtype=np.float32).reshape(1, 1, 4))


def load_texture(path: str | Path) -> int:
    """Load an image file as a texture.

    Images larger than MAX_TEXTURE_SIZE are downscaled (aspect preserved).

    Args:
        path: Path to any image format Pillow can read.

    Returns:
        The texture id.
    """
    with PILImage.open(path) as img:
        rgba = img.convert("RGBA")
        if rgba.width > MAX_TEXTURE_SIZE or rgba.height > MAX_TEXTURE_SIZE:
            original = rgba.size
            rgba.thumbnail((MAX_TEXTURE_SIZE, MAX_TEXTURE_SIZE), PILImage.Resampling.LANCZOS)
            logger.warning(f"Texture {path} downscaled from {original} to {rgba.size}")
        data = np.asarray(rgba, dtype=np.uint8)

    idx = add_texture(data)
    logger.info(f"Loaded texture {path} as id {idx} ({data.shape[1]}x{data.shape[0]})")
    return idx


def get_default_texture(kind: str) -> int:
    """Get (creating on first use) the fallback texture for a material map.

    Args:
        kind: One of "albedo", "normal", "roughness_metallic", "ao".

    Raises:
        ValueError: If the kind is unknown.
    """
    if kind not in DEFAULT_TEXELS:
        raise ValueError(f"Unknown texture kind: {kind}")
    if kind not in _default_textures:
        _default_textures[kind] = add_texture_constant(DEFAULT_TEXELS[kind])
    return _default_textures[kind]


def get_texture_count() -> int:
    return int(_num_textures[None])


def get_texture_size(texture_id: int) -> tuple[int, int]:
    """Get (width, height) of a texture."""
    if not 0 <= texture_id < _num_textures[None]:
        raise ValueError(f"Invalid texture id: {texture_id}")
    size = _texture_sizes[texture_id]
    return int(size[0]), int(size[1])


# =============================================================================
# Sampling (Taichi-compatible)
# =============================================================================


@ti.func
def _fetch(texture_id: ti.i32, x: ti.i32, y: ti.i32, size) -> vec4:
    # Python-style modulo keeps negative coordinates in range (repeat)
    return _texels[texture_id, x % size[0], y % size[1]]


@ti.func
def sample_texture(texture_id: ti.i32, uv: vec2) -> vec4:
    """Sample a texture at a UV coordinate.

    Args:
        texture_id: The texture id returned by add_texture.
        uv: Texture coordinate; values outside [0, 1] wrap around.

    Returns:
        The filtered RGBA texel value.
    """
    size = _texture_sizes[texture_id]
    w = ti.cast(size[0], ti.f32)
    h = ti.cast(size[1], ti.f32)
    result = vec4(0.0)

    if _texture_filter[None] == FILTER_NEAREST:
        x = ti.cast(ti.floor(uv.x * w), ti.i32)
        y = ti.cast(ti.floor(uv.y * h), ti.i32)
        result = _fetch(texture_id, x, y, size)
    else:
        fx = uv.x * w - 0.5
        fy = uv.y * h - 0.5
        x0f = ti.floor(fx)
        y0f = ti.floor(fy)
        tx = fx - x0f
        ty = fy - y0f
        x0 = ti.cast(x0f, ti.i32)
        y0 = ti.cast(y0f, ti.i32)
        c00 = _fetch(texture_id, x0, y0, size)
        c10 = _fetch(texture_id, x0 + 1, y0, size)
        c01 = _fetch(texture_id, x0, y0 + 1, size)
        c11 = _fetch(texture_id, x0 + 1, y0 + 1, size)
        top = tm.mix(c00, c10, tx)
        bottom = tm.mix(c01, c11, tx)
        result = tm.mix(top, bottom, ty)

    return result
