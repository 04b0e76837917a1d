#!/usr/bin/env python3
"""Render a PBR scene to a PNG file.

Renders the built-in material grid (roughness x metallic spheres) or a scene
loaded from a JSON description produced by SceneManager.save_json().

Usage:
    python -m examples.render_pbr_scene [options]

Options:
    --width WIDTH       Image width in pixels (default: 512)
    --height HEIGHT     Image height in pixels (default: 512)
    --scene PATH        JSON scene file (default: built-in material grid)
    --rows ROWS         Material grid metallic steps (default: 3)
    --cols COLS         Material grid roughness steps (default: 4)
    --filter MODE       Texture filter, bilinear or nearest (default: bilinear)
    --arch ARCH         Taichi backend: auto, cpu, gpu, cuda, vulkan, metal
    --output OUTPUT     Output file path (default: pbr_scene.png)
    --save-hdr PATH     Also save linear radiance as .npy
    --save-scene PATH   Also save the scene description as JSON
    --preview           Show the result in a Matplotlib window
    --verbose           Enable debug logging
    --quiet             Suppress progress output

Example:
    python -m examples.render_pbr_scene --width 256 --height 256 --rows 2 --cols 5
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a PBR scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=512, help="Image width in pixels (default: 512)")
    parser.add_argument(
        "--height", type=int, default=512, help="Image height in pixels (default: 512)"
    )
    parser.add_argument(
        "--scene",
        type=str,
        default=None,
        help="JSON scene file (default: built-in material grid)",
    )
    parser.add_argument("--rows", type=int, default=3, help="Metallic steps (default: 3)")
    parser.add_argument("--cols", type=int, default=4, help="Roughness steps (default: 4)")
    parser.add_argument(
        "--filter",
        choices=("bilinear", "nearest"),
        default="bilinear",
        help="Texture filter (default: bilinear)",
    )
    parser.add_argument(
        "--arch",
        type=str,
        default="auto",
        help="Taichi backend: auto, cpu, gpu, cuda, vulkan, metal (default: auto)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="pbr_scene.png",
        help="Output file path (default: pbr_scene.png)",
    )
    parser.add_argument("--save-hdr", type=str, default=None, help="Also save radiance as .npy")
    parser.add_argument("--save-scene", type=str, default=None, help="Also save the scene as JSON")
    parser.add_argument("--preview", action="store_true", help="Show the result with Matplotlib")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def render_pbr_scene(
    width: int = 512,
    height: int = 512,
    scene_path: str | None = None,
    rows: int = 3,
    cols: int = 4,
    texture_filter: str = "bilinear",
    output_path: str = "pbr_scene.png",
    hdr_path: str | None = None,
    scene_out_path: str | None = None,
    preview: bool = False,
    quiet: bool = False,
) -> Path:
    """Render a scene and save it to a PNG file.

    Taichi must already be initialized.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from src.shading.config import RenderConfig
    from src.shading.core.renderer import Renderer
    from src.shading.preview.export import save_hdr_npy, save_png
    from src.shading.scene.demo import MaterialGridParams, create_material_grid_scene
    from src.shading.scene.manager import load_scene_json

    config = RenderConfig(width=width, height=height, texture_filter=texture_filter)
    aspect = width / height

    if scene_path is None:
        if not quiet:
            print(f"Creating material grid scene ({rows}x{cols} spheres)...")
        scene, camera = create_material_grid_scene(
            MaterialGridParams(rows=rows, cols=cols, aspect_ratio=aspect)
        )
    else:
        if not quiet:
            print(f"Loading scene from {scene_path}...")
        scene = load_scene_json(scene_path)
        if scene.camera is None:
            raise RuntimeError(f"Scene {scene_path} has no camera")
        camera = scene.camera
        camera.aspect_ratio = aspect

    scene.upload(camera)
    if scene_out_path is not None:
        scene.save_json(scene_out_path)

    renderer = Renderer.from_config(config)

    if not quiet:
        print(
            f"Rendering {scene.get_triangle_count()} triangles, "
            f"{scene.lights.count} lights at {width}x{height}..."
        )

    start_time = time.time()
    renderer.render()

    output_file = Path(output_path)
    save_png(renderer, output_file)
    if hdr_path is not None:
        save_hdr_npy(renderer, hdr_path)

    total_time = time.time() - start_time
    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {total_time:.2f}s")

    if preview:
        from src.shading.preview.display import show_preview

        show_preview(renderer)

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    from src.shading.config import init_taichi

    try:
        backend = init_taichi(args.arch)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if not args.quiet:
        print(f"Using {backend.upper()} backend")

    try:
        render_pbr_scene(
            width=args.width,
            height=args.height,
            scene_path=args.scene,
            rows=args.rows,
            cols=args.cols,
            texture_filter=args.filter,
            output_path=args.output,
            hdr_path=args.save_hdr,
            scene_out_path=args.save_scene,
            preview=args.preview,
            quiet=args.quiet,
        )
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
