"""Camera module.

Components:
    perspective: Look-at perspective camera, right-handed view and
        projection matrices (depth in [0, 1]) and the per-frame camera fields
        read by the pipeline.
"""

from .perspective import (
    CameraState,
    PerspectiveCamera,
    eye_from_view,
    get_camera_info,
    look_at_rh,
    perspective_rh,
    setup_camera,
)

__all__ = [
    "CameraState",
    "PerspectiveCamera",
    "look_at_rh",
    "perspective_rh",
    "eye_from_view",
    "setup_camera",
    "get_camera_info",
]
