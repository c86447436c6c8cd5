from fisheyecam.api.camera import FisheyeCamera
from fisheyecam.api.rectify import RectifyParams, build_perspective_maps, rectify_image

__all__ = [
    "FisheyeCamera",
    "RectifyParams",
    "build_perspective_maps",
    "rectify_image",
]
