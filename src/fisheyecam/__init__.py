from fisheyecam import intrinsics
from fisheyecam.api import FisheyeCamera, RectifyParams, build_perspective_maps, rectify_image
from fisheyecam.core.distortion import (
    RadialCoeffs,
    distortion,
    distortion_jac,
    monotonic_max_theta,
    undistortion,
)
from fisheyecam.core.hessian import project_hess, project_hess_reference
from fisheyecam.core.numerics import UNBOUNDED
from fisheyecam.core.projection import (
    project,
    project_distorted,
    project_jac,
    unproject,
    unproject_distorted,
)
from fisheyecam.core.solver import SolverConfig
from fisheyecam.intrinsics import FisheyeIntrinsics, load_intrinsics, save_intrinsics

__all__ = [
    "intrinsics",
    "UNBOUNDED",
    "RadialCoeffs",
    "SolverConfig",
    "distortion",
    "distortion_jac",
    "undistortion",
    "monotonic_max_theta",
    "project",
    "project_distorted",
    "project_jac",
    "project_hess",
    "project_hess_reference",
    "unproject",
    "unproject_distorted",
    "FisheyeIntrinsics",
    "load_intrinsics",
    "save_intrinsics",
    "FisheyeCamera",
    "RectifyParams",
    "build_perspective_maps",
    "rectify_image",
]
