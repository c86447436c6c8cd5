from __future__ import annotations


def test_public_api_exports() -> None:
    import fisheyecam as fc

    for name in (
        "distortion",
        "distortion_jac",
        "undistortion",
        "monotonic_max_theta",
        "project",
        "project_jac",
        "project_hess",
        "unproject",
        "FisheyeCamera",
        "FisheyeIntrinsics",
        "UNBOUNDED",
    ):
        assert hasattr(fc, name), name
