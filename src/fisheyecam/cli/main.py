from __future__ import annotations

import argparse
import logging
import math
from pathlib import Path

import numpy as np

from fisheyecam.api.camera import FisheyeCamera
from fisheyecam.api.rectify import RectifyParams, build_perspective_maps, default_pinhole, rectify_image
from fisheyecam.core.distortion import monotonic_max_theta
from fisheyecam.core.image_io import load_image, save_image
from fisheyecam.core.numerics import UNBOUNDED
from fisheyecam.core.solver import SolverConfig
from fisheyecam.intrinsics import load_intrinsics


def _load_array(path: Path, dim: int) -> np.ndarray:
    if path.suffix.lower() == ".npz":
        with np.load(str(path)) as z:
            arr = np.asarray(z[z.files[0]], dtype=np.float64)
    elif path.suffix.lower() in (".txt", ".csv"):
        arr = np.loadtxt(str(path), delimiter="," if path.suffix.lower() == ".csv" else None, dtype=np.float64)
    else:
        arr = np.load(str(path)).astype(np.float64)
    arr = np.atleast_2d(arr)
    if arr.shape[-1] != dim:
        raise ValueError(f"{path} must contain an array of shape (..., {dim})")
    return arr


def _camera(args: argparse.Namespace) -> FisheyeCamera:
    intr = load_intrinsics(args.intrinsics)
    solver = SolverConfig(n_iter=args.n_iter, tol=args.tol)
    return FisheyeCamera.from_intrinsics(
        intr,
        min_norm=args.min_norm,
        solver=solver,
        use_monotonic_bound=not args.no_monotonic_bound,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="fisheyecam")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_model_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("intrinsics", type=Path, help="Intrinsics JSON (fisheyecam.intrinsics.v0).")
        p.add_argument("--min-norm", type=float, default=1e-6, help="On-axis radius threshold.")
        p.add_argument("--n-iter", type=int, default=20, help="Newton iterations for undistortion.")
        p.add_argument("--tol", type=float, default=1e-6, help="Newton residual tolerance.")
        p.add_argument(
            "--no-monotonic-bound",
            action="store_true",
            help="Do not restrict incidence angles to the monotonic range of the distortion.",
        )

    mt = sub.add_parser("max-theta", help="Print the monotonic bound of the distortion polynomial.")
    mt.add_argument("intrinsics", type=Path)
    mt.add_argument("--guess", type=float, default=1.57)

    proj = sub.add_parser("project", help="Project camera-frame points (N,3) to pixels.")
    add_model_args(proj)
    proj.add_argument("points", type=Path, help=".npy/.npz/.txt/.csv with (N,3) points.")
    proj.add_argument("--out", type=Path, required=True, help="Output .npz with pixels and valid.")

    unproj = sub.add_parser("unproject", help="Unproject pixels (N,2) to unit rays.")
    add_model_args(unproj)
    unproj.add_argument("pixels", type=Path, help=".npy/.npz/.txt/.csv with (N,2) pixels.")
    unproj.add_argument("--out", type=Path, required=True, help="Output .npz with rays and valid.")

    rect = sub.add_parser("rectify", help="Warp a fisheye image to a virtual pinhole view.")
    add_model_args(rect)
    rect.add_argument("image", type=Path)
    rect.add_argument("--out", type=Path, required=True)
    rect.add_argument("--width", type=int, default=None, help="Output width (default: input width).")
    rect.add_argument("--height", type=int, default=None, help="Output height (default: input height).")
    rect.add_argument("--fov-deg", type=float, default=90.0, help="Horizontal field of view of the virtual view.")

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.cmd == "max-theta":
        intr = load_intrinsics(args.intrinsics)
        if intr.radial_coeffs is None:
            print("unbounded")
            return 0
        max_theta = monotonic_max_theta(intr.radial_coeffs, guess=args.guess)
        if max_theta == UNBOUNDED:
            print("unbounded")
        else:
            print(f"{max_theta:.9f} rad ({math.degrees(max_theta):.4f} deg)")
        return 0

    if args.cmd == "project":
        cam = _camera(args)
        pixels, valid = cam.project(_load_array(args.points, 3))
        args.out.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(args.out, pixels=pixels, valid=valid)
        print(f"Wrote {args.out} ({int(np.count_nonzero(valid))}/{valid.size} valid)")
        return 0

    if args.cmd == "unproject":
        cam = _camera(args)
        rays, valid = cam.unproject(_load_array(args.pixels, 2))
        args.out.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(args.out, rays=rays, valid=valid)
        print(f"Wrote {args.out} ({int(np.count_nonzero(valid))}/{valid.size} valid)")
        return 0

    if args.cmd == "rectify":
        cam = _camera(args)
        img = load_image(args.image)
        h = args.height or img.shape[0]
        w = args.width or img.shape[1]
        fx, fy, cx, cy = default_pinhole(w, h, args.fov_deg)
        params = RectifyParams(width=w, height=h, fx=fx, fy=fy, cx=cx, cy=cy)
        maps = build_perspective_maps(cam, params)
        save_image(args.out, rectify_image(img, maps, params))
        print(f"Wrote {args.out}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
