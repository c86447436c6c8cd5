from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from fisheyecam.cli.main import main


def _write_intrinsics(path: Path, coeffs) -> Path:
    d = {
        "schema_version": "fisheyecam.intrinsics.v0",
        "image": {"width_px": 64, "height_px": 48},
        "focal_length_px": [20.0, 20.0],
        "principal_point_px": [31.5, 23.5],
    }
    if coeffs is not None:
        d["radial_coeffs"] = list(coeffs)
    path.write_text(json.dumps(d), encoding="utf-8")
    return path


def test_max_theta(tmp_path: Path, capsys) -> None:
    assert main(["max-theta", str(_write_intrinsics(tmp_path / "a.json", (-0.5, 0.0, 0.0, 0.0)))]) == 0
    out = capsys.readouterr().out
    assert out.startswith("0.816496")

    assert main(["max-theta", str(_write_intrinsics(tmp_path / "b.json", None))]) == 0
    assert capsys.readouterr().out.strip() == "unbounded"


def test_project_then_unproject(tmp_path: Path) -> None:
    intr = _write_intrinsics(tmp_path / "cam.json", (0.02, -0.005, 0.001, -0.0001))
    points = np.array([[0.0, 0.0, 1.0], [0.3, -0.2, 1.0], [-1.0, 0.5, 2.0]])
    np.save(tmp_path / "points.npy", points)

    assert main(["project", str(intr), str(tmp_path / "points.npy"), "--out", str(tmp_path / "px.npz")]) == 0
    with np.load(tmp_path / "px.npz") as z:
        pixels = z["pixels"]
        assert z["valid"].all()
    assert pixels.shape == (3, 2)

    np.save(tmp_path / "pixels.npy", pixels)
    assert main(["unproject", str(intr), str(tmp_path / "pixels.npy"), "--out", str(tmp_path / "rays.npz")]) == 0
    with np.load(tmp_path / "rays.npz") as z:
        rays = z["rays"]
        assert z["valid"].all()
    assert np.allclose(rays, points / np.linalg.norm(points, axis=-1, keepdims=True), atol=1e-5)


def test_project_rejects_wrong_columns(tmp_path: Path) -> None:
    intr = _write_intrinsics(tmp_path / "cam.json", None)
    np.save(tmp_path / "bad.npy", np.zeros((4, 2)))
    with pytest.raises(ValueError):
        main(["project", str(intr), str(tmp_path / "bad.npy"), "--out", str(tmp_path / "o.npz")])


@pytest.mark.integration
def test_rectify_command(tmp_path: Path) -> None:
    pytest.importorskip("cv2")
    from fisheyecam.core.image_io import load_image, save_image

    intr = _write_intrinsics(tmp_path / "cam.json", (0.02, -0.005, 0.001, -0.0001))
    save_image(tmp_path / "in.png", np.full((48, 64), 128, dtype=np.uint8))
    out = tmp_path / "out.png"
    assert main(["rectify", str(intr), str(tmp_path / "in.png"), "--out", str(out), "--width", "32", "--height", "24"]) == 0
    img = load_image(out)
    assert img.shape == (24, 32, 3)
