"""Planes fitted to tracked map points, used to anchor virtual objects."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Sequence

import numpy as np

__all__ = [
    "PlanePoint",
    "Plane",
    "exp_so3",
    "ar_status_text",
    "detect_plane",
]

_EPS = 1e-4
_MIN_OBSERVATIONS = 5
_MIN_PLANE_POINTS = 50
_INLIER_FACTOR = 1.4
_UP = np.array([0.0, 1.0, 0.0])

_RED = (255, 0, 0)
_GREEN = (0, 255, 0)


@dataclass
class PlanePoint:
    """A map point as seen by the plane fitter."""

    position: np.ndarray
    observations: int = 0
    bad: bool = False

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).reshape(3)


def exp_so3(v: Sequence[float]) -> np.ndarray:
    """Rotation matrix of the axis-angle vector ``v`` (exponential map of so(3))."""
    vec = np.asarray(v, dtype=np.float64).reshape(-1)
    if vec.size != 3:
        raise ValueError("an axis-angle vector has three elements")
    x, y, z = vec
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    w = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    identity = np.eye(3)
    if d < _EPS:
        return identity + w + 0.5 * w @ w
    return identity + w * math.sin(d) / d + w @ w * (1.0 - math.cos(d)) / d2


def ar_status_text(
    status: int, localization_mode: bool = False
) -> tuple[str, tuple[int, int, int]] | None:
    """Banner text and its colour for a tracking status, or None if there is none."""
    mode = "LOCALIZATION" if localization_mode else "SLAM"
    if status == 1:
        return "SLAM NOT INITIALIZED", _RED
    if status == 2:
        return f"{mode} ON", _GREEN
    if status == 3:
        return f"{mode} LOST", _RED
    return None


def _random_rang() -> float:
    return -3.14 / 2 + random.random() * 3.14


def _plane_transform(normal: np.ndarray, origin: np.ndarray, rang: float) -> np.ndarray:
    """Transform whose rotation turns the up axis onto ``normal``, spun by ``rang``."""
    v = np.cross(_UP, normal)
    sa = float(np.linalg.norm(v))
    ca = float(_UP @ normal)
    angle = math.atan2(sa, ca)
    if sa > 0.0:
        axis_angle = v * angle / sa
    elif ca >= 0.0:
        axis_angle = np.zeros(3)
    else:
        axis_angle = np.array([math.pi, 0.0, 0.0])
    tpw = np.eye(4)
    tpw[:3, :3] = exp_so3(axis_angle) @ exp_so3(_UP * rang)
    tpw[:3, 3] = origin
    return tpw


class Plane:
    """A plane through a set of map points, oriented away from the camera."""

    def __init__(
        self,
        points: Sequence[PlanePoint],
        tcw: np.ndarray,
        rang: float | None = None,
    ) -> None:
        self.points: list[PlanePoint] = list(points)
        self.tcw = np.array(tcw, dtype=np.float64)
        if self.tcw.shape[0] < 3 or self.tcw.shape[1] < 4:
            raise ValueError("camera pose must have at least 3 rows and 4 columns")
        self.rang = _random_rang() if rang is None else float(rang)
        self.xc: np.ndarray | None = None
        self.normal = np.zeros(3)
        self.origin = np.zeros(3)
        self.tpw = np.eye(4)
        self.recompute()

    @classmethod
    def from_normal(
        cls, normal: Sequence[float], origin: Sequence[float], rang: float | None = None
    ) -> "Plane":
        """A plane given directly by its normal and a point on it."""
        plane = cls.__new__(cls)
        plane.points = []
        plane.tcw = None
        plane.xc = None
        plane.rang = _random_rang() if rang is None else float(rang)
        plane.normal = np.asarray(normal, dtype=np.float64).reshape(3).copy()
        plane.origin = np.asarray(origin, dtype=np.float64).reshape(3).copy()
        plane.tpw = _plane_transform(plane.normal, plane.origin, plane.rang)
        return plane

    def recompute(self) -> None:
        """Refit the plane to its points that are not marked bad."""
        if self.tcw is None:
            raise RuntimeError("a plane given by its normal has no points to refit")
        positions = [p.position for p in self.points if not p.bad]
        if not positions:
            raise ValueError("no valid points left to fit the plane")
        xyz = np.array(positions)
        a_mat = np.column_stack((xyz, np.ones(len(xyz))))
        _, _, vt = np.linalg.svd(a_mat, full_matrices=True)
        abc = vt[3, :3].copy()
        self.origin = xyz.mean(axis=0)
        norm = float(np.linalg.norm(abc))
        if norm == 0.0:
            raise ValueError("points do not define a plane")

        if self.xc is None:
            camera_centre = -self.tcw[:3, :3].T @ self.tcw[:3, 3]
            self.xc = camera_centre - self.origin
        if float(self.xc @ abc) > 0:
            abc = -abc

        self.normal = abc / norm
        self.tpw = _plane_transform(self.normal, self.origin, self.rang)

    def gl_matrix(self) -> list[float]:
        """The plane transform as 16 values in column-major order."""
        return [float(value) for value in self.tpw.T.reshape(-1)]


def detect_plane(
    points: Sequence[PlanePoint],
    tcw: np.ndarray,
    iterations: int = 50,
    rng: np.random.Generator | None = None,
) -> Plane | None:
    """Find the dominant plane among well-observed points by RANSAC.

    Returns None when fewer than 50 points are observed by more than five
    keyframes.
    """
    candidates = [p for p in points if p is not None and p.observations > _MIN_OBSERVATIONS]
    n = len(candidates)
    if n < _MIN_PLANE_POINTS:
        return None
    if iterations < 1:
        raise ValueError("at least one iteration is required")
    rng = np.random.default_rng() if rng is None else rng
    xyz = np.array([p.position for p in candidates])
    homogeneous = np.column_stack((xyz, np.ones(n)))
    nth = max(int(0.2 * n), 20)

    best_dist = 1e10
    best_distances: np.ndarray | None = None
    for _ in range(iterations):
        chosen = rng.choice(n, 3, replace=False)
        _, _, vt = np.linalg.svd(homogeneous[chosen], full_matrices=True)
        plane = vt[3]
        f = 1.0 / float(np.linalg.norm(plane))
        distances = np.abs(homogeneous @ plane) * f
        median = float(np.sort(distances)[nth])
        if median < best_dist:
            best_dist = median
            best_distances = distances

    if best_distances is None:
        return None
    threshold = _INLIER_FACTOR * best_dist
    inliers = [p for p, d in zip(candidates, best_distances) if d < threshold]
    rang = -3.14 / 2 + float(rng.random()) * 3.14
    return Plane(inliers, tcw, rang)