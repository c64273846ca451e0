"""Two-view geometry: homography, fundamental matrix and motion checks."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

__all__ = [
    "RTCheck",
    "normalize",
    "compute_h21",
    "compute_f21",
    "check_homography",
    "check_fundamental",
    "triangulate",
    "decompose_essential",
    "check_rt",
]

_CHI2_ONE_DOF = 3.841
_CHI2_TWO_DOF = 5.991
_PARALLAX_COS_LIMIT = 0.99998
_PARALLAX_RANK = 50


@dataclass
class RTCheck:
    """Outcome of testing one motion hypothesis against the matches.

    ``points`` has one row per keypoint of the first view; rows of points
    that were not reconstructed are zero. ``good`` flags points seen with
    enough parallax. ``parallax`` is in degrees.
    """

    n_good: int
    points: np.ndarray
    good: list[bool]
    parallax: float


def _as_points(points) -> np.ndarray:
    if not isinstance(points, np.ndarray):
        items = list(points)
        if items and hasattr(items[0], "x"):
            return np.array([(p.x, p.y) for p in items], dtype=np.float64)
        points = items
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return arr.reshape(0, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError("points must be an (N, 2) array or a sequence of keypoints")
    return arr


def _xy(point) -> tuple[float, float]:
    if hasattr(point, "x"):
        return float(point.x), float(point.y)
    x, y = point
    return float(x), float(y)


def _as_matches(matches) -> np.ndarray:
    arr = np.asarray(list(matches), dtype=np.int64)
    if arr.size == 0:
        return arr.reshape(0, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError("matches must be pairs of (index1, index2)")
    return arr


def normalize(points) -> tuple[np.ndarray, np.ndarray]:
    """Centre points and scale them to unit mean absolute deviation.

    Returns the normalised points and the 3x3 transform that produces them.
    """
    pts = _as_points(points)
    if len(pts) == 0:
        raise ValueError("cannot normalise an empty point set")
    mean = pts.mean(axis=0)
    centred = pts - mean
    dev = np.abs(centred).mean(axis=0)
    if np.any(dev == 0):
        raise ValueError("points have no spread along one axis")
    scale = 1.0 / dev
    transform = np.eye(3)
    transform[0, 0], transform[1, 1] = scale
    transform[0, 2] = -mean[0] * scale[0]
    transform[1, 2] = -mean[1] * scale[1]
    return centred * scale, transform


def _paired(points1, points2, minimum: int) -> tuple[np.ndarray, np.ndarray]:
    p1 = _as_points(points1)
    p2 = _as_points(points2)
    if len(p1) != len(p2):
        raise ValueError("point sets differ in length")
    if len(p1) < minimum:
        raise ValueError(f"at least {minimum} correspondences are required")
    return p1, p2


def compute_h21(points1, points2) -> np.ndarray:
    """Homography mapping view-1 points to view-2 points by direct linear transform."""
    p1, p2 = _paired(points1, points2, 4)
    u1, v1 = p1[:, 0], p1[:, 1]
    u2, v2 = p2[:, 0], p2[:, 1]
    zeros = np.zeros_like(u1)
    ones = np.ones_like(u1)
    rows_a = np.column_stack((zeros, zeros, zeros, -u1, -v1, -ones, v2 * u1, v2 * v1, v2))
    rows_b = np.column_stack((u1, v1, ones, zeros, zeros, zeros, -u2 * u1, -u2 * v1, -u2))
    a = np.empty((2 * len(p1), 9))
    a[0::2] = rows_a
    a[1::2] = rows_b
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    return vt[8].reshape(3, 3)


def compute_f21(points1, points2) -> np.ndarray:
    """Fundamental matrix (rank two) from eight or more correspondences."""
    p1, p2 = _paired(points1, points2, 8)
    u1, v1 = p1[:, 0], p1[:, 1]
    u2, v2 = p2[:, 0], p2[:, 1]
    a = np.column_stack(
        (u2 * u1, u2 * v1, u2, v2 * u1, v2 * v1, v2, u1, v1, np.ones_like(u1))
    )
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    f_pre = vt[8].reshape(3, 3)
    u, w, vt = np.linalg.svd(f_pre, full_matrices=True)
    w[2] = 0.0
    return u @ np.diag(w) @ vt


def _matched(keys1, keys2, matches) -> tuple[np.ndarray, np.ndarray]:
    pts1 = _as_points(keys1)
    pts2 = _as_points(keys2)
    pairs = _as_matches(matches)
    return pts1[pairs[:, 0]], pts2[pairs[:, 1]]


def _transfer(h: np.ndarray, pts: np.ndarray) -> np.ndarray:
    homogeneous = np.column_stack((pts, np.ones(len(pts)))) @ h.T
    return homogeneous[:, :2] / homogeneous[:, 2:3]


def check_homography(
    h21: np.ndarray, h12: np.ndarray, keys1, keys2, matches, sigma: float
) -> tuple[float, list[bool]]:
    """Score a homography by symmetric transfer error; return score and inliers."""
    h21 = np.asarray(h21, dtype=np.float64)
    h12 = np.asarray(h12, dtype=np.float64)
    p1, p2 = _matched(keys1, keys2, matches)
    if len(p1) == 0:
        return 0.0, []
    inv_sigma2 = 1.0 / (sigma * sigma)
    chi1 = np.sum((p1 - _transfer(h12, p2)) ** 2, axis=1) * inv_sigma2
    chi2 = np.sum((p2 - _transfer(h21, p1)) ** 2, axis=1) * inv_sigma2
    th = _CHI2_TWO_DOF
    ok1 = ~(chi1 > th)
    ok2 = ~(chi2 > th)
    score = float(np.sum(np.where(ok1, th - chi1, 0.0)) + np.sum(np.where(ok2, th - chi2, 0.0)))
    return score, [bool(v) for v in ok1 & ok2]


def check_fundamental(
    f21: np.ndarray, keys1, keys2, matches, sigma: float
) -> tuple[float, list[bool]]:
    """Score a fundamental matrix by point-to-epipolar-line distance in both views."""
    f = np.asarray(f21, dtype=np.float64)
    p1, p2 = _matched(keys1, keys2, matches)
    if len(p1) == 0:
        return 0.0, []
    inv_sigma2 = 1.0 / (sigma * sigma)
    x1 = np.column_stack((p1, np.ones(len(p1))))
    x2 = np.column_stack((p2, np.ones(len(p2))))

    lines2 = x1 @ f.T
    num2 = np.sum(lines2 * x2, axis=1)
    chi1 = num2 * num2 / (lines2[:, 0] ** 2 + lines2[:, 1] ** 2) * inv_sigma2

    lines1 = x2 @ f
    num1 = np.sum(lines1 * x1, axis=1)
    chi2 = num1 * num1 / (lines1[:, 0] ** 2 + lines1[:, 1] ** 2) * inv_sigma2

    ok1 = ~(chi1 > _CHI2_ONE_DOF)
    ok2 = ~(chi2 > _CHI2_ONE_DOF)
    score = float(
        np.sum(np.where(ok1, _CHI2_TWO_DOF - chi1, 0.0))
        + np.sum(np.where(ok2, _CHI2_TWO_DOF - chi2, 0.0))
    )
    return score, [bool(v) for v in ok1 & ok2]


def triangulate(point1, point2, p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
    """Linear triangulation of one correspondence from two 3x4 projection matrices."""
    x1, y1 = _xy(point1)
    x2, y2 = _xy(point2)
    p1 = np.asarray(p1, dtype=np.float64)
    p2 = np.asarray(p2, dtype=np.float64)
    a = np.vstack(
        (
            x1 * p1[2] - p1[0],
            y1 * p1[2] - p1[1],
            x2 * p2[2] - p2[0],
            y2 * p2[2] - p2[1],
        )
    )
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    x = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return x[:3] / x[3]


def decompose_essential(e: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split an essential matrix into two candidate rotations and a unit translation."""
    u, _, vt = np.linalg.svd(np.asarray(e, dtype=np.float64))
    t = u[:, 2] / np.linalg.norm(u[:, 2])
    w = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    r1 = u @ w @ vt
    if np.linalg.det(r1) < 0:
        r1 = -r1
    r2 = u @ w.T @ vt
    if np.linalg.det(r2) < 0:
        r2 = -r2
    return r1, r2, t


def check_rt(
    r: np.ndarray,
    t: np.ndarray,
    keys1,
    keys2,
    matches,
    inliers: Sequence[bool],
    k: np.ndarray,
    th2: float,
) -> RTCheck:
    """Triangulate inlier matches under motion (r, t) and count the good ones."""
    r = np.asarray(r, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).reshape(3)
    k = np.asarray(k, dtype=np.float64)
    pts1 = _as_points(keys1)
    pts2 = _as_points(keys2)
    pairs = _as_matches(matches)
    if len(inliers) != len(pairs):
        raise ValueError("inlier flags and matches differ in length")

    fx, fy, cx, cy = k[0, 0], k[1, 1], k[0, 2], k[1, 2]
    points = np.zeros((len(pts1), 3))
    good = [False] * len(pts1)
    cos_parallaxes: list[float] = []

    proj1 = np.hstack((k, np.zeros((3, 1))))
    proj2 = k @ np.hstack((r, t.reshape(3, 1)))
    o1 = np.zeros(3)
    o2 = -r.T @ t

    for (i1, i2), is_inlier in zip(pairs, inliers):
        if not is_inlier:
            continue
        kp1 = pts1[i1]
        kp2 = pts2[i2]
        p3d_c1 = triangulate(kp1, kp2, proj1, proj2)
        if not np.all(np.isfinite(p3d_c1)):
            good[i1] = False
            continue

        normal1 = p3d_c1 - o1
        normal2 = p3d_c1 - o2
        cos_parallax = float(
            normal1 @ normal2 / (np.linalg.norm(normal1) * np.linalg.norm(normal2))
        )

        if p3d_c1[2] <= 0 and cos_parallax < _PARALLAX_COS_LIMIT:
            continue
        p3d_c2 = r @ p3d_c1 + t
        if p3d_c2[2] <= 0 and cos_parallax < _PARALLAX_COS_LIMIT:
            continue

        im1 = np.array([fx * p3d_c1[0] / p3d_c1[2] + cx, fy * p3d_c1[1] / p3d_c1[2] + cy])
        if np.sum((im1 - kp1) ** 2) > th2:
            continue
        im2 = np.array([fx * p3d_c2[0] / p3d_c2[2] + cx, fy * p3d_c2[1] / p3d_c2[2] + cy])
        if np.sum((im2 - kp2) ** 2) > th2:
            continue

        cos_parallaxes.append(cos_parallax)
        points[i1] = p3d_c1
        if cos_parallax < _PARALLAX_COS_LIMIT:
            good[i1] = True

    n_good = len(cos_parallaxes)
    if n_good:
        cos_parallaxes.sort()
        chosen = cos_parallaxes[min(_PARALLAX_RANK, n_good - 1)]
        parallax = math.degrees(math.acos(max(-1.0, min(1.0, chosen))))
    else:
        parallax = 0.0
    return RTCheck(n_good=n_good, points=points, good=good, parallax=parallax)