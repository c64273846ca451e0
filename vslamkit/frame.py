"""Camera frames: keypoints, undistortion, feature grid and back-projection."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, replace
from typing import ClassVar, Sequence

import numpy as np

__all__ = [
    "FRAME_GRID_COLS",
    "FRAME_GRID_ROWS",
    "KeyPoint",
    "ImageBounds",
    "Frame",
    "undistort_points",
    "compute_image_bounds",
]

FRAME_GRID_COLS = 64
FRAME_GRID_ROWS = 48

_UNDISTORT_ITERATIONS = 5


@dataclass(frozen=True)
class KeyPoint:
    """An image feature location and the pyramid level it was detected at."""

    x: float
    y: float
    octave: int = 0


@dataclass(frozen=True)
class ImageBounds:
    """Extent of the undistorted image in pixel coordinates."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float


def _coefficients(dist_coef: Sequence[float] | None) -> np.ndarray:
    if dist_coef is None:
        return np.zeros(4, dtype=np.float64)
    coef = np.asarray(dist_coef, dtype=np.float64).reshape(-1)
    if coef.size not in (4, 5):
        raise ValueError("distortion must hold 4 or 5 coefficients (k1, k2, p1, p2[, k3])")
    return coef


def _intrinsics(k: np.ndarray) -> tuple[float, float, float, float]:
    matrix = np.asarray(k, dtype=np.float64)
    if matrix.shape != (3, 3):
        raise ValueError("calibration matrix must be 3x3")
    return matrix[0, 0], matrix[1, 1], matrix[0, 2], matrix[1, 2]


def undistort_points(
    points: np.ndarray, k: np.ndarray, dist_coef: Sequence[float] | None
) -> np.ndarray:
    """Remove lens distortion from pixel points, keeping the same camera matrix.

    ``points`` is an (N, 2) array; the result has the same shape.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    fx, fy, cx, cy = _intrinsics(k)
    coef = _coefficients(dist_coef)
    k1, k2, p1, p2 = coef[:4]
    k3 = coef[4] if coef.size > 4 else 0.0

    x0 = (pts[:, 0] - cx) / fx
    y0 = (pts[:, 1] - cy) / fy
    x = x0.copy()
    y = y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = 1.0 / (1.0 + ((k3 * r2 + k2) * r2 + k1) * r2)
        delta_x = 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
        delta_y = p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
        x = (x0 - delta_x) * icdist
        y = (y0 - delta_y) * icdist
    return np.column_stack((x * fx + cx, y * fy + cy))


def compute_image_bounds(
    width: int, height: int, k: np.ndarray, dist_coef: Sequence[float] | None
) -> ImageBounds:
    """Bounds of the image once its corners are undistorted."""
    coef = _coefficients(dist_coef)
    if coef[0] == 0.0:
        return ImageBounds(0.0, float(width), 0.0, float(height))
    corners = np.array(
        [[0.0, 0.0], [width, 0.0], [0.0, height], [width, height]], dtype=np.float64
    )
    und = undistort_points(corners, k, coef)
    return ImageBounds(
        min_x=float(min(und[0, 0], und[2, 0])),
        max_x=float(max(und[1, 0], und[3, 0])),
        min_y=float(min(und[0, 1], und[1, 1])),
        max_y=float(max(und[2, 1], und[3, 1])),
    )


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class Frame:
    """A processed camera image: its keypoints, calibration and pose."""

    _ids: ClassVar[itertools.count] = itertools.count()

    def __init__(
        self,
        keypoints: Sequence[KeyPoint],
        width: int,
        height: int,
        k: np.ndarray,
        dist_coef: Sequence[float] | None = None,
        *,
        bf: float = 0.0,
        th_depth: float = 0.0,
        timestamp: float = 0.0,
        grid_cols: int = FRAME_GRID_COLS,
        grid_rows: int = FRAME_GRID_ROWS,
    ) -> None:
        self.id = next(Frame._ids)
        self.timestamp = timestamp
        self.k = np.asarray(k, dtype=np.float64).copy()
        self.dist_coef = _coefficients(dist_coef).copy()
        self.fx, self.fy, self.cx, self.cy = (float(v) for v in _intrinsics(self.k))
        self.bf = float(bf)
        self.th_depth = float(th_depth)
        self.baseline = self.bf / self.fx
        self.grid_cols = grid_cols
        self.grid_rows = grid_rows

        self.keypoints: list[KeyPoint] = list(keypoints)
        self.keypoints_un: list[KeyPoint] = self._undistort_keypoints()
        n = len(self.keypoints)
        self.u_right: list[float] = [-1.0] * n
        self.depths: list[float] = [-1.0] * n
        self.map_points: list[object | None] = [None] * n
        self.outliers: list[bool] = [False] * n

        self.bounds = compute_image_bounds(width, height, self.k, self.dist_coef)
        self.grid_width_inv = grid_cols / (self.bounds.max_x - self.bounds.min_x)
        self.grid_height_inv = grid_rows / (self.bounds.max_y - self.bounds.min_y)
        self.grid: list[list[list[int]]] = [
            [[] for _ in range(grid_rows)] for _ in range(grid_cols)
        ]
        for index, kp in enumerate(self.keypoints_un):
            cell = self.grid_cell(kp)
            if cell is not None:
                self.grid[cell[0]][cell[1]].append(index)

        self.tcw: np.ndarray | None = None
        self.rcw: np.ndarray | None = None
        self.rwc: np.ndarray | None = None
        self.t_cw: np.ndarray | None = None
        self.ow: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self.keypoints)

    def _undistort_keypoints(self) -> list[KeyPoint]:
        if not self.keypoints or self.dist_coef[0] == 0.0:
            return list(self.keypoints)
        pts = np.array([(kp.x, kp.y) for kp in self.keypoints], dtype=np.float64)
        und = undistort_points(pts, self.k, self.dist_coef)
        return [
            replace(kp, x=float(u), y=float(v))
            for kp, (u, v) in zip(self.keypoints, und)
        ]

    def set_pose(self, tcw: np.ndarray) -> None:
        """Set the world-to-camera transform and derive rotation and centre."""
        matrix = np.array(tcw, dtype=np.float64)
        if matrix.shape[0] < 3 or matrix.shape[1] < 4:
            raise ValueError("pose must have at least 3 rows and 4 columns")
        self.tcw = matrix
        self.rcw = matrix[:3, :3].copy()
        self.rwc = self.rcw.T.copy()
        self.t_cw = matrix[:3, 3].copy()
        self.ow = -self.rcw.T @ self.t_cw

    def grid_cell(self, keypoint: KeyPoint) -> tuple[int, int] | None:
        """Grid cell of an undistorted keypoint, or None if outside the grid."""
        pos_x = _round_half_away((keypoint.x - self.bounds.min_x) * self.grid_width_inv)
        pos_y = _round_half_away((keypoint.y - self.bounds.min_y) * self.grid_height_inv)
        if not (0 <= pos_x < self.grid_cols and 0 <= pos_y < self.grid_rows):
            return None
        return pos_x, pos_y

    def features_in_area(
        self, x: float, y: float, r: float, min_level: int = -1, max_level: int = -1
    ) -> list[int]:
        """Indices of keypoints within a square window of half-size ``r``.

        A negative ``max_level`` and a non-positive ``min_level`` disable the
        pyramid level filter on that side.
        """
        b = self.bounds
        min_cx = max(0, math.floor((x - b.min_x - r) * self.grid_width_inv))
        if min_cx >= self.grid_cols:
            return []
        max_cx = min(self.grid_cols - 1, math.ceil((x - b.min_x + r) * self.grid_width_inv))
        if max_cx < 0:
            return []
        min_cy = max(0, math.floor((y - b.min_y - r) * self.grid_height_inv))
        if min_cy >= self.grid_rows:
            return []
        max_cy = min(self.grid_rows - 1, math.ceil((y - b.min_y + r) * self.grid_height_inv))
        if max_cy < 0:
            return []

        check_levels = min_level > 0 or max_level >= 0
        found: list[int] = []
        for ix in range(min_cx, max_cx + 1):
            for iy in range(min_cy, max_cy + 1):
                for index in self.grid[ix][iy]:
                    kp = self.keypoints_un[index]
                    if check_levels:
                        if kp.octave < min_level:
                            continue
                        if max_level >= 0 and kp.octave > max_level:
                            continue
                    if abs(kp.x - x) < r and abs(kp.y - y) < r:
                        found.append(index)
        return found

    def set_depth_from_image(self, depth_image: np.ndarray) -> None:
        """Read each keypoint's depth and derive a virtual right coordinate."""
        depth = np.asarray(depth_image)
        rows, cols = depth.shape[:2]
        n = len(self.keypoints)
        self.u_right = [-1.0] * n
        self.depths = [-1.0] * n
        for i, (kp, kp_un) in enumerate(zip(self.keypoints, self.keypoints_un)):
            row, col = int(kp.y), int(kp.x)
            if not (0 <= row < rows and 0 <= col < cols):
                raise IndexError(f"keypoint {i} lies outside the depth image")
            d = float(depth[row, col])
            if d > 0:
                self.depths[i] = d
                self.u_right[i] = kp_un.x - self.bf / d

    def unproject_stereo(self, index: int) -> np.ndarray | None:
        """World position of a keypoint with known depth, or None without depth."""
        z = self.depths[index]
        if z <= 0:
            return None
        if self.rwc is None or self.ow is None:
            raise RuntimeError("frame pose has not been set")
        kp = self.keypoints_un[index]
        x = (kp.x - self.cx) * z / self.fx
        y = (kp.y - self.cy) * z / self.fy
        return self.rwc @ np.array([x, y, z]) + self.ow