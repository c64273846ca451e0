"""Conversions between pose representations used across the toolkit."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

__all__ = [
    "to_descriptor_list",
    "split_transform",
    "to_homogeneous",
    "sim3_to_matrix",
    "to_vector3",
    "to_matrix3",
    "to_quaternion",
]


def to_descriptor_list(descriptors: np.ndarray) -> list[np.ndarray]:
    """Split a descriptor matrix into a list of its rows."""
    array = np.asarray(descriptors)
    if array.ndim != 2:
        raise ValueError("descriptors must be a two-dimensional array")
    return list(array)


def split_transform(transform: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return the rotation (3x3) and translation (3,) of a rigid transform."""
    matrix = np.asarray(transform, dtype=np.float64)
    if matrix.shape[0] < 3 or matrix.shape[1] < 4:
        raise ValueError("transform must have at least 3 rows and 4 columns")
    return matrix[:3, :3].copy(), matrix[:3, 3].copy()


def to_homogeneous(rotation: np.ndarray, translation: Sequence[float]) -> np.ndarray:
    """Build a 4x4 single-precision transform from a 3x3 block and a translation."""
    rot = np.asarray(rotation, dtype=np.float64)
    trans = np.asarray(translation, dtype=np.float64).reshape(-1)
    if rot.shape != (3, 3):
        raise ValueError("rotation must be 3x3")
    if trans.shape != (3,):
        raise ValueError("translation must have three elements")
    result = np.eye(4, dtype=np.float32)
    result[:3, :3] = rot
    result[:3, 3] = trans
    return result


def sim3_to_matrix(
    scale: float, rotation: np.ndarray, translation: Sequence[float]
) -> np.ndarray:
    """Build the 4x4 matrix of a similarity transform [sR | t]."""
    return to_homogeneous(scale * np.asarray(rotation, dtype=np.float64), translation)


def to_vector3(values: Sequence[float]) -> np.ndarray:
    """Return the first three values as a double-precision 3-vector."""
    flat = np.asarray(values, dtype=np.float64).reshape(-1)
    if flat.size < 3:
        raise ValueError("at least three values are required")
    return flat[:3].copy()


def to_matrix3(values: np.ndarray) -> np.ndarray:
    """Return the upper-left 3x3 block as a double-precision matrix."""
    matrix = np.asarray(values, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] < 3 or matrix.shape[1] < 3:
        raise ValueError("a matrix with at least 3 rows and 3 columns is required")
    return matrix[:3, :3].copy()


def to_quaternion(rotation: np.ndarray) -> list[float]:
    """Convert a rotation matrix to a quaternion ordered [x, y, z, w]."""
    m = to_matrix3(rotation)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    q = [0.0, 0.0, 0.0]
    if trace > 0.0:
        root = math.sqrt(trace + 1.0)
        w = 0.5 * root
        root = 0.5 / root
        q = [
            (m[2, 1] - m[1, 2]) * root,
            (m[0, 2] - m[2, 0]) * root,
            (m[1, 0] - m[0, 1]) * root,
        ]
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        root = math.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * root
        root = 0.5 / root
        w = (m[k, j] - m[j, k]) * root
        q[j] = (m[j, i] + m[i, j]) * root
        q[k] = (m[k, i] + m[i, k]) * root
    return [float(np.float32(value)) for value in (*q, w)]