"""Monocular map initialisation from two views.

A homography and a fundamental matrix are estimated by RANSAC over the same
minimal sets. The model with the better score is decomposed into a relative
motion and the matched points are triangulated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from vslamkit.two_view import (
    RTCheck,
    check_fundamental,
    check_homography,
    check_rt,
    compute_f21,
    compute_h21,
    decompose_essential,
    normalize,
)

__all__ = ["Reconstruction", "Initializer"]

_MIN_SET = 8
_HOMOGRAPHY_RATIO = 0.40
_DEFAULT_MIN_PARALLAX = 1.0
_DEFAULT_MIN_TRIANGULATED = 50


@dataclass
class Reconstruction:
    """Relative motion from the first to the second view and its 3-D points.

    ``points`` has one row per keypoint of the first view, expressed in the
    first camera frame; ``triangulated`` flags the rows that are usable.
    """

    rotation: np.ndarray
    translation: np.ndarray
    points: np.ndarray
    triangulated: list[bool]
    parallax: float


def _points(keys) -> np.ndarray:
    if not isinstance(keys, np.ndarray):
        items = list(keys)
        if items and hasattr(items[0], "x"):
            return np.array([(p.x, p.y) for p in items], dtype=np.float64)
        keys = items
    arr = np.asarray(keys, dtype=np.float64)
    if arr.size == 0:
        return arr.reshape(0, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError("keypoints must be an (N, 2) array or a sequence of keypoints")
    return arr


class Initializer:
    """Estimates the initial two-view geometry against a reference frame."""

    def __init__(
        self,
        reference_keys,
        k: np.ndarray,
        sigma: float = 1.0,
        iterations: int = 200,
        seed: int = 0,
    ) -> None:
        self.keys1 = _points(reference_keys)
        self.k = np.asarray(k, dtype=np.float64).copy()
        if self.k.shape != (3, 3):
            raise ValueError("calibration matrix must be 3x3")
        if iterations < 1:
            raise ValueError("at least one RANSAC iteration is required")
        self.sigma = float(sigma)
        self.sigma2 = self.sigma * self.sigma
        self.max_iterations = int(iterations)
        self.seed = seed
        self.keys2: np.ndarray | None = None
        self.matches: np.ndarray = np.empty((0, 2), dtype=np.int64)
        self.matched1: list[bool] = [False] * len(self.keys1)
        self.sets: np.ndarray | None = None

    def _require_state(self) -> np.ndarray:
        if self.keys2 is None or self.sets is None:
            raise RuntimeError("initialize() must be called first")
        return self.keys2

    def initialize(
        self, current_keys, matches12: Sequence[int]
    ) -> Reconstruction | None:
        """Try to reconstruct from matches; ``matches12[i]`` is -1 if unmatched.

        Returns the reconstruction, or None when neither model gives a clear,
        well-conditioned solution.
        """
        keys2 = _points(current_keys)
        if len(matches12) != len(self.keys1):
            raise ValueError("one match entry is needed per reference keypoint")
        pairs: list[tuple[int, int]] = []
        matched1: list[bool] = []
        for i, j in enumerate(matches12):
            j = int(j)
            if j >= 0:
                if j >= len(keys2):
                    raise ValueError(f"match {i} refers to a missing keypoint {j}")
                pairs.append((i, j))
                matched1.append(True)
            else:
                matched1.append(False)
        if len(pairs) < _MIN_SET:
            raise ValueError(f"at least {_MIN_SET} matches are required")

        self.keys2 = keys2
        self.matches = np.array(pairs, dtype=np.int64)
        self.matched1 = matched1
        rng = np.random.default_rng(self.seed)
        self.sets = np.array(
            [rng.choice(len(pairs), _MIN_SET, replace=False) for _ in range(self.max_iterations)],
            dtype=np.int64,
        )

        score_h, inliers_h, h21 = self.find_homography()
        score_f, inliers_f, f21 = self.find_fundamental()

        total = score_h + score_f
        ratio = score_h / total if total > 0 else 0.0
        if ratio > _HOMOGRAPHY_RATIO:
            if h21 is None:
                return None
            return self.reconstruct_h(
                inliers_h, h21, _DEFAULT_MIN_PARALLAX, _DEFAULT_MIN_TRIANGULATED
            )
        if f21 is None:
            return None
        return self.reconstruct_f(
            inliers_f, f21, _DEFAULT_MIN_PARALLAX, _DEFAULT_MIN_TRIANGULATED
        )

    def _minimal_sets(self):
        keys2 = self._require_state()
        pn1, t1 = normalize(self.keys1)
        pn2, t2 = normalize(keys2)
        for chosen in self.sets:
            pairs = self.matches[chosen]
            yield pn1[pairs[:, 0]], pn2[pairs[:, 1]], t1, t2

    def find_homography(self) -> tuple[float, list[bool], np.ndarray | None]:
        """Best homography over all RANSAC sets: score, inlier flags, H21."""
        keys2 = self._require_state()
        best_score = 0.0
        best_inliers = [False] * len(self.matches)
        best_h: np.ndarray | None = None
        for sub1, sub2, t1, t2 in self._minimal_sets():
            hn = compute_h21(sub1, sub2)
            try:
                h21 = np.linalg.inv(t2) @ hn @ t1
                h12 = np.linalg.inv(h21)
            except np.linalg.LinAlgError:
                continue
            with np.errstate(divide="ignore", invalid="ignore"):
                score, inliers = check_homography(
                    h21, h12, self.keys1, keys2, self.matches, self.sigma
                )
            if score > best_score:
                best_score, best_inliers, best_h = score, inliers, h21.copy()
        return best_score, best_inliers, best_h

    def find_fundamental(self) -> tuple[float, list[bool], np.ndarray | None]:
        """Best fundamental matrix over all RANSAC sets: score, inlier flags, F21."""
        keys2 = self._require_state()
        best_score = 0.0
        best_inliers = [False] * len(self.matches)
        best_f: np.ndarray | None = None
        for sub1, sub2, t1, t2 in self._minimal_sets():
            fn = compute_f21(sub1, sub2)
            f21 = t2.T @ fn @ t1
            with np.errstate(divide="ignore", invalid="ignore"):
                score, inliers = check_fundamental(
                    f21, self.keys1, keys2, self.matches, self.sigma
                )
            if score > best_score:
                best_score, best_inliers, best_f = score, inliers, f21.copy()
        return best_score, best_inliers, best_f

    def _check(self, r: np.ndarray, t: np.ndarray, inliers: Sequence[bool]) -> RTCheck:
        keys2 = self._require_state()
        with np.errstate(divide="ignore", invalid="ignore"):
            return check_rt(
                r, t, self.keys1, keys2, self.matches, inliers, self.k, 4.0 * self.sigma2
            )

    def reconstruct_f(
        self,
        inliers: Sequence[bool],
        f21: np.ndarray,
        min_parallax: float = _DEFAULT_MIN_PARALLAX,
        min_triangulated: int = _DEFAULT_MIN_TRIANGULATED,
    ) -> Reconstruction | None:
        """Recover motion from a fundamental matrix via its four decompositions."""
        self._require_state()
        n_inliers = sum(1 for flag in inliers if flag)
        e21 = self.k.T @ np.asarray(f21, dtype=np.float64) @ self.k
        r1, r2, t = decompose_essential(e21)
        hypotheses = [(r1, t), (r2, t), (r1, -t), (r2, -t)]
        checks = [self._check(r, tr, inliers) for r, tr in hypotheses]
        goods = [c.n_good for c in checks]
        max_good = max(goods)
        min_good = max(int(0.9 * n_inliers), min_triangulated)
        n_similar = sum(1 for g in goods if g > 0.7 * max_good)
        if max_good < min_good or n_similar > 1:
            return None

        best = goods.index(max_good)
        check = checks[best]
        if check.parallax <= min_parallax:
            return None
        rotation, translation = hypotheses[best]
        return Reconstruction(
            rotation=rotation.copy(),
            translation=translation.copy(),
            points=check.points,
            triangulated=check.good,
            parallax=check.parallax,
        )

    def reconstruct_h(
        self,
        inliers: Sequence[bool],
        h21: np.ndarray,
        min_parallax: float = _DEFAULT_MIN_PARALLAX,
        min_triangulated: int = _DEFAULT_MIN_TRIANGULATED,
    ) -> Reconstruction | None:
        """Recover motion from a homography via its eight planar hypotheses."""
        self._require_state()
        n_inliers = sum(1 for flag in inliers if flag)
        a = np.linalg.inv(self.k) @ np.asarray(h21, dtype=np.float64) @ self.k
        u, w, vt = np.linalg.svd(a, full_matrices=True)
        s = np.linalg.det(u) * np.linalg.det(vt)
        d1, d2, d3 = (float(v) for v in w)
        if d2 == 0 or d3 == 0 or d1 / d2 < 1.00001 or d2 / d3 < 1.00001:
            return None

        aux1 = np.sqrt((d1 * d1 - d2 * d2) / (d1 * d1 - d3 * d3))
        aux3 = np.sqrt((d2 * d2 - d3 * d3) / (d1 * d1 - d3 * d3))
        x1 = (aux1, aux1, -aux1, -aux1)
        x3 = (aux3, -aux3, aux3, -aux3)
        cross = np.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3))

        hypotheses: list[tuple[np.ndarray, np.ndarray]] = []

        # d' = d2
        ctheta = (d2 * d2 + d1 * d3) / ((d1 + d3) * d2)
        aux_stheta = cross / ((d1 + d3) * d2)
        stheta = (aux_stheta, -aux_stheta, -aux_stheta, aux_stheta)
        for i in range(4):
            rp = np.eye(3)
            rp[0, 0] = ctheta
            rp[0, 2] = -stheta[i]
            rp[2, 0] = stheta[i]
            rp[2, 2] = ctheta
            tp = np.array([x1[i], 0.0, -x3[i]]) * (d1 - d3)
            tr = u @ tp
            hypotheses.append((s * u @ rp @ vt, tr / np.linalg.norm(tr)))

        # d' = -d2
        cphi = (d1 * d3 - d2 * d2) / ((d1 - d3) * d2)
        aux_sphi = cross / ((d1 - d3) * d2)
        sphi = (aux_sphi, -aux_sphi, -aux_sphi, aux_sphi)
        for i in range(4):
            rp = np.eye(3)
            rp[0, 0] = cphi
            rp[0, 2] = sphi[i]
            rp[1, 1] = -1.0
            rp[2, 0] = sphi[i]
            rp[2, 2] = -cphi
            tp = np.array([x1[i], 0.0, x3[i]]) * (d1 + d3)
            tr = u @ tp
            hypotheses.append((s * u @ rp @ vt, tr / np.linalg.norm(tr)))

        best_good = 0
        second_good = 0
        best_index = -1
        best_check: RTCheck | None = None
        for index, (r, tr) in enumerate(hypotheses):
            check = self._check(r, tr, inliers)
            if check.n_good > best_good:
                second_good = best_good
                best_good = check.n_good
                best_index = index
                best_check = check
            elif check.n_good > second_good:
                second_good = check.n_good

        if (
            best_check is not None
            and second_good < 0.75 * best_good
            and best_check.parallax >= min_parallax
            and best_good > min_triangulated
            and best_good > 0.9 * n_inliers
        ):
            rotation, translation = hypotheses[best_index]
            return Reconstruction(
                rotation=rotation.copy(),
                translation=translation.copy(),
                points=best_check.points,
                triangulated=best_check.good,
                parallax=best_check.parallax,
            )
        return None