import numpy as np
import pytest

from vslamkit.frame import KeyPoint
from vslamkit.initializer import Initializer, Reconstruction

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rot_y(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def _project(points):
    proj = points @ K.T
    return proj[:, :2] / proj[:, 2:3]


def _scene(planar=False, n=150, seed=1):
    rng = np.random.default_rng(seed)
    x = rng.uniform(-2.0, 2.0, n)
    y = rng.uniform(-1.5, 1.5, n)
    if planar:
        z = 5.0 + 0.2 * x + 0.1 * y
    else:
        z = rng.uniform(4.0, 8.0, n)
    world = np.column_stack((x, y, z))
    r = _rot_y(0.05)
    t = np.array([1.0, 0.0, 0.0]) if not planar else np.array([0.8, 0.0, 0.2])
    cam2 = world @ r.T + t
    return _project(world), _project(cam2), r, t, world


def _skew(v):
    return np.array([[0.0, -v[2], v[1]], [v[2], 0.0, -v[0]], [-v[1], v[0], 0.0]])


def test_initialize_recovers_general_motion():
    keys1, keys2, r, t, world = _scene()
    init = Initializer(keys1, K)
    result = init.initialize(keys2, list(range(len(keys1))))
    assert isinstance(result, Reconstruction)
    assert np.allclose(result.rotation, r, atol=1e-6)
    assert np.allclose(result.translation, t / np.linalg.norm(t), atol=1e-6)
    good = np.array(result.triangulated)
    assert good.sum() > 0.9 * len(keys1)
    assert np.allclose(result.points[good], world[good], atol=1e-4)
    assert result.parallax > 1.0


def test_initialize_accepts_keypoint_objects():
    keys1, keys2, r, _, _ = _scene()
    kp1 = [KeyPoint(float(x), float(y)) for x, y in keys1]
    kp2 = [KeyPoint(float(x), float(y)) for x, y in keys2]
    result = Initializer(kp1, K).initialize(kp2, list(range(len(kp1))))
    assert result is not None
    assert np.allclose(result.rotation, r, atol=1e-6)


def test_random_sets_are_distinct_indices():
    keys1, keys2, *_ = _scene()
    init = Initializer(keys1, K, iterations=30)
    init.initialize(keys2, list(range(len(keys1))))
    assert init.sets.shape == (30, 8)
    for row in init.sets:
        assert len(set(row.tolist())) == 8
        assert row.min() >= 0 and row.max() < len(keys1)


def test_same_seed_gives_same_scores():
    keys1, keys2, *_ = _scene(planar=True)
    matches = list(range(len(keys1)))
    a = Initializer(keys1, K, iterations=20, seed=3)
    b = Initializer(keys1, K, iterations=20, seed=3)
    a.initialize(keys2, matches)
    b.initialize(keys2, matches)
    assert np.array_equal(a.sets, b.sets)
    assert a.find_fundamental()[0] == b.find_fundamental()[0]


def test_find_fundamental_satisfies_epipolar_constraint():
    keys1, keys2, *_ = _scene()
    init = Initializer(keys1, K, iterations=20)
    init.initialize(keys2, list(range(len(keys1))))
    score, inliers, f21 = init.find_fundamental()
    assert all(inliers)
    assert score > 0
    x1 = np.column_stack((keys1, np.ones(len(keys1))))
    x2 = np.column_stack((keys2, np.ones(len(keys2))))
    residual = np.einsum("ij,jk,ik->i", x2, f21, x1) / np.linalg.norm(f21)
    assert np.max(np.abs(residual)) < 1e-6


def test_find_homography_maps_planar_points():
    keys1, keys2, *_ = _scene(planar=True)
    init = Initializer(keys1, K, iterations=20)
    init.initialize(keys2, list(range(len(keys1))))
    score, inliers, h21 = init.find_homography()
    assert all(inliers)
    assert score > 0
    mapped = np.column_stack((keys1, np.ones(len(keys1)))) @ h21.T
    mapped = mapped[:, :2] / mapped[:, 2:3]
    assert np.allclose(mapped, keys2, atol=1e-5)


def test_reconstruct_f_with_true_fundamental():
    keys1, keys2, r, t, _ = _scene()
    init = Initializer(keys1, K, iterations=5)
    init.initialize(keys2, list(range(len(keys1))))
    k_inv = np.linalg.inv(K)
    f21 = k_inv.T @ _skew(t) @ r @ k_inv
    result = init.reconstruct_f([True] * len(keys1), f21, 1.0, 50)
    assert result is not None
    assert np.allclose(result.rotation, r, atol=1e-6)
    assert np.allclose(result.translation, t / np.linalg.norm(t), atol=1e-6)


def test_reconstruct_f_rejects_when_too_few_triangulated():
    keys1, keys2, r, t, _ = _scene()
    init = Initializer(keys1, K, iterations=5)
    init.initialize(keys2, list(range(len(keys1))))
    k_inv = np.linalg.inv(K)
    f21 = k_inv.T @ _skew(t) @ r @ k_inv
    assert init.reconstruct_f([True] * len(keys1), f21, 1.0, 10_000) is None


def test_reconstruct_h_rejects_equal_singular_values():
    keys1, keys2, *_ = _scene()
    init = Initializer(keys1, K, iterations=5)
    init.initialize(keys2, list(range(len(keys1))))
    assert init.reconstruct_h([True] * len(keys1), np.eye(3), 1.0, 50) is None


def test_unmatched_entries_are_skipped():
    keys1, keys2, *_ = _scene()
    matches = list(range(len(keys1)))
    matches[0] = -1
    matches[5] = -1
    init = Initializer(keys1, K, iterations=5)
    init.initialize(keys2, matches)
    assert len(init.matches) == len(keys1) - 2
    assert init.matched1[0] is False and init.matched1[1] is True


def test_too_few_matches_raise():
    keys1, keys2, *_ = _scene()
    matches = [-1] * len(keys1)
    for i in range(7):
        matches[i] = i
    with pytest.raises(ValueError):
        Initializer(keys1, K).initialize(keys2, matches)


def test_match_list_length_must_match_reference():
    keys1, keys2, *_ = _scene()
    with pytest.raises(ValueError):
        Initializer(keys1, K).initialize(keys2, list(range(10)))


def test_methods_require_initialize_first():
    keys1, *_ = _scene()
    init = Initializer(keys1, K)
    with pytest.raises(RuntimeError):
        init.find_homography()
    with pytest.raises(RuntimeError):
        init.find_fundamental()


def test_bad_calibration_raises():
    keys1, *_ = _scene()
    with pytest.raises(ValueError):
        Initializer(keys1, np.eye(4))