import numpy as np
import pytest

from vslamkit.frame import KeyPoint
from vslamkit.two_view import (
    RTCheck,
    check_fundamental,
    check_homography,
    check_rt,
    compute_f21,
    compute_h21,
    decompose_essential,
    normalize,
    triangulate,
)

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rot_y(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def _skew(v):
    return np.array([[0.0, -v[2], v[1]], [v[2], 0.0, -v[0]], [-v[1], v[0], 0.0]])


def _project(points):
    h = points @ K.T
    return h[:, :2] / h[:, 2:3]


@pytest.fixture
def scene():
    rng = np.random.default_rng(3)
    n = 60
    world = np.column_stack(
        (rng.uniform(-1.5, 1.5, n), rng.uniform(-1.0, 1.0, n), rng.uniform(4.0, 8.0, n))
    )
    r = _rot_y(0.05)
    t = np.array([-1.0, 0.1, 0.05])
    cam2 = world @ r.T + t
    pts1 = _project(world)
    pts2 = _project(cam2)
    matches = [(i, i) for i in range(n)]
    return world, r, t, pts1, pts2, matches


@pytest.fixture
def homography_pair():
    rng = np.random.default_rng(7)
    h = np.array([[1.1, 0.05, 3.0], [0.02, 0.95, -2.0], [1e-4, 2e-4, 1.0]])
    pts1 = rng.uniform(0, 400, size=(30, 2))
    hom = np.column_stack((pts1, np.ones(30))) @ h.T
    pts2 = hom[:, :2] / hom[:, 2:3]
    return h, pts1, pts2


def test_normalize_centres_and_scales():
    pts = np.array([[0.0, 0.0], [4.0, 2.0], [8.0, 10.0], [2.0, 4.0]])
    norm, transform = normalize(pts)
    assert np.allclose(norm.mean(axis=0), 0.0)
    assert np.allclose(np.abs(norm).mean(axis=0), 1.0)
    mapped = np.column_stack((pts, np.ones(4))) @ transform.T
    assert np.allclose(mapped[:, :2], norm)


def test_normalize_accepts_keypoints():
    keys = [KeyPoint(1.0, 2.0), KeyPoint(3.0, 6.0), KeyPoint(5.0, 1.0)]
    norm, _ = normalize(keys)
    assert norm.shape == (3, 2)
    assert np.allclose(norm.mean(axis=0), 0.0)


def test_normalize_rejects_empty():
    with pytest.raises(ValueError):
        normalize([])


def test_compute_h21_recovers_homography(homography_pair):
    h, pts1, pts2 = homography_pair
    n1, t1 = normalize(pts1[:8])
    n2, t2 = normalize(pts2[:8])
    hn = compute_h21(n1, n2)
    estimated = np.linalg.inv(t2) @ hn @ t1
    estimated /= estimated[2, 2]
    assert np.allclose(estimated, h, atol=1e-6)


def test_compute_h21_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        compute_h21(np.zeros((5, 2)), np.zeros((4, 2)))


def test_compute_f21_satisfies_epipolar_constraint(scene):
    _, _, _, pts1, pts2, _ = scene
    n1, t1 = normalize(pts1[:8])
    n2, t2 = normalize(pts2[:8])
    fn = compute_f21(n1, n2)
    assert abs(np.linalg.det(fn)) < 1e-10
    f = t2.T @ fn @ t1
    x1 = np.column_stack((pts1[:8], np.ones(8)))
    x2 = np.column_stack((pts2[:8], np.ones(8)))
    residuals = np.einsum("ij,jk,ik->i", x2, f, x1)
    assert np.all(np.abs(residuals) < 1e-6 * np.abs(f).max() * 1e4)


def test_compute_f21_needs_eight_points():
    with pytest.raises(ValueError):
        compute_f21(np.ones((7, 2)), np.ones((7, 2)))


def test_check_homography_exact_model_scores_all_inliers(homography_pair):
    h, pts1, pts2 = homography_pair
    matches = [(i, i) for i in range(len(pts1))]
    score, inliers = check_homography(h, np.linalg.inv(h), pts1, pts2, matches, 1.0)
    assert all(inliers)
    assert score == pytest.approx(2 * 5.991 * len(pts1), rel=1e-6)


def test_check_homography_flags_outlier(homography_pair):
    h, pts1, pts2 = homography_pair
    moved = pts2.copy()
    moved[0] += 50.0
    matches = [(i, i) for i in range(len(pts1))]
    score, inliers = check_homography(h, np.linalg.inv(h), pts1, moved, matches, 1.0)
    assert inliers[0] is False
    assert all(inliers[1:])
    assert score < 2 * 5.991 * len(pts1)


def test_check_fundamental_true_model(scene):
    _, r, t, pts1, pts2, matches = scene
    kinv = np.linalg.inv(K)
    f = kinv.T @ _skew(t) @ r @ kinv
    score, inliers = check_fundamental(f, pts1, pts2, matches, 1.0)
    assert all(inliers)
    assert score == pytest.approx(2 * 5.991 * len(matches), rel=1e-6)


def test_check_fundamental_empty_matches(scene):
    _, r, t, pts1, pts2, _ = scene
    assert check_fundamental(_skew(t) @ r, pts1, pts2, [], 1.0) == (0.0, [])


def test_triangulate_recovers_point(scene):
    world, r, t, pts1, pts2, _ = scene
    p1 = np.hstack((K, np.zeros((3, 1))))
    p2 = K @ np.hstack((r, t.reshape(3, 1)))
    x = triangulate(KeyPoint(*pts1[0]), tuple(pts2[0]), p1, p2)
    assert np.allclose(x, world[0], atol=1e-6)


def test_decompose_essential_contains_true_motion(scene):
    _, r, t, *_ = scene
    r1, r2, t_est = decompose_essential(_skew(t) @ r)
    assert np.isclose(np.linalg.norm(t_est), 1.0)
    assert abs(t_est @ (t / np.linalg.norm(t))) == pytest.approx(1.0, abs=1e-9)
    assert np.allclose(r1, r, atol=1e-9) or np.allclose(r2, r, atol=1e-9)
    for rot in (r1, r2):
        assert np.linalg.det(rot) == pytest.approx(1.0)
        assert np.allclose(rot @ rot.T, np.eye(3), atol=1e-9)


def test_check_rt_true_motion(scene):
    world, r, t, pts1, pts2, matches = scene
    keys1 = [KeyPoint(x, y) for x, y in pts1]
    keys2 = [KeyPoint(x, y) for x, y in pts2]
    result = check_rt(r, t, keys1, keys2, matches, [True] * len(matches), K, 4.0)
    assert isinstance(result, RTCheck)
    assert result.n_good == len(matches)
    assert all(result.good)
    assert np.allclose(result.points, world, atol=1e-6)
    assert 0.0 < result.parallax < 90.0


def test_check_rt_wrong_translation_sign_is_worse(scene):
    _, r, t, pts1, pts2, matches = scene
    flags = [True] * len(matches)
    right = check_rt(r, t, pts1, pts2, matches, flags, K, 4.0)
    wrong = check_rt(r, -t, pts1, pts2, matches, flags, K, 4.0)
    assert wrong.n_good < right.n_good


def test_check_rt_without_inliers(scene):
    _, r, t, pts1, pts2, matches = scene
    result = check_rt(r, t, pts1, pts2, matches, [False] * len(matches), K, 4.0)
    assert result.n_good == 0
    assert result.parallax == 0.0
    assert not any(result.good)
    assert np.all(result.points == 0.0)


def test_check_rt_rejects_mismatched_inliers(scene):
    _, r, t, pts1, pts2, matches = scene
    with pytest.raises(ValueError):
        check_rt(r, t, pts1, pts2, matches, [True], K, 4.0)