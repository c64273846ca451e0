# vslamkit

Building blocks for feature-based visual SLAM, written on top of NumPy.

## What is in the package

- `vslamkit.two_view`: the normalising transform (`normalize`), direct
  linear estimation of a homography (`compute_h21`) and of a rank-two
  fundamental matrix (`compute_f21`), their scoring against matches
  (`check_homography`, `check_fundamental`), linear triangulation
  (`triangulate`), essential-matrix decomposition (`decompose_essential`)
  and the test of one motion hypothesis (`check_rt`, which returns an
  `RTCheck`).
- `vslamkit.initializer`: `Initializer`, which runs RANSAC for a homography
  and a fundamental matrix over the same minimal sets, picks a model by
  score ratio and returns a `Reconstruction` (rotation, translation,
  triangulated points, usable-point flags and parallax) or `None`.
- `vslamkit.frame`: `KeyPoint`, `ImageBounds`, `Frame`, `undistort_points`
  and `compute_image_bounds`. A `Frame` undistorts its keypoints, places
  them in a grid for `features_in_area` queries, reads depths with
  `set_depth_from_image`, and after `set_pose` back-projects points with
  `unproject_stereo`.
- `vslamkit.converter`: `to_homogeneous`, `split_transform`,
  `sim3_to_matrix`, `to_vector3`, `to_matrix3`, `to_quaternion` (ordered
  x, y, z, w) and `to_descriptor_list`.
- `vslamkit.datasets`: `load_kitti_sequence` and `load_euroc_sequence`
  returning a `StereoSequence`, `frame_wait_time` for replaying at the
  recorded rate, and `tracking_statistics` returning a `TrackingStatistics`
  (median, mean, total, count).
- `vslamkit.vslamlab`: `key:value` argument parsing into `RunOptions`,
  `load_mono_sequence` and `load_rgbd_sequence` for `timestamp image
  [timestamp depth]` list files, `padding_zeros` and `remove_substring`.
- `vslamkit.tracking_state`: the `TrackingState` enum, the status line
  produced by `status_text`, and `classify_matches`, which splits tracked
  features into map matches and visual-odometry matches.
- `vslamkit.ar_plane`: `PlanePoint`, `Plane`, `detect_plane` (RANSAC over
  well-observed points), `exp_so3` and `ar_status_text`.

## Installation

vslamkit needs Python 3.10 or newer and NumPy. Install it from a checkout of
this directory with your usual installer; the `test` extra adds pytest.

## Usage

### Converting poses

```python
import numpy as np
from vslamkit.converter import to_homogeneous, split_transform, to_quaternion

T = to_homogeneous(np.eye(3), [1.0, 2.0, 3.0])   # 4x4, float32
R, t = split_transform(T)
qx, qy, qz, qw = to_quaternion(R)                  # [0.0, 0.0, 0.0, 1.0]
```

### Initializing from two views

```python
import numpy as np
from vslamkit.initializer import Initializer

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
init = Initializer(reference_keys, K, sigma=1.0, iterations=200, seed=0)
result = init.initialize(current_keys, matches12)
if result is not None:
    print(result.rotation, result.translation, result.parallax)
```

Keypoints may be an `(N, 2)` array or a sequence of objects with `x` and
`y` (such as `vslamkit.frame.KeyPoint`). `matches12[i]` is the index of the
current keypoint matched to reference keypoint `i`, or a negative value
when there is none; at least eight matches are required, otherwise
`ValueError` is raised. `result.points` has one row per reference keypoint,
in the first camera's frame, and `result.triangulated` marks the usable
rows.

### Frames

```python
from vslamkit.frame import Frame, KeyPoint

frame = Frame([KeyPoint(100.0, 120.0), KeyPoint(300.5, 200.0, octave=1)],
              640, 480, K, bf=40.0)
nearby = frame.features_in_area(100.0, 120.0, 5.0)    # [0]
```

### Loading sequences

```python
from vslamkit.datasets import load_kitti_sequence, tracking_statistics
from vslamkit.vslamlab import parse_arguments, load_rgbd_sequence

sequence = load_kitti_sequence("/data/kitti/00")
for left, right, timestamp in sequence.frames():
    ...

options = parse_arguments(["sequence_path:/data/seq", "rgb_txt:/data/seq/rgb.txt",
                           "exp_folder:/tmp/out", "exp_id:3"])
print(options.results_prefix())      # /tmp/out/00003

stats = tracking_statistics([0.03, 0.01, 0.02])   # median 0.02
```

### Detecting a plane for AR

```python
import numpy as np
from vslamkit.ar_plane import PlanePoint, detect_plane

plane = detect_plane(points, tcw, iterations=50, rng=np.random.default_rng(0))
if plane is not None:
    matrix = plane.gl_matrix()       # 16 values, column-major plane-to-world
```

`detect_plane` uses only points observed more than five times and returns
`None` when fewer than 50 such points are given. `Plane.recompute` refits
the plane to the points not marked `bad`; `Plane.from_normal` builds a
plane directly from a normal and an origin.

## What the package does not do

vslamkit holds geometry and bookkeeping only. It does not read or decode
images, extract or match features, build bag-of-words vocabularies, keep a
map of keyframes and points, run bundle adjustment or loop closing, draw
anything on screen, or write trajectory files. There is no command-line
program; `RunOptions` and the sequence loaders prepare inputs for code that
drives a tracker.

## Running the tests

The tests use pytest and live in `tests/`.