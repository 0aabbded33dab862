# sadnav

Building blocks for vehicle navigation and lidar point-cloud work, built on numpy.

## What is in the package

- **Rotation and pose algebra** (`sadnav.geometry`): `hat`, `so3_exp`, `so3_log`,
  `right_jacobian`, `right_jacobian_inv`, `rot_z`, `quaternion_from_matrix` and
  `matrix_from_quaternion` (quaternions are `(w, x, y, z)`). There is also a rigid-body
  `Pose` with `inverse`, `compose`, `transform` and `matrix`. `pose_a @ pose_b` composes
  two poses and `pose @ point` transforms a point.
- **Sensor readings and state** (`sadnav.state`): `IMU` (angular rate and specific
  force), `Odom` (wheel pulses), `GNSS` (a reading already converted to a `Pose` in the
  map frame) and `NavState` (time, rotation, position, velocity, biases; `pose()`
  returns a `Pose`).
- **Error-state Kalman filter** (`sadnav.eskf`): `ESKF` with `EskfOptions`. It has an
  18-dimensional error state ordered position, velocity, rotation, gyro bias,
  accelerometer bias and gravity. `predict` propagates with one IMU reading. It returns
  `False` and skips the reading when the interval exceeds five IMU periods.
  Corrections come from `observe_wheel_speed`, `observe_gps` and `observe_se3`. The
  first GNSS reading sets the pose directly. Later readings need a valid heading.
  Readings older than the filter time raise `ValueError`. `nominal_state`,
  `nominal_pose`, `set_state` and `set_cov` read and overwrite the state.
- **IMU dead reckoning** (`sadnav.imu_integration.IMUIntegration`): it integrates
  readings with known biases and gravity. Only intervals between 0 and 0.1 s are
  integrated.
- **Static IMU initialisation** (`sadnav.static_imu_init`): `StaticIMUInit` with
  `StaticInitOptions`. It estimates the initial biases, the noise variances and the
  gravity direction from readings collected while the vehicle stands still. Wheel
  odometry decides when the vehicle is still, unless `use_speed_for_static_checking`
  is off.
- **IMU preintegration** (`sadnav.preintegration`): `IMUPreintegration` with
  `PreintegrationOptions`. It accumulates relative rotation, velocity and position,
  together with their 9x9 covariance and their bias Jacobians. `delta_rotation`,
  `delta_velocity` and `delta_position` give values corrected to first order for new
  biases. `predict` gives the state reached from a start state.
- **Inertial residual** (`sadnav.inertial_edge.InertialEdge`): the 9-dimensional
  preintegration residual between two frames, with its analytic Jacobians and its
  24x24 Gauss-Newton Hessian.
- **Circular-motion simulation** (`sadnav.motion.simulate_circular_motion`): a
  generator of `NavState`s for a vehicle turning at constant speed. The attitude is
  updated by the exponential map or by a first-order quaternion step. The generator
  runs forever when `steps` is `None`.
- **Nearest-neighbour search** over point clouds, given as `(N, 3)` arrays. Extra
  columns are ignored. Matches are `(reference_index, query_index)` pairs, and
  `sadnav.bfnn.INVALID_ID` (-1) marks a missing neighbour.
  - `sadnav.bfnn`: `bfnn_point`, `bfnn_point_k`, `bfnn_cloud`, `bfnn_cloud_mt`
    (thread pool) and `bfnn_cloud_mt_k`.
  - `sadnav.gridnn`: `GridNN(dim, resolution, nearby_type)`, a 2D or 3D hash grid.
    `NearbyType` chooses the cells that are searched: `CENTER`, `NEARBY4` and `NEARBY8`
    in 2D, `CENTER` and `NEARBY6` in 3D.
  - `sadnav.kdtree`: `KdTree` and `KdTreeNode`. Approximate search is on by default
    with `alpha = 0.1`; turn it off with `set_enable_ann(False, ...)`. `describe()`
    lists the nodes.
  - `sadnav.octo_tree`: `OctoTree`, `OctoTreeNode` and `Box3D`. The search is exact
    by default; `set_approximate` enables approximate search.
- **Cloud projections** (`sadnav.projection`):
  - `bird_eye_image` renders a top-down RGB image of the points within a height band.
  - `range_image` renders an azimuth-by-elevation RGB image of a scan, coloured by
    range.
  - `save_png` writes either image to a file.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Predicting with a stationary IMU:

```python
import numpy as np
from sadnav.eskf import ESKF, EskfOptions
from sadnav.state import IMU

eskf = ESKF()
eskf.set_initial_conditions(EskfOptions(), np.zeros(3), np.zeros(3), np.array([0.0, 0.0, -9.8]))
for i in range(1, 101):
    eskf.predict(IMU(timestamp=0.01 * i, gyro=np.zeros(3), acce=np.array([0.0, 0.0, 9.8])))
print(eskf.nominal_state())
```

Exact k-nearest neighbours with the k-d tree:

```python
import numpy as np
from sadnav.kdtree import KdTree

cloud = np.random.default_rng(0).uniform(size=(1000, 3))
tree = KdTree()
tree.build_tree(cloud)
tree.set_enable_ann(False, 1.0)
print(tree.get_closest_point(np.array([0.5, 0.5, 0.5]), 5))
```

Saving a bird's-eye view:

```python
import numpy as np
from sadnav.projection import bird_eye_image, save_png

points = np.random.default_rng(1).uniform([-20, -20, 0], [20, 20, 3], size=(5000, 3))
save_png(bird_eye_image(points, resolution=0.1, min_z=0.2, max_z=2.5), "bev.png")
```

## What the package does not do

- It is a library only. It installs no command-line programs and has no viewer or
  window of any kind.
- It reads no data files: no point-cloud files, recorded sensor logs or text datasets.
  Clouds and readings are passed in as numpy arrays and the classes in
  `sadnav.state`. `save_png` is the only file output.
- It does not convert latitude and longitude to map coordinates. `GNSS` readings must
  already carry a pose in the map frame.
- It contains no graph optimiser. `InertialEdge` supplies the residual, Jacobians and
  Hessian, but solving for the states is left to the caller.