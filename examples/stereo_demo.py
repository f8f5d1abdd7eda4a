#!/usr/bin/env python3
"""Demo script for the stereo geometry core on a synthetic scene.

This script builds a random 3D scene, projects it into a rectified
stereo pair with noisy pixel coordinates and shuffled right features,
and runs the full pipeline:
- Matching with row and disparity restrictions
- Triangulation into a landmark map
- Conversion into bearing-range observations with covariance
- Alignment check of the landmarks against the ground truth

Usage:
    python examples/stereo_demo.py
"""

import numpy as np

from stereo_core import (
    SE3,
    FeatureList,
    MatchingOptions,
    MatchingPair3D,
    StereoSystemParams,
    compute_msd,
    default_intrinsics,
    match_features,
    matches_to_bearing_range,
    triangulate_matches,
)


def main() -> None:
    """Run the synthetic stereo demo."""
    # Configuration
    n_points = 200
    baseline = 0.12
    pixel_noise = 0.3
    rng = np.random.default_rng(0)

    intrinsics = default_intrinsics(0, 640, 480)
    sensor_pose = SE3.camera_mount(np.array([0.1, 0.0, 0.5]))
    params = StereoSystemParams(
        intrinsics=intrinsics, baseline=baseline, sensor_pose=sensor_pose, max_z=30.0
    )

    # Synthetic scene in the left camera frame
    points = np.column_stack(
        [
            rng.uniform(-3.0, 3.0, n_points),
            rng.uniform(-1.5, 1.5, n_points),
            rng.uniform(1.5, 20.0, n_points),
        ]
    )
    u = intrinsics.fx * points[:, 0] / points[:, 2] + intrinsics.cx
    v = intrinsics.fy * points[:, 1] / points[:, 2] + intrinsics.cy
    u_right = u - intrinsics.fx * baseline / points[:, 2]

    descriptors = rng.normal(size=(n_points, 32))
    shuffle = rng.permutation(n_points)
    noise = rng.normal(scale=pixel_noise, size=(n_points, 2))

    left = FeatureList.from_points(np.column_stack([u, v]), descriptors)
    right = FeatureList.from_points(
        (np.column_stack([u_right, v]) + noise)[shuffle],
        descriptors[shuffle] + rng.normal(scale=0.05, size=(n_points, 32)),
    )

    # Match, triangulate, convert
    options = MatchingOptions(
        use_row_restriction=True, row_threshold=3 * pixel_noise, use_x_restriction=True
    )
    matches = match_features(left, right, options)
    result = triangulate_matches(matches, params)
    observation = matches_to_bearing_range(
        matches, intrinsics, baseline, sensor_pose, (pixel_noise, pixel_noise, pixel_noise)
    )

    print(f"Features: {len(left)} left, {len(right)} right")
    print(f"Matches: {len(matches)}")
    print(f"Landmarks: {result.num_added} ({result.num_skipped} skipped)")
    print(f"Bearing-range measurements: {len(observation)}")
    print(f"Average range: {observation.ranges.mean():.2f} m")

    # Compare with ground truth expressed in the robot frame
    truth = sensor_pose.transform_points(points)
    pairs = [
        MatchingPair3D(lm.id, lm.left_index, truth[lm.left_index], lm.position)
        for lm in result.landmarks
    ]
    print(f"MSD against ground truth: {compute_msd(pairs, SE3.identity()):.4f} m^2")


if __name__ == "__main__":
    main()
