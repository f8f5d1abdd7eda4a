"""Tests for stereo triangulation."""

import logging

import numpy as np
import pytest

from stereo_core.camera import CameraIntrinsics, build_intrinsics
from stereo_core.errors import DegenerateGeometryError, InvalidParameterError, LengthMismatchError
from stereo_core.features import Feature, FeatureList
from stereo_core.landmarks import LandmarkMap
from stereo_core.matching import MatchedFeatureList, MatchedPair
from stereo_core.pose import SE3
from stereo_core.triangulation import (
    StereoSystemParams,
    triangulate_feature_lists,
    triangulate_matches,
    triangulate_point,
)

BASELINE = 0.12


def project(point: np.ndarray, intrinsics: CameraIntrinsics) -> tuple[Feature, Feature]:
    """Project a camera-frame 3D point into a rectified stereo pair.

    Args:
        point: (X, Y, Z) in the left camera frame
        intrinsics: Shared intrinsics

    Returns:
        Tuple of (left feature, right feature)
    """
    x, y, z = point
    u = intrinsics.fx * x / z + intrinsics.cx
    v = intrinsics.fy * y / z + intrinsics.cy
    return Feature(u, v), Feature(u - intrinsics.fx * BASELINE / z, v)


def make_matches(pairs: list[tuple[Feature, Feature]]) -> MatchedFeatureList:
    """Wrap (left, right) features as matched pairs with index = position."""
    return MatchedFeatureList(
        [MatchedPair(i, i, left, right, 0.0) for i, (left, right) in enumerate(pairs)]
    )


@pytest.fixture
def intrinsics() -> CameraIntrinsics:
    return build_intrinsics(500, 480, 320, 240)


@pytest.fixture
def scene_points() -> np.ndarray:
    """Known 3D points in front of the rig.

    Returns:
        Nx3 array in the left camera frame
    """
    return np.array(
        [
            [0.0, 0.0, 2.0],
            [0.5, -0.3, 4.0],
            [-1.2, 0.4, 7.5],
            [2.0, 1.0, 12.0],
        ]
    )


class TestTriangulatePoint:
    """Test suite for triangulate_point."""

    def test_round_trip(self, intrinsics: CameraIntrinsics, scene_points: np.ndarray):
        """Test that projecting then triangulating recovers the point."""
        for point in scene_points:
            left, right = project(point, intrinsics)
            recovered = triangulate_point(left.x, left.y, right.x, intrinsics, BASELINE)
            np.testing.assert_allclose(recovered, point, atol=1e-9)

    @pytest.mark.parametrize("x_right", [100.0, 120.0])
    def test_degenerate_disparity(self, intrinsics: CameraIntrinsics, x_right: float):
        """Test that zero or negative disparity fails."""
        with pytest.raises(DegenerateGeometryError):
            triangulate_point(100.0, 50.0, x_right, intrinsics, BASELINE)

    def test_invalid_baseline(self, intrinsics: CameraIntrinsics):
        """Test that a non-positive baseline fails."""
        with pytest.raises(InvalidParameterError):
            triangulate_point(100.0, 50.0, 90.0, intrinsics, 0.0)


class TestStereoSystemParams:
    """Test suite for StereoSystemParams validation."""

    def test_baseline_must_be_positive(self, intrinsics: CameraIntrinsics):
        """Test that a zero baseline fails."""
        with pytest.raises(InvalidParameterError, match="Baseline"):
            StereoSystemParams(intrinsics=intrinsics, baseline=0.0)

    def test_depth_range(self, intrinsics: CameraIntrinsics):
        """Test that an empty depth range fails."""
        with pytest.raises(InvalidParameterError):
            StereoSystemParams(intrinsics=intrinsics, baseline=0.1, min_z=5.0, max_z=2.0)


class TestTriangulateMatches:
    """Test suite for triangulate_matches."""

    def test_recovers_scene(self, intrinsics: CameraIntrinsics, scene_points: np.ndarray):
        """Test that every synthetic pair becomes the right landmark."""
        matches = make_matches([project(p, intrinsics) for p in scene_points])
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)

        result = triangulate_matches(matches, params)

        assert result.num_added == 4
        assert result.num_skipped == 0
        assert result.new_ids == [0, 1, 2, 3]
        np.testing.assert_allclose(result.landmarks.positions(), scene_points, atol=1e-9)

    def test_skips_degenerate_pairs(
        self, intrinsics: CameraIntrinsics, scene_points: np.ndarray, caplog
    ):
        """Test that bad pairs are skipped, counted and logged."""
        pairs = [project(p, intrinsics) for p in scene_points]
        pairs.insert(1, (Feature(100.0, 50.0), Feature(100.0, 50.0)))
        pairs.insert(3, (Feature(100.0, 50.0), Feature(110.0, 50.0)))
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)

        with caplog.at_level(logging.WARNING, logger="stereo_core.triangulation"):
            result = triangulate_matches(make_matches(pairs), params)

        assert result.num_skipped == 2
        assert len(result.landmarks) == 4
        assert [lm.left_index for lm in result.landmarks] == [0, 2, 4, 5]
        assert "Skipped 2 of 6" in caplog.text

    def test_depth_gates(self, intrinsics: CameraIntrinsics, scene_points: np.ndarray):
        """Test that landmarks outside the depth range are dropped."""
        matches = make_matches([project(p, intrinsics) for p in scene_points])
        params = StereoSystemParams(
            intrinsics=intrinsics, baseline=BASELINE, min_z=3.0, max_z=10.0
        )

        result = triangulate_matches(matches, params)

        assert result.num_skipped == 2
        np.testing.assert_allclose(result.landmarks.positions(), scene_points[1:3], atol=1e-9)

    def test_accumulates_into_existing_map(
        self, intrinsics: CameraIntrinsics, scene_points: np.ndarray
    ):
        """Test that ids keep increasing across calls sharing a map."""
        matches = make_matches([project(p, intrinsics) for p in scene_points[:2]])
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)
        landmarks = LandmarkMap()

        triangulate_matches(matches, params, landmarks)
        second = triangulate_matches(matches, params, landmarks)

        assert second.new_ids == [2, 3]
        assert landmarks.ids == [0, 1, 2, 3]

    def test_sensor_pose_applied(self, intrinsics: CameraIntrinsics):
        """Test that landmarks are expressed in the robot frame."""
        point = np.array([0.0, 0.0, 5.0])
        matches = make_matches([project(point, intrinsics)])
        params = StereoSystemParams(
            intrinsics=intrinsics,
            baseline=BASELINE,
            sensor_pose=SE3.camera_mount(np.array([0.2, 0.0, 1.0])),
        )

        result = triangulate_matches(matches, params)

        np.testing.assert_allclose(result.landmarks.get(0).position, [5.2, 0.0, 1.0], atol=1e-9)

    def test_covariance_on_optical_axis(self, intrinsics: CameraIntrinsics):
        """Test the propagated covariance against its closed form."""
        point = np.array([0.0, 0.0, 3.0])
        matches = make_matches([project(point, intrinsics)])
        params = StereoSystemParams(
            intrinsics=intrinsics, baseline=BASELINE, std_pixel=0.5, std_disp=0.8
        )

        landmark = triangulate_matches(matches, params).landmarks.get(0)

        d = intrinsics.fx * BASELINE / 3.0
        expected = np.diag(
            [
                (BASELINE / d * 0.5) ** 2,
                (intrinsics.fx * BASELINE / (intrinsics.fy * d) * 0.5) ** 2,
                (intrinsics.fx * BASELINE / d**2 * 0.8) ** 2,
            ]
        )
        np.testing.assert_allclose(landmark.covariance, expected, rtol=1e-9, atol=1e-15)

    def test_depth_uncertainty_grows(self, intrinsics: CameraIntrinsics, scene_points):
        """Test that farther landmarks are less certain in depth."""
        matches = make_matches([project(p, intrinsics) for p in scene_points])
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)

        landmarks = list(triangulate_matches(matches, params).landmarks)
        depth_variances = [lm.covariance[2, 2] for lm in landmarks]

        assert depth_variances == sorted(depth_variances)
        for lm in landmarks:
            np.testing.assert_allclose(lm.covariance, lm.covariance.T)
            assert np.all(np.linalg.eigvalsh(lm.covariance) >= -1e-12)

    def test_feature_id_recorded(self, intrinsics: CameraIntrinsics):
        """Test that landmarks remember the left feature id."""
        left, right = project(np.array([0.1, 0.1, 3.0]), intrinsics)
        left = Feature(left.x, left.y, id=42)
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)

        result = triangulate_matches(make_matches([(left, right)]), params)

        assert result.landmarks.find_by_feature_id(42) is not None


class TestTriangulateFeatureLists:
    """Test suite for triangulate_feature_lists."""

    def test_ordered_lists(self, intrinsics: CameraIntrinsics, scene_points: np.ndarray):
        """Test triangulating two correspondence-ordered lists."""
        pairs = [project(p, intrinsics) for p in scene_points]
        left = FeatureList([pl for pl, _ in pairs])
        right = FeatureList([pr for _, pr in pairs])
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)

        result = triangulate_feature_lists(left, right, params)

        np.testing.assert_allclose(result.landmarks.positions(), scene_points, atol=1e-9)

    def test_length_mismatch(self, intrinsics: CameraIntrinsics):
        """Test that lists of different length fail."""
        params = StereoSystemParams(intrinsics=intrinsics, baseline=BASELINE)
        left = FeatureList.from_points(np.zeros((3, 2)))
        right = FeatureList.from_points(np.zeros((2, 2)))

        with pytest.raises(LengthMismatchError):
            triangulate_feature_lists(left, right, params)
