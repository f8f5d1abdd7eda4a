"""Tests for 3D correspondence metrics."""

import numpy as np
import pytest

from stereo_core.errors import EmptyInputError
from stereo_core.landmarks import LandmarkMap
from stereo_core.metrics import MatchingPair3D, clouds_to_matched_list, compute_msd
from stereo_core.pose import SE3


@pytest.fixture
def true_pose() -> SE3:
    return SE3.from_ypr(0.4, -0.2, 0.1, np.array([1.0, -0.5, 0.3]))


@pytest.fixture
def correspondences(true_pose: SE3) -> list[MatchingPair3D]:
    """Ten correspondences related by a known rotation and translation.

    Returns:
        List of pairs with this_point = true_pose(other_point)
    """
    rng = np.random.default_rng(9)
    other = rng.uniform(-5.0, 5.0, (10, 3))
    this = true_pose.transform_points(other)
    return [MatchingPair3D(i, i, this[i], other[i]) for i in range(10)]


class TestComputeMsd:
    """Test suite for compute_msd."""

    def test_identity_pose(self, correspondences: list[MatchingPair3D]):
        """Test that the identity pose gives the raw mean squared distance."""
        expected = np.mean(
            [np.sum((p.this_point - p.other_point) ** 2) for p in correspondences]
        )

        assert compute_msd(correspondences, SE3.identity()) == pytest.approx(expected)

    def test_true_pose_is_best(self, correspondences: list[MatchingPair3D], true_pose: SE3):
        """Test that the generating transform beats identity and a wrong pose."""
        wrong = SE3.from_ypr(-0.7, 0.3, 0.0, np.array([-2.0, 1.0, 0.0]))

        msd_true = compute_msd(correspondences, true_pose)

        assert msd_true == pytest.approx(0.0, abs=1e-20)
        assert compute_msd(correspondences, SE3.identity()) > msd_true
        assert compute_msd(correspondences, wrong) > msd_true

    def test_translation_only(self):
        """Test a hand-computed value."""
        pairs = [
            MatchingPair3D(0, 0, np.array([1.0, 0.0, 0.0]), np.zeros(3)),
            MatchingPair3D(1, 1, np.array([0.0, 3.0, 0.0]), np.zeros(3)),
        ]

        assert compute_msd(pairs, SE3.identity()) == pytest.approx(5.0)

    def test_pure_function(self, correspondences: list[MatchingPair3D], true_pose: SE3):
        """Test that inputs are left untouched and results are repeatable."""
        before = [p.other_point.copy() for p in correspondences]

        first = compute_msd(correspondences, true_pose)
        second = compute_msd(correspondences, true_pose)

        assert first == second
        for p, original in zip(correspondences, before):
            np.testing.assert_array_equal(p.other_point, original)

    def test_empty(self):
        """Test that an empty list fails."""
        with pytest.raises(EmptyInputError):
            compute_msd([], SE3.identity())


class TestCloudsToMatchedList:
    """Test suite for clouds_to_matched_list."""

    def test_pairs_by_feature_id(self):
        """Test that landmarks sharing a feature id are paired."""
        cloud1 = LandmarkMap()
        cloud1.add(np.array([1.0, 0.0, 0.0]), feature_id=7)
        cloud1.add(np.array([2.0, 0.0, 0.0]), feature_id=3)
        cloud1.add(np.array([3.0, 0.0, 0.0]), feature_id=5)
        cloud1.add(np.array([4.0, 0.0, 0.0]))

        cloud2 = LandmarkMap()
        cloud2.add(np.array([0.0, 3.0, 0.0]), feature_id=3)
        cloud2.add(np.array([0.0, 1.0, 0.0]), feature_id=7)
        cloud2.add(np.array([0.0, 9.0, 0.0]))

        pairs = clouds_to_matched_list(cloud1, cloud2)

        assert [(p.this_index, p.other_index) for p in pairs] == [(0, 1), (1, 0)]
        np.testing.assert_array_equal(pairs[0].other_point, [0.0, 1.0, 0.0])
