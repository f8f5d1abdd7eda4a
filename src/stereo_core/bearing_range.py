"""Conversion of stereo correspondences into bearing-range observations.

Three kinds of source are supported:

- ``StereoImagesObservation``: two detected feature lists plus the rig
  parameters; features are matched, triangulated and converted with
  covariance.
- ``MatchedFeatureList``: already matched pairs, with the rig parameters
  given explicitly; triangulated and converted with covariance.
- ``VisualLandmarksObservation``: an already triangulated landmark cloud;
  converted without covariance.

Measurements follow the robot convention: yaw = atan2(y, x),
pitch = atan2(-z, sqrt(x^2 + y^2)), range = |p|, computed after the
sensor pose has been applied. Covariances are ordered (range, yaw, pitch)
and come from explicit Jacobians, with input noise ordered
(row, column, disparity).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence, Union

import numpy as np

from .camera import CameraIntrinsics
from .errors import InvalidParameterError
from .features import FeatureList
from .landmarks import LandmarkMap
from .matching import MatchedFeatureList, MatchingOptions, match_features
from .pose import SE3
from .triangulation import stereo_jacobian, triangulate_point

logger = logging.getLogger(__name__)


def _stereo_matching_options() -> MatchingOptions:
    return MatchingOptions(use_row_restriction=True, use_x_restriction=True)


@dataclass
class StereoImagesObservation:
    """A rectified stereo capture with features already detected.

    Attributes:
        left_features: Features detected in the left (reference) image
        right_features: Features detected in the right image
        intrinsics: Intrinsics of the rectified cameras
        baseline: Distance between the optical centers
        sensor_pose: Pose of the left camera in the robot frame
        matching_options: Policy used to match the two lists
        left_image: Optional left image, kept for reference only
        right_image: Optional right image, kept for reference only
        timestamp_ns: Optional capture time in nanoseconds
    """

    left_features: FeatureList
    right_features: FeatureList
    intrinsics: CameraIntrinsics
    baseline: float
    sensor_pose: SE3 = field(default_factory=SE3.identity)
    matching_options: MatchingOptions = field(default_factory=_stereo_matching_options)
    left_image: np.ndarray | None = None
    right_image: np.ndarray | None = None
    timestamp_ns: int | None = None


@dataclass
class VisualLandmarksObservation:
    """A cloud of already triangulated landmarks.

    Attributes:
        landmarks: Landmark positions
        sensor_pose: Transform applied to the positions before conversion
        timestamp_ns: Optional capture time in nanoseconds
    """

    landmarks: LandmarkMap
    sensor_pose: SE3 = field(default_factory=SE3.identity)
    timestamp_ns: int | None = None


BearingRangeSource = Union[
    StereoImagesObservation, MatchedFeatureList, VisualLandmarksObservation
]


@dataclass(frozen=True, eq=False)
class BearingRangeMeasurement:
    """One bearing-range measurement.

    Attributes:
        range: Euclidean distance to the point
        yaw: Azimuth, atan2(y, x)
        pitch: Elevation, atan2(-z, sqrt(x^2 + y^2))
        landmark_id: Left feature id, or landmark id for landmark clouds
        covariance: 3x3 covariance of (range, yaw, pitch), or None
    """

    range: float
    yaw: float
    pitch: float
    landmark_id: int = -1
    covariance: np.ndarray | None = None


@dataclass(frozen=True, eq=False)
class BearingRangeObservation:
    """Bearing-range measurements produced by a single conversion.

    Attributes:
        measurements: Measurements in input order
        sensor_pose: Pose that was applied to the points before conversion
        valid_covariances: True if every measurement carries a covariance
        num_skipped: Inputs dropped for degenerate geometry
        timestamp_ns: Capture time copied from the source, if any
    """

    measurements: tuple[BearingRangeMeasurement, ...]
    sensor_pose: SE3
    valid_covariances: bool
    num_skipped: int = 0
    timestamp_ns: int | None = None

    @property
    def ranges(self) -> np.ndarray:
        """Return N array of ranges."""
        return np.array([m.range for m in self.measurements], dtype=np.float64)

    @property
    def yaws(self) -> np.ndarray:
        """Return N array of yaw angles."""
        return np.array([m.yaw for m in self.measurements], dtype=np.float64)

    @property
    def pitches(self) -> np.ndarray:
        """Return N array of pitch angles."""
        return np.array([m.pitch for m in self.measurements], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.measurements)


def spherical_from_point(point: np.ndarray) -> tuple[float, float, float]:
    """Return (range, yaw, pitch) of a 3D point."""
    x, y, z = (float(c) for c in point)
    rho = math.hypot(x, y)
    return math.sqrt(rho * rho + z * z), math.atan2(y, x), math.atan2(-z, rho)


def spherical_jacobian(point: np.ndarray) -> np.ndarray:
    """Jacobian of (range, yaw, pitch) w.r.t. (x, y, z).

    Undefined on the vertical axis (x = y = 0); callers must skip it.
    """
    x, y, z = (float(c) for c in point)
    rho2 = x * x + y * y
    rho = math.sqrt(rho2)
    r2 = rho2 + z * z
    r = math.sqrt(r2)

    return np.array(
        [
            [x / r, y / r, z / r],
            [-y / rho2, x / rho2, 0.0],
            [z * x / (rho * r2), z * y / (rho * r2), -rho / r2],
        ],
        dtype=np.float64,
    )


def _validate_sigmas(sigmas: Sequence[float]) -> np.ndarray:
    sigmas = np.asarray(sigmas, dtype=np.float64).ravel()
    if sigmas.shape != (3,):
        raise InvalidParameterError(
            f"Expected 3 sigmas (row, column, disparity), got {sigmas.shape[0]}"
        )
    if np.any(sigmas <= 0):
        raise InvalidParameterError(f"Sigmas must be positive, got {sigmas.tolist()}")
    return sigmas


def matches_to_bearing_range(
    matches: MatchedFeatureList,
    intrinsics: CameraIntrinsics,
    baseline: float,
    sensor_pose: SE3 | None,
    sigmas: Sequence[float],
    timestamp_ns: int | None = None,
) -> BearingRangeObservation:
    """Convert matched stereo features into a bearing-range observation.

    Each pair is triangulated in the left camera frame, moved into the
    sensor frame with ``sensor_pose`` and converted to (range, yaw, pitch).
    The pixel noise diag(sigma_row^2, sigma_col^2, sigma_disp^2) is
    propagated through J = J_spherical @ R_sensor @ J_stereo.

    Args:
        matches: Matched features (left = reference camera)
        intrinsics: Intrinsics of the rectified reference camera
        baseline: Distance between the optical centers
        sensor_pose: Pose of the left camera in the sensor frame (identity if None)
        sigmas: Standard deviations of row, column and disparity
        timestamp_ns: Optional time stamp copied to the output

    Returns:
        BearingRangeObservation with one covariance per measurement

    Raises:
        InvalidParameterError: On bad sigmas or a non-positive baseline
    """
    sigmas = _validate_sigmas(sigmas)
    if not baseline > 0:
        raise InvalidParameterError(f"Baseline must be positive, got {baseline}")
    if sensor_pose is None:
        sensor_pose = SE3.identity()

    noise = np.diag(sigmas**2)
    rotation = sensor_pose.rotation
    measurements = []
    num_skipped = 0

    for pair in matches:
        disparity = pair.disparity
        if disparity <= 0:
            num_skipped += 1
            continue

        point_cam = triangulate_point(
            pair.left.x, pair.left.y, pair.right.x, intrinsics, baseline
        )
        point = sensor_pose.transform_point(point_cam)
        if point[0] == 0.0 and point[1] == 0.0:
            num_skipped += 1
            continue

        J = (
            spherical_jacobian(point)
            @ rotation
            @ stereo_jacobian(pair.left.x, pair.left.y, disparity, intrinsics, baseline)
        )
        rng, yaw, pitch = spherical_from_point(point)
        measurements.append(
            BearingRangeMeasurement(
                range=rng,
                yaw=yaw,
                pitch=pitch,
                landmark_id=pair.left.id,
                covariance=J @ noise @ J.T,
            )
        )

    if num_skipped:
        logger.warning(
            "Skipped %d of %d stereo pairs with invalid geometry",
            num_skipped,
            len(matches),
        )
    return BearingRangeObservation(
        measurements=tuple(measurements),
        sensor_pose=sensor_pose,
        valid_covariances=True,
        num_skipped=num_skipped,
        timestamp_ns=timestamp_ns,
    )


def stereo_obs_to_bearing_range(
    observation: StereoImagesObservation, sigmas: Sequence[float]
) -> BearingRangeObservation:
    """Match, triangulate and convert a stereo capture.

    The feature lists are matched with ``observation.matching_options``
    (ratio strategy) and the matches converted by
    :func:`matches_to_bearing_range`.
    """
    matches = match_features(
        observation.left_features,
        observation.right_features,
        observation.matching_options,
    )
    logger.debug("Stereo observation: %d matches", len(matches))
    return matches_to_bearing_range(
        matches,
        observation.intrinsics,
        observation.baseline,
        observation.sensor_pose,
        sigmas,
        timestamp_ns=observation.timestamp_ns,
    )


def landmarks_to_bearing_range(
    observation: VisualLandmarksObservation,
) -> BearingRangeObservation:
    """Convert a landmark cloud into bearing-range measurements without covariance."""
    measurements = []
    for landmark in observation.landmarks:
        point = observation.sensor_pose.transform_point(landmark.position)
        rng, yaw, pitch = spherical_from_point(point)
        measurements.append(
            BearingRangeMeasurement(range=rng, yaw=yaw, pitch=pitch, landmark_id=landmark.id)
        )

    return BearingRangeObservation(
        measurements=tuple(measurements),
        sensor_pose=observation.sensor_pose,
        valid_covariances=False,
        timestamp_ns=observation.timestamp_ns,
    )


def to_bearing_range(
    source: BearingRangeSource,
    sigmas: Sequence[float] | None = None,
    intrinsics: CameraIntrinsics | None = None,
    baseline: float | None = None,
    sensor_pose: SE3 | None = None,
) -> BearingRangeObservation:
    """Convert any supported source into a bearing-range observation.

    ``sigmas`` is required for stereo sources; ``intrinsics`` and
    ``baseline`` are required for a bare ``MatchedFeatureList``.

    Raises:
        InvalidParameterError: If a required argument is missing
        TypeError: If the source kind is not supported
    """
    if isinstance(source, VisualLandmarksObservation):
        return landmarks_to_bearing_range(source)

    if sigmas is None:
        raise InvalidParameterError("sigmas are required to convert stereo sources")

    if isinstance(source, StereoImagesObservation):
        return stereo_obs_to_bearing_range(source, sigmas)

    if isinstance(source, MatchedFeatureList):
        if intrinsics is None or baseline is None:
            raise InvalidParameterError(
                "intrinsics and baseline are required to convert matched features"
            )
        return matches_to_bearing_range(source, intrinsics, baseline, sensor_pose, sigmas)

    raise TypeError(f"Unsupported bearing-range source: {type(source).__name__}")
