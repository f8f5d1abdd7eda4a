"""Rectified stereo triangulation of matched features into 3D landmarks."""

import logging
from dataclasses import dataclass, field

import numpy as np

from .camera import CameraIntrinsics
from .errors import DegenerateGeometryError, InvalidParameterError, LengthMismatchError
from .features import FeatureList
from .landmarks import LandmarkMap
from .matching import MatchedFeatureList, MatchedPair
from .pose import SE3

logger = logging.getLogger(__name__)


@dataclass
class StereoSystemParams:
    """Parameters of a rectified stereo rig.

    Attributes:
        intrinsics: Intrinsics shared by both rectified cameras
        baseline: Distance between the optical centers (same unit as output)
        sensor_pose: Pose of the left camera in the robot/sensor frame.
            Identity keeps landmarks in the left camera optical frame.
        std_pixel: Standard deviation of feature row/column (pixels)
        std_disp: Standard deviation of the disparity (pixels)
        min_z: Landmarks closer than this depth are discarded
        max_z: Landmarks farther than this depth are discarded
        max_y: Landmarks with |Y| (camera frame) above this are discarded
    """

    intrinsics: CameraIntrinsics
    baseline: float
    sensor_pose: SE3 = field(default_factory=SE3.identity)
    std_pixel: float = 1.0
    std_disp: float = 1.0
    min_z: float = 0.0
    max_z: float = float("inf")
    max_y: float = float("inf")

    def __post_init__(self) -> None:
        """Validate rig parameters."""
        if not self.baseline > 0:
            raise InvalidParameterError(f"Baseline must be positive, got {self.baseline}")
        if self.std_pixel < 0 or self.std_disp < 0:
            raise InvalidParameterError("Standard deviations must be >= 0")
        if self.min_z < 0 or self.max_z <= self.min_z:
            raise InvalidParameterError(
                f"Invalid depth range [{self.min_z}, {self.max_z}]"
            )
        if self.max_y <= 0:
            raise InvalidParameterError(f"max_y must be positive, got {self.max_y}")


@dataclass
class TriangulationResult:
    """Output of a batch triangulation.

    Attributes:
        landmarks: Map holding the new landmarks (and any previous ones)
        new_ids: Ids of the landmarks created by this call, in input order
        num_skipped: Pairs dropped for zero/negative disparity or range gates
    """

    landmarks: LandmarkMap
    new_ids: list[int] = field(default_factory=list)
    num_skipped: int = 0

    @property
    def num_added(self) -> int:
        """Return number of landmarks created by this call."""
        return len(self.new_ids)


def triangulate_point(
    x_left: float,
    y_left: float,
    x_right: float,
    intrinsics: CameraIntrinsics,
    baseline: float,
) -> np.ndarray:
    """Triangulate one rectified correspondence in the left camera frame.

    depth = fx * baseline / disparity, with disparity = x_left - x_right.

    Raises:
        DegenerateGeometryError: If the disparity is zero or negative
        InvalidParameterError: If the baseline is not positive
    """
    if not baseline > 0:
        raise InvalidParameterError(f"Baseline must be positive, got {baseline}")
    disparity = x_left - x_right
    if disparity <= 0:
        raise DegenerateGeometryError(
            f"Disparity must be positive, got {disparity:.3f} "
            f"(x_left={x_left:.3f}, x_right={x_right:.3f})"
        )

    z = intrinsics.fx * baseline / disparity
    x = (x_left - intrinsics.cx) * z / intrinsics.fx
    y = (y_left - intrinsics.cy) * z / intrinsics.fy
    return np.array([x, y, z], dtype=np.float64)


def stereo_jacobian(
    x_left: float,
    y_left: float,
    disparity: float,
    intrinsics: CameraIntrinsics,
    baseline: float,
) -> np.ndarray:
    """Jacobian of the camera-frame point (X, Y, Z) w.r.t. (row, column, disparity).

    With X = (u - cx) b / d, Y = (v - cy) fx b / (fy d), Z = fx b / d, where
    u is the column and v the row of the left feature.
    """
    fx, fy = intrinsics.fx, intrinsics.fy
    u = x_left - intrinsics.cx
    v = y_left - intrinsics.cy
    b = baseline
    d = disparity

    return np.array(
        [
            [0.0, b / d, -u * b / d**2],
            [fx * b / (fy * d), 0.0, -v * fx * b / (fy * d**2)],
            [0.0, 0.0, -fx * b / d**2],
        ],
        dtype=np.float64,
    )


def _within_gates(point_cam: np.ndarray, params: StereoSystemParams) -> bool:
    return params.min_z <= point_cam[2] <= params.max_z and abs(point_cam[1]) <= params.max_y


def triangulate_matches(
    matches: MatchedFeatureList,
    params: StereoSystemParams,
    landmarks: LandmarkMap | None = None,
) -> TriangulationResult:
    """Project matched stereo features into 3D landmarks.

    Every pair is triangulated with the rectified disparity relation,
    filtered by the rig's depth/height gates, and mapped into the sensor
    frame with ``params.sensor_pose``. Each landmark carries the covariance
    of ``diag(std_pixel^2, std_pixel^2, std_disp^2)`` propagated through
    :func:`stereo_jacobian`.

    Pairs with zero or negative disparity, or outside the gates, are skipped
    and counted rather than aborting the batch.

    Args:
        matches: Matched features (left = reference camera)
        params: Stereo rig parameters
        landmarks: Existing map to insert into; a new one if None

    Returns:
        TriangulationResult with the map, new ids and skipped count
    """
    if landmarks is None:
        landmarks = LandmarkMap()
    result = TriangulationResult(landmarks=landmarks)

    noise = np.diag([params.std_pixel**2, params.std_pixel**2, params.std_disp**2])
    rotation = params.sensor_pose.rotation

    for pair in matches:
        disparity = pair.disparity
        if disparity <= 0:
            result.num_skipped += 1
            continue

        point_cam = triangulate_point(
            pair.left.x, pair.left.y, pair.right.x, params.intrinsics, params.baseline
        )
        if not _within_gates(point_cam, params):
            result.num_skipped += 1
            continue

        J = rotation @ stereo_jacobian(
            pair.left.x, pair.left.y, disparity, params.intrinsics, params.baseline
        )
        landmark = landmarks.add(
            position=params.sensor_pose.transform_point(point_cam),
            covariance=J @ noise @ J.T,
            feature_id=pair.left.id,
            left_index=pair.left_index,
            right_index=pair.right_index,
        )
        result.new_ids.append(landmark.id)

    if result.num_skipped:
        logger.warning(
            "Skipped %d of %d stereo pairs with invalid geometry",
            result.num_skipped,
            len(matches),
        )
    logger.debug("Triangulated %d landmarks", result.num_added)
    return result


def triangulate_feature_lists(
    left: FeatureList,
    right: FeatureList,
    params: StereoSystemParams,
    landmarks: LandmarkMap | None = None,
) -> TriangulationResult:
    """Triangulate two correspondence-ordered lists (left[i] matches right[i]).

    Raises:
        LengthMismatchError: If the lists differ in length
    """
    if len(left) != len(right):
        raise LengthMismatchError(
            f"Ordered feature lists must match in length, got {len(left)} and {len(right)}"
        )

    matches = MatchedFeatureList(
        [MatchedPair(i, i, fl, fr, 0.0) for i, (fl, fr) in enumerate(zip(left, right))]
    )
    return triangulate_matches(matches, params, landmarks)
