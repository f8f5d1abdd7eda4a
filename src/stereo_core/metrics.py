"""Alignment metrics over 3D correspondences."""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .errors import EmptyInputError
from .landmarks import LandmarkMap
from .pose import SE3


@dataclass(frozen=True, eq=False)
class MatchingPair3D:
    """A 3D point seen in two frames.

    Attributes:
        this_index: Index (or id) of the point in "this" frame
        other_index: Index (or id) of the point in the "other" frame
        this_point: (3,) position in this frame
        other_point: (3,) position in the other frame
    """

    this_index: int
    other_index: int
    this_point: np.ndarray
    other_point: np.ndarray


def compute_msd(pairs: Sequence[MatchingPair3D], pose: SE3) -> float:
    """Mean squared distance between paired points under a candidate pose.

    Each "other" point is mapped with ``pose`` and compared with its "this"
    point; the squared Euclidean distances are averaged. Meant to be called
    repeatedly by a robust estimator, it has no side effects.

    Raises:
        EmptyInputError: If there are no pairs
    """
    if len(pairs) == 0:
        raise EmptyInputError("Cannot compute the MSD of an empty correspondence list")

    this_points = np.array([p.this_point for p in pairs], dtype=np.float64)
    other_points = np.array([p.other_point for p in pairs], dtype=np.float64)

    residuals = this_points - pose.transform_points(other_points)
    return float(np.mean(np.einsum("ij,ij->i", residuals, residuals)))


def clouds_to_matched_list(
    cloud1: LandmarkMap, cloud2: LandmarkMap
) -> list[MatchingPair3D]:
    """Pair the landmarks of two clouds that come from the same feature id.

    ``cloud1`` provides the "this" points and ``cloud2`` the "other" points.
    Landmarks without a feature id (-1) are ignored. Output follows
    ``cloud1`` order.
    """
    by_feature = {}
    for landmark in cloud2:
        if landmark.feature_id >= 0:
            by_feature.setdefault(landmark.feature_id, landmark)

    pairs = []
    for landmark in cloud1:
        other = by_feature.get(landmark.feature_id)
        if landmark.feature_id < 0 or other is None:
            continue
        pairs.append(
            MatchingPair3D(
                this_index=landmark.id,
                other_index=other.id,
                this_point=landmark.position,
                other_point=other.position,
            )
        )
    return pairs
