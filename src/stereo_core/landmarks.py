"""Landmark and landmark map data structures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np


@dataclass(eq=False)
class Landmark:
    """A 3D point triangulated from a stereo correspondence.

    Attributes:
        id: Unique identifier assigned by the LandmarkMap
        position: 3D position in the sensor (robot) frame
        covariance: 3x3 position covariance, or None if unknown
        feature_id: Identifier of the left feature that produced it
        left_index: Index of the left feature in the matched input
        right_index: Index of the right feature in the matched input
    """

    id: int
    position: np.ndarray  # (3,) float64
    covariance: np.ndarray | None = None  # (3, 3) float64
    feature_id: int = -1
    left_index: int = -1
    right_index: int = -1

    def __post_init__(self) -> None:
        """Ensure arrays are proper types."""
        self.position = np.asarray(self.position, dtype=np.float64).flatten()
        if self.covariance is not None:
            self.covariance = np.asarray(self.covariance, dtype=np.float64).reshape(3, 3)


class LandmarkMap:
    """Id-keyed, insertion-ordered collection of landmarks.

    Ids are assigned at insertion and increase monotonically. The map is
    not thread-safe: concurrent writers must be serialised by the caller.
    """

    def __init__(self) -> None:
        """Initialize empty map."""
        self._landmarks: dict[int, Landmark] = {}
        self._next_id: int = 0

    def add(
        self,
        position: np.ndarray,
        covariance: np.ndarray | None = None,
        feature_id: int = -1,
        left_index: int = -1,
        right_index: int = -1,
    ) -> Landmark:
        """Create and insert a new landmark with a fresh id.

        Returns:
            The newly created Landmark
        """
        landmark = Landmark(
            id=self._next_id,
            position=position,
            covariance=covariance,
            feature_id=feature_id,
            left_index=left_index,
            right_index=right_index,
        )
        self._landmarks[landmark.id] = landmark
        self._next_id += 1
        return landmark

    def get(self, landmark_id: int) -> Landmark | None:
        """Get landmark by id, None if absent."""
        return self._landmarks.get(landmark_id)

    def find_by_feature_id(self, feature_id: int) -> Landmark | None:
        """Return the first landmark produced by the given feature id."""
        for landmark in self._landmarks.values():
            if landmark.feature_id == feature_id:
                return landmark
        return None

    @property
    def ids(self) -> list[int]:
        """Return landmark ids in insertion order."""
        return list(self._landmarks)

    def positions(self) -> np.ndarray:
        """Return Nx3 array of landmark positions in insertion order."""
        if len(self._landmarks) == 0:
            return np.empty((0, 3), dtype=np.float64)
        return np.array([lm.position for lm in self._landmarks.values()])

    def clear(self) -> None:
        """Remove all landmarks and restart id assignment."""
        self._landmarks.clear()
        self._next_id = 0

    def __contains__(self, landmark_id: object) -> bool:
        return landmark_id in self._landmarks

    def __iter__(self) -> Iterator[Landmark]:
        return iter(self._landmarks.values())

    def __len__(self) -> int:
        return len(self._landmarks)
