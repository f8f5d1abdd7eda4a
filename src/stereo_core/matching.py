"""Descriptor-based correspondence matching between two feature lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping

import numpy as np
import yaml
from scipy.spatial.distance import cdist

from .errors import InvalidParameterError, SizeMismatchError
from .features import Feature, FeatureList

logger = logging.getLogger(__name__)


class DistanceMetric(Enum):
    """Descriptor distance used to score candidate pairs."""

    EUCLIDEAN = "euclidean"
    SQEUCLIDEAN = "sqeuclidean"
    CITYBLOCK = "cityblock"
    COSINE = "cosine"
    HAMMING = "hamming"  # Number of differing bits of uint8 descriptors


@dataclass
class MatchingOptions:
    """Matching policy shared by both matching strategies.

    Attributes:
        metric: Descriptor distance (lower = more similar)
        max_distance: Pairs farther apart than this are never matched
        use_row_restriction: Only consider candidates on (almost) the same row
        row_threshold: Maximum |y_left - y_right| when the row restriction is on
        use_x_restriction: Only consider candidates with x_left - x_right > 0
            (positive disparity in a rectified stereo pair)
        allow_many_to_one: If False each right feature is used at most once
        ratio: Best-vs-second-best ratio for the strict strategy. A match is
            accepted only if best < ratio * second_best.
    """

    metric: DistanceMetric = DistanceMetric.EUCLIDEAN
    max_distance: float = float("inf")
    use_row_restriction: bool = False
    row_threshold: float = 1.0
    use_x_restriction: bool = False
    allow_many_to_one: bool = False
    ratio: float = 0.8

    def __post_init__(self) -> None:
        """Validate options and coerce the metric name."""
        try:
            self.metric = DistanceMetric(
                self.metric.value if isinstance(self.metric, DistanceMetric) else self.metric
            )
        except ValueError:
            raise InvalidParameterError(f"Unknown distance metric: {self.metric!r}") from None

        self.max_distance = float(self.max_distance)
        if self.max_distance < 0:
            raise InvalidParameterError(
                f"max_distance must be >= 0, got {self.max_distance}"
            )
        if self.row_threshold < 0:
            raise InvalidParameterError(
                f"row_threshold must be >= 0, got {self.row_threshold}"
            )
        if not 0.0 < self.ratio <= 1.0:
            raise InvalidParameterError(f"ratio must be in (0, 1], got {self.ratio}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MatchingOptions:
        """Create options from a mapping of field names to values.

        Raises:
            InvalidParameterError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidParameterError(
                f"Unknown matching options: {', '.join(sorted(unknown))}"
            )
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: str, section: str | None = None) -> MatchingOptions:
        """Load options from a YAML file.

        Args:
            yaml_path: Path to the YAML file
            section: Optional top-level key holding the options

        Raises:
            FileNotFoundError: If the file doesn't exist
            InvalidParameterError: If the content is not a valid mapping
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Matching options file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if section is not None:
            data = data.get(section, {}) if isinstance(data, dict) else None
        if not isinstance(data, dict):
            raise InvalidParameterError(f"Matching options in {yaml_path} must be a mapping")

        return cls.from_dict(data)


@dataclass(frozen=True, eq=False)
class MatchedPair:
    """A left/right correspondence.

    Holds references to the matched features and their indices in the
    input lists; descriptors are not copied.
    """

    left_index: int
    right_index: int
    left: Feature
    right: Feature
    distance: float

    @property
    def disparity(self) -> float:
        """Return x_left - x_right."""
        return self.left.x - self.right.x


@dataclass
class MatchedFeatureList:
    """Ordered list of matched pairs, in discovery order."""

    pairs: list[MatchedPair] = field(default_factory=list)

    @property
    def num_matches(self) -> int:
        """Return number of matched pairs."""
        return len(self.pairs)

    @property
    def distances(self) -> np.ndarray:
        """Return N array of descriptor distances."""
        return np.array([p.distance for p in self.pairs], dtype=np.float64)

    def left_features(self) -> FeatureList:
        """Return the left features in pair order."""
        return FeatureList([p.left for p in self.pairs])

    def right_features(self) -> FeatureList:
        """Return the right features in pair order."""
        return FeatureList([p.right for p in self.pairs])

    def append(self, pair: MatchedPair) -> None:
        self.pairs.append(pair)

    def __len__(self) -> int:
        return len(self.pairs)

    def __iter__(self) -> Iterator[MatchedPair]:
        return iter(self.pairs)

    def __getitem__(self, index: int) -> MatchedPair:
        return self.pairs[index]


def _as_packed_bits(descriptors: np.ndarray) -> np.ndarray:
    """Check that descriptors hold packed bytes and return them as uint8."""
    if not np.issubdtype(descriptors.dtype, np.integer):
        raise InvalidParameterError(
            f"Hamming distance needs integer (packed byte) descriptors, got {descriptors.dtype}"
        )
    if descriptors.size and (descriptors.min() < 0 or descriptors.max() > 255):
        raise InvalidParameterError("Hamming descriptor bytes must lie in [0, 255]")
    return descriptors.astype(np.uint8)


def descriptor_distances(
    left_descriptors: np.ndarray,
    right_descriptors: np.ndarray,
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
) -> np.ndarray:
    """Compute the NxM matrix of pairwise descriptor distances.

    For ``DistanceMetric.HAMMING`` the descriptors are read as packed bits
    (uint8, e.g. ORB) and the result is the number of differing bits.
    Undefined distances (cosine of a null vector) are reported as inf.

    Raises:
        SizeMismatchError: If the descriptor widths differ
        InvalidParameterError: If Hamming descriptors are not bytes
    """
    left_descriptors = np.atleast_2d(left_descriptors)
    right_descriptors = np.atleast_2d(right_descriptors)
    if left_descriptors.shape[1] != right_descriptors.shape[1]:
        raise SizeMismatchError(
            f"Descriptor widths differ: {left_descriptors.shape[1]} "
            f"vs {right_descriptors.shape[1]}"
        )

    if metric is DistanceMetric.HAMMING:
        left_bits = np.unpackbits(_as_packed_bits(left_descriptors), axis=1)
        right_bits = np.unpackbits(_as_packed_bits(right_descriptors), axis=1)
        distances = np.rint(cdist(left_bits, right_bits, "hamming") * left_bits.shape[1])
    else:
        distances = cdist(
            left_descriptors.astype(np.float64),
            right_descriptors.astype(np.float64),
            metric.value,
        )
    return np.nan_to_num(distances, nan=np.inf)


def _candidate_mask(
    left: FeatureList, right: FeatureList, options: MatchingOptions
) -> np.ndarray:
    """NxM mask of geometrically admissible pairs."""
    pts_left = left.points
    pts_right = right.points
    mask = np.ones((len(left), len(right)), dtype=bool)

    if options.use_row_restriction:
        y_diff = np.abs(pts_left[:, 1:2] - pts_right[:, 1][np.newaxis, :])
        mask &= y_diff <= options.row_threshold

    if options.use_x_restriction:
        disparity = pts_left[:, 0:1] - pts_right[:, 0][np.newaxis, :]
        mask &= disparity > 0

    return mask


def _distance_matrix(
    left: FeatureList, right: FeatureList, options: MatchingOptions
) -> np.ndarray | None:
    """Distances with inadmissible pairs set to inf, or None for empty input."""
    if len(left) == 0 or len(right) == 0:
        return None

    desc_left = left.descriptors
    desc_right = right.descriptors
    if desc_left is None or desc_right is None:
        raise InvalidParameterError("Every feature must carry a descriptor to be matched")

    distances = descriptor_distances(desc_left, desc_right, options.metric)
    distances[~_candidate_mask(left, right, options)] = np.inf
    return distances


def _ratio_proposals(
    distances: np.ndarray, options: MatchingOptions
) -> list[tuple[float, int, int]]:
    """Best candidate of each left feature that passes the ratio test."""
    proposals = []
    for li, row in enumerate(distances):
        best = int(np.argmin(row))
        best_distance = row[best]
        if not np.isfinite(best_distance) or best_distance > options.max_distance:
            continue

        if len(row) > 1:
            second_distance = np.partition(row, 1)[1]
            if np.isfinite(second_distance) and not best_distance < options.ratio * second_distance:
                continue

        proposals.append((float(best_distance), li, int(best)))
    return proposals


def _nearest_proposals(
    distances: np.ndarray, options: MatchingOptions
) -> list[tuple[float, int, int]]:
    """Every admissible candidate within the distance threshold."""
    rows, cols = np.nonzero(np.isfinite(distances) & (distances <= options.max_distance))
    return [(float(distances[li, ri]), int(li), int(ri)) for li, ri in zip(rows, cols)]


def _assign(
    proposals: list[tuple[float, int, int]],
    left: FeatureList,
    right: FeatureList,
    options: MatchingOptions,
) -> MatchedFeatureList:
    """Turn proposals into pairs according to the assignment policy."""
    result = MatchedFeatureList()

    if options.allow_many_to_one:
        best: dict[int, tuple[float, int]] = {}
        for distance, li, ri in proposals:
            if li not in best or (distance, ri) < best[li]:
                best[li] = (distance, ri)
        for li in sorted(best):
            distance, ri = best[li]
            result.append(MatchedPair(li, ri, left[li], right[ri], distance))
        return result

    # Greedy one-to-one: lowest distance first, ties by left then right index
    claimed_left: set[int] = set()
    claimed_right: set[int] = set()
    for distance, li, ri in sorted(proposals):
        if li in claimed_left or ri in claimed_right:
            continue
        claimed_left.add(li)
        claimed_right.add(ri)
        result.append(MatchedPair(li, ri, left[li], right[ri], distance))
    return result


def match_features(
    left: FeatureList,
    right: FeatureList,
    options: MatchingOptions | None = None,
) -> MatchedFeatureList:
    """Match two feature lists with the strict ratio strategy.

    Each left feature proposes its best admissible right candidate when
    that candidate is within ``max_distance`` and clearly better than the
    second best (best < ratio * second_best). Proposals are then assigned
    according to ``allow_many_to_one``:

    - one-to-one: proposals are taken by ascending distance and a right
      feature, once claimed, leaves candidacy
    - many-to-one: every proposal is kept

    Left features without an acceptable candidate are absent from the
    output.

    Args:
        left: Features of the reference image
        right: Features of the other image
        options: Matching policy, defaults to ``MatchingOptions()``

    Returns:
        MatchedFeatureList; ``len()`` gives the number of matches

    Raises:
        InvalidParameterError: If a feature has no descriptor
        SizeMismatchError: If descriptor widths differ
    """
    options = options or MatchingOptions()
    distances = _distance_matrix(left, right, options)
    if distances is None:
        return MatchedFeatureList()

    proposals = _ratio_proposals(distances, options)
    result = _assign(proposals, left, right, options)
    logger.debug(
        "Ratio matching: %d left, %d right, %d proposals, %d matches",
        len(left), len(right), len(proposals), len(result),
    )
    return result


def match_features_nn(
    left: FeatureList,
    right: FeatureList,
    options: MatchingOptions | None = None,
) -> MatchedFeatureList:
    """Match two feature lists with the nearest-neighbour strategy.

    No ratio test: every admissible pair within ``max_distance`` is a
    candidate. In one-to-one mode candidates are assigned greedily by
    ascending distance, so a left feature whose nearest neighbour was
    already claimed falls back to its next free candidate. In many-to-one
    mode each left feature keeps its nearest neighbour.
    """
    options = options or MatchingOptions()
    distances = _distance_matrix(left, right, options)
    if distances is None:
        return MatchedFeatureList()

    proposals = _nearest_proposals(distances, options)
    result = _assign(proposals, left, right, options)
    logger.debug(
        "Nearest-neighbour matching: %d left, %d right, %d candidates, %d matches",
        len(left), len(right), len(proposals), len(result),
    )
    return result
