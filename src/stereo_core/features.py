"""Feature containers and list-level operations (filtering, statistics, drawing)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Sequence

import cv2
import numpy as np

from .errors import EmptyInputError, InvalidParameterError, LengthMismatchError


@dataclass(frozen=True, eq=False)
class Feature:
    """A detected 2D image feature.

    Features are produced by an external detector and never modified
    afterwards.

    Attributes:
        x: Column in pixels (sub-pixel allowed)
        y: Row in pixels (sub-pixel allowed)
        id: Detector-assigned identifier, -1 if unknown
        descriptor: Descriptor vector, or None if the detector gives none
        response: Detector response/strength, or None
    """

    x: float
    y: float
    id: int = -1
    descriptor: np.ndarray | None = None
    response: float | None = None

    @property
    def pt(self) -> tuple[float, float]:
        """Return (x, y) pixel coordinates."""
        return (self.x, self.y)


@dataclass
class FeatureList:
    """Ordered sequence of features.

    Order matters when two lists are correspondence-ordered (index i of a
    left list matches index i of a right list).
    """

    features: list[Feature] = field(default_factory=list)

    @classmethod
    def from_points(
        cls,
        points: np.ndarray,
        descriptors: np.ndarray | None = None,
        ids: Sequence[int] | None = None,
    ) -> FeatureList:
        """Build a list from an Nx2 array of (x, y) coordinates.

        Args:
            points: Nx2 pixel coordinates
            descriptors: Optional NxD descriptor matrix
            ids: Optional identifiers, defaults to 0..N-1
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if descriptors is not None and len(descriptors) != len(points):
            raise LengthMismatchError(
                f"Got {len(points)} points but {len(descriptors)} descriptors"
            )
        if ids is not None and len(ids) != len(points):
            raise LengthMismatchError(f"Got {len(points)} points but {len(ids)} ids")

        features = []
        for i, (x, y) in enumerate(points):
            features.append(
                Feature(
                    x=float(x),
                    y=float(y),
                    id=int(ids[i]) if ids is not None else i,
                    descriptor=None if descriptors is None else np.asarray(descriptors[i]),
                )
            )
        return cls(features)

    @classmethod
    def from_keypoints(
        cls,
        keypoints: Sequence[cv2.KeyPoint],
        descriptors: np.ndarray | None,
    ) -> FeatureList:
        """Wrap the output of an OpenCV ``detectAndCompute`` call."""
        if descriptors is not None and len(descriptors) != len(keypoints):
            raise LengthMismatchError(
                f"Got {len(keypoints)} keypoints but {len(descriptors)} descriptors"
            )
        return cls(
            [
                Feature(
                    x=float(kp.pt[0]),
                    y=float(kp.pt[1]),
                    id=i,
                    descriptor=None if descriptors is None else descriptors[i],
                    response=float(kp.response),
                )
                for i, kp in enumerate(keypoints)
            ]
        )

    @property
    def points(self) -> np.ndarray:
        """Return Nx2 array of feature (x, y) coordinates."""
        if len(self.features) == 0:
            return np.empty((0, 2), dtype=np.float64)
        return np.array([(f.x, f.y) for f in self.features], dtype=np.float64)

    @property
    def descriptors(self) -> np.ndarray | None:
        """Return NxD descriptor matrix, or None if any feature lacks one."""
        if len(self.features) == 0 or any(f.descriptor is None for f in self.features):
            return None
        return np.stack([np.asarray(f.descriptor).ravel() for f in self.features])

    @property
    def ids(self) -> list[int]:
        """Return the feature identifiers in list order."""
        return [f.id for f in self.features]

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return FeatureList(self.features[index])
        return self.features[index]


@dataclass(frozen=True)
class Dispersion:
    """Mean and population standard deviation of feature coordinates."""

    mean_x: float
    mean_y: float
    std_x: float
    std_y: float


def delete_repeated(features: FeatureList) -> FeatureList:
    """Remove features that share the same (x, y) coordinates.

    The first occurrence is kept and the remaining order is preserved, so
    the operation is idempotent.
    """
    seen: set[tuple[float, float]] = set()
    kept = []
    for feature in features:
        key = (feature.x, feature.y)
        if key in seen:
            continue
        seen.add(key)
        kept.append(feature)
    return FeatureList(kept)


def get_dispersion(features: FeatureList) -> Dispersion:
    """Compute the dispersion of the features in the image.

    The standard deviation is the population one (divided by n).

    Raises:
        EmptyInputError: If the list is empty
    """
    if len(features) == 0:
        raise EmptyInputError("Cannot compute the dispersion of an empty feature list")

    points = features.points
    mean = points.mean(axis=0)
    std = points.std(axis=0, ddof=0)
    return Dispersion(
        mean_x=float(mean[0]),
        mean_y=float(mean[1]),
        std_x=float(std[0]),
        std_y=float(std[1]),
    )


def row_checking(
    left: FeatureList, right: FeatureList, threshold: float = 0.0
) -> tuple[FeatureList, FeatureList]:
    """Drop correspondences that are not on the same image row.

    For rectified stereo pairs true correspondences share the same row.
    Both lists must be correspondence-ordered; pair i is removed from both
    when |y_left - y_right| > threshold.

    Args:
        left: Left features
        right: Right features, right[i] matches left[i]
        threshold: Maximum allowed row difference in pixels

    Returns:
        Tuple of (left, right) filtered lists

    Raises:
        LengthMismatchError: If the lists differ in length
        InvalidParameterError: If threshold is negative
    """
    if len(left) != len(right):
        raise LengthMismatchError(
            f"Row checking needs paired lists, got {len(left)} and {len(right)}"
        )
    if threshold < 0:
        raise InvalidParameterError(f"Threshold must be >= 0, got {threshold}")

    kept_left = []
    kept_right = []
    for feat_left, feat_right in zip(left, right):
        if abs(feat_left.y - feat_right.y) > threshold:
            continue
        kept_left.append(feat_left)
        kept_right.append(feat_right)

    return FeatureList(kept_left), FeatureList(kept_right)


def draw_features(
    image: np.ndarray,
    features: FeatureList,
    half_size: int = 5,
    color: tuple[int, int, int] = (0, 0, 255),
) -> np.ndarray:
    """Return a BGR copy of ``image`` with a square drawn around each feature."""
    if image.ndim == 2 or (image.ndim == 3 and image.shape[2] == 1):
        canvas = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    else:
        canvas = image.copy()

    for feature in features:
        x, y = int(round(feature.x)), int(round(feature.y))
        cv2.rectangle(
            canvas,
            (x - half_size, y - half_size),
            (x + half_size, y + half_size),
            color,
        )
    return canvas


def compute_main_orientation(
    image: np.ndarray,
    x: int,
    y: int,
    radius: int = 8,
    num_bins: int = 36,
) -> float:
    """Dominant gradient orientation around pixel (x, y), in radians.

    Sobel gradients in a (2 * radius + 1) window are accumulated in a
    ``num_bins`` orientation histogram weighted by magnitude and a Gaussian
    of sigma = radius / 2. The center of the peak bin is returned; a
    textureless neighbourhood gives 0.
    """
    if image.ndim != 2:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    height, width = image.shape
    if not (0 <= x < width and 0 <= y < height):
        raise InvalidParameterError(f"Pixel ({x}, {y}) is outside the image")
    if radius <= 0 or num_bins <= 0:
        raise InvalidParameterError("radius and num_bins must be positive")

    x0, x1 = max(x - radius, 0), min(x + radius + 1, width)
    y0, y1 = max(y - radius, 0), min(y + radius + 1, height)
    window = image[y0:y1, x0:x1].astype(np.float32)

    gx = cv2.Sobel(window, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(window, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = np.hypot(gx, gy)
    angle = np.arctan2(gy, gx)

    rows, cols = np.mgrid[y0:y1, x0:x1]
    sigma = radius / 2.0
    weights = np.exp(-((cols - x) ** 2 + (rows - y) ** 2) / (2.0 * sigma**2))

    bin_width = 2.0 * np.pi / num_bins
    bins = (np.floor((angle + np.pi) / bin_width).astype(int)) % num_bins
    histogram = np.bincount(
        bins.ravel(), weights=(magnitude * weights).ravel(), minlength=num_bins
    )
    if histogram.max() <= 0:
        return 0.0

    peak = int(np.argmax(histogram))
    return float(-np.pi + (peak + 0.5) * bin_width)
