"""Pinhole camera model: intrinsics, default profiles, and pixel rays."""

from dataclasses import dataclass

import cv2
import numpy as np

from .errors import InvalidParameterError, UnknownProfileError

# Known camera profiles as ratios of the image resolution:
# (fx / width, fy / height, cx / width, cy / height)
DEFAULT_CAMERA_PROFILES: dict[int, tuple[float, float, float, float]] = {
    0: (0.79345, 1.05793, 0.55662, 0.52692),  # Point Grey Research Bumblebee
    1: (0.95666094, 1.3983423, 0.54626328, 0.4939191),  # Sony
}


@dataclass(frozen=True)
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model).

    Raises:
        InvalidParameterError: If fx or fy is not strictly positive
    """

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)

    def __post_init__(self) -> None:
        if not self.fx > 0 or not self.fy > 0:
            raise InvalidParameterError(
                f"Focal lengths must be positive, got fx={self.fx}, fy={self.fy}"
            )

    @classmethod
    def from_matrix(cls, K: np.ndarray) -> "CameraIntrinsics":
        """Create intrinsics from a 3x3 matrix [[fx, 0, cx], [0, fy, cy], [0, 0, 1]]."""
        K = np.asarray(K, dtype=np.float64)
        if K.shape != (3, 3):
            raise InvalidParameterError(f"Intrinsic matrix must be 3x3, got {K.shape}")
        return cls(
            fx=float(K[0, 0]), fy=float(K[1, 1]), cx=float(K[0, 2]), cy=float(K[1, 2])
        )

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class DistortionCoeffs:
    """Radial-tangential distortion coefficients."""

    k1: float  # Radial distortion coefficient 1
    k2: float  # Radial distortion coefficient 2
    p1: float  # Tangential distortion coefficient 1
    p2: float  # Tangential distortion coefficient 2
    k3: float = 0.0  # Radial distortion coefficient 3

    def to_array(self) -> np.ndarray:
        """Return distortion coefficients as (5,) array for OpenCV."""
        return np.array(
            [self.k1, self.k2, self.p1, self.p2, self.k3], dtype=np.float64
        )


def build_intrinsics(fx: float, fy: float, cx: float, cy: float) -> CameraIntrinsics:
    """Build the intrinsic parameters of a camera.

    Args:
        fx: Focal length in horizontal pixels
        fy: Focal length in vertical pixels
        cx: Image center, horizontal, in pixels
        cy: Image center, vertical, in pixels

    Returns:
        CameraIntrinsics whose ``to_matrix()`` is
        [[fx, 0, cx], [0, fy, cy], [0, 0, 1]]

    Raises:
        InvalidParameterError: If fx <= 0 or fy <= 0
    """
    return CameraIntrinsics(fx=float(fx), fy=float(fy), cx=float(cx), cy=float(cy))


def default_intrinsics(
    camera_index: int = 0, width: int = 320, height: int = 240
) -> CameraIntrinsics:
    """Return the stored default intrinsics of a known camera.

    The profile ratios in :data:`DEFAULT_CAMERA_PROFILES` are scaled by the
    requested resolution.

    Args:
        camera_index: 0 = Point Grey Bumblebee, 1 = Sony
        width: Number of pixel columns
        height: Number of pixel rows

    Returns:
        CameraIntrinsics for the given resolution

    Raises:
        UnknownProfileError: If camera_index is not in the table
        InvalidParameterError: If width or height is not positive
    """
    profile = DEFAULT_CAMERA_PROFILES.get(camera_index)
    if profile is None:
        raise UnknownProfileError(
            f"Unknown camera profile {camera_index}, "
            f"expected one of {sorted(DEFAULT_CAMERA_PROFILES)}"
        )
    if width <= 0 or height <= 0:
        raise InvalidParameterError(
            f"Resolution must be positive, got {width}x{height}"
        )

    fx_ratio, fy_ratio, cx_ratio, cy_ratio = profile
    return CameraIntrinsics(
        fx=fx_ratio * width,
        fy=fy_ratio * height,
        cx=cx_ratio * width,
        cy=cy_ratio * height,
    )


def pixel_to_ray(x: float, y: float, intrinsics: CameraIntrinsics) -> np.ndarray:
    """Unit 3D vector pointing from the optical center through pixel (x, y).

    Pixel coordinates are measured from the top-left corner of the image.
    The vector is expressed in the camera optical frame (z forward).
    """
    ray = np.array(
        [
            (x - intrinsics.cx) / intrinsics.fx,
            (y - intrinsics.cy) / intrinsics.fy,
            1.0,
        ],
        dtype=np.float64,
    )
    return ray / np.linalg.norm(ray)


def correct_distortion(
    image: np.ndarray,
    intrinsics: CameraIntrinsics,
    distortion: DistortionCoeffs,
) -> np.ndarray:
    """Return a new image with lens distortion removed."""
    return cv2.undistort(image, intrinsics.to_matrix(), distortion.to_array())


def flip_image(image: np.ndarray) -> np.ndarray:
    """Return the image flipped upside down."""
    return cv2.flip(image, 0)
