"""SE(3) rigid transforms used for sensor poses and candidate alignments."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

# Optical frame (x right, y down, z forward) -> robot frame (x forward, y left, z up)
_OPTICAL_TO_ROBOT = np.array(
    [[0.0, 0.0, 1.0], [-1.0, 0.0, 0.0], [0.0, -1.0, 0.0]], dtype=np.float64
)


@dataclass
class SE3:
    """Rigid body transformation (rotation + translation).

    An ``SE3`` named ``T_a_b`` maps points expressed in frame ``b`` into
    frame ``a``:

        p_a = R @ p_b + t

    In this package it describes either the pose of a stereo rig with
    respect to the robot (sensor pose), or a candidate alignment between
    two landmark clouds evaluated by :func:`stereo_core.metrics.compute_msd`.

    Attributes:
        rotation: 3x3 orthonormal rotation matrix (det = +1)
        translation: 3D translation vector
    """

    rotation: np.ndarray  # 3x3 rotation matrix
    translation: np.ndarray  # (3,) translation vector

    def __post_init__(self) -> None:
        """Validate and normalize inputs."""
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(
                f"Translation must be (3,), got {self.translation.shape}"
            )

    @classmethod
    def identity(cls) -> SE3:
        """Return the transform that leaves every point unchanged."""
        return cls(rotation=np.eye(3), translation=np.zeros(3))

    @classmethod
    def from_Rt(cls, R: np.ndarray, t: np.ndarray) -> SE3:
        """Create SE3 from rotation matrix and translation vector."""
        return cls(rotation=R, translation=t)

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Create SE3 from a 4x4 homogeneous matrix [[R, t], [0, 1]]."""
        T = np.asarray(T)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")
        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> SE3:
        """Create SE3 from an OpenCV Rodrigues vector and translation.

        Handy for RANSAC loops that sample rotations with cv2 (e.g. the
        output of ``cv2.solvePnP`` or ``cv2.estimateAffine3D``).
        """
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).flatten())
        return cls(rotation=R, translation=np.asarray(tvec).flatten())

    @classmethod
    def from_ypr(
        cls,
        yaw: float,
        pitch: float,
        roll: float,
        translation: np.ndarray | None = None,
    ) -> SE3:
        """Create SE3 from yaw/pitch/roll angles (radians).

        The rotation is R = Rz(yaw) @ Ry(pitch) @ Rx(roll), the usual
        convention for mobile robot poses.

        Args:
            yaw: Rotation around Z
            pitch: Rotation around Y
            roll: Rotation around X
            translation: 3D translation, zeros if None

        Returns:
            SE3 transformation
        """
        cy, sy = np.cos(yaw), np.sin(yaw)
        cp, sp = np.cos(pitch), np.sin(pitch)
        cr, sr = np.cos(roll), np.sin(roll)

        Rz = np.array([[cy, -sy, 0.0], [sy, cy, 0.0], [0.0, 0.0, 1.0]])
        Ry = np.array([[cp, 0.0, sp], [0.0, 1.0, 0.0], [-sp, 0.0, cp]])
        Rx = np.array([[1.0, 0.0, 0.0], [0.0, cr, -sr], [0.0, sr, cr]])

        if translation is None:
            translation = np.zeros(3)
        return cls(rotation=Rz @ Ry @ Rx, translation=translation)

    @classmethod
    def camera_mount(cls, translation: np.ndarray | None = None) -> SE3:
        """Pose of a forward-looking camera on a robot.

        Maps the optical frame (x right, y down, z forward) into the robot
        frame (x forward, y left, z up), optionally offset by ``translation``
        (camera position in the robot frame).
        """
        if translation is None:
            translation = np.zeros(3)
        return cls(rotation=_OPTICAL_TO_ROBOT.copy(), translation=translation)

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 homogeneous transformation matrix."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def inverse(self) -> SE3:
        """Compute the inverse transformation [R^T, -R^T @ t]."""
        R_inv = self.rotation.T
        return SE3(rotation=R_inv, translation=-R_inv @ self.translation)

    def compose(self, other: SE3) -> SE3:
        """Compose with another transformation: self @ other.

        If self = T_a_b and other = T_b_c, the result is T_a_c.
        """
        R = self.rotation @ other.rotation
        t = self.rotation @ other.translation + self.translation
        return SE3(rotation=R, translation=t)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Apply the transform to an Nx3 array of points.

        Args:
            points: Nx3 array (a single (3,) point is promoted to 1x3)

        Returns:
            Nx3 array of transformed points
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(1, 3)

        if points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")

        return points @ self.rotation.T + self.translation

    def transform_point(self, point: np.ndarray) -> np.ndarray:
        """Apply the transform to a single 3D point."""
        point = np.asarray(point, dtype=np.float64).flatten()
        return self.rotation @ point + self.translation

    def __repr__(self) -> str:
        """Return string representation."""
        t = self.translation
        return f"SE3(translation=[{t[0]:.3f}, {t[1]:.3f}, {t[2]:.3f}])"

    def __matmul__(self, other: SE3) -> SE3:
        """Allow T_a_c = T_a_b @ T_b_c."""
        return self.compose(other)
