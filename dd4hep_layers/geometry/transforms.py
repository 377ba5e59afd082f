"""
Rigid transforms and the conversion of DD4hep placement matrices.

DD4hep hands out the nominal world transformation of a detector element as a
4x4 row-major matrix (rotation plus translation) in centimeters. The tracking
geometry works in millimeters, so the translation is rescaled while the
rotation is copied unchanged.
"""

from typing import Optional, Sequence

import numpy as np

from dd4hep_layers.units import UNIT_CM


class Transform3D:
    """Rotation (3x3) followed by a translation (3,)."""

    def __init__(self, rotation=None, translation=None):
        self.rotation = np.eye(3) if rotation is None else np.array(rotation, dtype=float).reshape(3, 3)
        self.translation = np.zeros(3) if translation is None else np.array(translation, dtype=float).reshape(3)

    @classmethod
    def from_translation(cls, x=0.0, y=0.0, z=0.0) -> "Transform3D":
        return cls(translation=(x, y, z))

    @classmethod
    def from_matrix(cls, matrix) -> "Transform3D":
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"Expected a 4x4 matrix, got shape {matrix.shape}")
        return cls(matrix[:3, :3], matrix[:3, 3])

    @property
    def matrix(self) -> np.ndarray:
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation
        matrix[:3, 3] = self.translation
        return matrix

    def column(self, index: int) -> np.ndarray:
        return self.rotation[:, index].copy()

    def with_translation(self, translation) -> "Transform3D":
        return Transform3D(self.rotation, translation)

    def to_global(self, points) -> np.ndarray:
        """Map local points of shape (..., 3) into the global frame."""
        return np.asarray(points, dtype=float) @ self.rotation.T + self.translation

    def to_local(self, points) -> np.ndarray:
        """Map global points of shape (..., 3) into the local frame."""
        return (np.asarray(points, dtype=float) - self.translation) @ self.rotation

    def __mul__(self, other: "Transform3D") -> "Transform3D":
        return Transform3D(self.rotation @ other.rotation,
                           self.rotation @ other.translation + self.translation)

    def __eq__(self, other):
        if not isinstance(other, Transform3D):
            return NotImplemented
        return (np.array_equal(self.rotation, other.rotation)
                and np.array_equal(self.translation, other.translation))

    def __repr__(self):
        return f"Transform3D(translation={self.translation.tolist()}, rotation={self.rotation.tolist()})"


def rotation_z(phi: float) -> np.ndarray:
    c, s = np.cos(phi), np.sin(phi)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def rotation_y(angle: float) -> np.ndarray:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def convert_transform(matrix, scale: float = UNIT_CM) -> Transform3D:
    """
    Convert a native 4x4 world transformation into an internal transform.

    Parameters:
    -----------
    matrix : array-like or Transform3D
        Row-major 4x4 rigid transform in native (cm) units
    scale : float
        Multiplicative factor from the native length unit to mm

    Returns:
    --------
    Transform3D with the rotation copied and the translation rescaled
    """
    if isinstance(matrix, Transform3D):
        rotation, translation = matrix.rotation, matrix.translation
    else:
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"Expected a 4x4 transformation matrix, got shape {matrix.shape}")
        rotation, translation = matrix[:3, :3], matrix[:3, 3]
    return Transform3D(rotation.copy(), translation * scale)


def convert_tgeo_matrix(rotation: Sequence[float], translation: Sequence[float],
                        scale: float = UNIT_CM) -> Transform3D:
    """Same as :func:`convert_transform` for a TGeo-style (rotation[9], translation[3]) pair."""
    rotation = np.asarray(rotation, dtype=float)
    if rotation.size != 9 or len(translation) != 3:
        raise ValueError("TGeo matrix needs 9 rotation and 3 translation values")
    return Transform3D(rotation.reshape(3, 3), np.asarray(translation, dtype=float) * scale)


def world_matrix(rotation: Optional[np.ndarray] = None, translation=(0.0, 0.0, 0.0)) -> np.ndarray:
    """Build a 4x4 row-major world matrix in native units."""
    return Transform3D(rotation, translation).matrix
