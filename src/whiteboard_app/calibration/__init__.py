"""Fiducial calibration helpers."""

from .fiducials import FiducialCalibrator, FiducialDetection, compute_homography, marker_centroid
from .markers import CalibrationMarkerRenderer

__all__ = [
    "FiducialCalibrator",
    "FiducialDetection",
    "CalibrationMarkerRenderer",
    "compute_homography",
    "marker_centroid",
]
