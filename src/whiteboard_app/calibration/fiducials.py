"""Four-marker fiducial calibration: camera pixels to canvas pixels."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from whiteboard_app.core.logging import get_logger
from whiteboard_app.core.models import MARKER_IDS, MarkerLayout
from whiteboard_app.vision.capability import CapabilityUnavailable, VisionCapability, get_capability


@dataclass(slots=True)
class FiducialDetection:
    """Outcome of one detection attempt."""
    found_ids: list[int]
    centers: dict[int, tuple[float, float]] = field(default_factory=dict)
    homography: Optional[np.ndarray] = None

    @property
    def complete(self) -> bool:
        return self.homography is not None


def marker_centroid(corners: np.ndarray) -> tuple[float, float]:
    """Mean of the four marker corners."""
    c = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    if c.shape[0] != 4:
        raise ValueError(f"Expected 4 corners, got {c.shape[0]}")
    m = c.mean(axis=0)
    return float(m[0]), float(m[1])


def compute_homography(
    src_points: list[tuple[float, float]],
    dst_points: list[tuple[float, float]],
    capability: Optional[VisionCapability] = None,
) -> Optional[np.ndarray]:
    """
    Solve the planar projective transform taking src_points onto dst_points.
    Returns None for degenerate input (collinear points, non-finite result).
    """
    if len(src_points) != 4 or len(dst_points) != 4:
        raise ValueError("Exactly four correspondences are required")
    src = np.asarray(src_points, dtype=np.float64)
    dst = np.asarray(dst_points, dtype=np.float64)
    if _has_collinear_triplet(src) or _has_collinear_triplet(dst):
        return None
    cap = capability or get_capability()
    try:
        h = cap.perspective_solve(src, dst)
    except Exception:
        return None
    if not np.all(np.isfinite(h)) or abs(float(np.linalg.det(h))) < 1e-12:
        return None
    return h / h[2, 2]


def _has_collinear_triplet(pts: np.ndarray, tol: float = 1e-6) -> bool:
    for i in range(4):
        a, b, c = (pts[j] for j in range(4) if j != i)
        cross = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
        if abs(cross) <= tol:
            return True
    return False


class FiducialCalibrator:
    """
    Detect the four corner markers in a grayscale frame and solve the
    camera-to-canvas homography.
    """

    def __init__(self, layout: MarkerLayout, capability: Optional[VisionCapability] = None) -> None:
        self.layout = layout
        self.capability = capability or get_capability()
        self.log = get_logger("calibration")

    def detect(self, gray: np.ndarray) -> FiducialDetection:
        if gray.ndim != 2:
            raise ValueError("Expected 2D grayscale image")
        try:
            markers = self.capability.detect_markers(gray)
        except CapabilityUnavailable:
            raise
        except Exception as exc:
            self.log.debug("Marker detection failed: %s", exc)
            return FiducialDetection(found_ids=[])

        found_ids = sorted(int(m[0]) for m in markers)
        counts: dict[int, int] = {}
        centers: dict[int, tuple[float, float]] = {}
        for marker_id, corners in markers:
            if marker_id not in MARKER_IDS:
                continue
            counts[marker_id] = counts.get(marker_id, 0) + 1
            quad = np.asarray(corners).reshape(-1, 2)
            if quad.shape[0] != 4:
                continue
            centers[marker_id] = marker_centroid(quad)

        result = FiducialDetection(found_ids=found_ids, centers=centers)
        if any(counts.get(i) != 1 for i in MARKER_IDS) or len(centers) != 4:
            self.log.debug("Incomplete marker set: %s", found_ids)
            return result

        src = [centers[i] for i in MARKER_IDS]
        dst = self.layout.anchor_centers()
        result.homography = compute_homography(src, dst, self.capability)
        return result

    def calibrate(self, gray: np.ndarray) -> Optional[np.ndarray]:
        """Homography for this frame, or None when the marker set is incomplete."""
        return self.detect(gray).homography
