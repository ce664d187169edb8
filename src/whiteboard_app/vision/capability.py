"""
Process-wide access to the OpenCV primitives the pipeline relies on.

OpenCV is imported lazily the first time a capability is requested and the
result (or the failure) is cached for the lifetime of the process, so every
channel shares one instance.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

import numpy as np

from whiteboard_app.core.logging import get_logger


class CapabilityUnavailable(RuntimeError):
    """OpenCV, or its ArUco marker support, cannot be used in this process."""


MarkerDetection = tuple[int, np.ndarray]

_lock = threading.Lock()
_instance: Optional["VisionCapability"] = None


class VisionCapability:
    """
    Thin wrapper over cv2 exposing only the operations the whiteboard needs.
    """

    def __init__(self, cv: Any = None, dictionary_name: str = "DICT_4X4_50") -> None:
        self.log = get_logger("vision")
        self._import_error: Optional[BaseException] = None
        if cv is None:
            try:
                import cv2 as cv  # type: ignore[no-redef]
            except Exception as exc:  # pragma: no cover - depends on the host install
                cv = None
                self._import_error = exc
        self.cv = cv
        self.dictionary_name = dictionary_name
        self._dictionary = None
        self._detector = None
        self._marker_error: Optional[str] = None
        if self.cv is not None:
            self._init_markers()

    def _init_markers(self) -> None:
        cv = self.cv
        aruco = getattr(cv, "aruco", None)
        if aruco is None:
            self._marker_error = "cv2.aruco module is not available in this OpenCV build"
            return
        try:
            dict_id = getattr(aruco, self.dictionary_name)
            self._dictionary = aruco.getPredefinedDictionary(dict_id)
            params = aruco.DetectorParameters()
            self._detector = aruco.ArucoDetector(self._dictionary, params)
        except Exception as exc:
            self._dictionary = None
            self._detector = None
            self._marker_error = f"ArUco detector init failed: {exc}"

    def is_ready(self) -> bool:
        return self.cv is not None

    def has_markers(self) -> bool:
        return self._detector is not None

    @property
    def unavailable_reason(self) -> Optional[str]:
        if self.cv is None:
            return f"OpenCV import failed: {self._import_error}"
        return self._marker_error

    def require(self) -> Any:
        if self.cv is None:
            raise CapabilityUnavailable(
                "OpenCV is required for pointer tracking. "
                f"Import error: {self._import_error}"
            )
        return self.cv

    def require_markers(self) -> None:
        self.require()
        if self._detector is None:
            raise CapabilityUnavailable(self._marker_error or "ArUco markers unavailable")

    def detect_markers(self, gray: np.ndarray) -> list[MarkerDetection]:
        """Return (marker_id, corners[4, 2]) for every marker found in gray."""
        self.require_markers()
        corners, ids, _rejected = self._detector.detectMarkers(gray)
        if ids is None or len(ids) == 0:
            return []
        out: list[MarkerDetection] = []
        for marker_id, quad in zip(ids.reshape(-1), corners):
            out.append((int(marker_id), np.asarray(quad, dtype=np.float64).reshape(-1, 2)))
        return out

    def render_marker(self, marker_id: int, size: int, border_bits: int = 1) -> np.ndarray:
        self.require_markers()
        return self.cv.aruco.generateImageMarker(self._dictionary, int(marker_id), int(size), borderBits=border_bits)

    def to_gray(self, rgb: np.ndarray) -> np.ndarray:
        cv = self.require()
        if rgb.ndim == 2:
            return rgb.astype(np.uint8)
        return cv.cvtColor(rgb, cv.COLOR_RGB2GRAY)

    def to_hsv(self, rgb: np.ndarray) -> np.ndarray:
        cv = self.require()
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise ValueError("Expected HxWx3 RGB image for HSV conversion")
        return cv.cvtColor(rgb, cv.COLOR_RGB2HSV)

    def resize(self, image: np.ndarray, size: tuple[int, int], out: Optional[np.ndarray] = None) -> np.ndarray:
        cv = self.require()
        if out is not None:
            cv.resize(image, size, dst=out, interpolation=cv.INTER_AREA)
            return out
        return cv.resize(image, size, interpolation=cv.INTER_AREA)

    def in_range(self, hsv: np.ndarray, lower, upper, out: Optional[np.ndarray] = None) -> np.ndarray:
        cv = self.require()
        lo = np.asarray(lower, dtype=np.uint8)
        hi = np.asarray(upper, dtype=np.uint8)
        if out is not None:
            cv.inRange(hsv, lo, hi, dst=out)
            return out
        return cv.inRange(hsv, lo, hi)

    def kernel(self, size: int) -> np.ndarray:
        return np.ones((int(size), int(size)), np.uint8)

    def open_close(self, mask: np.ndarray, kernel: np.ndarray, erode: bool) -> np.ndarray:
        cv = self.require()
        cv.morphologyEx(mask, cv.MORPH_OPEN, kernel, dst=mask)
        cv.morphologyEx(mask, cv.MORPH_CLOSE, kernel, dst=mask)
        if erode:
            cv.erode(mask, kernel, dst=mask)
        return mask

    def largest_contour(self, mask: np.ndarray) -> tuple[Optional[np.ndarray], float]:
        cv = self.require()
        contours, _ = cv.findContours(mask, cv.RETR_EXTERNAL, cv.CHAIN_APPROX_SIMPLE)
        if not contours:
            return None, 0.0
        best = max(contours, key=cv.contourArea)
        return best, float(cv.contourArea(best))

    def bounding_rect(self, contour: np.ndarray) -> tuple[int, int, int, int]:
        cv = self.require()
        x, y, w, h = cv.boundingRect(contour)
        return int(x), int(y), int(w), int(h)

    def perspective_solve(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        cv = self.require()
        s = np.asarray(src, dtype=np.float32).reshape(4, 2)
        d = np.asarray(dst, dtype=np.float32).reshape(4, 2)
        return cv.getPerspectiveTransform(s, d).astype(np.float64)

    def perspective_point(self, homography: np.ndarray, x: float, y: float) -> tuple[float, float]:
        cv = self.require()
        src = np.array([[[float(x), float(y)]]], dtype=np.float64)
        out = cv.perspectiveTransform(src, homography)
        return float(out[0, 0, 0]), float(out[0, 0, 1])

    def draw_segment(self, canvas: np.ndarray, p0, p1, color, width: int) -> None:
        cv = self.require()
        cv.line(canvas, tuple(int(v) for v in p0), tuple(int(v) for v in p1), tuple(int(c) for c in color), int(width), cv.LINE_AA)
        # Disc caps so consecutive segments join without notches.
        radius = max(1, int(width) // 2)
        for p in (p0, p1):
            cv.circle(canvas, (int(p[0]), int(p[1])), radius, tuple(int(c) for c in color), -1, cv.LINE_AA)


def get_capability() -> VisionCapability:
    """Return the shared capability, building it on first use."""
    global _instance
    with _lock:
        if _instance is None:
            _instance = VisionCapability()
            log = get_logger("vision")
            if _instance.unavailable_reason:
                log.warning("Vision capability degraded: %s", _instance.unavailable_reason)
            else:
                log.info("Vision capability ready (OpenCV %s)", getattr(_instance.cv, "__version__", "?"))
        return _instance


def reset_capability() -> None:
    """Drop the cached capability; the next get_capability() rebuilds it."""
    global _instance
    with _lock:
        _instance = None
