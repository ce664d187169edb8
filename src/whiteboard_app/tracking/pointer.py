"""Colour-threshold pointer localisation."""

from __future__ import annotations

from typing import Optional

import numpy as np

from whiteboard_app.core.models import Point, TrackerConfig
from whiteboard_app.vision.capability import VisionCapability, get_capability


class PointerTracker:
    """
    Segment the configured HSV range and return the centre of the largest blob.

    The mask buffer is owned by the tracker and reused across frames of the
    same size; close() releases it.
    """

    def __init__(self, cfg: TrackerConfig, capability: Optional[VisionCapability] = None) -> None:
        self.cfg = cfg
        self.capability = capability or get_capability()
        self._kernel = self.capability.kernel(cfg.kernel_size)
        self._mask: Optional[np.ndarray] = None
        self.last_area: float = 0.0

    @property
    def min_area(self) -> float:
        return float(self.cfg.min_area)

    def adjust_min_area(self, steps: int) -> float:
        """Raise (steps > 0) or lower the acceptance area; never below the floor."""
        value = self.cfg.min_area + steps * self.cfg.min_area_step
        self.cfg.min_area = max(self.cfg.min_area_floor, value)
        return self.cfg.min_area

    def locate(self, rgb: np.ndarray) -> Optional[Point]:
        return self.locate_hsv(self.capability.to_hsv(rgb))

    def locate_hsv(self, hsv: np.ndarray) -> Optional[Point]:
        h, w = hsv.shape[:2]
        if self._mask is None or self._mask.shape != (h, w):
            self._mask = np.zeros((h, w), dtype=np.uint8)
        mask = self.capability.in_range(hsv, self.cfg.hsv_lower, self.cfg.hsv_upper, out=self._mask)
        self.capability.open_close(mask, self._kernel, erode=self.cfg.erode)

        contour, area = self.capability.largest_contour(mask)
        self.last_area = area
        if contour is None or area < self.cfg.min_area:
            return None
        x, y, bw, bh = self.capability.bounding_rect(contour)
        return (x + bw // 2, y + bh // 2)

    def close(self) -> None:
        self._mask = None
        self.last_area = 0.0
