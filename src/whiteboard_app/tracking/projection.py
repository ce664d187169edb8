"""Temporal smoothing and camera-to-canvas projection of pointer samples."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np

from whiteboard_app.core.models import Point
from whiteboard_app.vision.capability import VisionCapability, get_capability


def round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


@dataclass(slots=True)
class ProjectionResult:
    smoothed: Optional[Point]
    canvas_point: Optional[Point]
    # True while a miss is being bridged by the grace window.
    holding: bool = False


class ProjectionEngine:
    """
    Per-channel moving average over the last few raw centroids, mapped
    through the channel homography and clamped to the canvas.

    With max_missed_frames == 0 a single frame without a detection empties
    the history. Larger values bridge that many consecutive misses: history
    is kept but nothing is projected for the missed frames.
    """

    def __init__(
        self,
        canvas_size: tuple[int, int],
        history_size: int = 5,
        max_missed_frames: int = 0,
        capability: Optional[VisionCapability] = None,
    ) -> None:
        if history_size < 1:
            raise ValueError("history_size must be >= 1")
        self.canvas_width, self.canvas_height = (int(canvas_size[0]), int(canvas_size[1]))
        self.max_missed_frames = max(0, int(max_missed_frames))
        self.capability = capability or get_capability()
        self.history: deque[Point] = deque(maxlen=int(history_size))
        self._homography: Optional[np.ndarray] = None
        self._missed = 0

    @property
    def homography(self) -> Optional[np.ndarray]:
        return self._homography

    def set_homography(self, homography: Optional[np.ndarray]) -> None:
        """Replace the homography as a whole with a private copy."""
        if homography is not None:
            homography = np.array(homography, dtype=np.float64, copy=True).reshape(3, 3)
        self._homography = homography

    def push(self, sample: Optional[Point]) -> Optional[Point]:
        """Feed one raw sample (or None) and return the smoothed point."""
        if sample is None:
            self._missed += 1
            if self._missed > self.max_missed_frames:
                self.history.clear()
            return None
        self._missed = 0
        self.history.append((int(sample[0]), int(sample[1])))
        n = len(self.history)
        sx = sum(p[0] for p in self.history)
        sy = sum(p[1] for p in self.history)
        return (round_half_up(sx / n), round_half_up(sy / n))

    @property
    def holding(self) -> bool:
        return 0 < self._missed <= self.max_missed_frames and bool(self.history)

    def reset(self) -> None:
        self.history.clear()
        self._missed = 0

    def clamp(self, x: float, y: float) -> Point:
        cx = min(max(round_half_up(x), 0), self.canvas_width - 1)
        cy = min(max(round_half_up(y), 0), self.canvas_height - 1)
        return (cx, cy)

    def project(self, point: Point) -> Optional[Point]:
        h = self._homography
        if h is None:
            return None
        x, y = self.capability.perspective_point(h, point[0], point[1])
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        return self.clamp(x, y)

    def update(self, sample: Optional[Point]) -> ProjectionResult:
        smoothed = self.push(sample)
        if smoothed is None:
            return ProjectionResult(smoothed=None, canvas_point=None, holding=self.holding)
        return ProjectionResult(smoothed=smoothed, canvas_point=self.project(smoothed))

    def close(self) -> None:
        self.reset()
        self._homography = None
