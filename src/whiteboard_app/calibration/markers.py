"""Fiducial marker rendering onto the shared canvas."""

from __future__ import annotations

from typing import Optional

import numpy as np

from whiteboard_app.core.models import MARKER_IDS, MarkerLayout
from whiteboard_app.vision.capability import VisionCapability, get_capability


class CalibrationMarkerRenderer:
    """
    Rasterise the four corner markers and composite them at their anchors.
    """

    def __init__(self, layout: MarkerLayout, capability: Optional[VisionCapability] = None) -> None:
        self.layout = layout
        self.capability = capability or get_capability()
        self._cache: dict[int, np.ndarray] = {}

    def marker_image(self, marker_id: int) -> np.ndarray:
        """Return the marker as an RGB uint8 square of layout.marker_size pixels."""
        if marker_id not in self._cache:
            gray = self.capability.render_marker(marker_id, self.layout.marker_size)
            self._cache[marker_id] = np.repeat(gray[:, :, None], 3, axis=2).astype(np.uint8)
        return self._cache[marker_id]

    def render(self, canvas: np.ndarray) -> None:
        """Composite all four markers into canvas in place."""
        if canvas.ndim != 3 or canvas.shape[2] != 3:
            raise ValueError("Expected HxWx3 canvas")
        size = self.layout.marker_size
        h, w = canvas.shape[:2]
        for marker_id in MARKER_IDS:
            x, y = self.layout.marker_origin(marker_id)
            if x < 0 or y < 0 or x + size > w or y + size > h:
                raise ValueError(f"Marker {marker_id} at ({x}, {y}) does not fit a {w}x{h} canvas")
            canvas[y:y + size, x:x + size] = self.marker_image(marker_id)

    def board(self, width: int, height: int, background=(255, 255, 255)) -> np.ndarray:
        """A fresh canvas-sized board holding only the markers, for printing."""
        img = np.empty((height, width, 3), dtype=np.uint8)
        img[:, :] = background
        self.render(img)
        return img
