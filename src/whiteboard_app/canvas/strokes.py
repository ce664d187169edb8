"""Shared canvas raster and per-channel stroke continuity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from PIL import Image

from whiteboard_app.calibration.markers import CalibrationMarkerRenderer
from whiteboard_app.core.models import CanvasConfig, Color, Point, channel_color
from whiteboard_app.vision.capability import VisionCapability, get_capability


@dataclass(slots=True, frozen=True)
class Segment:
    channel_id: int
    start: Point
    end: Point
    color: Color
    width: int


class Canvas:
    """
    One RGB raster shared by every channel. The four fiducials are always
    present: they are drawn at construction and again after every wipe.
    """

    def __init__(self, cfg: CanvasConfig, renderer: CalibrationMarkerRenderer, draw_markers: bool = True) -> None:
        self.cfg = cfg
        self.renderer = renderer
        self.draw_markers = draw_markers
        self.raster = np.empty((cfg.height, cfg.width, 3), dtype=np.uint8)
        self.wipe()

    @property
    def width(self) -> int:
        return self.cfg.width

    @property
    def height(self) -> int:
        return self.cfg.height

    def wipe(self) -> None:
        self.raster[:, :] = self.cfg.background
        if self.draw_markers:
            self.renderer.render(self.raster)

    def snapshot(self) -> np.ndarray:
        return self.raster.copy()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.raster.copy())


class StrokeAccumulator:
    """
    Draw segments between consecutive canvas points of each channel.

    A channel's first point after a gap only records the pen position; the
    next point connects to it.
    """

    def __init__(
        self,
        canvas: Canvas,
        width: int = 5,
        capability: Optional[VisionCapability] = None,
    ) -> None:
        self.canvas = canvas
        self.width = int(width)
        self.capability = capability or get_capability()
        self._colors: Dict[int, Color] = {}
        self._last: Dict[int, Optional[Point]] = {}
        self.segments_drawn: Dict[int, int] = {}

    def register_channel(self, channel_id: int, color: Optional[Color] = None) -> None:
        self._colors[channel_id] = tuple(color) if color is not None else channel_color(channel_id)  # type: ignore[assignment]
        self._last[channel_id] = None
        self.segments_drawn.setdefault(channel_id, 0)

    def unregister_channel(self, channel_id: int) -> None:
        self._colors.pop(channel_id, None)
        self._last.pop(channel_id, None)

    def color_of(self, channel_id: int) -> Color:
        return self._colors[channel_id]

    def last_point(self, channel_id: int) -> Optional[Point]:
        return self._last.get(channel_id)

    def add_point(self, channel_id: int, point: Point) -> Optional[Segment]:
        if channel_id not in self._colors:
            raise KeyError(f"Channel {channel_id} is not registered")
        last = self._last.get(channel_id)
        segment = None
        if last is not None:
            segment = Segment(
                channel_id=channel_id,
                start=last,
                end=point,
                color=self._colors[channel_id],
                width=self.width,
            )
            self.capability.draw_segment(self.canvas.raster, last, point, segment.color, self.width)
            self.segments_drawn[channel_id] = self.segments_drawn.get(channel_id, 0) + 1
        self._last[channel_id] = point
        return segment

    def break_stroke(self, channel_id: int) -> None:
        if channel_id in self._last:
            self._last[channel_id] = None

    def clear(self) -> None:
        """Wipe the canvas, redraw the fiducials and break every channel's stroke."""
        self.canvas.wipe()
        for channel_id in self._last:
            self._last[channel_id] = None
