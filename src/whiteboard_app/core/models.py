"""
Core data models for canvas layout, tracking parameters and channel status.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict, field
from typing import Literal, Tuple, Dict, Any, Optional


Point = Tuple[int, int]
Color = Tuple[int, int, int]
CalibrationState = Literal["UNCALIBRATED", "CALIBRATED"]

MARKER_IDS: Tuple[int, ...] = (0, 1, 2, 3)

# RGB pen colours; channel 1 blue, channel 2 red.
DEFAULT_CHANNEL_COLORS: Dict[int, Color] = {
    1: (0, 0, 255),
    2: (255, 0, 0),
    3: (0, 160, 0),
    4: (160, 0, 160),
}


def channel_color(channel_id: int) -> Color:
    if channel_id in DEFAULT_CHANNEL_COLORS:
        return DEFAULT_CHANNEL_COLORS[channel_id]
    palette = list(DEFAULT_CHANNEL_COLORS.values())
    return palette[channel_id % len(palette)]


@dataclass(slots=True)
class CanvasConfig:
    width: int = 1920
    height: int = 1080
    background: Color = (255, 255, 255)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass(slots=True)
class MarkerLayout:
    """
    Placement of the four corner fiducials on the canvas.

    Marker ids go clockwise from the top-left: 0 top-left, 1 top-right,
    2 bottom-right, 3 bottom-left. Each marker is a square of marker_size
    pixels whose outer edge sits margin pixels from the canvas border.
    Explicit anchors replace the computed centres; each marker is then
    drawn centred on its anchor.
    """
    canvas_width: int = 1920
    canvas_height: int = 1080
    marker_size: int = 200
    margin: int = 40
    anchors: Optional[Dict[int, Tuple[float, float]]] = None

    def marker_origin(self, marker_id: int) -> Point:
        """Top-left pixel of the marker square for marker_id."""
        if marker_id not in MARKER_IDS:
            raise ValueError(f"Marker id must be one of {MARKER_IDS}, got {marker_id}")
        if self.anchors is not None:
            return self._anchored_origin(marker_id)
        left = self.margin
        right = self.canvas_width - self.margin - self.marker_size
        top = self.margin
        bottom = self.canvas_height - self.margin - self.marker_size
        return {
            0: (left, top),
            1: (right, top),
            2: (right, bottom),
            3: (left, bottom),
        }[marker_id]

    def _anchored_origin(self, marker_id: int) -> Point:
        ax, ay = self.anchors[marker_id]
        half = self.marker_size // 2
        x = int(math.floor(float(ax) + 0.5)) - half
        y = int(math.floor(float(ay) + 0.5)) - half
        if x < 0 or y < 0 or x + self.marker_size > self.canvas_width or y + self.marker_size > self.canvas_height:
            raise ValueError(
                f"Marker {marker_id} centred on anchor ({ax}, {ay}) does not fit a "
                f"{self.canvas_width}x{self.canvas_height} canvas at size {self.marker_size}"
            )
        return (x, y)

    def anchor_center(self, marker_id: int) -> Tuple[float, float]:
        if self.anchors is not None:
            x, y = self.anchors[marker_id]
            return (float(x), float(y))
        ox, oy = self.marker_origin(marker_id)
        offset = self.marker_size // 2
        return (float(ox + offset), float(oy + offset))

    def anchor_centers(self) -> list[Tuple[float, float]]:
        return [self.anchor_center(i) for i in MARKER_IDS]


@dataclass(slots=True)
class TrackerConfig:
    """
    Colour segmentation parameters. HSV ranges use OpenCV's 8-bit scale
    (H in 0..179). Defaults pick up a green pointer.
    """
    hsv_lower: Tuple[int, int, int] = (40, 40, 0)
    hsv_upper: Tuple[int, int, int] = (80, 255, 255)
    kernel_size: int = 7
    erode: bool = True
    min_area: float = 150.0
    min_area_floor: float = 100.0
    min_area_step: float = 50.0


@dataclass(slots=True)
class PipelineConfig:
    working_size: Tuple[int, int] = (1280, 720)
    history_size: int = 5
    calibrate_every: int = 10
    auto_calibrate: bool = True
    max_missed_frames: int = 0
    stroke_width: int = 5
    drawing_enabled: bool = True


@dataclass(slots=True)
class ChannelStatus:
    channel_id: int
    state: CalibrationState
    tracking: bool
    stream_ready: bool
    drawing_enabled: bool
    pointer: Optional[Point] = None
    canvas_point: Optional[Point] = None
    frames_processed: int = 0
    calibrations: int = 0
    last_marker_ids: list[int] = field(default_factory=list)
    calibration_error: Optional[str] = None

    @property
    def calibrated(self) -> bool:
        return self.state == "CALIBRATED"

    @property
    def status_text(self) -> str:
        text = "CALIBRATED" if self.calibrated else "NOT CALIBRATED"
        if self.calibration_error is not None:
            text += " (calibration disabled)"
        if self.pointer is not None:
            text += f" | Pos: ({self.pointer[0]}, {self.pointer[1]})"
        elif self.stream_ready:
            text += " | pointer lost"
        else:
            text += " | no frame"
        return text

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["calibrated"] = self.calibrated
        data["status_text"] = self.status_text
        return data
