"""
Shared test fixtures for whiteboard_app tests.
"""

from typing import Optional

import numpy as np
import pytest

from whiteboard_app.camera.mock import MockCamera
from whiteboard_app.core.loop import FrameProcessingLoop
from whiteboard_app.core.models import CanvasConfig, MarkerLayout, PipelineConfig, TrackerConfig
from whiteboard_app.vision.capability import CapabilityUnavailable, VisionCapability, get_capability


CORNER_ANCHORS = {0: (40.0, 40.0), 1: (1880.0, 40.0), 2: (1880.0, 1040.0), 3: (40.0, 1040.0)}
# Small enough that a marker centred on each corner anchor fits the canvas.
CORNER_MARKER_SIZE = 60


def square_corners(cx: float, cy: float, half: float = 10.0) -> np.ndarray:
    return np.array(
        [[cx - half, cy - half], [cx + half, cy - half], [cx + half, cy + half], [cx - half, cy + half]],
        dtype=np.float64,
    )


def corner_detections(centers=CORNER_ANCHORS) -> list:
    return [(marker_id, square_corners(*centers[marker_id])) for marker_id in sorted(centers)]


class FakeMarkerCapability(VisionCapability):
    """Real OpenCV for everything except marker detection, which is scripted."""

    def __init__(self, detections: Optional[list] = None, markers: bool = True) -> None:
        super().__init__()
        self.detections = detections if detections is not None else []
        self.markers_enabled = markers
        self.detect_calls = 0

    def has_markers(self) -> bool:
        return self.markers_enabled and super().has_markers()

    @property
    def unavailable_reason(self):
        if not self.markers_enabled:
            return "ArUco disabled for test"
        return None

    def detect_markers(self, gray):
        self.detect_calls += 1
        if not self.markers_enabled:
            raise CapabilityUnavailable("ArUco disabled for test")
        return [(int(i), np.asarray(c, dtype=np.float64)) for i, c in self.detections]


def blank_frame(width: int = 1920, height: int = 1080) -> np.ndarray:
    return np.full((height, width, 3), 255, dtype=np.uint8)


def green_frame(cx: int, cy: int, half: int = 20, width: int = 1920, height: int = 1080) -> np.ndarray:
    frame = blank_frame(width, height)
    frame[cy - half:cy + half + 1, cx - half:cx + half + 1] = (0, 255, 0)
    return frame


@pytest.fixture(autouse=True)
def _work_in_tmp(tmp_path, monkeypatch):
    """setup_logging() writes into ./logs; keep that out of the source tree."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture(scope="session")
def capability():
    return get_capability()


@pytest.fixture
def fake_capability():
    return FakeMarkerCapability(detections=corner_detections())


@pytest.fixture
def layout():
    return MarkerLayout(canvas_width=1920, canvas_height=1080, marker_size=CORNER_MARKER_SIZE, margin=10, anchors=dict(CORNER_ANCHORS))


@pytest.fixture
def pipeline_cfg():
    return PipelineConfig(working_size=(1920, 1080), calibrate_every=1)


@pytest.fixture
def make_loop(layout, pipeline_cfg):
    def _make(capability, **overrides):
        cfg = PipelineConfig(**{**{
            "working_size": pipeline_cfg.working_size,
            "calibrate_every": pipeline_cfg.calibrate_every,
        }, **overrides})
        return FrameProcessingLoop(
            canvas_cfg=CanvasConfig(width=1920, height=1080),
            layout=layout,
            tracker_cfg=TrackerConfig(),
            pipeline_cfg=cfg,
            capability=capability,
        )
    return _make


def mock_source(frames) -> MockCamera:
    return MockCamera(data_dir=None, frames=frames, loop=False)
