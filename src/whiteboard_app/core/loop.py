"""
Per-channel processing pipeline and the cooperative loop that drives it.

Every channel runs the same steps on each tick: read the newest frame,
calibrate while uncalibrated (throttled), locate the pointer, smooth and
project it, then extend the channel's stroke on the shared canvas. Channels
are processed one after another inside a tick, so strokes on the canvas are
never interleaved.

The loop is not thread-safe by itself; callers that touch it from several
threads serialise access (WhiteboardController holds a lock around
every call).
"""

from __future__ import annotations

import copy
from typing import Dict, Optional

import numpy as np

from whiteboard_app.calibration.fiducials import FiducialCalibrator
from whiteboard_app.calibration.markers import CalibrationMarkerRenderer
from whiteboard_app.camera.base import CameraBase
from whiteboard_app.canvas.strokes import Canvas, StrokeAccumulator
from whiteboard_app.core.logging import get_logger
from whiteboard_app.core.models import (
    CalibrationState,
    CanvasConfig,
    ChannelStatus,
    Color,
    MarkerLayout,
    PipelineConfig,
    Point,
    TrackerConfig,
)
from whiteboard_app.tracking.pointer import PointerTracker
from whiteboard_app.tracking.projection import ProjectionEngine
from whiteboard_app.vision.capability import CapabilityUnavailable, VisionCapability, get_capability


class ChannelPipeline:
    """
    The complete state of one camera: calibration, tracking history and pen
    continuity. Owns its working buffers and releases them in close().
    """

    def __init__(
        self,
        channel_id: int,
        source: CameraBase,
        layout: MarkerLayout,
        canvas_size: tuple[int, int],
        strokes: StrokeAccumulator,
        tracker_cfg: TrackerConfig,
        cfg: PipelineConfig,
        capability: VisionCapability,
        color: Optional[Color] = None,
    ) -> None:
        self.channel_id = int(channel_id)
        self.source = source
        self.cfg = cfg
        self.capability = capability
        self.strokes = strokes
        self.log = get_logger(f"channel.{self.channel_id}")

        self.calibrator = FiducialCalibrator(layout, capability)
        self.tracker = PointerTracker(copy.copy(tracker_cfg), capability)
        self.projection = ProjectionEngine(
            canvas_size,
            history_size=cfg.history_size,
            max_missed_frames=cfg.max_missed_frames,
            capability=capability,
        )
        self.strokes.register_channel(self.channel_id, color)

        self.state: CalibrationState = "UNCALIBRATED"
        self.drawing_enabled = bool(cfg.drawing_enabled)
        self.calibration_error: Optional[str] = None
        self._work: Optional[np.ndarray] = None
        self._closed = False

        self.stream_ready = False
        self.pointer: Optional[Point] = None
        self.canvas_point: Optional[Point] = None
        self.frames_processed = 0
        self.calibrations = 0
        self.last_marker_ids: list[int] = []

    @property
    def calibrated(self) -> bool:
        return self.state == "CALIBRATED"

    @property
    def homography(self) -> Optional[np.ndarray]:
        return self.projection.homography

    def reset(self) -> None:
        """Drop the homography and return to UNCALIBRATED."""
        self.projection.set_homography(None)
        self.projection.reset()
        self.strokes.break_stroke(self.channel_id)
        self.canvas_point = None
        if self.state != "UNCALIBRATED":
            self.log.info("Channel %s calibration reset", self.channel_id)
        self.state = "UNCALIBRATED"

    def set_drawing(self, enabled: bool) -> None:
        self.drawing_enabled = bool(enabled)
        self.strokes.break_stroke(self.channel_id)

    def _load_frame(self, frame: np.ndarray) -> np.ndarray:
        if frame.ndim != 3 or frame.shape[2] < 3:
            raise ValueError("Expected HxWx3 RGB frame")
        if frame.shape[2] > 3:
            frame = frame[:, :, :3]
        w, h = self.cfg.working_size
        if self._work is None:
            self._work = np.empty((h, w, 3), dtype=np.uint8)
        if frame.shape[0] == h and frame.shape[1] == w:
            np.copyto(self._work, frame)
        else:
            self.capability.resize(np.ascontiguousarray(frame), (w, h), out=self._work)
        return self._work

    def try_calibrate(self) -> bool:
        """One detection attempt on the current working frame."""
        if self._work is None or self.calibration_error is not None:
            return False
        gray = self.capability.to_gray(self._work)
        try:
            detection = self.calibrator.detect(gray)
        except CapabilityUnavailable as exc:
            self.calibration_error = str(exc)
            self.log.error("Calibration disabled for channel %s: %s", self.channel_id, exc)
            return False
        self.last_marker_ids = detection.found_ids
        if detection.homography is None:
            return False
        self.projection.set_homography(detection.homography)
        self.strokes.break_stroke(self.channel_id)
        self.state = "CALIBRATED"
        self.calibrations += 1
        self.log.info("Channel %s calibrated from markers %s", self.channel_id, detection.found_ids)
        return True

    def calibrate_now(self) -> bool:
        """Attempt calibration on the newest frame, ignoring the cadence."""
        frame = self.source.read_latest()
        if frame is None:
            return False
        self._load_frame(frame)
        return self.try_calibrate()

    def process(self, tick: int) -> None:
        if self._closed:
            return
        frame = self.source.read_latest()
        if frame is None:
            self.stream_ready = False
            return
        self.stream_ready = True
        work = self._load_frame(frame)
        self.frames_processed += 1

        every = max(1, int(self.cfg.calibrate_every))
        if not self.calibrated and self.cfg.auto_calibrate and tick % every == 0:
            self.try_calibrate()

        sample = self.tracker.locate(work)
        result = self.projection.update(sample)
        self.pointer = result.smoothed
        self.canvas_point = result.canvas_point

        if result.canvas_point is not None and self.drawing_enabled:
            self.strokes.add_point(self.channel_id, result.canvas_point)
        elif not result.holding:
            self.strokes.break_stroke(self.channel_id)

    def status(self) -> ChannelStatus:
        return ChannelStatus(
            channel_id=self.channel_id,
            state=self.state,
            tracking=self.pointer is not None,
            stream_ready=self.stream_ready,
            drawing_enabled=self.drawing_enabled,
            pointer=self.pointer,
            canvas_point=self.canvas_point,
            frames_processed=self.frames_processed,
            calibrations=self.calibrations,
            last_marker_ids=list(self.last_marker_ids),
            calibration_error=self.calibration_error,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.source.stop()
        finally:
            self.tracker.close()
            self.projection.close()
            self.strokes.unregister_channel(self.channel_id)
            self._work = None
            self.state = "UNCALIBRATED"

    def __enter__(self) -> "ChannelPipeline":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class FrameProcessingLoop:
    """
    Drive every attached channel once per display tick against one canvas.
    """

    def __init__(
        self,
        canvas_cfg: CanvasConfig,
        layout: MarkerLayout,
        tracker_cfg: TrackerConfig,
        pipeline_cfg: PipelineConfig,
        capability: Optional[VisionCapability] = None,
    ) -> None:
        self.capability = capability or get_capability()
        self.capability.require()
        self.canvas_cfg = canvas_cfg
        self.layout = layout
        self.tracker_cfg = tracker_cfg
        self.pipeline_cfg = pipeline_cfg
        self.log = get_logger("loop")

        self.capability_error: Optional[str] = None
        if not self.capability.has_markers():
            self.capability_error = self.capability.unavailable_reason or "ArUco markers unavailable"
            self.log.error("Marker support unavailable, calibration disabled: %s", self.capability_error)

        self.renderer = CalibrationMarkerRenderer(layout, self.capability)
        self.canvas = Canvas(canvas_cfg, self.renderer, draw_markers=self.capability_error is None)
        self.strokes = StrokeAccumulator(self.canvas, width=pipeline_cfg.stroke_width, capability=self.capability)
        self.channels: Dict[int, ChannelPipeline] = {}
        self.tick_count = 0

    def attach(
        self,
        channel_id: int,
        source: CameraBase,
        color: Optional[Color] = None,
        start: bool = True,
        pipeline_cfg: Optional[PipelineConfig] = None,
    ) -> ChannelPipeline:
        if channel_id in self.channels:
            raise ValueError(f"Channel {channel_id} already attached")
        if start:
            source.start()
        channel = ChannelPipeline(
            channel_id=channel_id,
            source=source,
            layout=self.layout,
            canvas_size=self.canvas_cfg.size,
            strokes=self.strokes,
            tracker_cfg=self.tracker_cfg,
            cfg=pipeline_cfg or self.pipeline_cfg,
            capability=self.capability,
            color=color,
        )
        if self.capability_error is not None:
            channel.calibration_error = self.capability_error
        self.channels[channel_id] = channel
        self.log.info("Channel %s attached (%s)", channel_id, source.describe().get("type"))
        return channel

    def detach(self, channel_id: int) -> None:
        channel = self.channels.pop(channel_id, None)
        if channel is None:
            return
        channel.close()
        self.log.info("Channel %s detached", channel_id)

    def channel(self, channel_id: int) -> ChannelPipeline:
        try:
            return self.channels[channel_id]
        except KeyError:
            raise KeyError(f"Unknown channel {channel_id}") from None

    def tick(self) -> None:
        for channel_id in sorted(self.channels):
            self.channels[channel_id].process(self.tick_count)
        self.tick_count += 1

    def reset(self, channel_id: int) -> None:
        self.channel(channel_id).reset()

    def reset_all(self) -> None:
        for channel in self.channels.values():
            channel.reset()

    def clear(self) -> None:
        self.strokes.clear()
        self.log.info("Canvas cleared")

    @property
    def calibrated(self) -> bool:
        return bool(self.channels) and all(c.calibrated for c in self.channels.values())

    def status(self) -> dict:
        return {
            "calibrated": self.calibrated,
            "capability_error": self.capability_error,
            "tick": self.tick_count,
            "canvas": {"width": self.canvas.width, "height": self.canvas.height},
            "channels": [self.channels[i].status().to_dict() for i in sorted(self.channels)],
        }

    def close(self) -> None:
        for channel_id in list(self.channels):
            self.detach(channel_id)
