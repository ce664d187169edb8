"""Whiteboard controller coordinating cameras, the frame loop and outputs."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Optional, Dict, Any

import numpy as np

from whiteboard_app.camera.base import CameraBase
from whiteboard_app.core.config import (
    camera_specs,
    canvas_config,
    create_camera,
    marker_layout,
    pipeline_config,
    tracker_config,
)
from whiteboard_app.core.logging import setup_from_config
from whiteboard_app.core.loop import FrameProcessingLoop
from whiteboard_app.core.models import Color
from whiteboard_app.io.snapshot_store import SnapshotStore
from whiteboard_app.vision.capability import VisionCapability
from whiteboard_app.web.preview import PreviewBroadcaster


class WhiteboardController:
    """
    Owns the frame loop and serialises every access to it.

    tick() is driven either by the caller (desktop display) or by a paced
    worker thread started with start_loop() (web server). UI operations take
    the same lock, so they always land between two ticks.
    """

    def __init__(
        self,
        loop: FrameProcessingLoop,
        store: Optional[SnapshotStore] = None,
        preview: Optional[PreviewBroadcaster] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.loop = loop
        self.store = store
        self.preview = preview
        self.config = config or {}
        self.log = setup_from_config(self.config)

        web_cfg = self.config.get("web", {}) or {}
        self.preview_every = max(1, int(web_cfg.get("preview_every_n_ticks", 3)))

        self._lock = threading.RLock()
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_error: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        capability: Optional[VisionCapability] = None,
        attach_cameras: bool = True,
    ) -> "WhiteboardController":
        loop = FrameProcessingLoop(
            canvas_cfg=canvas_config(cfg),
            layout=marker_layout(cfg),
            tracker_cfg=tracker_config(cfg),
            pipeline_cfg=pipeline_config(cfg),
            capability=capability,
        )
        store = SnapshotStore(root=(cfg.get("storage", {}) or {}).get("snapshot_root", "data/snapshots"))
        web_cfg = cfg.get("web", {}) or {}
        preview = PreviewBroadcaster(
            max_width=int(web_cfg.get("preview_width", 960)),
            quality=int(web_cfg.get("jpeg_quality", 80)),
        )
        controller = cls(loop=loop, store=store, preview=preview, config=cfg)
        if attach_cameras:
            for spec in camera_specs(cfg):
                controller.attach(spec["id"], create_camera(spec), color=spec["color"])
        return controller

    def attach(self, channel_id: int, source: CameraBase, color: Optional[Color] = None) -> None:
        with self._lock:
            self.loop.attach(channel_id, source, color=color)

    def detach(self, channel_id: int) -> None:
        with self._lock:
            self.loop.detach(channel_id)

    def tick(self) -> None:
        with self._lock:
            self.loop.tick()
            if self.preview is not None and self.loop.tick_count % self.preview_every == 0:
                self.preview.update(self.loop.canvas.raster, tick=self.loop.tick_count, status=self.loop.status())

    def start_loop(self, fps: float = 30.0) -> None:
        if self._worker and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._loop_worker, args=(float(fps),), daemon=True)
        self._worker.start()

    def stop_loop(self) -> None:
        self._stop_event.set()
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=2.0)
        self._worker = None

    def _loop_worker(self, fps: float) -> None:
        period = 1.0 / max(fps, 1.0)
        self.log.info("Frame loop started at %.1f fps", fps)
        while not self._stop_event.is_set():
            t0 = time.monotonic()
            try:
                self.tick()
            except Exception as exc:
                self._last_error = str(exc)
                self.log.exception("Frame loop tick failed")
                break
            elapsed = time.monotonic() - t0
            self._stop_event.wait(max(0.0, period - elapsed))
        self.log.info("Frame loop stopped")

    def reset(self, channel_id: Optional[int] = None) -> None:
        with self._lock:
            if channel_id is None:
                self.loop.reset_all()
            else:
                self.loop.reset(channel_id)

    def clear(self) -> None:
        with self._lock:
            self.loop.clear()

    def calibrate_now(self, channel_id: int) -> bool:
        with self._lock:
            return self.loop.channel(channel_id).calibrate_now()

    def toggle_drawing(self) -> bool:
        with self._lock:
            channels = list(self.loop.channels.values())
            enabled = not all(c.drawing_enabled for c in channels) if channels else True
            for c in channels:
                c.set_drawing(enabled)
            return enabled

    def adjust_min_area(self, steps: int) -> Dict[int, float]:
        with self._lock:
            out = {cid: c.tracker.adjust_min_area(steps) for cid, c in self.loop.channels.items()}
        self.log.info("Pointer min area now %s", out)
        return out

    def status(self) -> Dict[str, Any]:
        with self._lock:
            data = self.loop.status()
        data["loop_running"] = bool(self._worker and self._worker.is_alive())
        data["last_error"] = self._last_error
        return data

    def snapshot(self) -> np.ndarray:
        with self._lock:
            return self.loop.canvas.snapshot()

    def save_snapshot(self) -> Path:
        if self.store is None:
            raise RuntimeError("No snapshot store configured")
        image = self.snapshot()
        path = self.store.save(image, status=self.status())
        self.log.info("Snapshot saved to %s", path)
        return path

    def close(self) -> None:
        self.stop_loop()
        with self._lock:
            self.loop.close()
