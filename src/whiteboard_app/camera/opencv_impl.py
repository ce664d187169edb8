"""OpenCV VideoCapture implementation."""

from __future__ import annotations

import threading
import time
from typing import Optional, Union

import numpy as np

from whiteboard_app.camera.base import CameraBase
from whiteboard_app.core.logging import get_logger


class OpenCVCamera(CameraBase):
    """
    Camera wrapper around cv2.VideoCapture.

    A daemon thread keeps decoding frames and holds on to the newest one
    only; read_latest() hands out that frame without waiting, so slow
    consumers skip frames rather than queue them.
    """

    def __init__(
        self,
        device: Union[int, str] = 0,
        width: Optional[int] = None,
        height: Optional[int] = None,
        name: str = "camera",
    ) -> None:
        try:
            import cv2  # type: ignore
        except Exception as exc:
            raise RuntimeError("OpenCV not available. Install opencv-python or use MockCamera.") from exc

        self._cv = cv2
        self.device = device
        self.width = width
        self.height = height
        self.log = get_logger(f"camera.{name}")
        self._cap = None
        self._lock = threading.Lock()
        self._latest: Optional[np.ndarray] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._frames_decoded = 0

    def start(self) -> None:
        if self._cap is not None:
            return
        cap = None
        for attempt in range(5):
            cap = self._cv.VideoCapture(self.device)
            if cap.isOpened():
                break
            cap.release()
            cap = None
            time.sleep(0.4)
        if cap is None:
            raise RuntimeError(f"VideoCapture failed to open device {self.device!r}; camera may be busy.")
        if self.width:
            cap.set(self._cv.CAP_PROP_FRAME_WIDTH, int(self.width))
        if self.height:
            cap.set(self._cv.CAP_PROP_FRAME_HEIGHT, int(self.height))
        self._cap = cap
        self._stop.clear()
        self._thread = threading.Thread(target=self._grab_worker, daemon=True)
        self._thread.start()
        self.log.info("Camera %r opened", self.device)

    def _grab_worker(self) -> None:
        while not self._stop.is_set():
            ok, frame = self._cap.read()
            if not ok or frame is None:
                time.sleep(0.01)
                continue
            rgb = self._cv.cvtColor(frame, self._cv.COLOR_BGR2RGB)
            with self._lock:
                self._latest = rgb
                self._frames_decoded += 1

    def read_latest(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._latest

    def describe(self) -> dict:
        with self._lock:
            decoded = self._frames_decoded
        return {"type": "opencv", "device": self.device, "frames_decoded": decoded}

    def stop(self) -> None:
        if self._cap is None:
            return
        self._stop.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        try:
            self._cap.release()
        except Exception as exc:
            self.log.warning("Camera %r release failed: %s", self.device, exc)
        self._cap = None
        with self._lock:
            self._latest = None
        self.log.info("Camera %r released", self.device)
