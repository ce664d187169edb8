"""Latest-canvas JPEG cache for the WebSocket stream."""

from __future__ import annotations

import threading
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

import numpy as np
from PIL import Image


class PreviewBroadcaster:
    """
    Holds one encoded copy of the canvas, replaced on every update. Each
    update bumps a sequence number so readers can skip frames they already
    sent.
    """

    def __init__(self, max_width: int = 960, quality: int = 80) -> None:
        self.max_width = int(max_width)
        self.quality = int(quality)
        self._lock = threading.Lock()
        self._latest: Optional[Tuple[bytes, Dict[str, Any]]] = None
        self._seq = 0

    def encode(self, canvas: np.ndarray) -> bytes:
        img = Image.fromarray(canvas)
        if img.width > self.max_width:
            img.thumbnail((self.max_width, img.height), Image.Resampling.BILINEAR)
        buffer = BytesIO()
        img.save(buffer, format="JPEG", quality=self.quality)
        return buffer.getvalue()

    def update(self, canvas: np.ndarray, tick: int, status: Dict[str, Any]) -> int:
        data = self.encode(canvas)
        channels = {str(c["channel_id"]): c["state"] for c in status.get("channels", [])}
        with self._lock:
            self._seq += 1
            meta = {
                "seq": self._seq,
                "tick": int(tick),
                "calibrated": bool(status.get("calibrated", False)),
                "channels": channels,
            }
            self._latest = (data, meta)
            return self._seq

    def latest_after(self, seq: int) -> Optional[Tuple[bytes, Dict[str, Any]]]:
        """Return the newest frame if it is newer than seq."""
        with self._lock:
            if self._latest is None or self._latest[1]["seq"] <= seq:
                return None
            data, meta = self._latest
            return data, dict(meta)

    def get_latest(self) -> Optional[Tuple[bytes, Dict[str, Any]]]:
        return self.latest_after(0)
