"""Mock camera that replays images from disk or memory."""

from __future__ import annotations

from pathlib import Path
import itertools
from typing import Iterable, Optional

import numpy as np
from PIL import Image

from whiteboard_app.camera.base import CameraBase


class MockCamera(CameraBase):
    """
    Returns frames in sequence. Entries of None in an in-memory sequence
    stand for ticks with no decoded frame.
    """

    def __init__(
        self,
        data_dir: str | None = "mock_data",
        frames: Iterable[Optional[np.ndarray]] | None = None,
        loop: bool = True,
    ) -> None:
        self.data_dir = Path(data_dir) if data_dir else None
        self._frames: list[Optional[np.ndarray]] | None = list(frames) if frames is not None else None
        self.loop = loop
        self._iter = None
        self._files: list[Path] = []

    def start(self) -> None:
        if self._frames is not None:
            seq: list = self._frames
        else:
            if self.data_dir is None or not self.data_dir.exists():
                raise RuntimeError(f"Mock data dir not found: {self.data_dir}")
            self._files = sorted([p for p in self.data_dir.iterdir() if p.suffix.lower() in {".png", ".jpg", ".jpeg"}])
            if not self._files:
                raise RuntimeError(f"No mock images in {self.data_dir}")
            seq = self._files
        self._iter = itertools.cycle(seq) if self.loop else iter(seq)

    def read_latest(self) -> Optional[np.ndarray]:
        if self._iter is None:
            return None
        item = next(self._iter, None)
        if item is None:
            return None
        if isinstance(item, Path):
            img = Image.open(item).convert("RGB")
            return np.array(img, dtype=np.uint8)
        return np.asarray(item, dtype=np.uint8)

    def describe(self) -> dict:
        return {"type": "mock", "data_dir": str(self.data_dir) if self.data_dir else None}

    def stop(self) -> None:
        self._iter = None
        self._files = []
