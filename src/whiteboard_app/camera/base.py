"""Camera base interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np


class CameraBase(ABC):
    """Abstract latest-frame camera source."""

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def read_latest(self) -> Optional[np.ndarray]:
        """
        Return the most recently decoded frame as a uint8 RGB array, or None
        when no frame is ready yet. Must never block waiting for a frame.
        """
        pass

    def describe(self) -> dict:
        """Return source details for status reporting."""
        return {"type": type(self).__name__}

    @abstractmethod
    def stop(self) -> None:
        pass
