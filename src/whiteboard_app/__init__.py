"""Dual-camera fiducial whiteboard."""

__version__ = "0.1.0"
