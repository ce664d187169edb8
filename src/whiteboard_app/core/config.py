"""YAML configuration loading and conversion to typed settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from whiteboard_app.core.models import (
    CanvasConfig,
    MarkerLayout,
    PipelineConfig,
    TrackerConfig,
    channel_color,
)


DEFAULT_CONFIG_PATH = "config/default.yaml"


def load_config(path: str | None = None) -> dict:
    cfg_path = Path(path or DEFAULT_CONFIG_PATH)
    if not cfg_path.exists():
        if path is not None:
            raise RuntimeError(f"Config file not found: {cfg_path}")
        return {}
    return yaml.safe_load(cfg_path.read_text()) or {}


def _triple(value: Any, default: tuple[int, int, int]) -> tuple[int, int, int]:
    if value is None:
        return default
    vals = [int(v) for v in value]
    if len(vals) != 3:
        raise ValueError(f"Expected three values, got {value!r}")
    return (vals[0], vals[1], vals[2])


def canvas_config(cfg: dict) -> CanvasConfig:
    c = cfg.get("canvas", {}) or {}
    return CanvasConfig(
        width=int(c.get("width", 1920)),
        height=int(c.get("height", 1080)),
        background=_triple(c.get("background"), (255, 255, 255)),
    )


def marker_layout(cfg: dict) -> MarkerLayout:
    canvas = canvas_config(cfg)
    m = cfg.get("markers", {}) or {}
    anchors = m.get("anchors")
    if anchors is not None:
        anchors = {int(k): (float(v[0]), float(v[1])) for k, v in dict(anchors).items()}
    return MarkerLayout(
        canvas_width=canvas.width,
        canvas_height=canvas.height,
        marker_size=int(m.get("size", 200)),
        margin=int(m.get("margin", 40)),
        anchors=anchors,
    )


def tracker_config(cfg: dict) -> TrackerConfig:
    t = cfg.get("tracking", {}) or {}
    return TrackerConfig(
        hsv_lower=_triple(t.get("hsv_lower"), (40, 40, 0)),
        hsv_upper=_triple(t.get("hsv_upper"), (80, 255, 255)),
        kernel_size=int(t.get("kernel_size", 7)),
        erode=bool(t.get("erode", True)),
        min_area=float(t.get("min_area", 150.0)),
        min_area_floor=float(t.get("min_area_floor", 100.0)),
        min_area_step=float(t.get("min_area_step", 50.0)),
    )


def pipeline_config(cfg: dict) -> PipelineConfig:
    t = cfg.get("tracking", {}) or {}
    cal = cfg.get("calibration", {}) or {}
    work = cfg.get("processing", {}) or {}
    return PipelineConfig(
        working_size=(int(work.get("width", 1280)), int(work.get("height", 720))),
        history_size=int(t.get("history_size", 5)),
        calibrate_every=int(cal.get("every_n_ticks", 10)),
        auto_calibrate=bool(cal.get("auto", True)),
        max_missed_frames=int(t.get("max_missed_frames", 0)),
        stroke_width=int(t.get("stroke_width", 5)),
        drawing_enabled=bool(t.get("drawing_enabled", True)),
    )


def camera_specs(cfg: dict) -> list[Dict[str, Any]]:
    """Camera entries with ids and pen colours filled in."""
    cams = cfg.get("cameras")
    if not cams:
        cams = [{"id": 1, "type": "opencv", "device": 0}, {"id": 2, "type": "opencv", "device": 1}]
    specs: list[Dict[str, Any]] = []
    for idx, cam in enumerate(cams, start=1):
        spec = dict(cam)
        spec["id"] = int(spec.get("id", idx))
        spec["color"] = _triple(spec.get("color"), channel_color(spec["id"]))
        specs.append(spec)
    ids = [s["id"] for s in specs]
    if len(set(ids)) != len(ids):
        raise RuntimeError(f"Duplicate camera ids in config: {ids}")
    return specs


def create_camera(spec: Dict[str, Any]):
    cam_type = spec.get("type", "opencv")
    if cam_type == "opencv":
        from whiteboard_app.camera.opencv_impl import OpenCVCamera
        return OpenCVCamera(
            device=spec.get("device", 0),
            width=spec.get("width"),
            height=spec.get("height"),
            name=f"{spec['id']}",
        )
    if cam_type == "mock":
        from whiteboard_app.camera.mock import MockCamera
        return MockCamera(data_dir=spec.get("mock_data", "mock_data"))
    raise RuntimeError("camera.type must be opencv or mock")
