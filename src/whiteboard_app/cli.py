"""CLI commands for the desktop loop, server and marker tooling."""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import List

import numpy as np
from PIL import Image

from whiteboard_app.calibration.fiducials import FiducialCalibrator
from whiteboard_app.calibration.markers import CalibrationMarkerRenderer
from whiteboard_app.core.config import canvas_config, load_config, marker_layout
from whiteboard_app.core.controller import WhiteboardController
from whiteboard_app.core.logging import setup_from_config
from whiteboard_app.vision.capability import get_capability


def cmd_run(args) -> int:
    """Desktop mode: one cooperative loop paced by the pygame clock."""
    from whiteboard_app.display.pygame_display import PygameCanvasDisplay

    cfg = load_config(args.config)
    log = setup_from_config(cfg)
    display_cfg = cfg.get("display", {}) or {}
    driver = display_cfg.get("driver")
    if driver:
        os.environ["SDL_VIDEODRIVER"] = str(driver)
    fps = float(args.fps or display_cfg.get("fps", 30.0))

    controller = WhiteboardController.from_config(cfg)
    display = PygameCanvasDisplay()
    canvas = controller.loop.canvas
    display.open(
        size=(int(display_cfg.get("window_width", canvas.width // 2)), int(display_cfg.get("window_height", canvas.height // 2))),
        fullscreen=bool(args.fullscreen or display_cfg.get("fullscreen", False)),
        screen_index=display_cfg.get("screen_index"),
    )
    log.info("Desktop loop running; c=clear r=reset s=snapshot d=drawing k=calibrate +/-=area q=quit")
    was_calibrated = False
    try:
        running = True
        while running:
            for command in display.poll_commands():
                if command == "quit":
                    running = False
                elif command == "clear":
                    controller.clear()
                elif command == "reset":
                    controller.reset()
                elif command == "snapshot":
                    controller.save_snapshot()
                elif command == "toggle_drawing":
                    log.info("Drawing %s", "enabled" if controller.toggle_drawing() else "disabled")
                elif command == "calibrate":
                    for cid in list(controller.loop.channels):
                        controller.calibrate_now(cid)
                elif command == "more_area":
                    controller.adjust_min_area(1)
                elif command == "less_area":
                    controller.adjust_min_area(-1)
            controller.tick()
            status = controller.status()
            if status["calibrated"] != was_calibrated:
                was_calibrated = status["calibrated"]
                log.info("All channels calibrated" if was_calibrated else "Waiting for calibration")
            text = "  |  ".join(f"Cam {c['channel_id']}: {c['status_text']}" for c in status["channels"])
            if status["capability_error"]:
                text = f"ERROR: {status['capability_error']}  |  {text}"
            display.show(canvas.raster, status_text=text)
            display.wait_frame(fps)
    finally:
        controller.close()
        display.close()
    return 0


def cmd_serve(args) -> int:
    import uvicorn
    from whiteboard_app.web.server import WhiteboardServer

    cfg = load_config(args.config)
    log = setup_from_config(cfg)
    controller = WhiteboardController.from_config(cfg)
    fps = float(args.fps or (cfg.get("display", {}) or {}).get("fps", 30.0))
    controller.start_loop(fps)
    server = WhiteboardServer(controller=controller, config=cfg)
    web_cfg = cfg.get("web", {}) or {}
    host = args.host or web_cfg.get("host", "0.0.0.0")
    port = int(args.port or web_cfg.get("port", 8000))
    log.info("Starting server on %s:%s", host, port)
    try:
        uvicorn.run(server.app, host=host, port=port, log_level="info")
    finally:
        controller.close()
    return 0


def cmd_markers(args) -> int:
    cfg = load_config(args.config)
    canvas = canvas_config(cfg)
    renderer = CalibrationMarkerRenderer(marker_layout(cfg), get_capability())
    board = renderer.board(canvas.width, canvas.height, background=canvas.background)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(board).save(out)
    print(f"Wrote {canvas.width}x{canvas.height} marker board to {out}")
    return 0


def cmd_calibrate_image(args) -> int:
    cfg = load_config(args.config)
    capability = get_capability()
    capability.require_markers()
    rgb = np.array(Image.open(args.image).convert("RGB"), dtype=np.uint8)
    calibrator = FiducialCalibrator(marker_layout(cfg), capability)
    detection = calibrator.detect(capability.to_gray(rgb))
    payload = {
        "image": str(args.image),
        "found_ids": detection.found_ids,
        "centers": {str(k): list(v) for k, v in sorted(detection.centers.items())},
        "homography": detection.homography.tolist() if detection.homography is not None else None,
    }
    print(json.dumps(payload, indent=2))
    return 0 if detection.complete else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="whiteboard_app")
    p.add_argument("--config", type=str, default=None)
    sub = p.add_subparsers(dest="cmd")

    run = sub.add_parser("run")
    run.add_argument("--fps", type=float, default=None)
    run.add_argument("--fullscreen", action="store_true")

    serve = sub.add_parser("serve")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--fps", type=float, default=None)

    markers = sub.add_parser("markers")
    markers.add_argument("--out", type=str, default="data/marker_board.png")

    calib = sub.add_parser("calibrate-image")
    calib.add_argument("image", type=str)

    return p


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.cmd == "run":
        return cmd_run(args)
    if args.cmd == "serve":
        return cmd_serve(args)
    if args.cmd == "markers":
        return cmd_markers(args)
    if args.cmd == "calibrate-image":
        return cmd_calibrate_image(args)
    parser.print_help()
    return 0
