"""FastAPI server for the whiteboard."""

from __future__ import annotations

import asyncio
from io import BytesIO
from pathlib import Path
from typing import Dict, Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from PIL import Image

from whiteboard_app.core.controller import WhiteboardController
from whiteboard_app.core.logging import get_logger


class WhiteboardServer:
    """FastAPI wrapper with REST and WebSocket endpoints."""

    def __init__(self, controller: WhiteboardController, config: Dict[str, Any] | None = None) -> None:
        self.controller = controller
        self.config = config or {}
        web_cfg = self.config.get("web", {}) or {}
        self.ws_interval_s = 1.0 / max(float(web_cfg.get("stream_fps", 10.0)), 1.0)
        self.app = FastAPI()
        self._configure_routes()

    def _configure_routes(self) -> None:
        static_dir = Path(__file__).parent / "static"
        log = get_logger("web")

        @self.app.get("/api/status")
        async def get_status():
            return self.controller.status()

        @self.app.post("/api/clear")
        async def clear_canvas():
            self.controller.clear()
            return {"ok": True}

        @self.app.post("/api/reset")
        async def reset_all():
            self.controller.reset()
            return {"ok": True}

        @self.app.post("/api/channels/{channel_id}/reset")
        async def reset_channel(channel_id: int):
            try:
                self.controller.reset(channel_id)
            except KeyError as exc:
                return JSONResponse({"ok": False, "error": str(exc.args[0])}, status_code=404)
            return {"ok": True}

        @self.app.post("/api/channels/{channel_id}/calibrate")
        async def calibrate_channel(channel_id: int):
            try:
                ok = self.controller.calibrate_now(channel_id)
            except KeyError as exc:
                return JSONResponse({"ok": False, "error": str(exc.args[0])}, status_code=404)
            return {"ok": True, "calibrated": ok}

        @self.app.post("/api/drawing/toggle")
        async def toggle_drawing():
            return {"ok": True, "drawing_enabled": self.controller.toggle_drawing()}

        @self.app.post("/api/tracking/min_area")
        async def adjust_min_area(payload: Dict[str, Any]):
            try:
                steps = int(payload.get("steps", 0))
            except (TypeError, ValueError):
                return JSONResponse({"ok": False, "error": "steps must be an integer"}, status_code=400)
            return {"ok": True, "min_area": self.controller.adjust_min_area(steps)}

        @self.app.get("/api/snapshot.png")
        async def snapshot_png():
            buffer = BytesIO()
            Image.fromarray(self.controller.snapshot()).save(buffer, format="PNG")
            return Response(content=buffer.getvalue(), media_type="image/png")

        @self.app.post("/api/snapshot")
        async def save_snapshot():
            try:
                path = self.controller.save_snapshot()
            except RuntimeError as exc:
                return JSONResponse({"ok": False, "error": str(exc)}, status_code=409)
            return {"ok": True, "path": str(path)}

        @self.app.get("/api/snapshots")
        async def list_snapshots():
            if self.controller.store is None:
                return []
            return self.controller.store.list_snapshots()

        @self.app.get("/api/snapshots/{snapshot_id}")
        async def download_snapshot(snapshot_id: str):
            if self.controller.store is None:
                return JSONResponse({"ok": False, "error": "No snapshot store configured"}, status_code=409)
            try:
                path = self.controller.store.path_for(snapshot_id)
            except FileNotFoundError as exc:
                return JSONResponse({"ok": False, "error": str(exc)}, status_code=404)
            return FileResponse(path, media_type="image/png", filename=path.name)

        @self.app.websocket("/ws/canvas")
        async def canvas_stream(ws: WebSocket):
            await ws.accept()
            last_seq = -1
            try:
                while True:
                    latest = self.controller.preview.latest_after(last_seq) if self.controller.preview else None
                    if latest is not None:
                        data, meta = latest
                        last_seq = meta["seq"]
                        await ws.send_json(meta)
                        await ws.send_bytes(data)
                    await asyncio.sleep(self.ws_interval_s)
            except WebSocketDisconnect:
                log.info("Canvas stream client disconnected")

        @self.app.get("/")
        async def index():
            page = (static_dir / "index.html").read_text()
            return HTMLResponse(
                page,
                headers={
                    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
                    "Pragma": "no-cache",
                },
            )
