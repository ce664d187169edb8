"""Snapshot storage utilities."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import List

import numpy as np
from PIL import Image


class SnapshotStore:
    """Filesystem-backed storage for canvas snapshots."""

    def __init__(self, root: str = "data/snapshots") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, image: np.ndarray, status: dict | None = None) -> Path:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        name = f"canvas_{stamp}"
        i = 0
        while (self.root / f"{name}.png").exists():
            i += 1
            name = f"canvas_{stamp}_{i:02d}"
        out_path = self.root / f"{name}.png"
        Image.fromarray(image.astype(np.uint8)).save(out_path)
        meta = {
            "snapshot_id": name,
            "saved_at": datetime.now().isoformat(),
            "size": [int(image.shape[1]), int(image.shape[0])],
            "status": status or {},
        }
        (self.root / f"{name}.json").write_text(json.dumps(meta, indent=2))
        return out_path

    def list_snapshots(self) -> List[dict]:
        out: List[dict] = []
        for p in sorted(self.root.glob("canvas_*.json"), reverse=True):
            try:
                out.append(json.loads(p.read_text()))
            except (OSError, ValueError):
                continue
        return out

    def path_for(self, snapshot_id: str) -> Path:
        p = self.root / f"{snapshot_id}.png"
        if Path(snapshot_id).name != snapshot_id or not p.exists():
            raise FileNotFoundError(f"Snapshot not found: {snapshot_id}")
        return p
