"""
Tests for the marker tooling subcommands.
"""

import json

import numpy as np
from PIL import Image

from whiteboard_app.cli import build_parser, main


def test_parser_global_config_flag():
    args = build_parser().parse_args(["--config", "x.yaml", "serve", "--port", "9000"])
    assert args.config == "x.yaml"
    assert args.cmd == "serve"
    assert args.port == 9000


def test_markers_then_calibrate_image(tmp_path, capsys):
    board = tmp_path / "board.png"
    assert main(["markers", "--out", str(board)]) == 0
    with Image.open(board) as img:
        assert img.size == (1920, 1080)
    capsys.readouterr()

    assert main(["calibrate-image", str(board)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["found_ids"] == [0, 1, 2, 3]
    h = np.array(payload["homography"])
    p = h @ np.array([960.0, 540.0, 1.0])
    assert np.allclose(p[:2] / p[2], [960.0, 540.0], atol=2.0)


def test_calibrate_image_without_markers(tmp_path, capsys):
    blank = tmp_path / "blank.png"
    Image.new("RGB", (640, 480), (255, 255, 255)).save(blank)
    assert main(["calibrate-image", str(blank)]) == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["homography"] is None
