"""
End-to-end tests for the channel pipeline and the frame loop.
"""

import numpy as np
import pytest

from whiteboard_app.core.models import PipelineConfig

from conftest import FakeMarkerCapability, blank_frame, corner_detections, green_frame, mock_source


class TestEndToEnd:
    def test_corner_markers_give_identity_and_pointer_maps_through(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        channel = loop.attach(1, mock_source([green_frame(500, 500)] * 3))
        loop.tick()
        assert channel.calibrated
        assert np.allclose(channel.homography, np.eye(3), atol=1e-6)
        assert channel.pointer == (500, 500)
        assert channel.canvas_point == (500, 500)

    def test_consecutive_detections_draw_connected_segments(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        xs = [400, 410, 420, 430, 440, 450]
        frames = [blank_frame()] + [green_frame(x, 600) for x in xs]
        channel = loop.attach(1, mock_source(frames))
        for _ in frames:
            loop.tick()
        assert loop.strokes.segments_drawn[1] == len(xs) - 1
        assert channel.canvas_point is not None

    def test_gap_breaks_stroke(self, make_loop, fake_capability, monkeypatch):
        loop = make_loop(fake_capability)
        frames = [
            green_frame(400, 600), green_frame(420, 600), green_frame(440, 600),
            blank_frame(),
            green_frame(800, 300), green_frame(820, 300),
        ]
        loop.attach(1, mock_source(frames))
        segments = []
        original = loop.strokes.add_point

        def recording_add_point(channel_id, point):
            seg = original(channel_id, point)
            if seg is not None:
                segments.append(seg)
            return seg

        monkeypatch.setattr(loop.strokes, "add_point", recording_add_point)
        for _ in frames:
            loop.tick()
        assert len(segments) == 3
        for seg in segments:
            assert not (seg.start[0] < 500 and seg.end[0] > 700)
        # After the gap the smoothing history restarts from the new point.
        assert segments[-1].start == (800, 300)

    def test_uncalibrated_channel_tracks_but_does_not_draw(self, make_loop):
        cap = FakeMarkerCapability(detections=corner_detections()[:2])
        loop = make_loop(cap)
        channel = loop.attach(1, mock_source([green_frame(500, 500)] * 4))
        for _ in range(4):
            loop.tick()
        assert not channel.calibrated
        assert channel.pointer == (500, 500)
        assert channel.canvas_point is None
        assert loop.strokes.segments_drawn[1] == 0
        assert loop.strokes.last_point(1) is None

    def test_missing_frame_is_a_no_op(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        channel = loop.attach(1, mock_source([None, None]))
        loop.tick()
        loop.tick()
        assert not channel.stream_ready
        assert channel.frames_processed == 0
        assert fake_capability.detect_calls == 0


class TestCalibrationLifecycle:
    def test_calibration_attempts_are_throttled(self, make_loop):
        cap = FakeMarkerCapability(detections=[])
        loop = make_loop(cap, calibrate_every=3)
        loop.attach(1, mock_source([blank_frame()] * 7))
        for _ in range(7):
            loop.tick()
        # ticks 0, 3 and 6
        assert cap.detect_calls == 3

    def test_calibrated_channel_is_not_retried(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        loop.attach(1, mock_source([blank_frame()] * 5))
        for _ in range(5):
            loop.tick()
        assert fake_capability.detect_calls == 1
        assert loop.channel(1).calibrations == 1

    def test_reset_returns_to_uncalibrated_and_recalibrates(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        channel = loop.attach(1, mock_source([green_frame(500, 500)] * 4))
        loop.tick()
        loop.tick()
        loop.reset(1)
        assert channel.state == "UNCALIBRATED"
        assert channel.homography is None
        assert loop.strokes.last_point(1) is None
        loop.tick()
        assert channel.calibrated
        assert channel.calibrations == 2

    def test_failed_attempt_keeps_previous_homography(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        channel = loop.attach(1, mock_source([blank_frame()] * 3))
        loop.tick()
        before = channel.homography
        fake_capability.detections = []
        assert channel.calibrate_now() is False
        assert channel.homography is before
        assert channel.calibrated

    def test_auto_calibration_can_be_disabled(self, make_loop, fake_capability):
        loop = make_loop(fake_capability, auto_calibrate=False)
        channel = loop.attach(1, mock_source([blank_frame()] * 3))
        loop.tick()
        assert not channel.calibrated
        assert channel.calibrate_now() is True
        assert channel.calibrated

    def test_missing_marker_support_is_reported_not_raised(self, make_loop):
        cap = FakeMarkerCapability(detections=corner_detections(), markers=False)
        loop = make_loop(cap)
        channel = loop.attach(1, mock_source([green_frame(500, 500)] * 3))
        loop.tick()
        loop.tick()
        assert loop.status()["capability_error"] == "ArUco disabled for test"
        ch = loop.status()["channels"][0]
        assert ch["calibration_error"] == "ArUco disabled for test"
        assert ch["status_text"].startswith("NOT CALIBRATED (calibration disabled)")
        assert not channel.calibrated
        assert channel.pointer == (500, 500)
        assert cap.detect_calls == 0


class TestMultiChannel:
    def test_aggregate_calibrated_requires_every_channel(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        assert loop.calibrated is False
        loop.attach(1, mock_source([blank_frame()] * 2))
        loop.attach(2, mock_source([None, None]))
        loop.tick()
        assert loop.channel(1).calibrated
        assert not loop.channel(2).calibrated
        assert loop.calibrated is False
        loop.detach(2)
        assert loop.calibrated is True

    def test_channels_keep_separate_state(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        a = loop.attach(1, mock_source([green_frame(300, 300)] * 3))
        b = loop.attach(2, mock_source([green_frame(1500, 800)] * 3))
        loop.tick()
        loop.tick()
        assert a.homography is not b.homography
        assert a.projection.history is not b.projection.history
        assert a.canvas_point == (300, 300)
        assert b.canvas_point == (1500, 800)
        assert loop.strokes.color_of(1) != loop.strokes.color_of(2)

    def test_clear_breaks_all_channels(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        loop.attach(1, mock_source([green_frame(300, 300)] * 3))
        loop.attach(2, mock_source([green_frame(1500, 800)] * 3))
        loop.tick()
        loop.tick()
        loop.clear()
        assert loop.strokes.last_point(1) is None
        assert loop.strokes.last_point(2) is None
        assert loop.canvas.raster[540, 960].tolist() == [255, 255, 255]

    def test_detach_releases_channel(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        source = mock_source([green_frame(500, 500)] * 3)
        channel = loop.attach(1, source)
        loop.tick()
        loop.detach(1)
        assert 1 not in loop.channels
        assert channel.homography is None
        assert channel._work is None
        assert source.read_latest() is None
        loop.detach(1)

    def test_duplicate_attach_rejected(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        loop.attach(1, mock_source([]))
        with pytest.raises(ValueError):
            loop.attach(1, mock_source([]))

    def test_frames_are_resized_to_working_size(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        channel = loop.attach(1, mock_source([green_frame(480, 270, half=10, width=960, height=540)]))
        loop.tick()
        assert channel._work.shape == (1080, 1920, 3)
        assert channel.pointer is not None
        assert channel.pointer[0] == pytest.approx(960, abs=3)
        assert channel.pointer[1] == pytest.approx(540, abs=3)

    def test_status_payload(self, make_loop, fake_capability):
        loop = make_loop(fake_capability)
        loop.attach(1, mock_source([green_frame(500, 500)]))
        loop.tick()
        status = loop.status()
        assert status["calibrated"] is True
        ch = status["channels"][0]
        assert ch["channel_id"] == 1
        assert ch["state"] == "CALIBRATED"
        assert ch["tracking"] is True
        assert ch["status_text"].startswith("CALIBRATED")
        assert ch["calibration_error"] is None
