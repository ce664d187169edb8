"""
Tests for fiducial calibration: centroids, homography solve and marker sets.
"""

import numpy as np
import pytest

from whiteboard_app.calibration.fiducials import FiducialCalibrator, compute_homography, marker_centroid
from whiteboard_app.calibration.markers import CalibrationMarkerRenderer
from whiteboard_app.core.models import MarkerLayout

from conftest import CORNER_ANCHORS, FakeMarkerCapability, corner_detections, square_corners


class TestMarkerCentroid:
    def test_mean_of_corners(self):
        corners = np.array([[0, 0], [10, 0], [10, 20], [0, 20]], dtype=float)
        assert marker_centroid(corners) == (5.0, 10.0)

    def test_rejects_wrong_corner_count(self):
        with pytest.raises(ValueError):
            marker_centroid(np.zeros((3, 2)))


class TestComputeHomography:
    @pytest.mark.parametrize(
        "src,dst",
        [
            (
                [(40, 40), (1880, 40), (1880, 1040), (40, 1040)],
                [(140, 140), (1780, 140), (1780, 940), (140, 940)],
            ),
            (
                [(312.5, 201.0), (1011.0, 240.0), (980.0, 655.5), (290.0, 610.0)],
                [(140, 140), (1780, 140), (1780, 940), (140, 940)],
            ),
            (
                [(0, 0), (100, 10), (120, 90), (-5, 80)],
                [(0, 0), (1000, 0), (1000, 800), (0, 800)],
            ),
        ],
    )
    def test_round_trip_maps_sources_onto_anchors(self, capability, src, dst):
        h = compute_homography(src, dst, capability)
        assert h is not None
        assert h.shape == (3, 3)
        for (sx, sy), (dx, dy) in zip(src, dst):
            x, y = capability.perspective_point(h, sx, sy)
            assert x == pytest.approx(dx, abs=1e-3)
            assert y == pytest.approx(dy, abs=1e-3)

    def test_identity_for_matching_points(self, capability):
        pts = list(CORNER_ANCHORS.values())
        h = compute_homography(pts, pts, capability)
        assert np.allclose(h, np.eye(3), atol=1e-9)

    def test_collinear_points_fail(self, capability):
        src = [(0, 0), (10, 10), (20, 20), (0, 50)]
        dst = [(0, 0), (100, 0), (100, 100), (0, 100)]
        assert compute_homography(src, dst, capability) is None

    def test_requires_four_points(self, capability):
        with pytest.raises(ValueError):
            compute_homography([(0, 0), (1, 0), (1, 1)], [(0, 0), (1, 0), (1, 1)], capability)


class TestFiducialCalibrator:
    def test_all_four_markers_give_identity(self, layout, fake_capability):
        calibrator = FiducialCalibrator(layout, fake_capability)
        detection = calibrator.detect(np.zeros((1080, 1920), dtype=np.uint8))
        assert detection.complete
        assert detection.found_ids == [0, 1, 2, 3]
        assert np.allclose(detection.homography, np.eye(3), atol=1e-6)

    def test_missing_marker_fails(self, layout):
        cap = FakeMarkerCapability(detections=corner_detections()[:3])
        detection = FiducialCalibrator(layout, cap).detect(np.zeros((10, 10), dtype=np.uint8))
        assert not detection.complete
        assert detection.found_ids == [0, 1, 2]
        assert FiducialCalibrator(layout, cap).calibrate(np.zeros((10, 10), dtype=np.uint8)) is None

    def test_duplicate_marker_fails(self, layout):
        dets = corner_detections() + [(2, square_corners(900, 500))]
        cap = FakeMarkerCapability(detections=dets)
        assert FiducialCalibrator(layout, cap).calibrate(np.zeros((10, 10), dtype=np.uint8)) is None

    def test_foreign_ids_are_ignored(self, layout):
        dets = corner_detections() + [(17, square_corners(900, 500))]
        cap = FakeMarkerCapability(detections=dets)
        detection = FiducialCalibrator(layout, cap).detect(np.zeros((10, 10), dtype=np.uint8))
        assert detection.complete
        assert 17 in detection.found_ids

    def test_rejects_color_input(self, layout, fake_capability):
        with pytest.raises(ValueError):
            FiducialCalibrator(layout, fake_capability).detect(np.zeros((10, 10, 3), dtype=np.uint8))

    def test_detects_rendered_board(self, capability):
        layout = MarkerLayout(canvas_width=1280, canvas_height=720, marker_size=160, margin=40)
        board = CalibrationMarkerRenderer(layout, capability).board(1280, 720)
        detection = FiducialCalibrator(layout, capability).detect(capability.to_gray(board))
        assert detection.found_ids == [0, 1, 2, 3]
        assert detection.complete
        x, y = capability.perspective_point(detection.homography, 640, 360)
        assert x == pytest.approx(640, abs=2)
        assert y == pytest.approx(360, abs=2)
