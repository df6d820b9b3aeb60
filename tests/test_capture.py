import numpy as np
import pytest

from camera.capture import frame_to_sample


def bgr_frame(b, g, r, size=(120, 160)):
    frame = np.zeros((*size, 3), dtype=np.uint8)
    frame[...] = (b, g, r)
    return frame


def test_fingertip_frame():
    sample = frame_to_sample(bgr_frame(30, 60, 180), timestamp_ms=12.5)
    assert sample.timestamp_ms == 12.5
    assert (sample.red, sample.green, sample.blue) == pytest.approx((180.0, 60.0, 30.0))
    assert sample.coverage_ratio == pytest.approx(1.0)
    assert sample.saturation_ratio == pytest.approx(0.0)


def test_only_centre_roi_is_used():
    frame = bgr_frame(0, 0, 0)
    frame[30:90, 40:120] = (20, 50, 200)     # centre half of a 120 × 160 frame
    sample = frame_to_sample(frame, 0.0, roi_fraction=0.5)
    assert sample.red == pytest.approx(200.0)
    assert sample.coverage_ratio == pytest.approx(1.0)


def test_uncovered_scene_has_no_tissue():
    sample = frame_to_sample(bgr_frame(120, 130, 110), 0.0)
    assert sample.coverage_ratio == pytest.approx(0.0)


def test_clipped_red_is_reported():
    sample = frame_to_sample(bgr_frame(40, 90, 255), 0.0)
    assert sample.saturation_ratio == pytest.approx(1.0)


def test_non_colour_frame_rejected():
    with pytest.raises(ValueError):
        frame_to_sample(np.zeros((10, 10), dtype=np.uint8), 0.0)
