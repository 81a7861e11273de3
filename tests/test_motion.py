"""
Unit tests for the motion tracker interface and the optical-flow backend.
"""

import logging

import numpy as np
import pytest

from multibox_tracker.config import MotionConfig
from multibox_tracker.errors import (
    HandleReleasedError,
    SessionActiveError,
    SessionMismatchError,
)
from multibox_tracker.tracking import OpticalFlowMotionTracker, TrackHandle, as_luminance
from multibox_tracker.tracking.optical_flow import template_score

from conftest import HEIGHT, WIDTH, ScriptedMotionTracker, texture


@pytest.fixture
def scripted_session():
    session = ScriptedMotionTracker().create_session(WIDTH, HEIGHT)
    yield session
    session.close()


class TestLuminance:
    """Tests for frame buffer conversion."""

    def test_crops_2d_frame(self):
        frame = np.arange(20 * 30, dtype=np.uint8).reshape(20, 30)
        image = as_luminance(frame, 25, 10)

        assert image.shape == (10, 25)
        np.testing.assert_array_equal(image, frame[:10, :25])

    def test_flat_buffer_with_padding(self):
        rows = np.arange(4, dtype=np.uint8).repeat(8).reshape(4, 8)
        image = as_luminance(rows.tobytes(), 6, 4, row_stride=8)

        assert image.shape == (4, 6)
        np.testing.assert_array_equal(image[:, 0], [0, 1, 2, 3])

    def test_frame_too_small(self):
        with pytest.raises(ValueError):
            as_luminance(np.zeros((10, 10), dtype=np.uint8), 20, 10)
        with pytest.raises(ValueError):
            as_luminance(bytes(50), 10, 10)

    def test_stride_smaller_than_width(self):
        with pytest.raises(ValueError):
            as_luminance(bytes(100), 10, 10, row_stride=8)


class TestMotionSession:
    """Tests for handle validity rules."""

    def test_seed_and_read(self, scripted_session, frame):
        handle = scripted_session.seed_track([10, 10, 60, 60], frame, 0)

        np.testing.assert_array_equal(scripted_session.position_of(handle), [10, 10, 60, 60])
        assert scripted_session.correlation_of(handle) == pytest.approx(0.9)
        assert scripted_session.live_handles == 1

    def test_handles_are_unique(self, scripted_session, frame):
        handles = {scripted_session.seed_track([0, 0, 20, 20], frame, 0) for _ in range(5)}
        assert len(handles) == 5

    def test_released_handle_reads(self, scripted_session, frame):
        handle = scripted_session.seed_track([10, 10, 60, 60], frame, 0)
        scripted_session.release(handle)

        assert scripted_session.position_of(handle) is None
        assert scripted_session.correlation_of(handle) == 0.0
        assert not scripted_session.set_position(handle, [0, 0, 20, 20], 1)

    def test_double_release(self, scripted_session, frame):
        handle = scripted_session.seed_track([10, 10, 60, 60], frame, 0)
        scripted_session.release(handle)

        with pytest.raises(HandleReleasedError):
            scripted_session.release(handle)

    def test_handle_from_other_session(self, scripted_session, frame):
        other = ScriptedMotionTracker().create_session(WIDTH, HEIGHT)
        handle = other.seed_track([10, 10, 60, 60], frame, 0)

        with pytest.raises(SessionMismatchError):
            scripted_session.position_of(handle)
        with pytest.raises(SessionMismatchError):
            scripted_session.release(handle)
        other.close()

    def test_never_issued_handle(self, scripted_session):
        handle = TrackHandle(scripted_session.session_id, 999)
        with pytest.raises(SessionMismatchError):
            scripted_session.correlation_of(handle)

    def test_closed_session(self, scripted_session, frame):
        handle = scripted_session.seed_track([10, 10, 60, 60], frame, 0)
        scripted_session.close()

        assert scripted_session.closed
        assert scripted_session.live_handles == 0
        assert scripted_session.forgotten == [handle.object_id]
        with pytest.raises(SessionMismatchError):
            scripted_session.position_of(handle)
        with pytest.raises(SessionMismatchError):
            scripted_session.advance(frame, 1)

    def test_set_position(self, scripted_session, frame):
        handle = scripted_session.seed_track([10, 10, 60, 60], frame, 5)

        assert scripted_session.set_position(handle, [20, 20, 70, 70], 6)
        np.testing.assert_array_equal(scripted_session.position_of(handle), [20, 20, 70, 70])

    def test_stale_set_position_ignored(self, scripted_session, frame, caplog):
        handle = scripted_session.seed_track([10, 10, 60, 60], frame, 5)

        with caplog.at_level(logging.WARNING):
            assert not scripted_session.set_position(handle, [20, 20, 70, 70], 3)

        assert "older position time" in caplog.text
        np.testing.assert_array_equal(scripted_session.position_of(handle), [10, 10, 60, 60])

    def test_invalid_box(self, scripted_session, frame):
        with pytest.raises(ValueError):
            scripted_session.seed_track([1, 2, 3], frame, 0)


class TestMotionTracker:
    """Tests for session lifecycle."""

    def test_one_session_at_a_time(self):
        motion_tracker = ScriptedMotionTracker()
        first = motion_tracker.create_session(WIDTH, HEIGHT)

        with pytest.raises(SessionActiveError):
            motion_tracker.create_session(WIDTH, HEIGHT)

        first.close()
        assert motion_tracker.active_session is None

        second = motion_tracker.create_session(WIDTH, HEIGHT)
        assert second is not None
        assert second.session_id != first.session_id
        second.close()

    def test_unavailable_backend(self):
        assert ScriptedMotionTracker(available=False).create_session(WIDTH, HEIGHT) is None
        assert OpticalFlowMotionTracker(MotionConfig(available=False)).create_session(
            WIDTH, HEIGHT) is None

    def test_context_manager_closes(self):
        motion_tracker = ScriptedMotionTracker()
        with motion_tracker.create_session(WIDTH, HEIGHT) as session:
            pass

        assert session.closed
        assert motion_tracker.active_session is None


class TestTemplateScore:
    """Tests for the template correlation score."""

    def test_identical_patches(self):
        patch = texture(1, 40, 40)
        assert template_score(patch, patch.copy()) == pytest.approx(1.0, abs=1e-3)

    def test_inverted_patch_clipped_to_zero(self):
        patch = texture(1, 40, 40)
        assert template_score(255 - patch, patch) == 0.0

    def test_textureless_patch(self):
        flat = np.full((40, 40), 90, dtype=np.uint8)
        assert template_score(flat, texture(1, 40, 40)) == 0.0
        assert template_score(texture(1, 40, 40), flat) == 0.0

    def test_size_mismatch(self):
        assert template_score(texture(1, 40, 40), texture(1, 30, 40)) == 0.0


class TestOpticalFlow:
    """Tests for the optical-flow backend on synthetic frames."""

    BOX = [100, 80, 180, 160]

    @pytest.fixture
    def flow_session(self):
        session = OpticalFlowMotionTracker().create_session(320, 240)
        yield session
        session.close()

    def test_self_correlation(self, flow_session):
        handle = flow_session.seed_track(self.BOX, texture(0), 0)

        assert flow_session.correlation_of(handle) == pytest.approx(1.0, abs=1e-3)
        np.testing.assert_allclose(flow_session.position_of(handle), self.BOX)

    def test_static_frame(self, flow_session):
        image = texture(0)
        handle = flow_session.seed_track(self.BOX, image, 0)

        flow_session.advance(image, 1)

        np.testing.assert_allclose(flow_session.position_of(handle), self.BOX, atol=1.0)
        assert flow_session.correlation_of(handle) > 0.9

    def test_follows_translation(self, flow_session):
        image = texture(0)
        handle = flow_session.seed_track(self.BOX, image, 0)

        flow_session.advance(np.roll(image, 6, axis=1), 1)

        expected = np.array(self.BOX) + [6, 0, 6, 0]
        np.testing.assert_allclose(flow_session.position_of(handle), expected, atol=1.5)
        assert flow_session.correlation_of(handle) > 0.75

    def test_flat_frame_does_not_correlate(self, flow_session):
        handle = flow_session.seed_track(self.BOX, np.full((240, 320), 128, np.uint8), 0)
        assert flow_session.correlation_of(handle) == 0.0

    def test_blank_frame_drops_correlation(self, flow_session):
        handle = flow_session.seed_track(self.BOX, texture(0), 0)

        flow_session.advance(np.zeros((240, 320), dtype=np.uint8), 1)

        assert flow_session.correlation_of(handle) < 0.2

    def test_set_position_moves_box(self, flow_session):
        handle = flow_session.seed_track(self.BOX, texture(0), 0)

        assert flow_session.set_position(handle, [110, 80, 190, 160], 1)
        np.testing.assert_allclose(flow_session.position_of(handle), [110, 80, 190, 160])

    def test_release_and_close(self, flow_session):
        image = texture(0)
        kept = flow_session.seed_track(self.BOX, image, 0)
        dropped = flow_session.seed_track([10, 10, 60, 60], image, 0)

        flow_session.release(dropped)
        flow_session.advance(image, 1)

        assert flow_session.live_handles == 1
        assert flow_session.position_of(kept) is not None
        flow_session.close()
        assert flow_session.live_handles == 0
