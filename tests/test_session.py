from __future__ import annotations

import pytest

from romcoach.calibration.ladder import LadderConfig
from romcoach.data.db import CALIB_KEY, CalibrationStore, session_scope
from romcoach.pose.landmarks import PoseLandmark as LM
from romcoach.runtime.session import SessionManager

from conftest import ladder_frame, make_frame

DT = 0.125
FAST = LadderConfig(hold_seconds=0.5, k_frames=2)


@pytest.fixture
def events():
    return []


@pytest.fixture
def mgr(store, events):
    m = SessionManager(store=store, ladder_cfg=FAST, mirrored=False)
    m.set_event_sink(events.append)
    return m


def calibrate(mgr: SessionManager, max_frames: int = 200):
    left = (FAST.left_x, FAST.rungs[4])
    right = (FAST.right_x, FAST.rungs[2])
    for i in range(max_frames):
        st = mgr.push_frame(ladder_frame(left, right), i * DT)
        if st.step == "done":
            return i
    raise AssertionError("calibration never finished")


def of_type(events, kind):
    return [e for e in events if e.get("type") == kind]


def test_idle_manager_ignores_frames(mgr):
    assert mgr.push_frame(make_frame({}), 0.0) is None
    assert mgr.status()["mode"] == "idle"


def test_calibration_saves_once(mgr, store, events):
    mgr.start_calibration()
    assert of_type(events, "calibration_started")
    last = calibrate(mgr)

    # keep feeding frames after done: no second save
    for i in range(5):
        mgr.push_frame(ladder_frame((0.5, 0.5), (0.5, 0.5)), (last + 1 + i) * DT)

    saved = of_type(events, "calibration_saved")
    assert len(saved) == 1
    assert saved[0]["record"]["leftIndex"] == 5
    assert saved[0]["record"]["rightIndex"] == 3
    notices = of_type(events, "notice")
    assert [n["msg"] for n in notices] == ["Calibration saved."]

    assert mgr.calib is not None and mgr.calib.complete
    assert store.load(mgr.session_id) == mgr.calib


def test_storage_failure_keeps_record_in_memory(tmp_path, events):
    m = SessionManager(store=CalibrationStore(tmp_path), ladder_cfg=FAST, mirrored=False)
    m.set_event_sink(events.append)
    m.start_calibration()
    calibrate(m)

    assert not of_type(events, "calibration_saved")
    notices = of_type(events, "notice")
    assert len(notices) == 1
    assert notices[0]["msg"] == "Couldn't save to storage."
    assert notices[0]["level"] == "warning"
    assert m.calib is not None and m.calib.left_index == 5


def test_exercise_uses_saved_calibration(mgr):
    mgr.start_calibration()
    calibrate(mgr)
    s = mgr.start_exercise("shoulder_abduction", level=3, levels=3)
    assert s.calib is mgr.calib
    assert s.neutral_y == pytest.approx(0.8)
    assert mgr.status()["mode"] == "exercising"


def test_new_manager_reads_long_lived_copy(mgr, store):
    mgr.start_calibration()
    calibrate(mgr)
    other = SessionManager(store=store)
    rec = other.current_calibration()
    assert rec is not None and rec.left_index == 5


def test_exercise_frames_emit_shown_feedback(mgr, events):
    mgr.start_exercise("shoulder_abduction")
    frame = make_frame({
        LM.LEFT_SHOULDER: (0.6, 0.3, 0.9),
        LM.RIGHT_SHOULDER: (0.4, 0.3, 0.9),
        LM.LEFT_WRIST: (0.6, 0.9, 0.9),
        LM.RIGHT_WRIST: (0.4, 0.9, 0.9),
    })
    st = mgr.push_frame(frame, 0.0)
    assert st.shown
    mgr.push_frame(frame, 0.1)  # inside the minimum gap
    fb = of_type(events, "feedback")
    assert len(fb) == 1
    assert fb[0]["message"] == "Raise both arms higher"
    assert fb[0]["severity"] == "correction"


def test_phase_changes(mgr, events):
    assert not mgr.set_phase("waitDown")
    mgr.start_exercise("shoulder_abduction")
    assert mgr.set_phase("waitDown")
    assert mgr.status()["phase"] == "waitDown"
    assert of_type(events, "phase_changed") == [{"type": "phase_changed", "phase": "waitDown"}]
    assert not mgr.set_phase("bogus")


def test_level_change_moves_target(mgr):
    mgr.start_exercise("shoulder_abduction", level=1, levels=3)
    low = mgr.status()["target_y"]
    mgr.set_level(3, 3)
    assert mgr.status()["target_y"] < low


def test_calibration_interrupts_exercise(mgr, events):
    mgr.start_exercise("mini_squats")
    mgr.start_calibration()
    assert mgr.feedback_session is None and mgr.exercise is None
    assert mgr.status()["mode"] == "calibrating"
    assert of_type(events, "exercise_stopped")


def test_reset_starts_fresh_ladder(mgr, events):
    mgr.start_calibration()
    first = mgr.ladder_session
    mgr.reset_calibration()
    assert mgr.ladder_session is not first
    assert mgr.ladder_session.step == "left"
    assert of_type(events, "calibration_reset")


def test_end_clears_session_scope_only(mgr, store):
    mgr.start_calibration()
    calibrate(mgr)
    mgr.end()
    assert store.get_raw(session_scope(mgr.session_id), CALIB_KEY) is None
    assert store.load() is not None
    assert mgr.status()["mode"] == "idle"


def test_failing_sink_does_not_break_frames(store):
    def boom(_ev):
        raise RuntimeError("sink down")

    m = SessionManager(store=store, ladder_cfg=FAST, mirrored=False)
    m.set_event_sink(boom)
    m.start_calibration()
    calibrate(m)
    assert m.calib is not None


def test_unusable_db_path_still_emits_notice(tmp_path, events):
    blocker = tmp_path / "afile"
    blocker.write_text("not a directory")
    m = SessionManager(store=CalibrationStore(blocker / "sub" / "romcoach.db"), ladder_cfg=FAST, mirrored=False)
    m.set_event_sink(events.append)
    m.start_calibration()
    calibrate(m)

    notices = of_type(events, "notice")
    assert [n["msg"] for n in notices] == ["Couldn't save to storage."]
    assert m.calib is not None and m.calib.complete


def test_record_keeps_mirroring_used_on_frames(store):
    m = SessionManager(store=store, ladder_cfg=FAST, mirrored=True)
    m.start_calibration()
    left = (FAST.left_x, FAST.rungs[4])
    right = (FAST.right_x, FAST.rungs[2])
    for i in range(200):
        st = m.push_frame(ladder_frame(left, right), i * DT, mirrored=False)
        if st.step == "done":
            break
    assert st.step == "done"
    assert m.calib.mirror is False
    assert store.load(m.session_id).mirror is False
