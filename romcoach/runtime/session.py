from __future__ import annotations
import logging
import time
import uuid
from typing import Callable, Literal, Optional, Union

from romcoach.calibration.ladder import CalibrationLadder, LadderConfig, LadderSession, LadderStatus
from romcoach.calibration.record import CalibrationRecord
from romcoach.common import config
from romcoach.common.events import EventType, NoticeEvent, SessionEvent, to_payload
from romcoach.data.db import CalibrationStore
from romcoach.feedback.classifier import FeedbackClassifier, FeedbackConfig, FeedbackSession, FeedbackStatus
from romcoach.pose.landmarks import LandmarkFrame

logger = logging.getLogger(__name__)

Mode = Literal["idle", "calibrating", "exercising"]
Status = Union[LadderStatus, FeedbackStatus]


class SessionManager:
    """
    Owns the one live session (calibration or exercise) for a user and routes
    each landmark frame to it. Calibration and exercise never run together.
    """
    def __init__(
        self,
        store: Optional[CalibrationStore] = None,
        ladder_cfg: Optional[LadderConfig] = None,
        feedback_cfg: Optional[FeedbackConfig] = None,
        mirrored: bool = config.MIRROR,
    ):
        self.session_id = str(uuid.uuid4())
        self.store = store or CalibrationStore()
        self.mirrored = mirrored
        self.ladder = CalibrationLadder(ladder_cfg, debug_cb=self._emit_debug)
        self.classifier = FeedbackClassifier(feedback_cfg)
        self.mode: Mode = "idle"
        self.ladder_session: Optional[LadderSession] = None
        self.feedback_session: Optional[FeedbackSession] = None
        self.exercise: Optional[str] = None
        self.calib: Optional[CalibrationRecord] = None
        self._saved_once = False
        self._event_sink: Optional[Callable[[dict], None]] = None

    def set_event_sink(self, sink: Callable[[dict], None]):
        self._event_sink = sink

    def _emit(self, ev):
        if self._event_sink is None:
            return
        try:
            self._event_sink(to_payload(ev))
        except Exception:
            logger.exception("event sink failed")

    def _emit_debug(self, ev):
        """
        Accepts either a dict like {"type":"trace","msg": "..."} or any object;
        normalizes and forwards to the sink so it appears in the trace panel.
        """
        payload = ev if isinstance(ev, dict) else {"type": EventType.TRACE.value, "msg": str(ev)}
        logger.debug(payload.get("msg", payload))
        self._emit(payload)

    def _session_event(self, kind: EventType):
        self._emit(SessionEvent(type=kind, session_id=self.session_id, ts=time.time(),
                                mode=self.mode, exercise=self.exercise))

    # ---------- calibration ----------

    def start_calibration(self, reset: bool = False) -> LadderSession:
        if self.mode == "exercising":
            self.stop_exercise()
        self.ladder_session = self.ladder.new_session()
        self._saved_once = False
        self.mode = "calibrating"
        self._session_event(EventType.CALIBRATION_RESET if reset else EventType.CALIBRATION_STARTED)
        return self.ladder_session

    def reset_calibration(self) -> LadderSession:
        return self.start_calibration(reset=True)

    def _finish_calibration(self):
        record = self.ladder.build_record(self.ladder_session)
        # in-memory record stays valid even when storage fails
        self.calib = record
        if self.store.save(record, self.session_id):
            self._emit({"type": EventType.CALIBRATION_SAVED.value, "record": record.model_dump(by_alias=True)})
            self._emit(NoticeEvent(type=EventType.NOTICE, ts=time.time(), msg="Calibration saved."))
        else:
            self._emit(NoticeEvent(type=EventType.NOTICE, ts=time.time(),
                                   msg="Couldn't save to storage.", level="warning"))

    def current_calibration(self) -> Optional[CalibrationRecord]:
        if self.calib is None:
            self.calib = self.store.load(self.session_id)
        return self.calib

    # ---------- exercise ----------

    def start_exercise(self, exercise: str, level: int = 1, levels: int = 3) -> FeedbackSession:
        if self.mode == "calibrating":
            self.ladder_session = None
        self.exercise = exercise
        self.feedback_session = self.classifier.start_session(level, levels, self.current_calibration())
        self.mode = "exercising"
        self._session_event(EventType.EXERCISE_STARTED)
        return self.feedback_session

    def set_level(self, level: int, levels: int):
        if self.feedback_session is not None:
            self.classifier.set_level(self.feedback_session, level, levels, self.current_calibration())

    def set_phase(self, phase: str) -> bool:
        if self.feedback_session is None:
            return False
        ok = self.classifier.set_phase(self.feedback_session, phase)
        if ok:
            self._emit({"type": EventType.PHASE_CHANGED.value, "phase": phase})
        return ok

    def stop_exercise(self):
        if self.feedback_session is not None:
            self.classifier.clear(self.feedback_session)
        self._session_event(EventType.EXERCISE_STOPPED)
        self.feedback_session = None
        self.exercise = None
        self.mode = "idle"

    def end(self):
        """Tear down everything tied to this session, including session-scoped storage."""
        if self.mode == "exercising":
            self.stop_exercise()
        self.ladder_session = None
        self.mode = "idle"
        self.store.clear_session(self.session_id)

    # ---------- frames ----------

    def push_frame(self, frame: LandmarkFrame, t: Optional[float] = None,
                   mirrored: Optional[bool] = None) -> Optional[Status]:
        """Feed one landmark frame observed at t (sec) to whichever session is live."""
        t = float(t) if t is not None else time.monotonic()
        if self.mode == "calibrating" and self.ladder_session is not None:
            mirror = self.mirrored if mirrored is None else bool(mirrored)
            st = self.ladder.step(self.ladder_session, frame, t, mirrored=mirror)
            if st.step == "done" and not self._saved_once:
                self._saved_once = True
                self._finish_calibration()
            return st
        if self.mode == "exercising" and self.feedback_session is not None:
            st = self.classifier.update(self.feedback_session, self.exercise or "", frame, t)
            if st.shown:
                self._emit({"type": EventType.FEEDBACK.value, **to_payload(st.feedback)})
            return st
        return None

    def status(self) -> dict:
        out = {
            "session_id": self.session_id,
            "mode": self.mode,
            "exercise": self.exercise,
            "calibrated": self.calib is not None,
        }
        if self.ladder_session is not None:
            out["step"] = self.ladder_session.step
        if self.feedback_session is not None:
            out["phase"] = self.feedback_session.phase
            out["level"] = self.feedback_session.level
            out["levels"] = self.feedback_session.levels
            out["target_y"] = self.feedback_session.target_y
        return out
