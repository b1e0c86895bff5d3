from __future__ import annotations
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Optional


class EventType(str, Enum):
    CALIBRATION_STARTED = "calibration_started"
    CALIBRATION_STATUS = "calibration_status"
    CALIBRATION_SAVED = "calibration_saved"
    CALIBRATION_RESET = "calibration_reset"
    EXERCISE_STARTED = "exercise_started"
    EXERCISE_STOPPED = "exercise_stopped"
    PHASE_CHANGED = "phase_changed"
    FEEDBACK = "feedback"
    FEEDBACK_STATUS = "feedback_status"
    NOTICE = "notice"
    TRACE = "trace"


@dataclass
class SessionEvent:
    type: EventType
    session_id: str
    ts: float
    mode: str
    exercise: Optional[str] = None


@dataclass
class NoticeEvent:
    type: EventType
    ts: float
    msg: str
    level: str = "info"   # "info" | "warning"


def to_payload(obj: Any) -> Any:
    """Turn event/status dataclasses (and the enums inside them) into JSON-ready dicts."""
    if is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)
    if isinstance(obj, dict):
        return {k: to_payload(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_payload(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    return obj
