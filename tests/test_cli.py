from __future__ import annotations

import pytest

from romcoach.feedback.classifier import FeedbackStatus
from romcoach.feedback.gate import Feedback, Severity
from romcoach.runtime.cli import PhaseDriver, build_parser


class PhaseRecorder:
    def __init__(self):
        self.phases = []

    def set_phase(self, phase):
        self.phases.append(phase)
        return True


def status(phase, fb, shown=True):
    return FeedbackStatus(exercise="shoulder_abduction", phase=phase, target_y=0.5, neutral_y=0.8,
                          feedback=fb, shown=shown, displayed=fb, up_counter=0, down_counter=0)


def test_parser_exercise_defaults():
    args = build_parser().parse_args(["exercise", "mini_squats"])
    assert args.exercise == "mini_squats"
    assert (args.level, args.levels) == (1, 3)


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_phase_driver_flips_on_success_only(capsys):
    rec = PhaseRecorder()
    drive = PhaseDriver(rec)
    drive(status("up", Feedback("Raise both arms higher", Severity.CORRECTION)))
    drive(status("up", Feedback("Nice height! Hold…", Severity.SUCCESS), shown=False))
    assert rec.phases == []

    drive(status("up", Feedback("Nice height! Hold…", Severity.SUCCESS)))
    drive(status("waitDown", Feedback("Great reset! Ready for the next rep", Severity.SUCCESS)))
    assert rec.phases == ["waitDown", "up"]
    assert "Raise both arms higher" in capsys.readouterr().out
