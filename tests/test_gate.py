from __future__ import annotations

from romcoach.feedback.gate import Feedback, MessageGate, Severity

A = Feedback("Raise both arms higher", Severity.CORRECTION)
B = Feedback("Nice height! Hold…", Severity.SUCCESS)


def test_min_gap_between_messages():
    g = MessageGate()
    assert g.offer(A, 0.0)
    assert not g.offer(B, 0.3)
    assert g.displayed(0.3) == A
    assert g.offer(B, 0.6)
    assert g.displayed(0.6) == B


def test_empty_or_missing_message_is_ignored():
    g = MessageGate()
    assert not g.offer(None, 0.0)
    assert not g.offer(Feedback(""), 0.0)
    assert g.last_shown_ms is None
    assert g.offer(A, 0.1)


def test_display_clears_after_timeout():
    g = MessageGate()
    g.offer(A, 0.0)
    assert g.displayed(1.4) == A
    assert g.displayed(1.5) is None


def test_same_text_is_cleared_by_first_timer():
    g = MessageGate()
    g.offer(A, 0.0)
    g.offer(A, 0.6)
    assert g.displayed(1.49) == A
    assert g.displayed(1.51) is None


def test_superseded_message_survives_old_timer():
    g = MessageGate()
    g.offer(A, 0.0)
    g.offer(B, 0.6)
    assert g.displayed(1.6) == B
    assert g.displayed(2.05) == B
    assert g.displayed(2.15) is None


def test_clear():
    g = MessageGate()
    g.offer(A, 0.0)
    g.clear()
    assert g.displayed(0.1) is None
