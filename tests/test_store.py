from __future__ import annotations
import json

from romcoach.calibration.record import CalibrationRecord
from romcoach.data.db import CALIB_KEY, COMPAT_KEY, LOCAL_SCOPE, CalibrationStore, session_scope


def test_round_trip_keeps_indices_and_rom(store, calib):
    assert store.save(calib, "abc")
    back = store.load("abc")
    assert back is not None
    assert (back.left_index, back.right_index) == (calib.left_index, calib.right_index)
    assert back.rom == calib.rom
    assert back == calib


def test_all_three_copies_are_identical(store, calib):
    store.save(calib, "abc")
    a = store.get_raw(session_scope("abc"), CALIB_KEY)
    b = store.get_raw(LOCAL_SCOPE, CALIB_KEY)
    c = store.get_raw(LOCAL_SCOPE, COMPAT_KEY)
    assert a == b == c


def test_wire_format_uses_camel_case(store, calib):
    store.save(calib, "abc")
    data = json.loads(store.get_raw(LOCAL_SCOPE, COMPAT_KEY))
    assert data["leftIndex"] == 5 and data["rightIndex"] == 6
    assert data["rom"] == {"neutralY": 0.8, "maxReachLeftY": 0.2, "maxReachRightY": 0.3}
    assert data["version"] == "ladder-v2"
    assert "yTop" in data and "hitRadius" in data


def test_load_prefers_session_then_local(store, calib):
    store.save(calib, "first")
    newer = calib.model_copy(update={"t": calib.t + 1, "left_index": 7})
    store.save(newer, "second")
    assert store.load("first").left_index == 5
    assert store.load("second").left_index == 7
    # unknown session falls back to the long-lived copy
    assert store.load("other").left_index == 7


def test_clear_session_keeps_local_copy(store, calib):
    store.save(calib, "abc")
    store.clear_session("abc")
    assert store.get_raw(session_scope("abc"), CALIB_KEY) is None
    assert store.load("abc") == calib


def test_empty_store_loads_none(store):
    assert store.load("abc") is None


def test_legacy_key_alone_is_readable(store, calib):
    conn = store.get_conn()
    with conn:
        conn.execute("INSERT INTO kv (scope, key, value, updated_at) VALUES (?,?,?,?)",
                     (LOCAL_SCOPE, COMPAT_KEY, calib.to_json(), 0.0))
    assert store.load() == calib


def test_garbage_payload_reads_as_none(store):
    conn = store.get_conn()
    with conn:
        conn.execute("INSERT INTO kv (scope, key, value, updated_at) VALUES (?,?,?,?)",
                     (LOCAL_SCOPE, CALIB_KEY, "{not json", 0.0))
    assert store.load() is None


def test_unwritable_storage_reports_failure(tmp_path, calib):
    # a directory cannot be opened as a database file
    bad = CalibrationStore(tmp_path)
    assert bad.save(calib, "abc") is False


def test_record_json_round_trip(calib):
    assert CalibrationRecord.from_json(calib.to_json()) == calib


def test_store_below_a_regular_file_reports_failure(tmp_path, calib):
    blocker = tmp_path / "afile"
    blocker.write_text("not a directory")
    bad = CalibrationStore(blocker / "sub" / "romcoach.db")
    assert bad.save(calib, "abc") is False
    assert bad.load("abc") is None
    bad.clear_session("abc")
