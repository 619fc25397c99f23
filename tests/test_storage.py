from datetime import date, datetime

import pytest

from schooltap.errors import DuplicateKeyError, StorageError
from schooltap.models import (
    AttendanceLog,
    DeliveryStatus,
    EventType,
    LastEvent,
    MessageLog,
    Settings,
    Student,
    check_event,
    to_millis,
)
from schooltap.storage import save_data


def test_empty_store_reads_as_empty_collections(store):
    assert store.list_students() == []
    assert store.list_attendance() == []
    assert store.list_messages() == []
    assert store.get_last_reset() is None
    assert store.get_settings() == Settings()


def test_register_then_resolve_returns_equal_record(store):
    student = Student(
        rfid="04A1B2C3",
        name="Jane Doe",
        admission_number="ADM-001",
        parent_phone="0800000001",
        parent_phone2="0800000002",
        last_event=LastEvent(event="in", timestamp=to_millis(datetime(2026, 2, 2, 8, 30))),
    )
    store.register_student(student)

    assert store.get_student("04A1B2C3") == student


def test_register_duplicate_rfid_raises_and_leaves_store_unchanged(store, jane):
    store.register_student(jane)
    other = Student(rfid="A1", name="John Roe", admission_number="ADM-002", parent_phone="0800000009")

    with pytest.raises(DuplicateKeyError) as excinfo:
        store.register_student(other)

    assert excinfo.value.rfid == "A1"
    assert store.list_students() == [jane]


def test_update_and_delete_missing_rfid_are_noops(store, jane):
    store.register_student(jane)
    ghost = Student(rfid="ZZ", name="Ghost", admission_number="", parent_phone="0800000000")

    store.update_student("ZZ", ghost)
    store.delete_student("ZZ")

    assert store.list_students() == [jane]


def test_update_student_replaces_matching_record(store, jane):
    store.register_student(jane)
    stamp = to_millis(datetime(2026, 2, 2, 9, 0))

    store.update_student("A1", jane.with_last_event(LastEvent("in", stamp)))

    assert store.get_student("A1").last_event == LastEvent("in", stamp)


def test_clear_last_events_resets_every_student(store, jane, two_parent_student):
    stamp = to_millis(datetime(2026, 2, 2, 9, 0))
    store.register_student(jane.with_last_event(LastEvent("in", stamp)))
    store.register_student(two_parent_student.with_last_event(LastEvent("out", stamp)))

    assert store.clear_last_events() == 2
    assert all(s.last_event is None for s in store.list_students())


def test_corrupt_collection_raises_storage_error(store):
    store.initialize()
    with open(store._path("students"), "w", encoding="utf-8") as f:
        f.write("{not json")

    with pytest.raises(StorageError):
        store.list_students()


def test_wrong_collection_shape_raises_storage_error(store):
    store.initialize()
    with open(store._path("attendance"), "w", encoding="utf-8") as f:
        f.write('{"rfid": "A1"}')

    with pytest.raises(StorageError):
        store.list_attendance()


def test_attendance_filtered_by_day_and_deleted_by_timestamp(store):
    first = AttendanceLog("A1", "in", to_millis(datetime(2026, 2, 2, 8, 0)), "Jane Doe")
    second = AttendanceLog("A1", "out", to_millis(datetime(2026, 2, 3, 13, 0)), "Jane Doe")
    store.append_attendance(first)
    store.append_attendance(second)

    assert store.list_attendance(day=date(2026, 2, 3)) == [second]

    store.delete_attendance([first.timestamp])
    assert store.list_attendance() == [second]

    store.delete_all_attendance()
    assert store.list_attendance() == []


def test_message_names_are_backfilled_on_read_only(store, jane):
    store.register_student(jane)
    stamp = to_millis(datetime(2026, 2, 2, 9, 0))
    store.append_message(MessageLog("A1", "0800000001", "hi", DeliveryStatus.SENT, stamp))
    store.append_message(MessageLog("X9", "0800000009", "hi", DeliveryStatus.FAILED, stamp + 1))

    enriched = store.list_messages()
    assert [m.student_name for m in enriched] == ["Jane Doe", "Unknown"]

    raw = store.list_messages(enrich=False)
    assert [m.student_name for m in raw] == [None, None]


def test_delete_messages(store):
    store.append_message(MessageLog("A1", "0800000001", "a", DeliveryStatus.SENT, 1000, "Jane Doe"))
    store.append_message(MessageLog("A1", "0800000001", "b", DeliveryStatus.SENT, 2000, "Jane Doe"))

    store.delete_messages([1000])
    assert [m.message for m in store.list_messages()] == ["b"]

    store.delete_all_messages()
    assert store.list_messages() == []


def test_settings_and_reset_marker_persist(store):
    store.save_settings(Settings(tts_enabled=False, continuous_scan_enabled=True, manual_clock_enabled=False))
    store.set_last_reset(1234)

    assert store.get_settings() == Settings(False, True, False)
    assert store.get_last_reset() == 1234


def test_student_requires_rfid():
    with pytest.raises(ValueError):
        Student(rfid="", name="Nobody", admission_number="", parent_phone="0800000000")


def test_unknown_event_is_rejected():
    assert check_event(EventType.OUT) == "out"
    assert LastEvent.from_dict({"event": "in", "timestamp": 5}) == LastEvent("in", 5)
    with pytest.raises(ValueError):
        LastEvent.from_dict({"event": "sideways", "timestamp": 5})


def test_unserialisable_value_raises_storage_error_and_leaves_no_temp_file(tmp_path):
    folder = tmp_path / "data"

    with pytest.raises(StorageError):
        save_data(str(folder / "broken.json"), [object()])

    assert list(folder.glob("*.tmp")) == []
    assert not (folder / "broken.json").exists()
