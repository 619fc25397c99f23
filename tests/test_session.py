import threading
from datetime import datetime, timedelta

from schooltap.errors import StorageError
from schooltap.models import LastEvent, ScanMode, Settings, to_millis
from schooltap.scanner import ScanSession

from conftest import FakeTagSource


class Recorder:
    def __init__(self):
        self.results = []
        self.errors = []
        self.scheduled = []

    def schedule(self, delay, callback):
        self.scheduled.append((delay, callback))


def make_session(processor, store, source=None):
    recorder = Recorder()
    source = source or FakeTagSource()
    session = ScanSession(
        processor,
        source,
        store,
        on_result=recorder.results.append,
        on_error=recorder.errors.append,
        scheduler=recorder.schedule,
    )
    return session, source, recorder


def test_start_runs_daily_reset_before_accepting_tags(store, processor, jane, morning):
    yesterday = to_millis(morning - timedelta(days=1))
    store.register_student(jane.with_last_event(LastEvent("in", yesterday)))
    store.set_last_reset(yesterday)
    session, source, recorder = make_session(processor, store)

    session.start(now=morning)

    assert store.get_student("A1").last_event is None
    assert source.started == 1
    source.emit("A1", morning)
    assert recorder.results[0].event == "in"


def test_continuous_mode_disarms_then_rearms(store, processor, jane, two_parent_student, morning):
    store.register_student(jane)
    store.register_student(two_parent_student)
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)

    source.emit("A1", morning)

    assert session.running and not session.armed
    [(delay, rearm)] = recorder.scheduled
    assert delay == 2.0

    source.emit("C3", morning + timedelta(seconds=1))
    assert len(recorder.results) == 1

    rearm()
    assert session.armed
    source.emit("C3", morning + timedelta(seconds=3))
    assert [r.rfid for r in recorder.results] == ["A1", "C3"]


def test_errors_are_reported_and_session_continues(store, processor, morning):
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)

    source.emit("UNKNOWN", morning)

    assert recorder.errors == ["Student not registered with this RFID."]
    assert session.running
    assert len(recorder.scheduled) == 1


def test_single_shot_mode_stops_after_attempt(store, processor, jane, morning):
    store.register_student(jane)
    store.save_settings(Settings(continuous_scan_enabled=False))
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)

    source.emit("A1", morning)

    assert not session.running
    assert source.stopped == 1
    assert recorder.scheduled == []


def test_read_only_session_reports_tag_and_stops(store, processor, morning):
    session, source, recorder = make_session(processor, store)
    session.start(ScanMode.READ_ONLY, now=morning)

    source.emit("04A1B2", morning)

    assert recorder.results[0].rfid == "04A1B2"
    assert not session.running
    assert store.list_attendance() == []


def test_debounced_read_is_not_an_attempt(store, processor, jane, morning):
    store.register_student(jane)
    store.save_settings(Settings(continuous_scan_enabled=False))
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)
    processor._accept(morning)

    source.emit("A1", morning + timedelta(milliseconds=100))

    assert recorder.results == [] and recorder.errors == []
    assert session.running


def test_stop_is_idempotent(store, processor, morning):
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)

    session.stop()
    session.stop()

    assert source.stopped == 1
    assert not session.running


def test_source_start_failure_is_reported(store, processor, morning):
    source = FakeTagSource(start_error=OSError("port busy"))
    session, source, recorder = make_session(processor, store, source)

    session.start(now=morning)

    assert not session.running
    assert recorder.errors == ["Reader failed to start: port busy"]


def test_source_failure_stops_session(store, processor, morning):
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)

    source.on_failure("Error reading card: unplugged")

    assert not session.running
    assert recorder.errors == ["Error reading card: unplugged"]


def test_storage_failure_stops_session(store, processor, jane, morning):
    store.register_student(jane)
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)

    def broken(rfid):
        raise StorageError("Failed to read students.json")

    store.get_student = broken
    source.emit("A1", morning)

    assert not session.running
    assert recorder.errors == ["Scan failed: Failed to read students.json"]


def test_storage_failure_while_rearming_stops_session(store, processor, jane, morning):
    store.register_student(jane)
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)
    source.emit("A1", morning)
    [(delay, rearm)] = recorder.scheduled

    def broken():
        raise StorageError("Failed to read last_reset.json")

    store.get_last_reset = broken
    rearm()

    assert not session.running and not session.armed
    assert source.stopped == 1
    assert recorder.errors == ["Scan failed: Failed to read last_reset.json"]


def test_stop_during_rearm_leaves_session_disarmed(store, processor, jane, morning):
    store.register_student(jane)
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)
    source.emit("A1", morning)
    [(delay, rearm)] = recorder.scheduled
    get_last_reset = store.get_last_reset

    def stop_then_read():
        session.stop()
        return get_last_reset()

    store.get_last_reset = stop_then_read
    rearm()

    assert not session.running and not session.armed
    source.emit("A1", morning + timedelta(seconds=3))
    assert len(recorder.results) == 1


def test_concurrent_stop_and_tags_leave_consistent_state(store, processor, jane, morning):
    store.register_student(jane)
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)
    barrier = threading.Barrier(2)

    def tap():
        barrier.wait()
        for i in range(50):
            session.handle_tag("A1", morning + timedelta(seconds=3 * i))

    def stop():
        barrier.wait()
        session.stop()

    threads = [threading.Thread(target=tap), threading.Thread(target=stop)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert not session.running and not session.armed
    assert source.stopped == 1
    for _, rearm in recorder.scheduled:
        rearm()
    assert not session.armed


def test_tags_after_stop_are_ignored(store, processor, jane, morning):
    store.register_student(jane)
    session, source, recorder = make_session(processor, store)
    session.start(now=morning)
    session.stop()

    source.emit("A1", datetime(2026, 2, 2, 9, 30))

    assert recorder.results == []
    assert store.list_attendance() == []
