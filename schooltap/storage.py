import json
import logging
import os
import tempfile
import threading
from dataclasses import replace

from schooltap.constants import (
    DEFAULT_DATA_DIR,
    STUDENTS_KEY,
    ATTENDANCE_KEY,
    MESSAGES_KEY,
    LAST_RESET_KEY,
    SETTINGS_KEY,
)
from schooltap.errors import DuplicateKeyError, StorageError
from schooltap.models import (
    Student,
    AttendanceLog,
    MessageLog,
    Settings,
    from_millis,
)

logger = logging.getLogger(__name__)


def load_data(filepath, default):
    if not os.path.exists(filepath):
        return default
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise StorageError(f"Failed to read {filepath}: {e}") from e


def save_data(filepath, data):
    folder = os.path.dirname(filepath)
    if folder:
        os.makedirs(folder, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=folder or ".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=4)
        os.replace(tmp_path, filepath)
    except Exception as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise StorageError(f"Failed to save {filepath}: {e}") from e


class RecordStore:
    """JSON-file persistence for students, logs, the reset marker and settings.

    Every collection is one JSON array in its own file. Each mutation reads the
    whole array, changes it in memory and writes it back; a missing file reads
    as an empty collection.
    """

    def __init__(self, folder=DEFAULT_DATA_DIR):
        self.folder = folder
        self._lock = threading.RLock()

    def _path(self, key):
        return os.path.join(self.folder, f"{key}.json")

    def _read(self, key, default):
        data = load_data(self._path(key), default)
        if type(data) is not type(default):
            raise StorageError(f"Collection {key!r} is corrupt: expected {type(default).__name__}")
        return data

    def _write(self, key, data):
        save_data(self._path(key), data)

    def initialize(self):
        os.makedirs(self.folder, exist_ok=True)

    # ==================================================
    # Students
    # ==================================================

    def list_students(self):
        return [Student.from_dict(row) for row in self._read(STUDENTS_KEY, [])]

    def get_student(self, rfid):
        for row in self._read(STUDENTS_KEY, []):
            if row.get("rfid") == rfid:
                return Student.from_dict(row)
        return None

    def register_student(self, student):
        with self._lock:
            rows = self._read(STUDENTS_KEY, [])
            if any(row.get("rfid") == student.rfid for row in rows):
                raise DuplicateKeyError(student.rfid)
            rows.append(student.to_dict())
            self._write(STUDENTS_KEY, rows)
        logger.info("Registered student %s (%s)", student.name, student.rfid)

    def add_students(self, students):
        """Append many students in one write. Callers filter duplicates first."""
        with self._lock:
            rows = self._read(STUDENTS_KEY, [])
            rows.extend(s.to_dict() for s in students)
            self._write(STUDENTS_KEY, rows)

    def update_student(self, rfid, student):
        with self._lock:
            rows = self._read(STUDENTS_KEY, [])
            rows = [student.to_dict() if row.get("rfid") == rfid else row for row in rows]
            self._write(STUDENTS_KEY, rows)

    def delete_student(self, rfid):
        with self._lock:
            rows = self._read(STUDENTS_KEY, [])
            self._write(STUDENTS_KEY, [row for row in rows if row.get("rfid") != rfid])

    def clear_last_events(self):
        with self._lock:
            rows = self._read(STUDENTS_KEY, [])
            for row in rows:
                row["lastEvent"] = None
            self._write(STUDENTS_KEY, rows)
        return len(rows)

    # ==================================================
    # Attendance logs
    # ==================================================

    def append_attendance(self, log):
        with self._lock:
            rows = self._read(ATTENDANCE_KEY, [])
            rows.append(log.to_dict())
            self._write(ATTENDANCE_KEY, rows)

    def list_attendance(self, day=None):
        logs = [AttendanceLog.from_dict(row) for row in self._read(ATTENDANCE_KEY, [])]
        if day is not None:
            logs = [log for log in logs if from_millis(log.timestamp).date() == day]
        return logs

    def delete_attendance(self, timestamps):
        targets = set(timestamps)
        with self._lock:
            rows = self._read(ATTENDANCE_KEY, [])
            self._write(ATTENDANCE_KEY, [row for row in rows if row.get("timestamp") not in targets])

    def delete_all_attendance(self):
        with self._lock:
            self._write(ATTENDANCE_KEY, [])

    # ==================================================
    # Message logs
    # ==================================================

    def append_message(self, log):
        with self._lock:
            rows = self._read(MESSAGES_KEY, [])
            rows.append(log.to_dict())
            self._write(MESSAGES_KEY, rows)

    def list_messages(self, enrich=True):
        logs = [MessageLog.from_dict(row) for row in self._read(MESSAGES_KEY, [])]
        if not enrich:
            return logs

        names = {s.rfid: s.name for s in self.list_students()}
        return [
            log if log.student_name else replace(log, student_name=names.get(log.rfid, "Unknown"))
            for log in logs
        ]

    def delete_messages(self, timestamps):
        targets = set(timestamps)
        with self._lock:
            rows = self._read(MESSAGES_KEY, [])
            self._write(MESSAGES_KEY, [row for row in rows if row.get("timestamp") not in targets])

    def delete_all_messages(self):
        with self._lock:
            self._write(MESSAGES_KEY, [])

    # ==================================================
    # Reset marker and settings
    # ==================================================

    def get_last_reset(self):
        data = self._read(LAST_RESET_KEY, {})
        value = data.get("timestamp")
        return int(value) if value is not None else None

    def set_last_reset(self, timestamp):
        with self._lock:
            self._write(LAST_RESET_KEY, {"timestamp": int(timestamp)})

    def get_settings(self):
        return Settings.from_dict(self._read(SETTINGS_KEY, {}))

    def save_settings(self, settings):
        with self._lock:
            self._write(SETTINGS_KEY, settings.to_dict())
