import logging
import threading
from datetime import datetime, timedelta

from schooltap.constants import DEBOUNCE_MS, DEFAULT_CLOCK_OUT_HOUR, RESTART_DELAY
from schooltap.errors import (
    TagReadError,
    StudentNotFoundError,
    AlreadyClockedError,
    ManualClockDisabledError,
    ScanError,
    SchoolTapError,
)
from schooltap.logic import (
    build_message,
    clocked_today,
    decide_event,
    maybe_reset_statuses,
    speech_text,
)
from schooltap.models import (
    AttendanceLog,
    LastEvent,
    ScanMode,
    ScanResult,
    check_event,
    to_millis,
)

logger = logging.getLogger(__name__)


class ScanProcessor:
    """Turns one tag read into an attendance event and parent notification.

    Steps per read: debounce, read-only short cut, resolve the student, reject a
    second event on the same calendar day, pick in/out by the clock, commit the
    log and the student's last event, notify every parent phone, then speak.

    The guard read and the two commit writes hold no lock between them, so two
    reads of the same tag that both pass the debounce before the first commit
    lands can both be logged. One reader delivering one tap at a time makes
    this rare enough to accept.
    """

    def __init__(self, store, dispatcher, speaker=None, clock_out_hour=DEFAULT_CLOCK_OUT_HOUR,
                 debounce_ms=DEBOUNCE_MS):
        self.store = store
        self.dispatcher = dispatcher
        self.speaker = speaker
        self.clock_out_hour = clock_out_hour
        self.debounce = timedelta(milliseconds=debounce_ms)
        self._last_accepted = None
        self._lock = threading.Lock()

    def reset_session(self):
        with self._lock:
            self._last_accepted = None

    def _accept(self, now):
        with self._lock:
            if self._last_accepted is not None:
                elapsed = now - self._last_accepted
                if timedelta(0) <= elapsed < self.debounce:
                    return False
            self._last_accepted = now
            return True

    def process(self, tag_id, mode=ScanMode.NORMAL, now=None):
        """Handle a raw tag read.

        Returns the ScanResult, or None when the read fell inside the debounce
        window and was dropped. Raises a ScanError for reads that were accepted
        but could not be clocked.
        """
        now = now or datetime.now()
        if not self._accept(now):
            logger.debug("Dropped tag read %r inside debounce window", tag_id)
            return None

        if not tag_id:
            raise TagReadError()

        if mode == ScanMode.READ_ONLY:
            logger.info("Read-only scan: %s", tag_id)
            return ScanResult(rfid=tag_id)

        student = self.store.get_student(tag_id)
        if student is None:
            logger.info("Unknown tag %s", tag_id)
            raise StudentNotFoundError(tag_id)

        if clocked_today(student, now):
            logger.info("%s already signed %s today", student.name, student.last_event.event)
            raise AlreadyClockedError(student.last_event.event)

        event = decide_event(now, self.clock_out_hour)
        return self._commit_and_notify(student, event, now, manual=False)

    def clock_manual(self, rfid, event, now=None):
        now = now or datetime.now()
        if not self.store.get_settings().manual_clock_enabled:
            raise ManualClockDisabledError()

        student = self.store.get_student(rfid)
        if student is None:
            raise StudentNotFoundError(rfid)

        return self._commit_and_notify(student, check_event(event), now, manual=True)

    def _commit_and_notify(self, student, event, now, manual):
        timestamp = to_millis(now)
        self.store.append_attendance(AttendanceLog(
            rfid=student.rfid,
            event=event,
            timestamp=timestamp,
            student_name=student.name,
            manual=manual,
        ))
        student = student.with_last_event(LastEvent(event=event, timestamp=timestamp))
        self.store.update_student(student.rfid, student)
        logger.info("%s clocked %s%s", student.name, event, " (manual)" if manual else "")

        message = build_message(student.name, event, now)
        deliveries = self.dispatcher.send_all(student.rfid, student.phones, message, student.name, now)

        result = ScanResult(
            rfid=student.rfid,
            student=student,
            event=event,
            message=message,
            deliveries=deliveries,
            manual=manual,
        )
        if self.speaker is not None and self.store.get_settings().tts_enabled:
            self._speak(speech_text(student.name, event))
        return result

    def _speak(self, text):
        def run():
            try:
                self.speaker.say(text)
            except Exception:
                logger.exception("Speech feedback failed for %r", text)

        threading.Thread(target=run, daemon=True).start()


def start_timer(delay, callback):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


def run_in_background(work, on_done, on_error, post):
    """Run ``work`` on a daemon thread and hand its outcome back through ``post``.

    ``post`` receives a zero-argument callable and must run it on the caller's
    thread (the window passes ``lambda fn: master.after(0, fn)``).
    """

    def worker():
        try:
            result = work()
        except SchoolTapError as e:
            message = str(e)
            post(lambda: on_error(message))
            return
        except Exception as e:
            logger.exception("Background task failed")
            message = f"Scan failed: {e}"
            post(lambda: on_error(message))
            return
        post(lambda: on_done(result))

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()
    return thread


class ScanSession:
    """Binds a tag source to a processor for one operator scanning session.

    ``running`` and ``armed`` are touched by the reader thread and the window
    thread, so every read and write of them happens under ``_lock``. The lock is
    never held while calling the processor, the source or a callback.
    """

    def __init__(self, processor, source, store, on_result, on_error,
                 scheduler=start_timer, restart_delay=RESTART_DELAY):
        self.processor = processor
        self.source = source
        self.store = store
        self.on_result = on_result
        self.on_error = on_error
        self.scheduler = scheduler
        self.restart_delay = restart_delay

        self._lock = threading.Lock()
        self.mode = ScanMode.NORMAL
        self.running = False
        self.armed = False

    def start(self, mode=ScanMode.NORMAL, now=None):
        with self._lock:
            if self.running:
                return
        maybe_reset_statuses(self.store, now)
        self.processor.reset_session()
        with self._lock:
            if self.running:
                return
            self.mode = mode
            self.running = True
            self.armed = True
        logger.info("Scan session started (%s)", mode.value)
        try:
            self.source.start(self.handle_tag, self.handle_source_failure)
        except Exception as e:
            logger.exception("Tag source failed to start")
            self.stop()
            self.on_error(f"Reader failed to start: {e}")

    def stop(self):
        with self._lock:
            if not self.running:
                return
            self.running = False
            self.armed = False
        self.source.stop()
        self.processor.reset_session()
        logger.info("Scan session stopped")

    def handle_tag(self, tag_id, now=None):
        with self._lock:
            if not (self.running and self.armed):
                return
            mode = self.mode

        try:
            result = self.processor.process(tag_id, mode, now)
        except ScanError as e:
            self.on_error(str(e))
            self._after_attempt()
            return
        except Exception as e:
            logger.exception("Scan of %r failed", tag_id)
            self._fail(e)
            return

        if result is None:
            return
        self.on_result(result)
        self._after_attempt()

    def handle_source_failure(self, message):
        logger.error("Tag source failure: %s", message)
        self.stop()
        self.on_error(message)

    def _fail(self, error):
        self.stop()
        self.on_error(f"Scan failed: {error}")

    def _after_attempt(self):
        try:
            continuous = self.store.get_settings().continuous_scan_enabled
        except Exception as e:
            logger.exception("Reading settings after a scan failed")
            self._fail(e)
            return

        with self._lock:
            if not self.running:
                return
            rearm = self.mode == ScanMode.NORMAL and continuous
            if rearm:
                self.armed = False

        if rearm:
            self.scheduler(self.restart_delay, self._rearm)
        else:
            self.stop()

    def _rearm(self):
        with self._lock:
            if not self.running:
                return

        try:
            maybe_reset_statuses(self.store)
        except Exception as e:
            logger.exception("Re-arming the scan session failed")
            self._fail(e)
            return

        with self._lock:
            # stop() may have landed while the reset ran
            if self.running:
                self.armed = True
