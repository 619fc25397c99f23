import logging
import threading
import time

import serial
import serial.tools.list_ports

from schooltap.constants import BAUD_RATE, READER_KEYWORDS

logger = logging.getLogger(__name__)


def normalize_uid(uid):
    return uid.strip().upper().replace(" ", "").replace(":", "")


def list_ports():
    return list(serial.tools.list_ports.comports())


def auto_detect_port():
    ports = list_ports()
    for port in ports:
        if any(keyword in (port.description or "") for keyword in READER_KEYWORDS):
            return port.device

    if ports:
        return ports[0].device

    return None


class SerialTagSource:
    """Reads tag UIDs, one per line, from a USB serial RFID reader.

    ``on_tag`` is called from the reader thread with the normalized UID, or with
    None when a line arrived but could not be decoded.
    """

    def __init__(self, port, baud_rate=BAUD_RATE, poll_interval=0.1, serial_factory=serial.Serial):
        self.port = port
        self.baud_rate = baud_rate
        self.poll_interval = poll_interval
        self.serial_factory = serial_factory

        self.running = False
        self.thread = None
        self.ser = None
        self._on_tag = None
        self._on_failure = None

    def start(self, on_tag, on_failure=None):
        if self.running:
            return

        self._on_tag = on_tag
        self._on_failure = on_failure
        self.running = True
        self.thread = threading.Thread(target=self._worker, daemon=True)
        self.thread.start()

    def stop(self):
        self.running = False
        ser, self.ser = self.ser, None
        if ser is not None and ser.is_open:
            try:
                ser.close()
            except serial.SerialException as e:
                logger.warning("Error closing %s: %s", self.port, e)

    def _fail(self, message):
        self.stop()
        if self._on_failure is not None:
            self._on_failure(message)

    def _worker(self):
        try:
            self.ser = self.serial_factory(self.port, self.baud_rate, timeout=1)
        except (serial.SerialException, OSError) as e:
            logger.error("Could not open reader port %s: %s", self.port, e)
            self._fail(f"Could not open reader port {self.port}: {e}")
            return
        logger.info("Reader listening on %s", self.port)

        while self.running:
            ser = self.ser
            if ser is None:
                break
            try:
                if ser.in_waiting:
                    self._handle_line(ser.readline())
                time.sleep(self.poll_interval)
            except (serial.SerialException, OSError) as e:
                if self.running:
                    logger.error("Reader error on %s: %s", self.port, e)
                    self._fail(f"Error reading card: {e}")
                break

        self.stop()

    def _handle_line(self, raw):
        try:
            line = raw.decode("utf-8").strip()
        except UnicodeDecodeError:
            logger.warning("Undecodable line from reader: %r", raw)
            self._on_tag(None)
            return

        if line:
            self._on_tag(normalize_uid(line))
