import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from schooltap.constants import DEFAULT_COUNTRY_CODE
from schooltap.errors import ProviderError
from schooltap.models import DeliveryOutcome, DeliveryStatus, MessageLog, to_millis
from schooltap.sms import normalize_phone

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends parent notifications and records one message log per recipient."""

    def __init__(self, store, transport, country_code=DEFAULT_COUNTRY_CODE):
        self.store = store
        self.transport = transport
        self.country_code = country_code

    def send(self, rfid, phone, message, student_name=None, now=None):
        """Deliver ``message`` to ``phone``; raises ProviderError on failure.

        The outcome is logged either way, so a failure here never affects the
        attendance record that triggered it.
        """
        to = normalize_phone(phone, self.country_code)
        try:
            self.transport.send(to, message)
        except ProviderError as e:
            self._log(rfid, phone, message, DeliveryStatus.FAILED, student_name, now)
            logger.warning("SMS to %s failed (%s): %s", phone, type(e).__name__, e)
            raise

        self._log(rfid, phone, message, DeliveryStatus.SENT, student_name, now)
        logger.info("SMS sent to %s for %s", phone, rfid)

    def send_all(self, rfid, phones, message, student_name=None, now=None):
        if not phones:
            return []

        def deliver(phone):
            try:
                self.send(rfid, phone, message, student_name, now)
            except ProviderError as e:
                return DeliveryOutcome(phone, DeliveryStatus.FAILED, str(e))
            return DeliveryOutcome(phone, DeliveryStatus.SENT)

        if len(phones) == 1:
            return [deliver(phones[0])]

        with ThreadPoolExecutor(max_workers=len(phones)) as pool:
            return list(pool.map(deliver, phones))

    def _log(self, rfid, phone, message, status, student_name, now):
        self.store.append_message(MessageLog(
            rfid=rfid,
            phone_number=phone,
            message=message,
            status=status,
            timestamp=to_millis(now or datetime.now()),
            student_name=student_name,
        ))
