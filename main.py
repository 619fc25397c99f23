import logging
import tkinter as tk

from schooltap.config import load_config, configure_logging
from schooltap.notify import NotificationDispatcher
from schooltap.scanner import ScanProcessor
from schooltap.sms import TermiiTransport
from schooltap.speech import EspeakSpeaker
from schooltap.storage import RecordStore
from schooltap.ui import AttendanceApp

logger = logging.getLogger("schooltap")


def build_processor(config, store):
    dispatcher = NotificationDispatcher(store, TermiiTransport(config.sms), config.sms.country_code)
    speaker = EspeakSpeaker()
    if not speaker.available:
        logger.warning("espeak not found, speech feedback disabled")
        speaker = None
    return ScanProcessor(store, dispatcher, speaker, clock_out_hour=config.clock_out_hour)


def main():
    config = load_config()
    configure_logging(config.log_level, config.data_dir)
    if not config.sms.configured:
        logger.warning("Termii credentials missing, parent SMS will be logged as failed")

    store = RecordStore(config.data_dir)
    store.initialize()

    root = tk.Tk()
    AttendanceApp(root, config, store, build_processor(config, store))
    root.mainloop()


if __name__ == "__main__":
    main()
