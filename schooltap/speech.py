import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)


class EspeakSpeaker:
    """Speaks short phrases with the espeak command line synthesizer."""

    def __init__(self, binary="espeak", voice="en-us", rate=150, timeout=10):
        self.binary = binary
        self.voice = voice
        self.rate = rate
        self.timeout = timeout

    @property
    def available(self):
        return shutil.which(self.binary) is not None

    def say(self, text):
        subprocess.run(
            [self.binary, "-v", self.voice, "-s", str(self.rate), text],
            check=True,
            timeout=self.timeout,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
