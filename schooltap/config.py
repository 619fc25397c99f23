import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from schooltap.constants import (
    DEFAULT_DATA_DIR,
    DEFAULT_CLOCK_OUT_HOUR,
    DEFAULT_SMS_URL,
    DEFAULT_COUNTRY_CODE,
    DEFAULT_SMS_TIMEOUT,
    DEFAULT_SMS_CHANNEL,
    SMS_LOG_FILE,
)
from schooltap.errors import ConfigError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class SmsConfig:
    api_key: Optional[str]
    sender_id: Optional[str]
    base_url: str = DEFAULT_SMS_URL
    country_code: str = DEFAULT_COUNTRY_CODE
    timeout: float = DEFAULT_SMS_TIMEOUT
    channel: str = DEFAULT_SMS_CHANNEL

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender_id and self.base_url)


@dataclass(frozen=True)
class AppConfig:
    data_dir: str
    log_level: str
    serial_port: Optional[str]
    clock_out_hour: int
    sms: SmsConfig


def _int(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _float(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def load_config(environ=None, dotenv=True) -> AppConfig:
    if dotenv:
        load_dotenv(override=False)
    if environ is None:
        environ = os.environ

    clock_out_hour = _int(environ, "SCHOOLTAP_CLOCK_OUT_HOUR", DEFAULT_CLOCK_OUT_HOUR)
    if not 0 <= clock_out_hour <= 23:
        raise ConfigError(f"SCHOOLTAP_CLOCK_OUT_HOUR out of range: {clock_out_hour}")

    sms = SmsConfig(
        api_key=environ.get("TERMII_API_KEY") or None,
        sender_id=environ.get("TERMII_SENDER_ID") or None,
        base_url=(environ.get("TERMII_API_URL") or DEFAULT_SMS_URL).rstrip("/"),
        country_code=environ.get("SMS_COUNTRY_CODE") or DEFAULT_COUNTRY_CODE,
        timeout=_float(environ, "SMS_TIMEOUT", DEFAULT_SMS_TIMEOUT),
        channel=environ.get("SMS_CHANNEL") or DEFAULT_SMS_CHANNEL,
    )

    return AppConfig(
        data_dir=environ.get("SCHOOLTAP_DATA_DIR") or DEFAULT_DATA_DIR,
        log_level=(environ.get("SCHOOLTAP_LOG_LEVEL") or "INFO").upper(),
        serial_port=environ.get("SCHOOLTAP_SERIAL_PORT") or None,
        clock_out_hour=clock_out_hour,
        sms=sms,
    )


def configure_logging(level="INFO", log_dir=None):
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handler = logging.FileHandler(os.path.join(log_dir, SMS_LOG_FILE), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        debug_logger = logging.getLogger("schooltap.sms.debug")
        debug_logger.setLevel(logging.DEBUG)
        debug_logger.addHandler(handler)
