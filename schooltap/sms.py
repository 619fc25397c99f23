import json
import logging

import requests

from schooltap.constants import SMS_SEND_PATH, DEFAULT_COUNTRY_CODE
from schooltap.errors import (
    AuthError,
    ValidationError,
    QuotaError,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)
debug_log = logging.getLogger("schooltap.sms.debug")

SUCCESS_MESSAGE = "Message sent successfully."
QUOTA_HINTS = ("insufficient balance", "insufficient fund", "quota")


def normalize_phone(phone, country_code=DEFAULT_COUNTRY_CODE):
    """Turn a local number (0801...) into the provider format (234801...)."""
    digits = phone.strip().replace(" ", "").replace("-", "").lstrip("+")
    if digits.startswith("0"):
        return f"{country_code}{digits[1:]}"
    if digits.startswith(country_code):
        return digits
    return f"{country_code}{digits}"


def redact(payload):
    return {key: ("***" if key == "api_key" else value) for key, value in payload.items()}


def classify_response(status_code, body):
    """Map a non-successful provider reply to the matching ProviderError."""
    message = body.get("message") if isinstance(body, dict) else None
    message = message or "Failed to send SMS"
    text = f"{message} (Status: {status_code})"

    if status_code in (401, 403):
        return AuthError(text, status_code)
    if status_code in (402, 429) or any(hint in message.lower() for hint in QUOTA_HINTS):
        return QuotaError(text, status_code)
    if status_code in (400, 404, 422):
        return ValidationError(text, status_code)
    return UnknownProviderError(text, status_code)


def is_success(status_code, body):
    if not 200 <= status_code < 300 or not isinstance(body, dict):
        return False
    return body.get("code") == "ok" or body.get("message") == SUCCESS_MESSAGE


class TermiiTransport:
    """Sends one plain SMS per call through the Termii HTTP API."""

    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def url(self):
        return f"{self.config.base_url}{SMS_SEND_PATH}"

    def send(self, to, text):
        if not self.config.configured:
            debug_log.error("Termii API key, Sender ID, or URL not configured.")
            raise AuthError("Termii API key, Sender ID, or URL not configured.")

        payload = {
            "to": to,
            "from": self.config.sender_id,
            "sms": text,
            "type": "plain",
            "channel": self.config.channel,
            "api_key": self.config.api_key,
        }
        debug_log.debug("Sending SMS with Termii payload:\n%s", json.dumps(redact(payload), indent=2))

        try:
            response = self.session.post(self.url, json=payload, timeout=self.config.timeout)
        except requests.Timeout as e:
            debug_log.error("Termii request timed out: %s", e)
            raise UnknownProviderError(f"SMS provider timed out after {self.config.timeout}s") from e
        except requests.RequestException as e:
            debug_log.error("Termii request failed: %s", e)
            raise UnknownProviderError(f"SMS provider unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text[:200]} if response.text else {}
        debug_log.debug("Termii Raw Response (%s):\n%s", response.status_code, json.dumps(body, indent=2))

        if is_success(response.status_code, body):
            return body

        error = classify_response(response.status_code, body)
        debug_log.error("Termii SMS Error Details: %s", error)
        raise error
