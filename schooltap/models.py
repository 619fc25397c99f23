from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional

from schooltap.constants import EVENT_IN, EVENT_OUT


class ScanMode(str, Enum):
    NORMAL = "normal"
    READ_ONLY = "readOnly"


class EventType(str, Enum):
    IN = EVENT_IN
    OUT = EVENT_OUT


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


def to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_millis(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp / 1000)


def check_event(event):
    try:
        return EventType(event).value
    except ValueError:
        raise ValueError(f"unknown attendance event: {event!r}") from None


@dataclass
class LastEvent:
    event: str
    timestamp: int

    @property
    def moment(self) -> datetime:
        return from_millis(self.timestamp)

    def to_dict(self):
        return {"event": self.event, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        return cls(event=check_event(data["event"]), timestamp=int(data["timestamp"]))


@dataclass
class Student:
    rfid: str
    name: str
    admission_number: str
    parent_phone: str
    parent_phone2: Optional[str] = None
    last_event: Optional[LastEvent] = None

    def __post_init__(self):
        if not self.rfid:
            raise ValueError("student rfid must be non-empty")

    @property
    def phones(self) -> List[str]:
        phones = [self.parent_phone]
        if self.parent_phone2:
            phones.append(self.parent_phone2)
        return phones

    def with_last_event(self, last_event):
        return replace(self, last_event=last_event)

    def to_dict(self):
        data = {
            "rfid": self.rfid,
            "name": self.name,
            "admissionNumber": self.admission_number,
            "parentPhone": self.parent_phone,
            "lastEvent": self.last_event.to_dict() if self.last_event else None,
        }
        if self.parent_phone2:
            data["parentPhone2"] = self.parent_phone2
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            rfid=data["rfid"],
            name=data["name"],
            admission_number=data.get("admissionNumber", ""),
            parent_phone=data["parentPhone"],
            parent_phone2=data.get("parentPhone2") or None,
            last_event=LastEvent.from_dict(data.get("lastEvent")),
        )


@dataclass(frozen=True)
class AttendanceLog:
    rfid: str
    event: str
    timestamp: int
    student_name: Optional[str] = None
    manual: bool = False

    def to_dict(self):
        return {
            "rfid": self.rfid,
            "event": self.event,
            "timestamp": self.timestamp,
            "studentName": self.student_name,
            "manual": self.manual,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            rfid=data["rfid"],
            event=check_event(data["event"]),
            timestamp=int(data["timestamp"]),
            student_name=data.get("studentName"),
            manual=bool(data.get("manual", False)),
        )


@dataclass(frozen=True)
class MessageLog:
    rfid: str
    phone_number: str
    message: str
    status: DeliveryStatus
    timestamp: int
    student_name: Optional[str] = None

    def to_dict(self):
        return {
            "rfid": self.rfid,
            "phoneNumber": self.phone_number,
            "message": self.message,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "studentName": self.student_name,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            rfid=data["rfid"],
            phone_number=data["phoneNumber"],
            message=data["message"],
            status=DeliveryStatus(data["status"]),
            timestamp=int(data["timestamp"]),
            student_name=data.get("studentName"),
        )


@dataclass
class Settings:
    tts_enabled: bool = True
    continuous_scan_enabled: bool = True
    manual_clock_enabled: bool = True

    def to_dict(self):
        return {
            "ttsEnabled": self.tts_enabled,
            "continuousScanEnabled": self.continuous_scan_enabled,
            "manualClockEnabled": self.manual_clock_enabled,
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            tts_enabled=bool(data.get("ttsEnabled", True)),
            continuous_scan_enabled=bool(data.get("continuousScanEnabled", True)),
            manual_clock_enabled=bool(data.get("manualClockEnabled", True)),
        )


@dataclass(frozen=True)
class DeliveryOutcome:
    phone: str
    status: DeliveryStatus
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status is DeliveryStatus.SENT


@dataclass
class ScanResult:
    rfid: str
    student: Optional[Student] = None
    event: Optional[str] = None
    message: Optional[str] = None
    deliveries: List[DeliveryOutcome] = field(default_factory=list)
    manual: bool = False

    @property
    def read_only(self) -> bool:
        return self.student is None

    @property
    def sms_ok(self) -> bool:
        return all(d.sent for d in self.deliveries)

    @property
    def sms_error(self) -> Optional[str]:
        # Only set when no recipient got the message
        if not self.deliveries or any(d.sent for d in self.deliveries):
            return None
        return "; ".join(f"{d.phone}: {d.error}" for d in self.deliveries)
