import logging
from datetime import datetime

from schooltap.constants import EVENT_IN, EVENT_OUT, DEFAULT_CLOCK_OUT_HOUR
from schooltap.models import from_millis, to_millis

logger = logging.getLogger(__name__)

# ==================================================
# Daily reset
# ==================================================

def maybe_reset_statuses(store, now=None):
    """Clear every student's last event once per calendar day.

    Returns True when the reset ran, False when today's reset already happened.
    """
    now = now or datetime.now()
    last_reset = store.get_last_reset()

    if last_reset is not None and from_millis(last_reset).date() == now.date():
        return False

    count = store.clear_last_events()
    store.set_last_reset(to_millis(now))
    logger.info("Student statuses reset for new day %s (%d students)", now.date().isoformat(), count)
    return True


# ==================================================
# Clock event rules
# ==================================================

def decide_event(now, clock_out_hour=DEFAULT_CLOCK_OUT_HOUR):
    return EVENT_IN if now.hour < clock_out_hour else EVENT_OUT


def clocked_today(student, now):
    if student.last_event is None:
        return False
    return student.last_event.moment.date() == now.date()


def format_date(moment):
    return f"{moment:%a}, {moment:%b} {moment.day}, {moment.year}"


def format_time(moment):
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def build_message(name, event, now):
    action = "entered" if event == EVENT_IN else "exited"
    return f"Dear Parent, {name} has {action} the school on {format_date(now)} at {format_time(now)}"


def first_name(full_name):
    parts = (full_name or "").split()
    return parts[0] if parts else ""


def speech_text(name, event):
    first = first_name(name)
    if event == EVENT_OUT:
        return f"Bye bye {first}"
    return f"Hello {first}, welcome to school"


def is_valid_phone(phone):
    return bool(phone) and len(phone) == 10 and phone.isdigit()
