APP_NAME = "SchoolTap Attendance"
APP_VERSION = "1.0"

DEFAULT_DATA_DIR = "data"
EXPORTS_FOLDER = "exports"
SMS_LOG_FILE = "sms_logs.txt"

# Storage keys, one JSON file per key inside the data folder
STUDENTS_KEY = "students"
ATTENDANCE_KEY = "attendance"
MESSAGES_KEY = "messages"
LAST_RESET_KEY = "last_reset"
SETTINGS_KEY = "settings"

EVENT_IN = "in"
EVENT_OUT = "out"

DEBOUNCE_MS = 2000
RESTART_DELAY = 2.0
DEFAULT_CLOCK_OUT_HOUR = 12

BAUD_RATE = 9600
READER_KEYWORDS = ["Arduino", "CH340", "USB Serial"]

DEFAULT_SMS_URL = "https://v3.api.termii.com"
SMS_SEND_PATH = "/api/sms/send"
DEFAULT_COUNTRY_CODE = "234"
DEFAULT_SMS_TIMEOUT = 10.0
DEFAULT_SMS_CHANNEL = "dnd"

CSV_REQUIRED_COLUMNS = ["rfid", "name", "admissionNumber", "parentPhone"]

WINDOW_WIDTH = 720
WINDOW_HEIGHT = 520
DEFAULT_FONT = ("Arial", 10)
TITLE_FONT = ("Arial", 18, "bold")
CLOCK_FONT = ("Arial", 14, "bold")
