class SchoolTapError(Exception):
    """Base class for every error raised by the attendance station."""


class ConfigError(SchoolTapError):
    pass


class StorageError(SchoolTapError):
    """The data folder is unreadable or holds a corrupt collection."""


class DuplicateKeyError(SchoolTapError):
    def __init__(self, rfid):
        super().__init__(f"Student with RFID {rfid} already exists")
        self.rfid = rfid


class CsvImportError(SchoolTapError):
    pass


# ==================================================
# Scan attempt errors, reported to the operator
# ==================================================

class ScanError(SchoolTapError):
    pass


class TagReadError(ScanError):
    def __init__(self, message="Failed to read RFID tag."):
        super().__init__(message)


class StudentNotFoundError(ScanError):
    def __init__(self, rfid):
        super().__init__("Student not registered with this RFID.")
        self.rfid = rfid


class AlreadyClockedError(ScanError):
    def __init__(self, event):
        super().__init__(f"Student has already signed {event} today.")
        self.event = event


class ManualClockDisabledError(ScanError):
    def __init__(self):
        super().__init__("Manual clock-in/out is disabled in settings.")


# ==================================================
# SMS provider errors
# ==================================================

class ProviderError(SchoolTapError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(ProviderError):
    pass


class ValidationError(ProviderError):
    pass


class QuotaError(ProviderError):
    pass


class UnknownProviderError(ProviderError):
    pass
