"""
Service Errors
Failure kinds surfaced by the reminder and adherence services
"""


class ReminderError(Exception):
    """Base class for caller-recoverable failures"""


class NotFoundError(ReminderError):
    """A referenced reminder, log, prescription or patient does not exist"""


class ForbiddenError(ReminderError):
    """Ownership or treatment relationship check failed"""


class InvalidStateError(ReminderError):
    """The requested state transition is not allowed"""
