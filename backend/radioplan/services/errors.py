"""Ошибки ядра планирования. Сервисы бросают их, API переводит в HTTP-ответы."""
import enum
from typing import Any, Optional


class ErrorCode(str, enum.Enum):
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    NO_CAPACITY = "NO_CAPACITY"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INSUFFICIENT_RESERVED = "INSUFFICIENT_RESERVED"
    INFEASIBLE_SCHEDULE = "INFEASIBLE_SCHEDULE"
    STALE_SUGGESTION = "STALE_SUGGESTION"
    DUPLICATE_WINDOW = "DUPLICATE_WINDOW"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SchedulingError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CapacityExceeded(SchedulingError):
    code = ErrorCode.CAPACITY_EXCEEDED


class NoCapacity(SchedulingError):
    code = ErrorCode.NO_CAPACITY


class InvalidTransition(SchedulingError):
    code = ErrorCode.INVALID_TRANSITION


class InsufficientReserved(SchedulingError):
    code = ErrorCode.INSUFFICIENT_RESERVED


class InfeasibleSchedule(SchedulingError):
    code = ErrorCode.INFEASIBLE_SCHEDULE


class StaleSuggestion(SchedulingError):
    code = ErrorCode.STALE_SUGGESTION


class DuplicateWindow(SchedulingError):
    code = ErrorCode.DUPLICATE_WINDOW


class NotFound(SchedulingError):
    code = ErrorCode.NOT_FOUND


class ValidationFailed(SchedulingError):
    code = ErrorCode.VALIDATION_ERROR


class InternalSchedulingError(SchedulingError):
    code = ErrorCode.INTERNAL_ERROR
