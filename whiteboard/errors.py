"""Error taxonomy shared by the batch pipeline and the HTTP layer.

Batch code collects the non-fatal kinds as :class:`SoftError` records in
run metrics.  Request code converts anything raised to the standard error
payload ``{"error": true, "message", "code", "details"}``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    SHEET_NOT_FOUND = "SHEET_NOT_FOUND"
    MALFORMED_ROW = "MALFORMED_ROW"
    ROSTER_UNAVAILABLE = "ROSTER_UNAVAILABLE"
    ROSTER_CONFLICT = "ROSTER_CONFLICT"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    INVALID_DATE = "INVALID_DATE"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    PERSON_NOT_FOUND = "PERSON_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class WhiteboardError(Exception):
    code = ErrorCode.INTERNAL_ERROR
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return error_payload(self.code, self.message, self.details)


class SheetNotFound(WhiteboardError):
    code = ErrorCode.SHEET_NOT_FOUND
    http_status = 404

    def __init__(self, sheet_name: str, details: Optional[Dict[str, Any]] = None, message: str = ""):
        super().__init__(
            message or f"Sheet '{sheet_name}' not found", {"sheet": sheet_name, **(details or {})}
        )
        self.sheet_name = sheet_name


class MalformedRow(WhiteboardError):
    code = ErrorCode.MALFORMED_ROW
    http_status = 422


class RosterResolutionFailure(WhiteboardError):
    code = ErrorCode.ROSTER_UNAVAILABLE
    http_status = 503


class RosterConflict(RosterResolutionFailure):
    code = ErrorCode.ROSTER_CONFLICT


class CacheWriteFailure(WhiteboardError):
    code = ErrorCode.CACHE_WRITE_FAILED


class InvalidDateInput(WhiteboardError):
    code = ErrorCode.INVALID_DATE
    http_status = 400


class InvalidRequest(WhiteboardError):
    code = ErrorCode.INVALID_PARAMETER
    http_status = 400


class PersonNotFound(WhiteboardError):
    code = ErrorCode.PERSON_NOT_FOUND
    http_status = 404


class ConfigurationError(WhiteboardError):
    code = ErrorCode.CONFIGURATION_ERROR


def error_payload(code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": True,
        "message": message,
        "code": ErrorCode(code).value,
        "details": details or {},
    }


@dataclass(frozen=True)
class SoftError:
    """A non-fatal problem recorded during a batch run."""

    code: str
    message: str
    sheet: str = ""
    person: str = ""

    @classmethod
    def from_exception(cls, exc: WhiteboardError, sheet: str = "", person: str = "") -> "SoftError":
        return cls(code=exc.code.value, message=exc.message, sheet=sheet, person=person)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)
