from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    NETWORK_ERROR = "NETWORK_ERROR"
    UNEXPECTED_STATUS = "UNEXPECTED_STATUS"
    NO_IMAGE_URL_FOUND = "NO_IMAGE_URL_FOUND"
    UNRECOGNIZED_IMAGE_DATA = "UNRECOGNIZED_IMAGE_DATA"


class DailyStripError(Exception):
    """Raised by the fetcher for every failed fetch attempt.

    Caught by DailyStripService.refresh() and turned into a MISSING strip
    notification. Nothing above the service ever sees it, so the scheduler
    keeps running after any single failed attempt.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }
