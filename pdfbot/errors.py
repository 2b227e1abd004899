"""Error kinds and the tagged result returned by queue operations."""

from dataclasses import dataclass
from typing import Any, Optional


class PdfBotError(Exception):
    """Base class for all pdfbot errors."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PdfBotError):
    """Bad input passed to the queue."""

    code = "validation_error"


class ConfigurationError(PdfBotError):
    """A plugin or the webhook is misconfigured."""

    code = "configuration_error"


class RenderError(PdfBotError):
    """The renderer could not produce a PDF."""

    code = "render_error"


class StorageError(PdfBotError):
    """The storage plugin could not persist a rendered PDF."""

    code = "storage_error"


class DeliveryError(PdfBotError):
    """A webhook ping did not succeed."""

    code = "delivery_error"


class PersistenceError(PdfBotError):
    """The queue document could not be read or written."""

    code = "persistence_error"


@dataclass
class Result:
    """Outcome of a queue operation that never raises for job-level failures."""

    value: Any = None
    error: Optional[PdfBotError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PdfBotError, value: Any = None) -> "Result":
        return cls(value=value, error=error)
