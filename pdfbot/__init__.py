"""pdfbot - a durable, retryable URL-to-PDF job queue."""

from .batch import BatchReport, BatchRunner
from .config import Settings, load_settings
from .errors import (
    ConfigurationError,
    DeliveryError,
    PdfBotError,
    PersistenceError,
    RenderError,
    Result,
    StorageError,
    ValidationError,
)
from .models import Generation, Job, JobStatus, Ping
from .queue import JobQueue
from .retry import DECAY_SCHEDULE, RetryPolicy, decay_strategy
from .storage import Storage
from .storage_plugins import LocalStorage, S3Storage, create_storage_plugin
from .webhook import WebhookConfig, WebhookDispatcher, verify_signature

__version__ = "1.0.0"
