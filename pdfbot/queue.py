"""Job queue engine: job lifecycle, retry selection and processing."""

import logging
import os
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from .errors import (
    ConfigurationError,
    RenderError,
    Result,
    StorageError,
    ValidationError,
)
from .models import Generation, Job, Ping, utcnow
from .renderer import Renderer
from .retry import RetryPolicy, RetryStrategy
from .storage import Storage
from .storage_plugins import LocalStorage
from .webhook import WebhookDispatcher, coerce_webhook_config, ping_error

logger = logging.getLogger(__name__)


class JobQueue:
    """Owns the queue document and every job transition.

    Known limitation: the busy flag only keeps batch runs apart. A single-job
    ``shift`` or ``generate`` running next to a batch run may process the same
    job twice; each write is still serialized, so no update is lost.
    """

    def __init__(self, storage: Storage, storage_plugin=None,
                 generation_policy: Optional[RetryPolicy] = None,
                 webhook_policy: Optional[RetryPolicy] = None,
                 renderer_options: Optional[Dict[str, Any]] = None,
                 dispatcher_factory: Callable[..., WebhookDispatcher] = WebhookDispatcher,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.storage_plugin = storage_plugin or LocalStorage(storage.pdf_dir)
        self.generation_policy = generation_policy or RetryPolicy()
        self.webhook_policy = webhook_policy or RetryPolicy()
        self.renderer_options = renderer_options or {}
        self.dispatcher_factory = dispatcher_factory
        self.clock = clock

    # Creating and reading jobs

    def add_to_queue(self, url: Optional[str], meta: Optional[Dict[str, Any]] = None) -> Result:
        """Validate and persist a new job."""
        if not url or not isinstance(url, str):
            return Result.failure(ValidationError("You need to submit a url"))
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return Result.failure(ValidationError(f"The url {url} is not valid"))
        if meta is None:
            meta = {}
        if not isinstance(meta, dict):
            return Result.failure(ValidationError("Meta data must be an object"))

        job = Job(id=str(uuid.uuid4()), url=url, meta=meta, created_at=self.clock())
        with self.storage.transaction() as document:
            document.jobs.append(job)
        logger.info("Job %s queued for %s", job.id, url)
        return Result.success(job)

    def get_by_id(self, job_id: str) -> Optional[Job]:
        return self.storage.load().find(job_id)

    def get_list(self, failed_only: bool = False, limit: Optional[int] = None,
                 completed_only: bool = False) -> List[Job]:
        """Jobs, newest first."""
        max_tries = self.generation_policy.max_tries
        jobs = list(reversed(self.storage.load().jobs))
        if failed_only:
            jobs = [job for job in jobs if job.is_failed(max_tries)]
        if completed_only:
            jobs = [job for job in jobs if job.is_completed()]
        if limit is not None:
            jobs = jobs[:max(int(limit), 0)]
        return jobs

    # Retry-aware selection

    def _policy(self, default: RetryPolicy, retry_strategy: Optional[RetryStrategy],
                max_tries: Optional[int]) -> RetryPolicy:
        if retry_strategy is None and max_tries is None:
            return default
        return RetryPolicy(retry_strategy or default.strategy,
                           max_tries if max_tries is not None else default.max_tries)

    def _generation_eligible(self, job: Job, policy: RetryPolicy, now: datetime) -> bool:
        if job.is_completed():
            return False
        last = job.generations[-1].attempted_at if job.generations else None
        return policy.is_eligible(job, len(job.generations), last, now)

    def _ping_eligible(self, job: Job, policy: RetryPolicy, now: datetime) -> bool:
        if not job.is_completed() or job.has_successful_ping:
            return False
        last = job.pings[-1].sent_at if job.pings else None
        return policy.is_eligible(job, len(job.pings), last, now)

    def get_all_unfinished(self, retry_strategy: Optional[RetryStrategy] = None,
                           max_tries: Optional[int] = None) -> List[Job]:
        """Every job that may be generated now, oldest first."""
        policy = self._policy(self.generation_policy, retry_strategy, max_tries)
        now = self.clock()
        return [job for job in self.storage.load().jobs
                if self._generation_eligible(job, policy, now)]

    def get_next(self, retry_strategy: Optional[RetryStrategy] = None,
                 max_tries: Optional[int] = None) -> Optional[Job]:
        jobs = self.get_all_unfinished(retry_strategy, max_tries)
        return jobs[0] if jobs else None

    def get_next_without_successful_ping(self, retry_strategy: Optional[RetryStrategy] = None,
                                         max_tries: Optional[int] = None) -> Optional[Job]:
        policy = self._policy(self.webhook_policy, retry_strategy, max_tries)
        now = self.clock()
        for job in self.storage.load().jobs:
            if self._ping_eligible(job, policy, now):
                return job
        return None

    # Processing

    def _append_generation(self, job_id: str, generation: Generation) -> Job:
        with self.storage.transaction() as document:
            stored = document.find(job_id)
            if stored is None:
                raise ValidationError(f"Job {job_id} no longer exists")
            if generation.success and stored.is_completed():
                raise ValidationError(f"Job {job_id} has already been completed")
            stored.generations.append(generation)
            if generation.success:
                stored.completed_at = generation.attempted_at
            return stored

    def _generate(self, renderer: Renderer, job: Job) -> Dict[str, Any]:
        try:
            local_path = renderer.render(job.url, self.renderer_options)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Rendering {job.url} failed: {e}") from e
        if not local_path:
            raise RenderError(f"Renderer returned no PDF for {job.url}")

        try:
            return self.storage_plugin.upload(local_path, job)
        except (StorageError, ConfigurationError):
            raise
        except Exception as e:
            raise StorageError(f"Storing PDF for job {job.id} failed: {e}") from e
        finally:
            # A retry always renders again, never reuses this file.
            if os.path.exists(local_path):
                os.remove(local_path)

    def process_job(self, renderer: Renderer, job: Job,
                    webhook_config: Optional[Dict[str, Any]] = None) -> Result:
        """Run one generation attempt for ``job`` and ping the webhook on success."""
        if webhook_config:
            webhook_config = coerce_webhook_config(webhook_config)
        current = self.get_by_id(job.id)
        if current is None:
            return Result.failure(ValidationError(f"Job {job.id} was not found"))
        if current.is_completed():
            return Result.failure(ValidationError(f"Job {job.id} has already been completed"), current)

        logger.info("Generating PDF for job %s (attempt %d)", job.id, len(current.generations) + 1)
        attempted_at = self.clock()
        try:
            location = self._generate(renderer, current)
        except (RenderError, StorageError) as e:
            logger.warning("Job %s failed: %s", job.id, e.message)
            failed = Generation(attempted_at=attempted_at, success=False, error=e.message)
            try:
                stored = self._append_generation(job.id, failed)
            except ValidationError as missing:
                return Result.failure(missing)
            return Result.failure(e, stored)

        generation = Generation(attempted_at=attempted_at, success=True, location=location)
        try:
            stored = self._append_generation(job.id, generation)
        except ValidationError as e:
            return Result.failure(e)
        logger.info("Job %s completed", job.id)

        if webhook_config:
            self.attempt_ping(stored, webhook_config)
            stored = self.get_by_id(job.id) or stored
        return Result.success(stored)

    def attempt_ping(self, job: Job, webhook_config: Optional[Dict[str, Any]]) -> Result:
        """Send the webhook for ``job`` once and record the attempt as a Ping."""
        dispatcher = self.dispatcher_factory(webhook_config)
        current = self.get_by_id(job.id)
        if current is None:
            return Result.failure(ValidationError(f"Job {job.id} was not found"))
        if not current.is_completed():
            return Result.failure(ValidationError(
                f"Job {job.id} has no generated PDF yet, nothing to notify about"))

        ping = dispatcher.send(current, self.clock())
        try:
            self._append_ping(job.id, ping)
        except ValidationError as e:
            return Result.failure(e, ping)
        if ping.error:
            return Result.failure(ping_error(ping), ping)
        return Result.success(ping)

    def _append_ping(self, job_id: str, ping: Ping) -> Job:
        with self.storage.transaction() as document:
            stored = document.find(job_id)
            if stored is None:
                raise ValidationError(f"Job {job_id} no longer exists")
            stored.pings.append(ping)
            return stored

    # Housekeeping

    def purge(self, remove_failed: bool = False, remove_new: bool = False) -> List[Job]:
        """Remove completed jobs, plus failed and new ones when asked. Returns what was removed."""
        max_tries = self.generation_policy.max_tries

        def should_remove(job: Job) -> bool:
            if job.is_completed():
                return True
            if remove_failed and job.is_failed(max_tries):
                return True
            return remove_new and not job.generations

        with self.storage.transaction() as document:
            removed = [job for job in document.jobs if should_remove(job)]
            document.jobs = [job for job in document.jobs if not should_remove(job)]
        logger.info("Purged %d jobs", len(removed))
        return removed

    def is_busy(self) -> bool:
        return self.storage.load().is_busy

    def try_acquire_busy(self) -> bool:
        """Set the busy flag unless it is already set. Returns whether it was acquired."""
        with self.storage.transaction() as document:
            if document.is_busy:
                return False
            document.is_busy = True
            return True

    def set_is_busy(self, busy: bool) -> None:
        with self.storage.transaction() as document:
            document.is_busy = bool(busy)

    # Display projections

    def list_jobs(self, failed_only: bool = False, limit: Optional[int] = None,
                  completed_only: bool = False) -> List[Dict[str, Any]]:
        return [
            {
                "id": job.id,
                "url": job.url,
                "meta": job.meta,
                "tries": len(job.generations),
                "created_at": job.created_at,
                "completed_at": job.completed_at,
            }
            for job in self.get_list(failed_only, limit, completed_only)
        ]

    def list_pings(self, job_id: str) -> Optional[List[Dict[str, Any]]]:
        job = self.get_by_id(job_id)
        if job is None:
            return None
        return [ping.model_dump() for ping in job.pings]

