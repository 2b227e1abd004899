"""Batch runner: process every eligible job with bounded parallelism."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar

from .errors import Result
from .models import Job
from .queue import JobQueue
from .renderer import Renderer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class BatchReport:
    """What a batch run did."""
    skipped: bool = False
    chunks: int = 0
    results: Dict[str, Result] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [job_id for job_id, result in self.results.items() if result.ok]

    @property
    def failed(self) -> List[str]:
        return [job_id for job_id, result in self.results.items() if not result.ok]


class BatchRunner:
    """Runs all unfinished jobs in chunks of ``parallelism``.

    Chunks run one after another; jobs inside a chunk run concurrently and the
    next chunk starts only once every job of the current one has settled. A
    fatal error (persistence or configuration) aborts the remaining chunks.
    """

    def __init__(self, queue: JobQueue, renderer: Renderer,
                 webhook_config: Optional[Dict[str, Any]] = None, parallelism: int = 4):
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.queue = queue
        self.renderer = renderer
        self.webhook_config = webhook_config
        self.parallelism = parallelism

    def run(self) -> BatchReport:
        report = BatchReport()
        if not self.queue.try_acquire_busy():
            logger.debug("Queue is busy, skipping batch run")
            report.skipped = True
            return report

        try:
            jobs = self.queue.get_all_unfinished()
            chunks = list(chunked(jobs, self.parallelism))
            report.chunks = len(chunks)
            if jobs:
                logger.info("Found %d jobs, divided into %d chunks", len(jobs), len(chunks))
            for number, chunk in enumerate(chunks, start=1):
                logger.info("Running chunk %d, %d chunks left", number, len(chunks) - number)
                self._run_chunk(chunk, report)
        finally:
            self.queue.set_is_busy(False)
        return report

    def _run_chunk(self, chunk: List[Job], report: BatchReport) -> None:
        with ThreadPoolExecutor(max_workers=len(chunk)) as pool:
            futures = [
                (job, pool.submit(self.queue.process_job, self.renderer, job, self.webhook_config))
                for job in chunk
            ]
        # Leaving the pool waits for every job in the chunk.
        fatal = None
        for job, future in futures:
            error = future.exception()
            if error is not None:
                logger.error("Job %s aborted the batch run: %s", job.id, error)
                fatal = fatal or error
                continue
            report.results[job.id] = future.result()
        if fatal is not None:
            raise fatal
