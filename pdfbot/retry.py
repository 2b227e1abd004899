"""Retry scheduling shared by PDF generation and webhook pings."""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .models import Job

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000

# Delays in milliseconds, indexed by attempt number - 1.
DECAY_SCHEDULE: List[int] = [
    MINUTE_MS,  # 1 minute
    3 * MINUTE_MS,  # 3 minutes
    10 * MINUTE_MS,  # 10 minutes
    30 * MINUTE_MS,  # 30 minutes
    60 * MINUTE_MS,  # 1 hour
]

DEFAULT_MAX_TRIES = 5

RetryStrategy = Callable[[Job, int], float]


def decay_strategy(schedule: Sequence[int] = DECAY_SCHEDULE) -> RetryStrategy:
    """Build a strategy that walks ``schedule`` and then retries immediately."""
    schedule = list(schedule)

    def strategy(job: Job, attempt: int) -> float:
        if 1 <= attempt <= len(schedule):
            return schedule[attempt - 1]
        return 0

    return strategy


class RetryPolicy:
    """A retry strategy paired with its max-tries ceiling."""

    def __init__(self, strategy: Optional[RetryStrategy] = None, max_tries: int = DEFAULT_MAX_TRIES,
                 schedule_length: Optional[int] = None):
        if max_tries < 1:
            raise ValueError("max_tries must be at least 1")
        self.strategy = strategy or decay_strategy()
        self.max_tries = max_tries
        if schedule_length is not None and max_tries > schedule_length + 1:
            logger.debug(
                "max_tries %d exceeds the retry schedule (%d delays); "
                "later attempts are retried immediately until the ceiling",
                max_tries, schedule_length,
            )

    @classmethod
    def from_schedule(cls, schedule: Sequence[int], max_tries: int) -> "RetryPolicy":
        return cls(decay_strategy(schedule), max_tries, schedule_length=len(schedule))

    def next_delay(self, job: Job, attempt: int) -> float:
        """Milliseconds to wait after ``attempt`` attempts before trying again."""
        return self.strategy(job, attempt)

    def is_eligible(self, job: Job, attempts: int, last_attempt_at: Optional[datetime],
                    now: datetime) -> bool:
        """Whether a job with ``attempts`` prior attempts may be tried again at ``now``."""
        if attempts == 0:
            return True
        if attempts >= self.max_tries:
            return False
        if last_attempt_at is None:
            return True
        elapsed_ms = (now - last_attempt_at).total_seconds() * 1000
        return elapsed_ms >= self.next_delay(job, attempts)
