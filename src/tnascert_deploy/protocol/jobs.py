"""Waiting on asynchronous server jobs."""

import logging
import queue
import time
from collections.abc import Callable

from tnascert_deploy.exceptions import JobFailure, JobTimeout
from tnascert_deploy.protocol.client import EVENT_DONE, Job

logger = logging.getLogger(__name__)


class JobMonitor:
    """Blocks until a job completes, fails, or runs past its deadline.

    The job is never re-issued; every outcome other than success is raised
    to the caller.
    """

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock

    def wait(self, job: Job) -> None:
        """Wait for *job* to reach a terminal state.

        Raises:
            JobFailure: the server reported an error for the job
            JobTimeout: no terminal notification before the deadline
        """
        deadline = self._clock() + self.timeout

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise JobTimeout(
                    f"job {job.id} ({job.method}) did not finish within {self.timeout} seconds",
                    job_id=job.id,
                )

            try:
                event = job.next_event(timeout=remaining)
            except queue.Empty:
                continue

            if event.kind != EVENT_DONE:
                logger.info("Job %d progress: %.2f%%", job.id, event.percent)
                continue

            if event.error:
                raise JobFailure(f"job {job.id} ({job.method}) failed: {event.error}", job_id=job.id)

            logger.info("Job %d (%s) completed successfully", job.id, job.method)
            return


def log_job_progress(progress: float, state: str, description: str) -> None:
    """Progress callback handed to ``call_with_job``."""
    logger.debug("Job progress: %.2f%%, state: %s, description: %s", progress, state, description)
