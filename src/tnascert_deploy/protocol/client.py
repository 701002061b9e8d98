"""Client capability consumed by the deployer and the job handle it returns."""

import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tnascert_deploy.protocol.constants import (
    JOB_STATE_FAILED,
    JOB_STATE_RUNNING,
    JOB_STATE_SUCCESS,
    JOB_STATE_WAITING,
)

ProgressCallback = Callable[[float, str, str], None]

EVENT_PROGRESS = "progress"
EVENT_DONE = "done"


class ApiError(Exception):
    """A call failed on the server or never got an answer."""

    def __init__(self, message: str, code: int | None = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


@dataclass(frozen=True)
class JobEvent:
    """One notification delivered for a job."""

    kind: str
    percent: float = 0.0
    description: str = ""
    error: str = ""


class Job:
    """Handle for one asynchronous server-side operation.

    Progress and completion notifications share a single queue so a consumer
    can wait for whichever arrives first with one blocking ``get``.
    """

    def __init__(self, job_id: int, method: str):
        self.id = job_id
        self.method = method
        self.state = JOB_STATE_WAITING
        self.progress = 0.0
        self.error = ""
        self.finished = False
        self._events: queue.Queue[JobEvent] = queue.Queue()
        self._lock = threading.Lock()

    def report_progress(self, percent: float, description: str = "") -> None:
        """Publish a progress notification."""
        with self._lock:
            if self.finished:
                return
            self.state = JOB_STATE_RUNNING
            self.progress = percent
        self._events.put(JobEvent(EVENT_PROGRESS, percent=percent, description=description))

    def finish(self, error: str = "") -> None:
        """Publish the terminal notification; later calls are ignored."""
        with self._lock:
            if self.finished:
                return
            self.finished = True
            self.error = error
            self.state = JOB_STATE_FAILED if error else JOB_STATE_SUCCESS
        self._events.put(JobEvent(EVENT_DONE, error=error))

    def next_event(self, timeout: float) -> JobEvent:
        """Block until the next notification; raises ``queue.Empty`` on timeout."""
        return self._events.get(timeout=timeout)

    def __repr__(self) -> str:
        return f"<Job id={self.id} method={self.method} state={self.state}>"


class ApiClient(ABC):
    """Capabilities the deployer needs from the management API."""

    @abstractmethod
    def login(self, username: str, password: str, api_key: str) -> None:
        """Authenticate the connection; raises ``ApiError`` when rejected."""

    @abstractmethod
    def call(self, method: str, timeout: float, params: list[Any]) -> bytes:
        """Issue a synchronous call and return the raw response envelope."""

    @abstractmethod
    def call_with_job(self, method: str, params: list[Any], callback: ProgressCallback | None = None) -> Job:
        """Start a job-producing call and return its handle."""

    @abstractmethod
    def subscribe_to_jobs(self) -> None:
        """Ask the server to deliver job notifications on this connection."""

    @abstractmethod
    def close(self) -> None:
        """Close the connection."""
