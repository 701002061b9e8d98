"""JSON-RPC 2.0 client for the TrueNAS WebSocket API.

A single reader thread owns the receive side of the connection. Responses
are routed to the waiting caller by request id; ``collection_update``
notifications for ``core.get_jobs`` are routed to the matching ``Job``.
"""

import itertools
import json
import logging
import ssl
import threading
from concurrent.futures import Future
from typing import Any

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import connect

from tnascert_deploy.protocol.client import ApiClient, ApiError, Job, ProgressCallback
from tnascert_deploy.protocol.constants import (
    COLLECTION_JOBS,
    DEFAULT_TIMEOUT_SECONDS,
    JOB_STATE_SUCCESS,
    JSONRPC_VERSION,
    METHOD_LOGIN,
    METHOD_LOGIN_WITH_API_KEY,
    METHOD_SUBSCRIBE,
    NOTIFICATION_COLLECTION_UPDATE,
    TERMINAL_JOB_STATES,
)

logger = logging.getLogger(__name__)

# Updates for jobs we have not registered yet (other clients' jobs included)
MAX_BUFFERED_JOB_UPDATES = 256


class TrueNASClient(ApiClient):
    """Live ``ApiClient`` over a synchronous ``websockets`` connection."""

    def __init__(self, connection, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self._connection = connection
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._pending: dict[int, Future] = {}
        self._jobs: dict[int, Job] = {}
        self._callbacks: dict[int, ProgressCallback] = {}
        self._early_updates: dict[int, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._subscribed = False
        self._closed = False

        self._reader = threading.Thread(target=self._read_loop, name="tnascert-reader", daemon=True)
        self._reader.start()

    @classmethod
    def connect(cls, url: str, tls_skip_verify: bool = False, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        """Open a connection to *url* and return a client bound to it."""
        ssl_context = None
        if url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            if tls_skip_verify:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE
                logger.warning("TLS certificate verification of %s is disabled", url)

        try:
            connection = connect(url, ssl=ssl_context, open_timeout=timeout, max_size=None)
        except (OSError, TimeoutError, InvalidURI, InvalidHandshake) as error:
            raise ApiError(f"failed to connect to {url}: {error}") from error

        logger.info("Connected to %s", url)
        return cls(connection, timeout=timeout)

    # -- ApiClient ---------------------------------------------------------

    def login(self, username: str, password: str, api_key: str) -> None:
        if api_key:
            _, message = self._request(METHOD_LOGIN_WITH_API_KEY, [api_key], self.timeout)
        else:
            _, message = self._request(METHOD_LOGIN, [username, password], self.timeout)

        if message.get("result") is not True:
            raise ApiError("login rejected by the server")

    def call(self, method: str, timeout: float, params: list[Any]) -> bytes:
        raw, _ = self._request(method, params, timeout)
        return raw

    def call_with_job(self, method: str, params: list[Any], callback: ProgressCallback | None = None) -> Job:
        _, message = self._request(method, params, self.timeout)
        job_id = message.get("result")
        if not isinstance(job_id, int) or isinstance(job_id, bool):
            raise ApiError(f"{method} did not return a job id: {job_id!r}")

        job = Job(job_id, method)
        with self._lock:
            self._jobs[job_id] = job
            if callback is not None:
                self._callbacks[job_id] = callback
            early = self._early_updates.pop(job_id, None)

        if early is not None:
            self._apply_job_update(job, early)
        return job

    def subscribe_to_jobs(self) -> None:
        if self._subscribed:
            return
        self._request(METHOD_SUBSCRIBE, [COLLECTION_JOBS], self.timeout)
        self._subscribed = True
        logger.debug("Subscribed to %s notifications", COLLECTION_JOBS)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._connection.close()
        finally:
            self._reader.join(timeout=self.timeout)
            self._fail_outstanding("connection closed")

    # -- request/response --------------------------------------------------

    def _request(self, method: str, params: list[Any], timeout: float) -> tuple[bytes, dict[str, Any]]:
        if self._closed:
            raise ApiError(f"{method}: connection is closed")

        request_id = next(self._ids)
        future: Future = Future()
        with self._lock:
            self._pending[request_id] = future

        payload = json.dumps({"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params})
        try:
            self._connection.send(payload)
        except ConnectionClosed as error:
            with self._lock:
                self._pending.pop(request_id, None)
            raise ApiError(f"{method}: connection closed") from error

        try:
            raw, message = future.result(timeout=timeout)
        except TimeoutError as error:
            with self._lock:
                self._pending.pop(request_id, None)
            raise ApiError(f"{method} timed out after {timeout} seconds") from error

        error = message.get("error")
        if error:
            if isinstance(error, dict):
                raise ApiError(
                    f"{method} failed: {error.get('message', error)}",
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise ApiError(f"{method} failed: {error}")

        return raw, message

    def _read_loop(self):
        try:
            for frame in self._connection:
                self._dispatch(frame)
        except ConnectionClosed as error:
            logger.debug("Connection closed: %s", error)
        finally:
            self._fail_outstanding("connection closed")

    def _dispatch(self, frame: str | bytes):
        raw = frame if isinstance(frame, bytes) else frame.encode()
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring undecodable message from the server")
            return
        if not isinstance(message, dict):
            return

        if message.get("method") == NOTIFICATION_COLLECTION_UPDATE:
            self._handle_collection_update(message.get("params") or {})
            return

        with self._lock:
            future = self._pending.pop(message.get("id"), None)
        if future is None:
            logger.debug("Unsolicited message: %s", raw)
            return
        future.set_result((raw, message))

    def _fail_outstanding(self, reason: str):
        with self._lock:
            pending, self._pending = self._pending, {}
            jobs, self._jobs = self._jobs, {}
            self._callbacks.clear()

        for future in pending.values():
            if not future.done():
                future.set_exception(ApiError(reason))
        for job in jobs.values():
            job.finish(reason)

    # -- job notifications -------------------------------------------------

    def _handle_collection_update(self, params: dict[str, Any]):
        if params.get("collection") != COLLECTION_JOBS:
            return
        fields = params.get("fields") or {}
        job_id = fields.get("id", params.get("id"))
        if not isinstance(job_id, int):
            return

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                self._early_updates.pop(job_id, None)
                self._early_updates[job_id] = fields
                while len(self._early_updates) > MAX_BUFFERED_JOB_UPDATES:
                    self._early_updates.pop(next(iter(self._early_updates)))
                return

        self._apply_job_update(job, fields)

    def _apply_job_update(self, job: Job, fields: dict[str, Any]):
        state = fields.get("state") or ""
        progress = fields.get("progress") or {}
        percent = progress.get("percent")
        description = progress.get("description") or ""

        if isinstance(percent, (int, float)):
            callback = self._callbacks.get(job.id)
            if callback is not None:
                callback(float(percent), state, description)
            job.report_progress(float(percent), description)

        if state not in TERMINAL_JOB_STATES:
            return
        if state == JOB_STATE_SUCCESS:
            job.finish()
        else:
            job.finish(fields.get("error") or f"job {state.lower()}")

        with self._lock:
            self._jobs.pop(job.id, None)
            self._callbacks.pop(job.id, None)
