"""
Retry/backoff policy per failure class.

Per-task state machine: PENDING -> IN_FLIGHT -> {SUCCEEDED, RETRYING, FAILED}.
A failure is a FailureClass value handed to on_failure(); the returned
RetryDecision says how long to wait, whether to rotate the identity, and which
task (if any) to re-enqueue.
"""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from .http_client import NetworkError
from .models import FetchTask

log = logging.getLogger(__name__)


class FailureClass(str, Enum):
    CHALLENGE = "challenge"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CONNECTION_ERROR = "connection_error"
    UNKNOWN = "unknown"


class TaskState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass(frozen=True)
class BackoffPolicy:
    min_delay: float
    max_delay: float
    rotate: bool = False

    def delay(self, rng: random.Random) -> float:
        return rng.uniform(self.min_delay, self.max_delay)


DEFAULT_POLICIES: dict[FailureClass, BackoffPolicy] = {
    FailureClass.CHALLENGE: BackoffPolicy(10.0, 20.0, rotate=True),
    FailureClass.RATE_LIMITED: BackoffPolicy(15.0, 30.0, rotate=True),
    FailureClass.SERVER_ERROR: BackoffPolicy(5.0, 10.0),
    FailureClass.TIMEOUT: BackoffPolicy(2.0, 6.0),
    FailureClass.CONNECTION_ERROR: BackoffPolicy(2.0, 6.0),
    FailureClass.UNKNOWN: BackoffPolicy(3.0, 8.0),
}


@dataclass(frozen=True)
class RetryDecision:
    state: TaskState
    failure: FailureClass
    delay: float = 0.0
    rotate: bool = False
    task: FetchTask | None = None

    @property
    def retry(self) -> bool:
        return self.state is TaskState.RETRYING


def classify_network_error(err: NetworkError) -> FailureClass:
    if err.kind == "http" and err.status is not None:
        if err.status == 429:
            return FailureClass.RATE_LIMITED
        if err.status == 403:
            return FailureClass.CHALLENGE
        if 500 <= err.status < 600:
            return FailureClass.SERVER_ERROR
        return FailureClass.UNKNOWN
    if err.kind == "timeout":
        return FailureClass.TIMEOUT
    if err.kind in ("connection", "proxy"):
        return FailureClass.CONNECTION_ERROR
    return FailureClass.UNKNOWN


class RetryController:
    """
    Tracks per-task state and turns failures into decisions.

    A task is FAILED once its attempt count has reached max_retries, so every
    task gets exactly max_retries retries after the first attempt.
    """

    def __init__(
        self,
        max_retries: int = 3,
        policies: Mapping[FailureClass, BackoffPolicy] | None = None,
        rng: random.Random | None = None,
    ):
        self.max_retries = int(max_retries)
        self.policies = dict(DEFAULT_POLICIES)
        if policies:
            self.policies.update(policies)
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._states: dict[tuple[str, str], TaskState] = {}

    def _set(self, task: FetchTask, state: TaskState) -> None:
        with self._lock:
            self._states[task.key] = state

    def state_of(self, task: FetchTask) -> TaskState:
        with self._lock:
            return self._states.get(task.key, TaskState.PENDING)

    def mark_in_flight(self, task: FetchTask) -> None:
        self._set(task, TaskState.IN_FLIGHT)

    def mark_succeeded(self, task: FetchTask) -> None:
        self._set(task, TaskState.SUCCEEDED)

    def on_failure(self, task: FetchTask, failure: FailureClass) -> RetryDecision:
        policy = self.policies.get(failure, self.policies[FailureClass.UNKNOWN])
        if task.attempt >= self.max_retries:
            self._set(task, TaskState.FAILED)
            log.warning(
                "Task FAILED after %d retries (%s): %s %s", task.attempt, failure.value, task.kind.value, task.url
            )
            return RetryDecision(TaskState.FAILED, failure, rotate=policy.rotate)
        with self._lock:
            delay = policy.delay(self._rng)
            self._states[task.key] = TaskState.RETRYING
        log.info(
            "Retrying %s (%s) in %.1fs, attempt %d/%d%s",
            task.url,
            failure.value,
            delay,
            task.attempt + 1,
            self.max_retries,
            ", rotating identity" if policy.rotate else "",
        )
        return RetryDecision(TaskState.RETRYING, failure, delay=delay, rotate=policy.rotate, task=task.retry())

    def counts(self) -> dict[str, int]:
        with self._lock:
            out: dict[str, int] = {}
            for state in self._states.values():
                out[state.value] = out.get(state.value, 0) + 1
            return out
