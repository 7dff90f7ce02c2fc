# tests/test_retry.py
import random

import pytest

from modules.careers_crawl.lib.http_client import NetworkError
from modules.careers_crawl.lib.models import FetchTask
from modules.careers_crawl.lib.retry import (
    DEFAULT_POLICIES,
    BackoffPolicy,
    FailureClass,
    RetryController,
    TaskState,
    classify_network_error,
)

TASK = FetchTask(url="https://careers.example.com/jobs/results?q=nurse")


@pytest.mark.parametrize(
    "err, expected",
    [
        (NetworkError("http", status=429), FailureClass.RATE_LIMITED),
        (NetworkError("http", status=403), FailureClass.CHALLENGE),
        (NetworkError("http", status=503), FailureClass.SERVER_ERROR),
        (NetworkError("http", status=404), FailureClass.UNKNOWN),
        (NetworkError("timeout"), FailureClass.TIMEOUT),
        (NetworkError("connection"), FailureClass.CONNECTION_ERROR),
        (NetworkError("proxy"), FailureClass.CONNECTION_ERROR),
        (NetworkError("redirect_loop"), FailureClass.UNKNOWN),
    ],
)
def test_classify_network_error(err, expected):
    assert classify_network_error(err) is expected


@pytest.mark.parametrize(
    "failure, lo, hi, rotate",
    [
        (FailureClass.CHALLENGE, 10, 20, True),
        (FailureClass.RATE_LIMITED, 15, 30, True),
        (FailureClass.SERVER_ERROR, 5, 10, False),
        (FailureClass.TIMEOUT, 2, 6, False),
        (FailureClass.CONNECTION_ERROR, 2, 6, False),
        (FailureClass.UNKNOWN, 3, 8, False),
    ],
)
def test_policy_table(failure, lo, hi, rotate):
    ctl = RetryController(max_retries=3, rng=random.Random(7))
    for _ in range(50):
        d = ctl.on_failure(TASK, failure)
        assert lo <= d.delay <= hi
        assert d.rotate is rotate
        assert d.state is TaskState.RETRYING
    assert DEFAULT_POLICIES[failure].rotate is rotate


def test_retry_budget_then_failed():
    ctl = RetryController(max_retries=3, rng=random.Random(1))
    task = TASK
    ctl.mark_in_flight(task)
    assert ctl.state_of(task) is TaskState.IN_FLIGHT

    retries = 0
    while True:
        d = ctl.on_failure(task, FailureClass.RATE_LIMITED)
        if not d.retry:
            break
        retries += 1
        assert d.task.attempt == task.attempt + 1
        task = d.task

    assert retries == 3
    assert d.state is TaskState.FAILED
    assert d.task is None
    assert ctl.state_of(TASK) is TaskState.FAILED


def test_zero_retries_fails_immediately():
    ctl = RetryController(max_retries=0)
    assert ctl.on_failure(TASK, FailureClass.TIMEOUT).state is TaskState.FAILED


def test_success_and_counts():
    ctl = RetryController()
    other = FetchTask(url="https://careers.example.com/jobs/results/1")
    ctl.mark_in_flight(TASK)
    ctl.mark_succeeded(TASK)
    ctl.mark_in_flight(other)
    assert ctl.state_of(TASK) is TaskState.SUCCEEDED
    assert ctl.counts() == {"succeeded": 1, "in_flight": 1}


def test_policy_override():
    ctl = RetryController(policies={FailureClass.TIMEOUT: BackoffPolicy(0.0, 0.0)})
    assert ctl.on_failure(TASK, FailureClass.TIMEOUT).delay == 0.0
    assert ctl.policies[FailureClass.CHALLENGE].rotate
