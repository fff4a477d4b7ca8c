"""
Tests for retry utility with exponential backoff.
"""

import pytest
from unittest.mock import Mock

from services.error_classifier import classify
from services.errors import ErrorKind
from services.remote_store import RemoteStoreError
from utils.prometheus import REGISTRY
from utils.retry import exponential_backoff_retry, RetryExhausted


def _unavailable():
    return RemoteStoreError(503, "serviceNotAvailable", "Service unavailable")


def _throttled():
    return RemoteStoreError(429, "tooManyRequests", "Too many requests")


def test_retry_success_on_first_attempt():
    """Test that function succeeds on first attempt without retry."""
    mock_func = Mock(return_value="success")
    decorated = exponential_backoff_retry()(mock_func)

    result = decorated()

    assert result == "success"
    assert mock_func.call_count == 1


def test_retry_success_after_transient_error():
    """Test that function succeeds after a 5xx error with retry."""
    sleeps = []
    mock_func = Mock(side_effect=[_unavailable(), "success"])

    decorated = exponential_backoff_retry(max_retries=3, initial_delay=0.1, sleep=sleeps.append)(mock_func)

    assert decorated() == "success"
    assert mock_func.call_count == 2
    assert sleeps == [0.1]


def test_retry_exhausted_after_max_retries():
    """Test that RetryExhausted is raised after max retries."""
    mock_func = Mock(side_effect=_unavailable())

    decorated = exponential_backoff_retry(max_retries=2, initial_delay=0.1, sleep=lambda s: None)(mock_func)

    with pytest.raises(RetryExhausted) as exc_info:
        decorated()

    assert "Failed after 3 attempts" in str(exc_info.value)
    assert isinstance(exc_info.value.last_error, RemoteStoreError)
    assert mock_func.call_count == 3  # initial + 2 retries


@pytest.mark.parametrize(
    "error",
    [
        RemoteStoreError(404, "itemNotFound", "gone"),
        RemoteStoreError(409, "nameAlreadyExists", "exists"),
        RemoteStoreError(403, "accessDenied", "no"),
        RemoteStoreError(507, "quotaLimitReached", "full"),
        ValueError("bad input"),
    ],
)
def test_retry_permanent_error_no_retry(error):
    """Permanent errors are raised unchanged on the first attempt."""
    mock_func = Mock(side_effect=error)

    decorated = exponential_backoff_retry(max_retries=3, initial_delay=0.1, sleep=lambda s: None)(mock_func)

    with pytest.raises(type(error)) as exc_info:
        decorated()

    assert exc_info.value is error
    assert mock_func.call_count == 1  # No retries


def test_retry_429_rate_limit():
    """Test that 429 (rate limit) errors are retried."""
    mock_func = Mock(side_effect=[_throttled(), "success"])

    decorated = exponential_backoff_retry(max_retries=3, initial_delay=0.1, sleep=lambda s: None)(mock_func)

    assert decorated() == "success"
    assert mock_func.call_count == 2


def test_retry_connection_error():
    """Test that connection errors are retried."""
    mock_func = Mock(side_effect=[ConnectionError("Connection refused"), "success"])

    decorated = exponential_backoff_retry(max_retries=3, initial_delay=0.1, sleep=lambda s: None)(mock_func)

    assert decorated() == "success"
    assert mock_func.call_count == 2


def test_retry_timeout_error():
    """Test that timeout errors are retried."""
    mock_func = Mock(side_effect=[TimeoutError("Request timed out"), "success"])

    decorated = exponential_backoff_retry(max_retries=3, initial_delay=0.1, sleep=lambda s: None)(mock_func)

    assert decorated() == "success"
    assert mock_func.call_count == 2


def test_retry_exponential_backoff_delays():
    """Test that delays follow exponential backoff pattern."""
    sleeps = []
    mock_func = Mock(side_effect=[_unavailable(), _unavailable(), "success"])

    decorated = exponential_backoff_retry(
        max_retries=3,
        initial_delay=0.1,
        exponential_base=2.0,
        sleep=sleeps.append,
    )(mock_func)

    assert decorated() == "success"
    assert sleeps == [0.1, 0.2]


def test_retry_max_delay_cap():
    """Test that delay is capped at max_delay."""
    sleeps = []
    mock_func = Mock(side_effect=[_unavailable(), _unavailable(), _unavailable(), "success"])

    decorated = exponential_backoff_retry(
        max_retries=4,
        initial_delay=1.0,
        max_delay=2.0,
        exponential_base=10.0,  # Would cause large delays without cap
        sleep=sleeps.append,
    )(mock_func)

    assert decorated() == "success"
    assert sleeps == [1.0, 2.0, 2.0]


def _error_count(kind):
    return REGISTRY.get_sample_value("projectsync_remote_errors_total", {"kind": kind}) or 0.0


def test_retry_does_not_record_error_metrics():
    """Retry decisions leave remote_errors_total to the service boundary."""
    before = _error_count("RateLimited")
    mock_func = Mock(side_effect=[_throttled(), _throttled(), "success"])

    decorated = exponential_backoff_retry(max_retries=3, initial_delay=0.1, sleep=lambda s: None)(mock_func)

    assert decorated() == "success"
    assert _error_count("RateLimited") == before


def test_exhausted_retry_is_counted_once_when_classified():
    before = _error_count("RateLimited")
    decorated = exponential_backoff_retry(max_retries=2, initial_delay=0.1, sleep=lambda s: None)(
        Mock(side_effect=_throttled())
    )

    with pytest.raises(RetryExhausted) as exc_info:
        decorated()

    assert classify(exc_info.value).kind == ErrorKind.RATE_LIMITED
    assert _error_count("RateLimited") == before + 1


def test_retry_with_args_and_kwargs():
    """Test that decorated functions preserve args and kwargs."""
    def test_func(a, b, c=None):
        return f"{a}-{b}-{c}"

    decorated = exponential_backoff_retry(max_retries=2, initial_delay=0.1)(Mock(side_effect=test_func))

    assert decorated("x", "y", c="z") == "x-y-z"
