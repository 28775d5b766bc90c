"""Tests for fixed-delay retry and countdown."""

from unittest.mock import Mock, patch

import pytest

from crx_sync.core.exceptions import MalformedResponse, RemoteRequestFailed
from crx_sync.deploy.retry import RetryPolicy, countdown, retry_with_delay


class TestRetryWithDelay:

    def test_succeeds_after_failures_within_budget(self):
        operation = Mock(side_effect=[RemoteRequestFailed("1"), RemoteRequestFailed("2"), "done"])
        waits = []

        result = retry_with_delay(
            operation,
            RetryPolicy(times=2, delay=5),
            label="upload",
            on_wait=lambda header, delay: waits.append((header, delay)),
        )

        assert result == "done"
        assert operation.call_count == 3
        assert waits == [
            ("Retrying upload (1/2) after delay.", 5),
            ("Retrying upload (2/2) after delay.", 5),
        ]

    def test_raises_last_error_after_budget(self):
        errors = [RemoteRequestFailed("first"), MalformedResponse("second"), RemoteRequestFailed("last")]
        operation = Mock(side_effect=errors)

        with pytest.raises(RemoteRequestFailed) as exc_info:
            retry_with_delay(operation, RetryPolicy(times=2, delay=0), label="install", on_wait=lambda h, d: None)

        assert exc_info.value is errors[-1]
        assert operation.call_count == 3

    def test_no_wait_after_last_attempt(self):
        operation = Mock(side_effect=RemoteRequestFailed("down"))
        waits = []

        with pytest.raises(RemoteRequestFailed):
            retry_with_delay(operation, RetryPolicy(times=1, delay=1), label="upload",
                             on_wait=lambda h, d: waits.append(h))

        assert operation.call_count == 2
        assert len(waits) == 1

    def test_zero_retries_means_single_attempt(self):
        operation = Mock(side_effect=RemoteRequestFailed("down"))

        with pytest.raises(RemoteRequestFailed):
            retry_with_delay(operation, RetryPolicy(times=0, delay=1), label="upload", on_wait=lambda h, d: None)

        assert operation.call_count == 1

    def test_other_exceptions_are_not_retried(self):
        operation = Mock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            retry_with_delay(operation, RetryPolicy(times=3, delay=0), label="upload", on_wait=lambda h, d: None)

        assert operation.call_count == 1

    def test_default_wait_is_countdown(self):
        operation = Mock(side_effect=[RemoteRequestFailed("down"), "ok"])

        with patch("time.sleep") as mock_sleep:
            assert retry_with_delay(operation, RetryPolicy(times=1, delay=2), label="upload") == "ok"

        assert mock_sleep.call_count == 2


class TestCountdown:

    def test_sleeps_one_second_steps(self):
        sleep = Mock()

        countdown("Retrying", 3, sleep=sleep)

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 1.0, 1.0]

    def test_fractional_delay(self):
        sleep = Mock()

        countdown("Retrying", 1.5, sleep=sleep)

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 0.5]

    def test_zero_delay_does_not_sleep(self):
        sleep = Mock()

        countdown("Retrying", 0, sleep=sleep)

        sleep.assert_not_called()


def test_policy_attempts():
    assert RetryPolicy(times=3, delay=1).attempts == 4


@pytest.mark.parametrize("kwargs", [{"times": -1}, {"delay": -0.5}])
def test_policy_rejects_negative_values(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
