import os
import sys
import threading
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

from trigger_pipeline import config
from trigger_pipeline.retry import (
    NonRetryableError, RetryCancelled, RetryConfig, RetryExhaustedError, is_non_retryable, run_with_retry
)

FAST = RetryConfig(max_attempts=3, delay=0.001, backoff=True)


class TestRunWithRetry(unittest.TestCase):

    def test_success_first_try(self):
        operation = MagicMock(return_value=42)
        self.assertEqual(run_with_retry(operation, FAST), 42)
        operation.assert_called_once()

    def test_success_after_failures(self):
        operation = MagicMock(side_effect=[IOError("down"), IOError("down"), "ok"])
        self.assertEqual(run_with_retry(operation, FAST), "ok")
        self.assertEqual(operation.call_count, 3)

    def test_exhaustion_wraps_last_error(self):
        errors = [IOError("first"), IOError("second"), IOError("last")]
        operation = MagicMock(side_effect=errors)
        with self.assertRaises(RetryExhaustedError) as cm:
            run_with_retry(operation, FAST)
        self.assertEqual(cm.exception.attempts, 3)
        self.assertIs(cm.exception.last_error, errors[-1])
        self.assertIs(cm.exception.__cause__, errors[-1])
        self.assertIn("3 attempts", str(cm.exception))

    def test_non_retryable_stops_immediately(self):
        operation = MagicMock(side_effect=NonRetryableError("bad request"))
        with self.assertRaises(NonRetryableError):
            run_with_retry(operation, FAST)
        operation.assert_called_once()

    def test_wrapped_non_retryable(self):
        def operation():
            try:
                raise NonRetryableError("inner")
            except NonRetryableError as e:
                raise RuntimeError("outer") from e

        counter = MagicMock(side_effect=operation)
        with self.assertRaises(RuntimeError):
            run_with_retry(counter, FAST)
        counter.assert_called_once()

    def test_backoff_doubles_delay(self):
        event = MagicMock()
        event.wait.return_value = False
        operation = MagicMock(side_effect=IOError("down"))
        with self.assertRaises(RetryExhaustedError):
            run_with_retry(operation, RetryConfig(max_attempts=4, delay=0.5, backoff=True), event)
        self.assertEqual([c.args[0] for c in event.wait.call_args_list], [0.5, 1.0, 2.0])

    def test_constant_delay_without_backoff(self):
        event = MagicMock()
        event.wait.return_value = False
        operation = MagicMock(side_effect=IOError("down"))
        with self.assertRaises(RetryExhaustedError):
            run_with_retry(operation, RetryConfig(max_attempts=3, delay=0.5, backoff=False), event)
        self.assertEqual([c.args[0] for c in event.wait.call_args_list], [0.5, 0.5])

    def test_cancel_during_wait(self):
        cancel = threading.Event()
        cancel.set()
        operation = MagicMock(side_effect=IOError("down"))
        with self.assertRaises(RetryCancelled):
            run_with_retry(operation, RetryConfig(max_attempts=5, delay=10), cancel)
        operation.assert_called_once()

    def test_non_positive_config_falls_back(self):
        cfg = RetryConfig(max_attempts=0, delay=-1)
        self.assertEqual(cfg.max_attempts, config.RETRY_MAX_ATTEMPTS)
        self.assertGreater(cfg.delay, 0)

    def test_is_non_retryable(self):
        self.assertTrue(is_non_retryable(NonRetryableError()))
        self.assertFalse(is_non_retryable(ValueError()))
        self.assertFalse(is_non_retryable(None))

    def test_suppressed_context_is_ignored(self):
        try:
            try:
                raise NonRetryableError("inner")
            except NonRetryableError:
                raise IOError("outer") from None
        except IOError as e:
            suppressed = e
        self.assertFalse(is_non_retryable(suppressed))

    def test_implicit_context_is_followed(self):
        try:
            try:
                raise NonRetryableError("inner")
            except NonRetryableError:
                raise IOError("outer")
        except IOError as e:
            implicit = e
        self.assertTrue(is_non_retryable(implicit))

    def test_retryable_raised_from_none_is_retried(self):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) < 3:
                try:
                    raise NonRetryableError("inner")
                except NonRetryableError:
                    raise IOError("transient") from None
            return "ok"

        self.assertEqual(run_with_retry(operation, FAST), "ok")
        self.assertEqual(len(calls), 3)

    def test_cancel_chains_last_error(self):
        cancel = threading.Event()
        cancel.set()
        error = IOError("down")
        with self.assertRaises(RetryCancelled) as cm:
            run_with_retry(MagicMock(side_effect=error), RetryConfig(max_attempts=5, delay=10), cancel)
        self.assertIs(cm.exception.__cause__, error)

    def test_failed_attempts_are_logged(self):
        operation = MagicMock(side_effect=[IOError("down"), "ok"])
        with self.assertLogs('trigger_pipeline.retry', level='WARNING') as logs:
            run_with_retry(operation, FAST, description="fetch")
        self.assertIn("fetch: attempt 1/3 failed", logs.output[0])


if __name__ == '__main__':
    unittest.main()
