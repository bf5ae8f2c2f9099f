# src/trigger_pipeline/retry.py

import logging
import threading
from dataclasses import dataclass

import tenacity

from . import config

logger = logging.getLogger(__name__)


class NonRetryableError(Exception):
    """Raised (or chained) to make run_with_retry give up immediately."""


class RetryExhaustedError(Exception):
    def __init__(self, attempts, last_error):
        super().__init__(f"operation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RetryCancelled(Exception):
    pass


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = config.RETRY_MAX_ATTEMPTS
    delay: float = config.RETRY_DELAY_S
    backoff: bool = config.RETRY_BACKOFF

    def __post_init__(self):
        # Non-positive values fall back to the configured defaults.
        if self.max_attempts <= 0:
            object.__setattr__(self, 'max_attempts', config.RETRY_MAX_ATTEMPTS)
        if self.delay <= 0:
            object.__setattr__(self, 'delay', config.RETRY_DELAY_S)


DEFAULT_RETRY_CONFIG = RetryConfig()


def is_non_retryable(error):
    """
    True if 'error' or anything it was raised from is a NonRetryableError.
    Implicit context is followed only when it was not suppressed.
    """
    seen = set()
    while error is not None and id(error) not in seen:
        if isinstance(error, NonRetryableError):
            return True
        seen.add(id(error))
        cause = error.__cause__
        if cause is None and not error.__suppress_context__:
            cause = error.__context__
        error = cause
    return False


def run_with_retry(operation, config=None, cancel_event=None, description=''):
    """
    Calls 'operation()' up to config.max_attempts times and returns its result.

    Between attempts it waits 'delay' seconds, doubling after each failure when
    backoff is enabled. The wait returns early with RetryCancelled if
    'cancel_event' is set. Non-retryable errors are re-raised as they are.
    """
    config = config or DEFAULT_RETRY_CONFIG
    cancel_event = cancel_event or threading.Event()
    label = description or getattr(operation, '__name__', 'operation')
    failures = []

    def before_sleep(retry_state):
        error = retry_state.outcome.exception()
        failures.append(error)
        logger.warning(f"{label}: attempt {retry_state.attempt_number}/{config.max_attempts} failed: {error}")

    def sleep(seconds):
        if cancel_event.wait(seconds):
            raise RetryCancelled(f"{label}: cancelled after {len(failures)} attempts") from failures[-1]

    def on_exhausted(retry_state):
        last_error = retry_state.outcome.exception()
        logger.warning(f"{label}: attempt {retry_state.attempt_number}/{config.max_attempts} failed: {last_error}")
        raise RetryExhaustedError(retry_state.attempt_number, last_error) from last_error

    if config.backoff:
        wait = tenacity.wait_exponential(multiplier=config.delay, exp_base=2)
    else:
        wait = tenacity.wait_fixed(config.delay)

    retryer = tenacity.Retrying(
        retry=tenacity.retry_if_exception(lambda e: not is_non_retryable(e)),
        stop=tenacity.stop_after_attempt(config.max_attempts),
        wait=wait,
        sleep=sleep,
        before_sleep=before_sleep,
        retry_error_callback=on_exhausted,
    )
    return retryer(operation)
