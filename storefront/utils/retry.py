# storefront/utils/retry.py
import logging

import redis
import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.utils.logging import get_logger
from storefront.utils.settings import RETRY_ATTEMPTS

logger = get_logger(__name__)

# provider 4xx/5xx responses are answers, only a dropped or slow connection is retried
TRANSIENT_HTTP_ERRORS = (requests.ConnectionError, requests.Timeout)


def _backoff(errors, base: float, cap: float):
    return retry(
        reraise=True,
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=base, min=base, max=cap),
        retry=retry_if_exception_type(errors),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def http_retry():
    """Razorpay and Polar calls."""
    return _backoff(TRANSIENT_HTTP_ERRORS, base=0.3, cap=3)


def redis_retry():
    """Order locks and the token store."""
    return _backoff(redis.RedisError, base=0.2, cap=2)
