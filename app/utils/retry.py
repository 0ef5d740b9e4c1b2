import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type


def http_retry():
    # connection level failures only, HTTP error statuses are handled by callers
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    )
