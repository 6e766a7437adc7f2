import time
from typing import Any, Callable

from openai import APIConnectionError, RateLimitError

_RETRYABLE = (RateLimitError, APIConnectionError)


def llm_call_with_retry(fn: Callable[..., Any], *args: Any, max_retries: int = 4, **kwargs: Any) -> Any:
    """Call an OpenAI API function with exponential backoff on rate limits and dropped connections.

    Waits 5, 10, 20 seconds between attempts; the last failure is re-raised.
    """
    for attempt in range(max_retries):
        try:
            return fn(*args, **kwargs)
        except _RETRYABLE:
            if attempt == max_retries - 1:
                raise
            wait = 5 * (2 ** attempt)
            time.sleep(wait)
