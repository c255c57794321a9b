"""Retry Anthropic API calls on overload (529) and rate limit (429).

Every call carries a per-request timeout taken from the run deadline, and a
retry is only scheduled when the backoff still fits inside that deadline.
Anything the SDK raises that is not retried comes out as ``UpstreamFailure``.
"""

import time

import anthropic
from anthropic._exceptions import OverloadedError, RateLimitError

from quality_gate.config import HTTP_TIMEOUT_SECONDS
from quality_gate.deadline import Deadline
from quality_gate.errors import DeadlineExceeded, UpstreamFailure

# OverloadedError is not re-exported from anthropic in some SDK versions
RETRYABLE = (OverloadedError, RateLimitError)

MAX_RETRIES = 5
BASE_DELAY = 4  # seconds; 4, 8, 16, 32, 64
MAX_DELAY = 120  # cap wait at 2 minutes
REQUEST_TIMEOUT = HTTP_TIMEOUT_SECONDS * 10  # long article rewrites


def messages_create_with_retry(
    client: anthropic.Anthropic,
    deadline: Deadline,
    stage: str = "",
    **kwargs,
):
    """Call client.messages.create(**kwargs) with retries on overload/rate-limit."""
    for attempt in range(MAX_RETRIES):
        timeout = deadline.timeout(stage or None, cap=REQUEST_TIMEOUT)
        try:
            return client.messages.create(timeout=timeout, **kwargs)
        except RETRYABLE as e:
            delay = min(BASE_DELAY * (2**attempt), MAX_DELAY)
            remaining = deadline.remaining()
            if attempt == MAX_RETRIES - 1 or (remaining is not None and remaining <= delay):
                raise UpstreamFailure(f"Anthropic {type(e).__name__} after {attempt + 1} attempt(s)", stage or None) from e
            print(f"  .. API {type(e).__name__}, retrying in {delay}s (attempt {attempt + 1}/{MAX_RETRIES})...")
            time.sleep(delay)
        except anthropic.APITimeoutError as e:
            if deadline.expired:
                raise DeadlineExceeded("run deadline exceeded during Anthropic call", stage or None) from e
            raise UpstreamFailure("Anthropic request timed out", stage or None) from e
        except anthropic.APIError as e:
            raise UpstreamFailure(f"Anthropic {type(e).__name__}: {e}", stage or None) from e
    raise RuntimeError("retry loop exited without return or raise")


def response_text(message) -> str:
    """Join the text blocks of a Messages API response."""
    return "".join(block.text for block in message.content if block.type == "text")
