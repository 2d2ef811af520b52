"""Token-based rate limiter for LLM API calls."""

import asyncio
import time
import tiktoken
import logging

logger = logging.getLogger(__name__)

# Approximate characters per token when no encoding can be loaded
CHARS_PER_TOKEN = 4

_encodings = {}


class TokenBucketRateLimiter:
    """
    Token bucket rate limiter for managing TPM (tokens per minute) limits.

    Tracks token usage over a fixed one-minute window and delays requests that
    would push the window over the configured limit.
    """

    def __init__(self, tpm_limit: int, window_seconds: float = 60.0):
        self.tpm_limit = tpm_limit
        self.window_seconds = window_seconds
        self.tokens_used = 0
        self.window_start = time.time()
        self.lock = asyncio.Lock()

    async def acquire(self, estimated_tokens: int) -> None:
        """
        Wait until a request using ``estimated_tokens`` fits in the window.

        Args:
            estimated_tokens: Estimated tokens for the request
        """
        async with self.lock:
            current_time = time.time()
            elapsed = current_time - self.window_start

            if elapsed >= self.window_seconds:
                self.tokens_used = 0
                self.window_start = current_time
                elapsed = 0

            # A non-empty window that cannot take this request waits for the next
            if self.tokens_used and self.tokens_used + estimated_tokens > self.tpm_limit:
                sleep_time = self.window_seconds - elapsed
                logger.info(
                    f"Rate limit: {self.tokens_used}/{self.tpm_limit} tokens used. "
                    f"Waiting {sleep_time:.1f}s for new window..."
                )
                await asyncio.sleep(sleep_time)

                self.tokens_used = 0
                self.window_start = time.time()

            self.tokens_used += estimated_tokens
            logger.debug(
                f"Rate limiter: reserved {estimated_tokens} tokens. "
                f"Total: {self.tokens_used}/{self.tpm_limit}"
            )

    def report_actual_usage(self, actual_tokens: int, estimated_tokens: int) -> None:
        """
        Correct the window's count with the usage reported by the API.

        Args:
            actual_tokens: Actual tokens used from API response
            estimated_tokens: Our estimated tokens
        """
        difference = actual_tokens - estimated_tokens
        self.tokens_used = max(0, self.tokens_used + difference)

        if abs(difference) > 100:
            logger.debug(
                f"Token estimation off by {difference}. "
                f"Estimated: {estimated_tokens}, Actual: {actual_tokens}"
            )


def _get_encoding(model: str):
    if model not in _encodings:
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            # Fall back to cl100k_base for models tiktoken does not know
            encoding = tiktoken.get_encoding("cl100k_base")
        _encodings[model] = encoding
    return _encodings[model]


def estimate_tokens(text: str, model: str = "gpt-4") -> int:
    """
    Estimate the number of tokens in a text string with tiktoken.

    tiktoken downloads its BPE files on first use; when that is not possible
    (offline hosts) the count falls back to the characters-per-token ratio.
    """
    if not text:
        return 0
    try:
        encoding = _get_encoding(model)
    except Exception as e:
        logger.warning(f"tiktoken encoding unavailable for {model}: {e}")
        return len(text) // CHARS_PER_TOKEN + 1
    return len(encoding.encode(text))


def estimate_request_tokens(
    prompt: str,
    model: str = "gpt-4",
    response_buffer: int = 500,
) -> int:
    """
    Estimate total tokens for a single-message chat completion request.

    Args:
        prompt: The user prompt
        model: The model name
        response_buffer: Estimated tokens for the response (conservative estimate)

    Returns:
        Total estimated tokens (input + output)
    """
    # ~4 tokens of message structure overhead
    return estimate_tokens(prompt, model) + 4 + response_buffer
