"""
Chat-completion client for the OpenAI HTTP API.

Generation is optional for the rest of the system: when no API key is set,
or the call fails, or the completion is empty, the client returns None
instead of raising so callers can fall back to templated text.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from .logger import get_logger
from .retry import RetryError, exponential_backoff, should_retry_http_status

logger = get_logger()

DEFAULT_MODEL = "gpt-4o"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


class RetryableStatusError(Exception):
    """HTTP status worth another attempt (rate limit, 5xx)."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Retryable HTTP status {status_code}")


@dataclass
class ChatCompletion:
    content: str
    finish_reason: str


def _log_retry(attempt: int, error: Exception, delay: float) -> None:
    logger.warning("Retrying chat completion", attempt=attempt, error=str(error), delay=delay)


@exponential_backoff(
    max_retries=2,
    base_delay=1.0,
    exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, RetryableStatusError),
    on_retry=_log_retry,
)
def _post_with_retry(url: str, headers: Dict[str, str], payload: dict, timeout: float) -> requests.Response:
    """POST with automatic retry on transient errors."""
    resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
    if should_retry_http_status(resp.status_code):
        raise RetryableStatusError(resp.status_code)
    return resp


class LLMClient:
    """
    Minimal text-generation client.

    Args:
        api_key: OpenAI API key; None disables generation
        model: Chat model name
        base_url: API root, e.g. https://api.openai.com/v1
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 256,
    ) -> Optional[ChatCompletion]:
        """
        Create a chat completion.

        Returns:
            ChatCompletion, or None when generation is unavailable
        """
        logger.record_llm_call()
        if not self.enabled:
            logger.warning("OPENAI_API_KEY not set - skipping LLM generation")
            logger.record_llm_unavailable("missing_api_key")
            return None

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            resp = _post_with_retry(
                f"{self.base_url}/chat/completions", headers, payload, self.timeout
            )
            resp.raise_for_status()
            data = resp.json()
        except RetryError as e:
            logger.error("Chat completion failed after retries", model=self.model, error=str(e))
            logger.record_llm_unavailable("retries_exhausted")
            return None
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "HTTPError"
            logger.error("Chat completion request failed", model=self.model, status=status)
            logger.record_llm_unavailable(f"http_{status}")
            return None
        except (requests.exceptions.RequestException, ValueError) as e:
            # ValueError covers a body that is not JSON
            logger.error("Chat completion request error", model=self.model, error=str(e))
            logger.record_llm_unavailable("request_error")
            return None

        choices = (data.get("choices") if isinstance(data, dict) else None) or []
        if not choices:
            logger.warning("Chat completion returned no choices", model=self.model)
            logger.record_llm_unavailable("empty_response")
            return None

        choice = choices[0]
        content = ((choice.get("message") or {}).get("content") or "").strip()
        if not content:
            logger.warning("Chat completion returned empty text", model=self.model)
            logger.record_llm_unavailable("empty_response")
            return None

        return ChatCompletion(
            content=content,
            finish_reason=choice.get("finish_reason") or "unknown",
        )

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 256,
    ) -> Optional[str]:
        """System + user prompt in, text out; None means unavailable."""
        result = self.complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return result.content if result else None
