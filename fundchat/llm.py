import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .config import LLM_BASE_URL, LLM_HEADERS, LLM_MODEL, LLM_TIMEOUT_S, LLM_MAX_RETRIES

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class LLMError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class LLMClient:
    """
    Minimal OpenAI-compatible chat-completions client.
    """

    def __init__(
        self,
        base_url: str = LLM_BASE_URL,
        headers: Optional[Dict[str, str]] = None,
        model: str = LLM_MODEL,
        timeout: float = LLM_TIMEOUT_S,
        max_retries: int = LLM_MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers if headers is not None else LLM_HEADERS
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()

    def chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> Dict[str, Any]:
        """
        One completion. Returns choices[0].message. Retries timeouts, connection
        errors and 429/5xx; raises LLMError after the last attempt.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        last: Optional[LLMError] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self.session.post(
                    f"{self.base_url}/chat/completions",
                    headers=self.headers,
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.Timeout as e:
                last = LLMError(f"LLM request timeout: {e}")
            except requests.RequestException as e:
                last = LLMError(f"LLM network error: {e}")
            else:
                if resp.status_code == 200:
                    try:
                        return resp.json()["choices"][0]["message"]
                    except (ValueError, KeyError, IndexError) as e:
                        raise LLMError(f"Malformed LLM response: {e}", resp.status_code) from e
                last = LLMError(f"LLM HTTP {resp.status_code}: {resp.text[:200]}", resp.status_code)
                if resp.status_code not in RETRYABLE_STATUS:
                    raise last
            logger.warning(f"[llm] attempt {attempt}/{self.max_retries} failed: {last}")
            if attempt < self.max_retries:
                time.sleep(min(2 ** (attempt - 1), 4))
        raise last
