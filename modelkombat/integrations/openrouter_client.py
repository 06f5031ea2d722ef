"""
OpenRouter Client
=================

Wrapper around the OpenRouter REST API (https://openrouter.ai/api/v1).

The client is shared by the configuration session: ``initialize`` must be called
with an API key before any request is made. A successful connection test leaves the
client ready for the catalog sync that follows it.

Author: Model Kombat Project
"""

import json
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional

import requests

from modelkombat.core import config
from modelkombat.core.errors import (
    CredentialError,
    ModelKombatError,
    ModelNotFoundError,
    NetworkError,
    RateLimitError,
)
from modelkombat.utils.logger import log_api_request, log_api_response


def _extract_models_from_response(resp_json: Any) -> List[Dict[str, Any]]:
    # Support list, dict with 'data', and dict with 'models'
    if isinstance(resp_json, dict):
        if "data" in resp_json:
            return resp_json.get("data") or []
        if "models" in resp_json:
            return resp_json.get("models") or []
    if isinstance(resp_json, list):
        return resp_json
    return []


class OpenRouterClient:
    """
    Client wrapper for the OpenRouter API.

    Attributes:
        base_url (str): Base URL for the OpenRouter API.
        session (requests.Session): Session carrying the auth headers, or None
            until ``initialize`` is called.
        rate_limit (float): Minimum seconds between requests (0 disables).
        requests_per_minute (int): Request budget per rolling minute (0 disables).
    """

    def __init__(
        self,
        base_url: str = config.OPENROUTER_API_BASE,
        rate_limit: float = config.MIN_REQUEST_INTERVAL_SECONDS,
        requests_per_minute: int = config.REQUESTS_PER_MINUTE,
    ):
        self.base_url = base_url.rstrip('/')
        self.rate_limit = rate_limit
        self.requests_per_minute = requests_per_minute
        self.logger = logging.getLogger(__name__)
        self.session: Optional[requests.Session] = None

        self._last_request_time = 0.0
        self._request_times: Deque[float] = deque()
        self._rate_lock = threading.Lock()

    def initialize(self, api_key: str):
        """Create the HTTP session for ``api_key``, replacing any previous one."""
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValueError("OpenRouter API key is required")

        if self.session is not None:
            self.session.close()

        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": config.SITE_URL,
            "X-Title": config.APP_NAME,
            "Content-Type": "application/json",
        })
        self.logger.info("OpenRouter client initialized")

    def is_initialized(self) -> bool:
        return self.session is not None

    def _require_session(self) -> requests.Session:
        if self.session is None:
            raise RuntimeError("OpenRouter client not initialized. Please set API key first.")
        return self.session

    def _enforce_rate_limit(self):
        """Enforce rate limiting between API calls."""
        with self._rate_lock:
            if self.rate_limit > 0:
                elapsed = time.time() - self._last_request_time
                if elapsed < self.rate_limit:
                    time.sleep(self.rate_limit - elapsed)

            if self.requests_per_minute > 0:
                now = time.time()
                while self._request_times and now - self._request_times[0] >= 60:
                    self._request_times.popleft()
                if len(self._request_times) >= self.requests_per_minute:
                    wait = 60 - (now - self._request_times[0])
                    if wait > 0:
                        self.logger.debug(f"Request budget used, waiting {wait:.1f}s")
                        time.sleep(wait)
                    self._request_times.popleft()

            self._last_request_time = time.time()
            if self.requests_per_minute > 0:
                self._request_times.append(self._last_request_time)

    def test_connection(self) -> bool:
        """Lightweight round trip against ``/models``. Only a 200 counts as connected."""
        session = self._require_session()
        url = f"{self.base_url}/models"
        self._enforce_rate_limit()
        try:
            resp = session.get(url, timeout=config.CONNECTION_TEST_TIMEOUT_SECONDS)
            return resp.status_code == 200
        except requests.RequestException as e:
            self.logger.error(f"OpenRouter connection test failed: {e}")
            return False

    def fetch_model_catalog(self) -> List[Dict[str, Any]]:
        """
        Fetch the raw model catalog.

        Returns:
            List[Dict]: Model entries as returned by OpenRouter.

        Raises:
            CredentialError: The API key was rejected.
            NetworkError: The request failed, timed out or returned an error status.
        """
        session = self._require_session()
        url = f"{self.base_url}/models"

        log_api_request(self.logger, "GET", url, headers=dict(session.headers))
        self._enforce_rate_limit()
        start_time = time.time()
        try:
            resp = session.get(url, timeout=config.NETWORK_TIMEOUT_SECONDS)
        except requests.Timeout as e:
            raise NetworkError(f"Timed out fetching model catalog after {config.NETWORK_TIMEOUT_SECONDS}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch model catalog: {e}") from e

        log_api_response(self.logger, resp.status_code, elapsed_time=time.time() - start_time)
        self._raise_for_status(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError("Model catalog response was not valid JSON") from e

        models = [m for m in _extract_models_from_response(data) if isinstance(m, dict) and m.get("id")]
        self.logger.info(f"Fetched {len(models)} models from OpenRouter")
        return models

    def _post_chat(self, model: str, payload: Dict[str, Any], stream: bool = False) -> requests.Response:
        session = self._require_session()
        url = f"{self.base_url}/chat/completions"

        log_api_request(self.logger, "POST", url, data={
            "model": model, "message_count": len(payload["messages"]), "stream": stream,
        })
        self._enforce_rate_limit()
        start_time = time.time()
        try:
            resp = session.post(url, json=payload, timeout=config.CHAT_TIMEOUT_SECONDS, stream=stream)
        except requests.Timeout as e:
            raise NetworkError(
                f"Request timeout after {config.CHAT_TIMEOUT_SECONDS}s. The model might be overloaded."
            ) from e
        except requests.RequestException as e:
            raise NetworkError(f"Network error: {e}") from e

        log_api_response(self.logger, resp.status_code, elapsed_time=time.time() - start_time)
        try:
            self._raise_for_status(resp, model=model)
        except ModelKombatError:
            resp.close()
            raise
        return resp

    @staticmethod
    def _chat_payload(model, messages, temperature, max_tokens, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    def create_chat_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        on_stream: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Send a chat completion and return the assistant text.

        With ``on_stream`` the completion is streamed: the callback receives every
        text delta as it arrives and the joined text is returned at the end.

        Raises:
            CredentialError: 401/403 from OpenRouter.
            RateLimitError: 429 from OpenRouter.
            ModelNotFoundError: 404 for the requested model.
            NetworkError: Any other transport or HTTP failure, or an empty answer.
        """
        if on_stream is not None:
            parts = []
            for delta in self.stream_chat_completion(model, messages, temperature, max_tokens):
                parts.append(delta)
                on_stream(delta)
            text = "".join(parts)
            if not text:
                raise NetworkError(f"No response from {model} (empty stream)")
            return text

        resp = self._post_chat(model, self._chat_payload(model, messages, temperature, max_tokens, False))

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError("Chat completion response was not valid JSON") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise NetworkError(f"No response from {model} (empty choices)")
        return (choices[0].get("message") or {}).get("content") or ""

    def stream_chat_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Iterator[str]:
        """
        Stream a chat completion as server-sent events, yielding text deltas.

        Lines that are not ``data:`` events are ignored, ``data: [DONE]`` ends the
        stream and chunks that are not valid JSON are logged and skipped.

        Raises:
            Same as ``create_chat_completion``; an error event inside the stream
            raises NetworkError.
        """
        resp = self._post_chat(
            model, self._chat_payload(model, messages, temperature, max_tokens, True), stream=True
        )
        try:
            for line in resp.iter_lines(decode_unicode=True):
                if isinstance(line, bytes):
                    line = line.decode("utf-8", errors="replace")
                line = (line or "").strip()
                if not line.startswith("data:"):
                    continue

                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    return
                try:
                    chunk = json.loads(data)
                except ValueError:
                    self.logger.warning(f"Skipping unparseable stream chunk: {data[:100]}")
                    continue

                if not isinstance(chunk, dict):
                    continue
                if chunk.get("error"):
                    err = chunk["error"]
                    message = err.get("message", "") if isinstance(err, dict) else str(err)
                    raise NetworkError(f"Stream error from {model}: {message}")

                choices = chunk.get("choices") or []
                delta = (choices[0].get("delta") or {}) if choices and isinstance(choices[0], dict) else {}
                content = delta.get("content")
                if content:
                    yield content
        except requests.RequestException as e:
            raise NetworkError(f"Stream interrupted: {e}") from e
        finally:
            resp.close()


    def _raise_for_status(self, resp: requests.Response, model: Optional[str] = None):
        status = resp.status_code
        if 200 <= status < 300:
            return

        detail = ""
        try:
            body = resp.json()
            err = body.get("error") if isinstance(body, dict) else None
            detail = err.get("message", "") if isinstance(err, dict) else (err or "")
        except ValueError:
            detail = resp.text[:200] if resp.text else ""

        self.logger.error(f"OpenRouter returned {status}: {detail}")

        if status in (401, 403):
            raise CredentialError("Invalid API key. Please check your OpenRouter API key.")
        if status == 429:
            raise RateLimitError("Rate limit exceeded. Please try again later.")
        if status == 404 and model:
            raise ModelNotFoundError(f"Model {model} not found or not available.")
        if status == 400:
            raise NetworkError(f"Bad Request: {detail or 'Invalid request'}")
        raise NetworkError(f"OpenRouter request failed with status {status}" + (f": {detail}" if detail else ""))

    def reset(self):
        """Drop the API key and the HTTP session."""
        if self.session is not None:
            self.session.close()
        self.session = None
        self.logger.info("OpenRouter client reset")

    def __repr__(self) -> str:
        return f"<OpenRouterClient base_url={self.base_url} initialized={self.is_initialized()}>"
