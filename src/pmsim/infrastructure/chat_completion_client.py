import json
from typing import Any

import httpx

from pmsim.infrastructure.resilient_http import post_json_with_retry


class ChatCompletionError(RuntimeError):
    pass


class ChatCompletionClient:
    """OpenAI-compatible ``/chat/completions`` caller that expects a JSON object reply."""

    BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 4.0,
        retries: int = 0,
        backoff_seconds: float = 0.2,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._retries = retries
        self._backoff_seconds = backoff_seconds
        self.client = http_client or httpx.Client(base_url=base_url, timeout=timeout)

    def chat_json(self, messages: list[dict[str, str]], *, temperature: float = 0.4) -> dict[str, Any]:
        payload = post_json_with_retry(
            self.client,
            "/chat/completions",
            json_body={
                "model": self._model,
                "messages": list(messages),
                "temperature": float(temperature),
                "response_format": {"type": "json_object"},
            },
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "application/json",
            },
            retries=self._retries,
            backoff_seconds=self._backoff_seconds,
        )
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ChatCompletionError("Chat completion returned no choices")
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ChatCompletionError("Chat completion returned empty content")
        try:
            parsed = json.loads(content)
        except ValueError as exc:
            raise ChatCompletionError("Chat completion content is not valid JSON") from exc
        if not isinstance(parsed, dict):
            raise ChatCompletionError("Chat completion content is not a JSON object")
        return parsed

    def close(self) -> None:
        self.client.close()
