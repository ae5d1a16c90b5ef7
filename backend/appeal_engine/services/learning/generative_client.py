"""
Generative Service Client

Thin wrapper over an OpenAI-compatible chat completions endpoint.
Returns Ok(text) or Err(reason); never raises for transport or shape problems.
"""
import logging
import os
from typing import List, Optional

import requests
from pydantic import BaseModel, ValidationError

from ...models.prediction import Err, Ok, ServiceResult

logger = logging.getLogger(__name__)


GENERATIVE_SERVICE_URL = os.getenv("GENERATIVE_SERVICE_URL", "https://api.openai.com/v1")
GENERATIVE_SERVICE_API_KEY = os.getenv("GENERATIVE_SERVICE_API_KEY")
GENERATIVE_MODEL = os.getenv("GENERATIVE_MODEL", "gpt-4")
GENERATIVE_TIMEOUT_SECONDS = float(os.getenv("GENERATIVE_TIMEOUT_SECONDS", "60"))


class _Message(BaseModel):
    content: Optional[str] = None


class _Choice(BaseModel):
    message: _Message


class ChatCompletionPayload(BaseModel):
    choices: List[_Choice]


class GenerativeClient:
    """
    Usage:
        client = GenerativeClient()
        result = client.complete(system_prompt, user_prompt)
        if result.ok:
            text = result.value
    """

    def __init__(
        self,
        base_url: str = GENERATIVE_SERVICE_URL,
        api_key: Optional[str] = GENERATIVE_SERVICE_API_KEY,
        model: str = GENERATIVE_MODEL,
        timeout: float = GENERATIVE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, system_prompt: str, user_prompt: str) -> ServiceResult:
        if not self.configured:
            return Err("generative service not configured")

        try:
            response = self._session.post(
                f"{self.base_url}/chat/completions",
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.Timeout:
            return Err("timeout")
        except requests.RequestException as e:
            return Err(f"network error: {type(e).__name__}")

        if not 200 <= response.status_code < 300:
            return Err(f"status {response.status_code}")

        try:
            parsed = ChatCompletionPayload.model_validate(response.json())
        except ValueError as e:
            # ValidationError is a ValueError; so is a JSON decode failure
            kind = "malformed response" if isinstance(e, ValidationError) else "response body is not JSON"
            return Err(kind)

        if not parsed.choices:
            return Err("no choices returned")

        content = (parsed.choices[0].message.content or "").strip()
        if not content:
            return Err("empty completion")

        return Ok(content)
