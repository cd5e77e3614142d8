from typing import List, Dict, Any, Optional
import logging

import httpx

from ..config import settings
from ..core.errors import ModelCallError

logger = logging.getLogger("docchat.llm")


class LLMClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.chat_model
        self.url = (base_url or settings.openai_base_url).rstrip("/") + "/chat/completions"
        self.temperature = settings.chat_temperature if temperature is None else temperature
        self.timeout = timeout or settings.http_timeout
        self._transport = transport

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]] | None = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Single chat-completions request. Multi-turn tool iteration is the
        caller's job.

        Returns the raw message dict of the first choice, e.g.:
        {
            "role": "assistant",
            "content": "...",
            "tool_calls": [...]
        }
        or None when the response carries no choice/message.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if tools:
            payload["tools"] = tools

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self.url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Chat completion failed (%s): %s", type(exc).__name__, exc)
            raise ModelCallError(
                f"Chat completion failed: {type(exc).__name__}"
            ) from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return None
        message = choices[0].get("message")
        return message or None
