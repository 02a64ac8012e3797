"""
AnthropicClient: one request/response call to the Messages API.
"""
import asyncio

import aiohttp
import orjson
from loguru import logger as l
from pydantic import ValidationError

from worker import meta_config
from worker.utils.aiohttp_client_session_mixin import AioHttpClientSessionClassVarMixin

from .base import LenientModelBase
from .exceptions import UpstreamCallFailedError


class ContentBlock(LenientModelBase):
    type: str = "text"
    text: str = ""


class MessagesResponse(LenientModelBase):
    content: list[ContentBlock]


def history_to_messages(history: list[str], requester_label: str = meta_config.REQUESTER_LABEL) -> list[dict[str, str]]:
    """
    Rebuilds user/assistant turns from chat-log lines.

    "<requester>: text" lines are user turns; any other "<name>: text" line
    is an assistant turn. Lines without a speaker are skipped.
    """
    user_prefix = f"{requester_label}: "
    messages: list[dict[str, str]] = []
    for line in history:
        if line.startswith(user_prefix):
            messages.append({"role": "user", "content": line[len(user_prefix):]})
            continue
        _, sep, content = line.partition(": ")
        if sep:
            messages.append({"role": "assistant", "content": content})
    return messages


class AnthropicClient(AioHttpClientSessionClassVarMixin):

    def __init__(
            self,
            api_key: str | None = None,
            api_url: str = meta_config.LLM_API_URL,
            model: str = meta_config.LLM_MODEL,
            max_tokens: int = meta_config.LLM_MAX_TOKENS,
            timeout: float = meta_config.LLM_TIMEOUT,
    ):
        self.api_key = meta_config.get_api_key() if api_key is None else api_key
        self.api_url = api_url
        self.model = model
        self.max_tokens = max_tokens
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        if not self.api_key:
            l.warning("Neither ANTHROPIC_API_KEY_FILE nor ANTHROPIC_API_KEY is set. LLM calls will fail.")

    def build_payload(self, message: str, history: list[str], system_prompt: str | None) -> dict:
        messages = history_to_messages(history)
        messages.append({"role": "user", "content": message})
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    async def send_message(self, message: str, history: list[str], system_prompt: str | None = None) -> str:
        """Sends message with prior history; returns the response's text blocks joined by newlines."""
        if not self.api_key:
            raise UpstreamCallFailedError("ANTHROPIC_API_KEY not set")

        l.debug(f"Sending message to LLM ({len(history)} history lines)")
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": meta_config.LLM_API_VERSION,
            "content-type": "application/json",
        }
        try:
            async with self.http_session.post(
                self.api_url,
                data=orjson.dumps(self.build_payload(message, history, system_prompt)),
                headers=headers,
                timeout=self._timeout,
            ) as response:
                body = await response.read()
                if response.status != 200:
                    detail = body.decode("utf-8", errors="replace")
                    l.error(f"LLM API error ({response.status}): {detail}")
                    raise UpstreamCallFailedError(f"LLM API error ({response.status}): {detail}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamCallFailedError(f"LLM request failed: {type(e).__name__}: {e}") from e

        try:
            parsed = MessagesResponse.model_validate_json(body)
        except ValidationError as e:
            raise UpstreamCallFailedError(f"Malformed LLM response: {e.error_count()} validation error(s)") from e

        return "\n".join(block.text for block in parsed.content if block.type == "text")
