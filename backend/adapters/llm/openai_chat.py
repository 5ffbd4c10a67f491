"""OpenAI chat-completions reply adapter."""
from __future__ import annotations

from typing import Any

from adapters.llm.base import ReplyAdapter
from adapters.llm.prompts import prompt_hash, resolve_system_prompt
from context.serialization import serialize_for_llm
from observability.logger import log_event
from spec import LLM_MODEL_DEFAULT


class OpenAIChatReplyAdapter(ReplyAdapter):
    """
    Concrete reply adapter over an OpenAI-compatible chat API.

    Design notes:
    - One instance serves every session; it holds no per-session state.
    - Streams the completion and joins the deltas, so a slow provider
      still surfaces first-token latency in the logs.
    - Does NOT retry or decide failure policy.
    """

    def __init__(
        self,
        *,
        client: Any,  # Type: openai.AsyncOpenAI
        model: str = LLM_MODEL_DEFAULT,
        system_prompt: str | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._system_prompt = system_prompt or resolve_system_prompt()
        self._prompt_hash = prompt_hash(self._system_prompt)

    async def generate_reply(
        self,
        *,
        transcript: str,
    ) -> str:
        messages = serialize_for_llm(
            system_prompt=self._system_prompt,
            user_text=transcript,
        )

        log_event({
            "event_type": "LLM_REQUEST",
            "model": self._model,
            "prompt_hash": self._prompt_hash,
        }, level="DEBUG")

        stream = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            stream=True,
        )

        parts: list[str] = []
        async for chunk in stream:
            delta = self._extract_delta(chunk)
            if delta:
                parts.append(delta)

        return "".join(parts).strip()

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """
        Extract token delta from vendor response (OpenAI format).
        """
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""
