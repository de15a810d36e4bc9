import json
import logging
import re
from typing import Protocol

from langchain_openai import ChatOpenAI

from .prompts import render

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    def complete(self, task: str, variables: dict) -> dict | list:
        ...


def parse_json_reply(text: str) -> dict | list:
    """Parse a JSON reply, tolerating a surrounding markdown code fence."""
    text = (text or "").strip()
    if not text:
        raise ValueError("LLM returned an empty response")
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"```\s*$", "", text)
        text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"LLM reply is not valid JSON ({e}): {text[:200]}") from e


class OpenAICompletionClient:
    """
    Structured completions through langchain-openai.

    The chat model is created on first use so importing the worker does
    not require OPENAI_API_KEY.
    """

    def __init__(self, model: str = "gpt-4o-mini", temperature: float = 0.3, timeout: float = 60.0):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._llm = None

    @classmethod
    def from_settings(cls, settings) -> "OpenAICompletionClient":
        return cls(
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            timeout=settings.llm_timeout_seconds,
        )

    @property
    def llm(self) -> ChatOpenAI:
        if self._llm is None:
            # ChatOpenAI reads OPENAI_API_KEY from the environment
            self._llm = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                timeout=self.timeout,
                max_retries=1,
            )
        return self._llm

    def complete(self, task: str, variables: dict) -> dict | list:
        prompt = render(task, variables)
        response = self.llm.invoke(prompt)
        response_text = response.content if hasattr(response, "content") else str(response)
        logger.debug(f"[LLM] {task}: {len(prompt)} prompt chars, {len(response_text)} reply chars")
        return parse_json_reply(response_text)
