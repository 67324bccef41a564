"""Prompt builders."""
from __future__ import annotations

from typing import Any

from .engines.base import LMInput, UserInput


DEFAULT_SYSTEM = "You are a helpful assistant."


def build_chat_messages(prompt: str, system: str | None = DEFAULT_SYSTEM) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


def render_prompt(tokenizer: Any, messages: list[dict[str, str]]) -> str:
    if getattr(tokenizer, "chat_template", None) and hasattr(tokenizer, "apply_chat_template"):
        return tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
    lines = []
    for msg in messages:
        role = msg.get("role", "user").capitalize()
        lines.append(f"{role}: {msg.get('content','')}")
    lines.append("Assistant:")
    return "\n".join(lines)


class ChatTemplateProcessor:
    """Turns a user prompt into model input ids using the tokenizer's chat template."""

    def __init__(self, tokenizer: Any, max_context: int, system: str | None = DEFAULT_SYSTEM) -> None:
        self._tokenizer = tokenizer
        self._max_context = max_context
        self._system = system

    def prepare(self, user_input: UserInput) -> LMInput:
        prompt = render_prompt(self._tokenizer, build_chat_messages(user_input.prompt, self._system))
        encoded = self._tokenizer(prompt, truncation=True, max_length=self._max_context)
        return LMInput(text=prompt, tokens=list(encoded["input_ids"]))
