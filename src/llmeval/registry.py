"""Model registry helpers."""
from __future__ import annotations

import logging

from .config import ModelSpec

logger = logging.getLogger(__name__)

QWEN32B_INSTRUCT_4BIT = ModelSpec(
    key="Qwen32bInstruct4bit",
    display_name="Qwen32bInstruct4bit",
    repo_id="Qwen/Qwen2.5-32B-Instruct",
    compression="4bit",
)

QWEN32B_INSTRUCT_8BIT = ModelSpec(
    key="Qwen32bInstruct8bit",
    display_name="Qwen32bInstruct8bit",
    repo_id="Qwen/Qwen2.5-32B-Instruct",
    compression="8bit",
)

BUILTIN_MODELS = [QWEN32B_INSTRUCT_4BIT, QWEN32B_INSTRUCT_8BIT]


class ModelRegistry:
    def __init__(self, models: list[ModelSpec] | None = None, default_key: str | None = None):
        self._models = list(models) if models else list(BUILTIN_MODELS)
        self._default_key = default_key or self._models[0].key

    def list(self) -> list[ModelSpec]:
        return list(self._models)

    def get(self, key: str) -> ModelSpec:
        for model in self._models:
            if model.key == key:
                return model
        raise KeyError(f"Model not found: {key}")

    def default(self) -> ModelSpec:
        return self.get(self._default_key)

    def resolve(self, key: str | None) -> ModelSpec:
        """Like get(), but unknown or missing keys select the default model."""
        if key is None:
            return self.default()
        try:
            return self.get(key)
        except KeyError:
            logger.warning("Unknown model option %r, using %s", key, self._default_key)
            return self.default()
