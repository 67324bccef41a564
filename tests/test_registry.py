from __future__ import annotations

import pytest

from llmeval.config import ModelSpec
from llmeval.registry import BUILTIN_MODELS, ModelRegistry


def test_builtin_catalog():
    registry = ModelRegistry()

    assert [m.key for m in registry.list()] == ["Qwen32bInstruct4bit", "Qwen32bInstruct8bit"]
    assert registry.default().compression == "4bit"
    assert registry.get("Qwen32bInstruct8bit").compression == "8bit"


def test_get_unknown_raises():
    with pytest.raises(KeyError):
        ModelRegistry().get("missing")


def test_resolve_falls_back_to_default():
    registry = ModelRegistry()

    assert registry.resolve("missing") is registry.default()
    assert registry.resolve(None) is registry.default()
    assert registry.resolve("Qwen32bInstruct8bit").key == "Qwen32bInstruct8bit"


def test_configured_models_replace_catalog():
    models = [
        ModelSpec(key="a", display_name="A", repo_id="org/a"),
        ModelSpec(key="b", display_name="B", repo_id="org/b"),
    ]
    registry = ModelRegistry(models, default_key="b")

    assert [m.key for m in registry.list()] == ["a", "b"]
    assert registry.default().key == "b"
    assert BUILTIN_MODELS[0] not in registry.list()


def test_list_returns_copy():
    registry = ModelRegistry()
    registry.list().clear()

    assert len(registry.list()) == 2
