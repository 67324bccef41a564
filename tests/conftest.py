from __future__ import annotations

import itertools
import threading

import pytest

from llmeval.engines.base import (
    GenerateDisposition,
    GenerateResult,
    MemorySnapshot,
    ModelContainer,
    ModelContext,
)
from llmeval.evaluator import LLMEvaluator
from llmeval.prompts import ChatTemplateProcessor
from llmeval.registry import ModelRegistry


class FakeTokenizer:
    chat_template = None

    def __call__(self, text, truncation=False, max_length=None):
        ids = [ord(ch) for ch in text]
        if truncation and max_length is not None:
            ids = ids[:max_length]
        return {"input_ids": ids}

    def decode(self, tokens, skip_special_tokens=False):
        return " ".join(f"t{t}" for t in tokens)


class FakeParameter:
    def __init__(self, count):
        self._count = count

    def numel(self):
        return self._count


class FakeModel:
    def parameters(self):
        return [FakeParameter(3 * 1024 * 1024), FakeParameter(2 * 1024 * 1024)]


class FakeEngine:
    """Emits ``num_tokens`` tokens (or forever when None) through the callback."""

    def __init__(self, num_tokens=10, load_error=None, generate_error=None):
        self.num_tokens = num_tokens
        self.load_error = load_error
        self.generate_error = generate_error
        self.load_calls = []
        self.generate_calls = 0
        self.seeds = []
        self.cache_limits = []
        self.cache_clears = 0
        self.progress_fractions = (0.0, 0.5, 1.0)
        self.on_token = None
        # key -> Event; load_container blocks on it after reporting progress
        self.load_gates = {}
        self.load_entered = threading.Event()

    def load_container(self, configuration, progress):
        self.load_calls.append(configuration.key)
        for fraction in self.progress_fractions:
            progress(fraction)
        gate = self.load_gates.get(configuration.key)
        if gate is not None:
            self.load_entered.set()
            gate.wait(timeout=5)
        if self.load_error:
            raise self.load_error
        tokenizer = FakeTokenizer()
        context = ModelContext(
            model=FakeModel(),
            tokenizer=tokenizer,
            processor=ChatTemplateProcessor(tokenizer, max_context=64),
        )
        return ModelContainer(
            context=context,
            configuration=configuration,
            path=f"/models/{configuration.key}",
        )

    def generate(self, lm_input, parameters, context, did_generate):
        self.generate_calls += 1
        if self.generate_error:
            raise self.generate_error
        tokens = []
        counter = itertools.count() if self.num_tokens is None else range(self.num_tokens)
        for token in counter:
            tokens.append(token)
            if self.on_token:
                self.on_token(tokens)
            if did_generate(list(tokens)) is GenerateDisposition.STOP:
                break
        return GenerateResult(
            output=context.decode(tokens),
            tokens=tokens,
            prompt_tokens=len(lm_input.tokens),
            decode_time_s=0.8,
        )

    def seed(self, value):
        self.seeds.append(value)

    def set_cache_limit(self, limit):
        self.cache_limits.append(limit)

    def clear_cache(self):
        self.cache_clears += 1

    def memory_snapshot(self):
        return MemorySnapshot(
            active_memory=512 * 1024 * 1024,
            cache_memory=1024,
            peak_memory=3 * 1024 * 1024 * 1024,
            memory_limit=16 * 1024 * 1024 * 1024,
            cache_limit=1024 * 1024 * 1024,
        )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def registry():
    return ModelRegistry()


@pytest.fixture
def clock():
    ticks = itertools.count(1000)
    return lambda: float(next(ticks))


@pytest.fixture
def evaluator(engine, registry, clock):
    return LLMEvaluator(engine=engine, registry=registry, clock=clock)
