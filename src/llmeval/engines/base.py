"""Engine protocol and dataclasses."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, TypeVar

from ..config import ModelSpec

T = TypeVar("T")

ProgressCallback = Callable[[float], None]


@dataclass
class GenerateParameters:
    temperature: float = 0.6
    top_p: float = 1.0
    max_tokens: int | None = None


@dataclass
class UserInput:
    prompt: str


@dataclass
class LMInput:
    text: str
    tokens: list[int]


class GenerateDisposition(Enum):
    MORE = "more"
    STOP = "stop"


TokenCallback = Callable[[list[int]], GenerateDisposition]


@dataclass
class GenerateResult:
    output: str
    tokens: list[int]
    prompt_tokens: int
    decode_time_s: float
    prompt_time_s: float = 0.0

    @property
    def tokens_per_second(self) -> float:
        if self.decode_time_s <= 0:
            return 0.0
        return len(self.tokens) / self.decode_time_s


@dataclass
class MemorySnapshot:
    active_memory: int = 0
    cache_memory: int = 0
    peak_memory: int = 0
    memory_limit: int = 0
    cache_limit: int = 0


class InputProcessor(Protocol):
    def prepare(self, user_input: UserInput) -> LMInput:
        ...


@dataclass
class ModelContext:
    model: Any
    tokenizer: Any
    processor: InputProcessor

    def decode(self, tokens: list[int]) -> str:
        return self.tokenizer.decode(tokens, skip_special_tokens=True)

    def num_parameters(self) -> int:
        module = getattr(self.model, "model", self.model)
        if not hasattr(module, "parameters"):
            return 0
        return sum(p.numel() for p in module.parameters())


@dataclass
class ModelContainer:
    """Owns a loaded model context and serializes access to it."""

    context: ModelContext
    configuration: ModelSpec
    path: str
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def perform(self, fn: Callable[[ModelContext], T]) -> T:
        with self._lock:
            return fn(self.context)


class LLMEngine(Protocol):
    def load_container(self, configuration: ModelSpec, progress: ProgressCallback) -> ModelContainer:
        ...

    def generate(
        self,
        lm_input: LMInput,
        parameters: GenerateParameters,
        context: ModelContext,
        did_generate: TokenCallback,
    ) -> GenerateResult:
        ...

    def seed(self, value: int) -> None:
        ...

    def set_cache_limit(self, limit: int) -> None:
        ...

    def clear_cache(self) -> None:
        ...

    def memory_snapshot(self) -> MemorySnapshot:
        ...
