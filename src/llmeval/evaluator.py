"""Load-state controller and generation orchestrator behind the UI."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Union

from .config import ModelSpec
from .engines.base import (
    GenerateDisposition,
    GenerateParameters,
    GenerateResult,
    LLMEngine,
    ModelContainer,
    ModelContext,
    UserInput,
)
from .registry import ModelRegistry

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loaded:
    container: ModelContainer


LoadState = Union[Idle, Loaded]


class LLMEvaluator:
    """View-model for the evaluation page.

    ``running``, ``output``, ``model_info`` and ``stat`` are observable:
    every assignment that changes one of them is reported to the listeners
    registered with :meth:`subscribe`.
    """

    OBSERVED = ("running", "output", "model_info", "stat")

    def __init__(
        self,
        engine: LLMEngine,
        registry: ModelRegistry,
        configuration: ModelSpec | None = None,
        parameters: GenerateParameters | None = None,
        max_tokens: int = 4000,
        display_every_n_tokens: int = 4,
        cache_limit: int = 1024 * 1024 * 1024,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._listeners: list[Listener] = []
        self._guard = threading.Lock()
        # held across a whole load so switches and loads never interleave
        self._load_lock = threading.RLock()
        self.engine = engine
        self.registry = registry
        self.model_configuration = configuration or registry.default()
        self.generate_parameters = parameters or GenerateParameters()
        self.max_tokens = max_tokens
        self.display_every_n_tokens = max(1, display_every_n_tokens)
        self.cache_limit = cache_limit
        self._clock = clock

        self.running = False
        self.output = ""
        self.model_info = ""
        self.stat = ""
        self.load_state: LoadState = Idle()

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.OBSERVED:
            changed = getattr(self, name, None) != value
            super().__setattr__(name, value)
            if changed:
                for listener in list(self._listeners):
                    listener(name, value)
            return
        super().__setattr__(name, value)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def model_container(self) -> ModelContainer | None:
        if isinstance(self.load_state, Loaded):
            return self.load_state.container
        return None

    def select_model(self, key: str | None) -> ModelSpec:
        """Switch configuration; the next load() fetches the new model."""
        with self._load_lock:
            self.load_state = Idle()
            self.engine.clear_cache()
            self.model_configuration = self.registry.resolve(key)
            logger.info("Selected model %s", self.model_configuration.key)
            return self.model_configuration

    def load(self) -> ModelContainer:
        """Load and return the model; later calls return the loaded one.

        Concurrent callers wait for a load in progress and share its result.
        """
        with self._load_lock:
            if isinstance(self.load_state, Loaded):
                return self.load_state.container

            configuration = self.model_configuration
            self.engine.set_cache_limit(self.cache_limit)

            def report(fraction: float) -> None:
                self.model_info = f"Downloading {configuration.name}: {int(fraction * 100)}%"

            container = self.engine.load_container(configuration, report)
            num_params = container.perform(lambda context: context.num_parameters())

            self.model_info = (
                f"Loaded {configuration.repo_id}.  Weights: {num_params // (1024 * 1024)}M. "
                f"Path: {container.path}"
            )
            logger.info(self.model_info)
            self.load_state = Loaded(container)
            return container

    def preload(self) -> None:
        try:
            self.load()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to load %s", self.model_configuration.key)
            self.output = f"Failed: {exc}"

    def generate(self, prompt: str) -> None:
        with self._guard:
            if self.running:
                logger.debug("Generation already running, ignoring prompt")
                return
            self.running = True

        self.output = ""
        try:
            container = self.load()

            # each call gets a new seed so identical prompts give new completions
            self.engine.seed(int(self._clock() * 1000))

            result = container.perform(lambda context: self._generate(context, prompt))

            # the last tokens may not have landed on a display boundary
            if result.output != self.output:
                self.output = result.output
            self.stat = f" Tokens/second: {result.tokens_per_second:.3f}"
        except Exception as exc:  # noqa: BLE001
            logger.exception("Generation failed")
            self.output = f"Failed: {exc}"
        finally:
            self.running = False

    def _generate(self, context: ModelContext, prompt: str) -> GenerateResult:
        lm_input = context.processor.prepare(UserInput(prompt=prompt))

        def did_generate(tokens: list[int]) -> GenerateDisposition:
            if len(tokens) % self.display_every_n_tokens == 0:
                self.output = context.decode(tokens)
            if len(tokens) >= self.max_tokens:
                return GenerateDisposition.STOP
            return GenerateDisposition.MORE

        return self.engine.generate(lm_input, self.generate_parameters, context, did_generate)
